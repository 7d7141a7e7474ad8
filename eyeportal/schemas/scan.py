# eyeportal/schemas/scan.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class DiseaseLevel(str, Enum):
    NORMAL = "normal"
    MILD = "mild"
    MODERATE = "moderate"
    SEVERE = "severe"
    CRITICAL = "critical"

class AnalysisResult(BaseModel):
    disease_detected: Optional[str] = Field(None, description="Name of the detected condition")
    disease_level: Optional[DiseaseLevel] = Field(None, description="Severity level of the condition")
    confidence_score: Optional[float] = Field(None, ge=0, le=100, description="Confidence in percent")

class ScanRecord(BaseModel):
    id: str
    patient_id: str
    image_reference: str
    disease_detected: Optional[str] = None
    disease_level: Optional[DiseaseLevel] = None
    confidence_score: Optional[float] = None
    scan_date: datetime

class ScanViewResponse(BaseModel):
    state: str
    camera: str
    source: Optional[str] = None
    image: Optional[str] = None
    result: Optional[AnalysisResult] = None
