# eyeportal/schemas/appointment.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime
from enum import Enum

class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class AppointmentCreate(BaseModel):
    doctor_id: str
    appointment_date: str  # YYYY-MM-DDTHH:MM
    symptoms: str = ""

class Appointment(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    appointment_date: datetime
    symptoms: str = ""
    status: AppointmentStatus = AppointmentStatus.PENDING

class AppointmentView(Appointment):
    counterpart_name: Optional[str] = None
    counterpart_detail: Optional[str] = None

class DoctorStats(BaseModel):
    total_patients: int = Field(0, ge=0)
    today_appointments: int = Field(0, ge=0)
    pending_reviews: int = Field(0, ge=0)
