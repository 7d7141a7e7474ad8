# eyeportal/schemas/profile.py
from pydantic import BaseModel, Field
from typing import Optional
from enum import Enum

class UserType(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"

class Profile(BaseModel):
    id: str
    user_type: UserType
    full_name: str
    email: str
    phone: Optional[str] = None
    specialization: Optional[str] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    avatar_url: Optional[str] = None

class SignInRequest(BaseModel):
    email: str
    password: str

class SignUpRequest(SignInRequest):
    full_name: str = Field(..., min_length=1, max_length=100)

class AuthStateResponse(BaseModel):
    ready: bool
    identity: Optional[str] = None
    expires_at: Optional[str] = None
    profile: Optional[Profile] = None
