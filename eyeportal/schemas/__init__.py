# Schemas package (re-export feature modules for stable imports)
from .profile import UserType, Profile, SignInRequest, SignUpRequest, AuthStateResponse
from .scan import DiseaseLevel, AnalysisResult, ScanRecord, ScanViewResponse
from .appointment import AppointmentStatus, AppointmentCreate, Appointment, AppointmentView, DoctorStats

__all__ = [
    "UserType",
    "Profile",
    "SignInRequest",
    "SignUpRequest",
    "AuthStateResponse",
    "DiseaseLevel",
    "AnalysisResult",
    "ScanRecord",
    "ScanViewResponse",
    "AppointmentStatus",
    "AppointmentCreate",
    "Appointment",
    "AppointmentView",
    "DoctorStats",
]
