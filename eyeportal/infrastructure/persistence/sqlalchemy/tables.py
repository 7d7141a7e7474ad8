# eyeportal/infrastructure/persistence/sqlalchemy/tables.py
from typing import Optional
from sqlalchemy import DateTime
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid

from ....utils import utc_now


def _new_id() -> str:
    return str(uuid.uuid4())


class AuthUserRow(SQLModel, table=True):
    __tablename__ = "auth_users"
    id: str = Field(default_factory=_new_id, primary_key=True)
    email: str = Field(max_length=100, unique=True, index=True)
    password_hash: str
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class ProfileRow(SQLModel, table=True):
    __tablename__ = "profiles"
    id: str = Field(primary_key=True)
    user_type: str = Field(max_length=10, index=True)
    full_name: str = Field(max_length=100)
    email: str = Field(max_length=100)
    phone: Optional[str] = Field(default=None, max_length=20)
    specialization: Optional[str] = Field(default=None, max_length=100)
    experience_years: Optional[int] = Field(default=None)
    avatar_url: Optional[str] = Field(default=None, max_length=255)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class EyeScanRow(SQLModel, table=True):
    __tablename__ = "eye_scans"
    id: str = Field(default_factory=_new_id, primary_key=True)
    patient_id: str = Field(foreign_key="profiles.id", index=True)
    image_reference: str
    disease_detected: Optional[str] = None
    disease_level: Optional[str] = Field(default=None, max_length=10)
    confidence_score: Optional[float] = None
    scan_date: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


class AppointmentRow(SQLModel, table=True):
    __tablename__ = "appointments"
    id: str = Field(default_factory=_new_id, primary_key=True)
    patient_id: str = Field(foreign_key="profiles.id", index=True)
    doctor_id: str = Field(foreign_key="profiles.id", index=True)
    appointment_date: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    symptoms: str = ""
    status: str = Field(default="pending", max_length=10)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))


TABLES = {
    "auth_users": AuthUserRow,
    "profiles": ProfileRow,
    "eye_scans": EyeScanRow,
    "appointments": AppointmentRow,
}
