from dataclasses import dataclass
from typing import Dict, List, Optional
from datetime import datetime, timezone
import logging

from ..ports.record_store import RecordStore, APPOINTMENTS, PROFILES, eq
from .profile_service import ProfileService
from ...exceptions import ValidationError, PersistenceError
from ...schemas.appointment import Appointment, AppointmentStatus, AppointmentView
from ...schemas.profile import Profile, UserType
from ...utils import as_utc, utc_now

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%Y-%m-%dT%H:%M", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M")


def parse_appointment_date(value: str) -> datetime:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except (TypeError, ValueError):
            continue
    raise ValidationError("Invalid appointment date format. Use YYYY-MM-DDTHH:MM")


@dataclass
class AppointmentsService:
    store: RecordStore
    profiles: ProfileService

    async def list_doctors(self) -> List[Profile]:
        return await self.profiles.list_doctors()

    async def book(self, patient_id: str, doctor_id: str, appointment_date: str, symptoms: str,
                   now: Optional[datetime] = None) -> Appointment:
        when = parse_appointment_date(appointment_date)
        now = as_utc(now) if now else utc_now()
        if when < now:
            raise ValidationError("Appointment date cannot be in the past")

        doctor = await self.profiles.get_profile(doctor_id)
        if not doctor or doctor.user_type != UserType.DOCTOR:
            raise ValidationError("Doctor not found")

        try:
            row = await self.store.insert(APPOINTMENTS, {
                "patient_id": patient_id,
                "doctor_id": doctor_id,
                "appointment_date": when,
                "symptoms": (symptoms or "").strip(),
                "status": AppointmentStatus.PENDING.value,
            })
        except Exception as e:
            logger.error(f"Error booking appointment for {patient_id}: {e}")
            raise PersistenceError("Booking failed") from e
        logger.info(f"Appointment {row['id']} booked with {doctor_id}")
        return Appointment.model_validate(row)

    async def list_for_patient(self, patient_id: str) -> List[AppointmentView]:
        rows = await self.store.query(APPOINTMENTS, [eq("patient_id", patient_id)],
                                      order_by="appointment_date", descending=True)
        doctors = await self._profiles_by_id({r["doctor_id"] for r in rows})
        views = []
        for r in rows:
            doctor = doctors.get(r["doctor_id"])
            views.append(AppointmentView(
                **Appointment.model_validate(r).model_dump(),
                counterpart_name=doctor.full_name if doctor else None,
                counterpart_detail=doctor.specialization if doctor else None,
            ))
        return views

    async def recent_for_doctor(self, doctor_id: str, limit: int = 5) -> List[AppointmentView]:
        rows = await self.store.query(APPOINTMENTS, [eq("doctor_id", doctor_id)],
                                      order_by="appointment_date", limit=limit)
        patients = await self._profiles_by_id({r["patient_id"] for r in rows})
        views = []
        for r in rows:
            patient = patients.get(r["patient_id"])
            views.append(AppointmentView(
                **Appointment.model_validate(r).model_dump(),
                counterpart_name=patient.full_name if patient else None,
                counterpart_detail=patient.email if patient else None,
            ))
        return views

    async def _profiles_by_id(self, ids) -> Dict[str, Profile]:
        found: Dict[str, Profile] = {}
        for profile_id in ids:
            rows = await self.store.query(PROFILES, [eq("id", profile_id)], limit=1)
            if rows:
                found[profile_id] = Profile.model_validate(rows[0])
        return found
