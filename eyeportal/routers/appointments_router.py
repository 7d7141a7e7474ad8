from fastapi import APIRouter, Depends
import logging

from ..application.services import AuthState
from ..dependencies import Container, get_container, require_role
from ..exceptions import create_success_response
from ..schemas.appointment import AppointmentCreate
from ..schemas.profile import UserType

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/patient/appointments", tags=["Appointments"])

patient_only = require_role(UserType.PATIENT)


@router.get("")
async def list_appointments(state: AuthState = Depends(patient_only), container: Container = Depends(get_container)):
    appointments = await container.appointments.list_for_patient(state.identity.id)
    return create_success_response({"appointments": [a.model_dump(mode="json") for a in appointments]})


@router.get("/doctors")
async def list_doctors(state: AuthState = Depends(patient_only), container: Container = Depends(get_container)):
    doctors = await container.appointments.list_doctors()
    return create_success_response({"doctors": [d.model_dump(mode="json") for d in doctors]})


@router.post("")
async def book_appointment(
    body: AppointmentCreate,
    state: AuthState = Depends(patient_only),
    container: Container = Depends(get_container),
):
    appointment = await container.appointments.book(
        state.identity.id, body.doctor_id, body.appointment_date, body.symptoms
    )
    container.notifier.success("Appointment booked successfully!")
    return create_success_response({
        "appointment": appointment.model_dump(mode="json"),
        "notifications": container.notifier.drain(),
    })
