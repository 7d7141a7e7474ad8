from fastapi import APIRouter, Depends

from ..application.services import AuthState
from ..config import settings
from ..dependencies import Container, get_container, require_role
from ..exceptions import create_success_response
from ..schemas.profile import UserType

router = APIRouter(tags=["Dashboard"])


@router.get("/patient/dashboard")
async def patient_dashboard(
    state: AuthState = Depends(require_role(UserType.PATIENT)),
    container: Container = Depends(get_container),
):
    scans = await container.dashboard.recent_scans(state.identity.id)
    return create_success_response({
        "profile": state.profile.model_dump(mode="json"),
        "recent_scans": [s.model_dump(mode="json") for s in scans],
    })


@router.get("/doctor/dashboard")
async def doctor_dashboard(
    state: AuthState = Depends(require_role(UserType.DOCTOR)),
    container: Container = Depends(get_container),
):
    doctor_id = state.identity.id
    stats = await container.dashboard.doctor_stats(doctor_id)
    appointments = await container.appointments.recent_for_doctor(
        doctor_id, limit=settings.DOCTOR_RECENT_APPOINTMENTS_LIMIT
    )
    return create_success_response({
        "profile": state.profile.model_dump(mode="json"),
        "stats": stats.model_dump(),
        "recent_appointments": [a.model_dump(mode="json") for a in appointments],
    })
