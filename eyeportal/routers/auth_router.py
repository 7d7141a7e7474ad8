from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
import logging

from ..application.services import AuthState
from ..application.services.role_guard import DASHBOARD_ROUTES, redirect_if_signed_in
from ..dependencies import Container, get_container, settled_state
from ..exceptions import AuthError, create_success_response, to_http_exception
from ..schemas.profile import AuthStateResponse, SignInRequest, SignUpRequest, UserType

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Auth"])


@router.get("/auth/state")
async def auth_state(container: Container = Depends(get_container)):
    state = container.synchronizer.state
    return create_success_response(AuthStateResponse(
        ready=state.ready,
        identity=state.identity.id if state.identity else None,
        expires_at=state.session.expires_at.isoformat() if state.session else None,
        profile=state.profile,
    ).model_dump(mode="json"))


@router.get("/{role}/auth")
async def sign_in_page(role: UserType, state: AuthState = Depends(settled_state)):
    target = redirect_if_signed_in(state, role)
    if target:
        return RedirectResponse(target, status_code=303)
    return create_success_response({"role": role.value, "signed_in": False})


@router.post("/auth/{role}/sign-in")
async def sign_in(role: UserType, body: SignInRequest, container: Container = Depends(get_container)):
    try:
        session = await container.auth_flow.sign_in(body.email, body.password, role)
    except AuthError as e:
        container.notifier.drain()
        raise to_http_exception(e)
    return create_success_response({
        "user_id": session.user.id,
        "redirect_to": DASHBOARD_ROUTES[role],
        "notifications": container.notifier.drain(),
    })


@router.post("/auth/{role}/sign-up")
async def sign_up(role: UserType, body: SignUpRequest, container: Container = Depends(get_container)):
    try:
        session = await container.auth_flow.sign_up(body.email, body.password, body.full_name, role)
    except AuthError as e:
        container.notifier.drain()
        raise to_http_exception(e)
    return create_success_response({
        "user_id": session.user.id,
        "redirect_to": DASHBOARD_ROUTES[role],
        "notifications": container.notifier.drain(),
    })


@router.post("/auth/sign-out")
async def sign_out(container: Container = Depends(get_container)):
    # Leaving the portal also leaves the capture screen.
    container.close_scan_visit()
    await container.auth_flow.sign_out()
    return create_success_response({"redirect_to": "/", "notifications": container.notifier.drain()})


@router.post("/auth/refresh")
async def refresh_session(container: Container = Depends(get_container)):
    try:
        session = await container.auth.refresh_session()
    except AuthError as e:
        raise to_http_exception(e)
    return create_success_response({
        "user_id": session.user.id,
        "expires_at": session.expires_at.isoformat(),
    })
