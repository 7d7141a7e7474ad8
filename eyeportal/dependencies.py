import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request

from .application.ports.device_api import DeviceAPI, StreamConstraints
from .application.ports.eye_analyzer import EyeAnalyzer
from .application.ports.record_store import RecordStore
from .application.ports.storage_repo import StorageRepository
from .application.services import (
    AppointmentsService, AuthFlowService, AuthState, CaptureDeviceManager, DashboardService,
    ProfileService, ScanWorkflow, SessionSynchronizer,
)
from .application.services.role_guard import GuardDecision, RoleGuard, decide
from .config import settings
from .infrastructure.analysis.simulated_analyzer import SimulatedEyeAnalyzer
from .infrastructure.audit.std_logger import StdAuditLogger
from .infrastructure.auth.local_auth_service import LocalAuthService
from .infrastructure.camera.preview import FramePreview
from .infrastructure.notify.toast_notifier import ToastNotifier
from .infrastructure.storage.local_storage import LocalStorageRepository
from .schemas.profile import UserType

logger = logging.getLogger(__name__)


@dataclass
class Container:
    store: RecordStore
    profiles: ProfileService
    auth: LocalAuthService
    synchronizer: SessionSynchronizer
    auth_flow: AuthFlowService
    appointments: AppointmentsService
    dashboard: DashboardService
    device_api: DeviceAPI
    analyzer: EyeAnalyzer
    storage: StorageRepository
    notifier: ToastNotifier
    preview: FramePreview
    scan_visit: Optional[ScanWorkflow] = None
    scan_owner: Optional[str] = None
    scan_guard: Optional[RoleGuard] = None

    def open_scan_visit(self) -> ScanWorkflow:
        """Return the signed-in patient's open capture screen, or start a fresh one."""
        identity = self.synchronizer.state.identity
        owner = identity.id if identity else None
        if self.scan_visit is not None and self.scan_visit.is_open and self.scan_owner == owner:
            return self.scan_visit
        self.close_scan_visit()
        camera = CaptureDeviceManager(
            self.device_api,
            self.notifier,
            preview=self.preview,
            constraints=StreamConstraints(
                device_index=settings.CAMERA_INDEX,
                width=settings.CAMERA_WIDTH,
                height=settings.CAMERA_HEIGHT,
            ),
        )
        visit = ScanWorkflow(
            synchronizer=self.synchronizer,
            camera=camera,
            store=self.store,
            analyzer=self.analyzer,
            notifier=self.notifier,
            storage=self.storage,
        )
        self.scan_visit = visit
        self.scan_owner = owner
        # Leave the screen once the patient who opened it may no longer see it.
        self.scan_guard = RoleGuard(self.synchronizer, UserType.PATIENT, on_decision=self._on_scan_decision)
        self.scan_guard.start()
        return visit

    def close_scan_visit(self) -> None:
        guard, self.scan_guard = self.scan_guard, None
        visit, self.scan_visit = self.scan_visit, None
        self.scan_owner = None
        if guard is not None:
            guard.stop()
        if visit is not None:
            visit.close()

    def _on_scan_decision(self, decision: GuardDecision) -> None:
        if not decision.allowed and self.scan_visit is not None:
            logger.info(f"Closing scan screen ({decision.outcome.value})")
            self.close_scan_visit()

    async def aclose(self) -> None:
        try:
            self.close_scan_visit()
        finally:
            self.auth.close()
            await self.synchronizer.close()


def build_container(
    store: RecordStore,
    device_api: DeviceAPI,
    analyzer: Optional[EyeAnalyzer] = None,
    storage: Optional[StorageRepository] = None,
    session_minutes: Optional[float] = None,
) -> Container:
    profiles = ProfileService(store)
    notifier = ToastNotifier()
    auth = LocalAuthService(store, profiles, StdAuditLogger(), expire_minutes=session_minutes)
    return Container(
        store=store,
        profiles=profiles,
        auth=auth,
        synchronizer=SessionSynchronizer(auth, profiles),
        auth_flow=AuthFlowService(auth, profiles, notifier),
        appointments=AppointmentsService(store, profiles),
        dashboard=DashboardService(store),
        device_api=device_api,
        analyzer=analyzer or SimulatedEyeAnalyzer(),
        storage=storage or LocalStorageRepository(),
        notifier=notifier,
        preview=FramePreview(),
    )


def get_container(request: Request) -> Container:
    return request.app.state.container


async def settled_state(container: Container = Depends(get_container)) -> AuthState:
    try:
        return await container.synchronizer.wait_ready(settings.AUTH_READY_TIMEOUT_SEC)
    except asyncio.TimeoutError:
        raise HTTPException(status_code=503, detail="Loading")


def require_role(role: UserType):
    """Dependency gating a route behind ``role``; redirects to that role's sign-in otherwise."""

    async def dependency(state: AuthState = Depends(settled_state)) -> AuthState:
        decision = decide(state, role)
        if not decision.allowed:
            raise HTTPException(
                status_code=303,
                detail="Sign in required",
                headers={"Location": decision.redirect_to},
            )
        return state

    return dependency
