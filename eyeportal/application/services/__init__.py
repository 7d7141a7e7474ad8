# Services package (re-export feature modules for stable imports)
from .profile_service import ProfileService
from .session_synchronizer import SessionSynchronizer, AuthState
from .role_guard import RoleGuard, GuardDecision, GuardOutcome
from .capture_device import CaptureDeviceManager, CameraState
from .scan_workflow import ScanWorkflow, ScanState
from .auth_flow_service import AuthFlowService
from .appointments_service import AppointmentsService
from .dashboard_service import DashboardService

__all__ = [
    "ProfileService",
    "SessionSynchronizer",
    "AuthState",
    "RoleGuard",
    "GuardDecision",
    "GuardOutcome",
    "CaptureDeviceManager",
    "CameraState",
    "ScanWorkflow",
    "ScanState",
    "AuthFlowService",
    "AppointmentsService",
    "DashboardService",
]
