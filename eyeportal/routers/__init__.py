# Routers package
from . import auth_router
from . import scan_router
from . import appointments_router
from . import dashboard_router

__all__ = [
    "auth_router",
    "scan_router",
    "appointments_router",
    "dashboard_router",
]
