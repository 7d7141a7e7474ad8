from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from dotenv import load_dotenv
from datetime import datetime, timezone
from typing import Optional
import logging

# Load environment variables as early as possible
load_dotenv()

from .config import settings
from .database import build_engine, create_db_and_tables
from .dependencies import Container, build_container
from .exceptions import PortalError, http_exception_handler, portal_exception_handler
from .routers import auth_router, scan_router, appointments_router, dashboard_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


def _default_container() -> Container:
    from .infrastructure.camera.opencv_device import OpenCVDeviceAPI
    from .infrastructure.persistence.sqlalchemy.record_store_sql import SqlRecordStore

    engine = build_engine()
    create_db_and_tables(engine)
    logger.info("Database initialized successfully")
    return build_container(SqlRecordStore(engine), OpenCVDeviceAPI())


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Starting {settings.APP_NAME}...")
    if getattr(app.state, "container", None) is None:
        app.state.container = _default_container()
    container: Container = app.state.container
    await container.synchronizer.start()
    try:
        yield
    finally:
        # Shutdown
        logger.info(f"Shutting down {settings.APP_NAME}...")
        await container.aclose()


def create_app(container: Optional[Container] = None) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan,
        docs_url=("/docs" if settings.DOCS_ENABLED else None),
        redoc_url=("/redoc" if settings.DOCS_ENABLED else None),
        openapi_url=("/openapi.json" if settings.DOCS_ENABLED else None)
    )
    app.state.container = container

    # Add custom exception handlers
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(PortalError, portal_exception_handler)

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router.router)
    app.include_router(scan_router.router)
    app.include_router(appointments_router.router)
    app.include_router(dashboard_router.router)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        state = app.state.container.synchronizer.state if app.state.container else None
        return {
            "status": "healthy",
            "service": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "auth": {
                "ready": bool(state and state.ready),
                "signed_in": bool(state and state.session),
            },
        }

    return app


app = create_app()

# ------------------------
# Run locally
# ------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "eyeportal.main:app",
        host=settings.HOST,
        port=settings.PORT,
        workers=1,  # session and camera state live in this process
        log_level=settings.LOG_LEVEL.lower()
    )
