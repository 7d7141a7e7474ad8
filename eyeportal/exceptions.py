from typing import Optional

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class PortalError(Exception):
    """Base class for every error raised by the portal core."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthError(PortalError):
    status_code = 401


class ProfileFetchError(PortalError):
    status_code = 502


class DeviceError(PortalError):
    status_code = 503


class AnalysisError(PortalError):
    status_code = 502


class PersistenceError(PortalError):
    status_code = 500


class ValidationError(PortalError):
    status_code = 400


class InvalidTransition(PortalError):
    status_code = 409

    def __init__(self, operation: str, state: str):
        super().__init__(f"Cannot {operation} while {state}")
        self.operation = operation
        self.state = state


def create_error_response(error_message: str, status_code: int = 400) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message
    }

def create_success_response(data: Optional[dict]) -> dict:
    """Create a standardized success response"""
    return {
        "success": True,
        "data": data,
        "error": None
    }

def to_http_exception(exc: PortalError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.message)

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTPException in the response envelope, keeping redirect headers"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code),
        headers=getattr(exc, "headers", None),
    )

async def portal_exception_handler(request: Request, exc: PortalError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.message, exc.status_code),
    )
