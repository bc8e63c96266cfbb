"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised when required input is missing or malformed."""

    def __init__(self, message: str, field: str = None, details: Dict[str, Any] = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InvalidCredentialsError(AppException):
    """Raised when a driver code/name pair is not in the directory."""

    def __init__(self, message: str = "Invalid driver ID or driver name", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED,
            details=details
        )


class NotAuthorizedForVehicleError(AppException):
    """Raised when an authenticated driver may not act on a specific vehicle."""

    def __init__(self, message: str, required_driver: str = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_002",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"required_driver": required_driver}
        )


class ResourceNotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class InvalidTransitionError(AppException):
    """Raised when a vehicle status transition is not allowed."""

    def __init__(self, from_status: str, to_status: str, reason: str = None):
        message = f"Cannot change vehicle status from {from_status} to {to_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="ERR_STATE_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"from_status": from_status, "to_status": to_status}
        )


class VehicleStateConflictError(AppException):
    """Raised when the vehicle status changed between read and conditional write."""

    def __init__(self, vehicle_id: int, expected_status: str, actual_status: str):
        super().__init__(
            message=f"Vehicle {vehicle_id} changed status to {actual_status} (expected {expected_status}). Reload and try again.",
            error_code="ERR_STATE_002",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "vehicle_id": vehicle_id,
                "expected_status": expected_status,
                "actual_status": actual_status
            }
        )


class WorkflowStepError(AppException):
    """Raised when a trip workflow operation does not fit the current step."""

    def __init__(self, message: str, step: str = None):
        super().__init__(
            message=message,
            error_code="ERR_WORKFLOW_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"step": step}
        )


class UpstreamFailureError(AppException):
    """Raised when the backing store or file storage fails."""

    def __init__(self, message: str = "Upstream service failure", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_UPSTREAM_001",
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=details
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_encoder(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )
