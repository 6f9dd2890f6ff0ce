"""
Central API router and utilities for the engagement service.

This module provides:
- A central router that includes the quiz, game and training routers
- Exception handlers turning engine errors into standardized responses
- The standard success response shape
"""

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Dict, Any

from secaware.common.error_handling import ErrorCode, SecAwareError, error_response, log_error
from secaware.common.logger import app_logger

logger = app_logger.getChild("api")

# Create main API router
main_router = APIRouter()

# Version prefix for all API routes
API_VERSION = "v1"

# Dictionary to track registered modules
registered_modules: Dict[str, APIRouter] = {}

STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND_ERROR: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_ATTEMPT: status.HTTP_409_CONFLICT,
    ErrorCode.PREREQUISITES_NOT_MET: status.HTTP_400_BAD_REQUEST,
    ErrorCode.PREREQUISITE_CYCLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.MALFORMED_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.AUTHORIZATION_ERROR: status.HTTP_403_FORBIDDEN,
    ErrorCode.DATABASE_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def register_module(name: str, router: APIRouter) -> None:
    """
    Register a module router with the main API router.

    Args:
        name: URL segment and tag of the module
        router: FastAPI router for the module
    """
    if name in registered_modules:
        logger.warning(f"Module '{name}' already registered, overwriting")

    main_router.include_router(
        router,
        prefix=f"/{API_VERSION}/{name}",
        tags=[name]
    )

    registered_modules[name] = router
    logger.info(f"Registered module: {name} with {len(router.routes)} routes")


def status_for(error: SecAwareError) -> int:
    """HTTP status code for an engine error."""
    return STATUS_BY_CODE.get(error.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def secaware_exception_handler(request: Request, exc: SecAwareError) -> JSONResponse:
    """
    Translate an engine error into a JSON error response.

    Server-side failures are logged with their stack trace and returned
    without details.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        log_error(exc, include_stack_trace=True, context={"path": request.url.path})
        return JSONResponse(status_code=status_code, content=error_response(exc, include_details=False))

    logger.info(f"{request.method} {request.url.path} rejected: {exc.code.value} ({exc.message})")
    return JSONResponse(status_code=status_code, content=error_response(exc))


# Common validation error handler
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle validation errors and return a standardized response.

    Args:
        request: The incoming request
        exc: The validation exception

    Returns:
        A JSON response with error details
    """
    error_details = []
    for error in exc.errors():
        error_details.append({
            "location": list(error.get("loc", [])),
            "message": error.get("msg", "Unknown validation error"),
            "type": error.get("type", "")
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "code": ErrorCode.VALIDATION_ERROR.value,
            "message": "Validation error",
            "details": error_details
        }
    )


class APIResponse:
    """Standard API response structure"""

    @staticmethod
    def success(data: Any = None, message: str = "Success") -> Dict[str, Any]:
        return {
            "status": "success",
            "message": message,
            "data": data
        }
