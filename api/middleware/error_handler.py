"""
Error Handler Middleware

Global error handling for consistent API responses.
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.auth.jwt import TokenError
from api.middleware.logging import get_correlation_id
from services.errors import (
    PrincipalNotFound,
    InvalidStateTransition,
    ConstraintViolation,
    ReferenceNotFound,
    NotPermitted,
    FolderCycleError,
    IneligibleTarget,
)

logger = logging.getLogger("rfp_marketplace.api.errors")


def _error(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message
            }
        }
    )


def setup_error_handlers(app: FastAPI):
    """
    Set up global error handlers for the application.

    Args:
        app: FastAPI application instance
    """

    @app.exception_handler(TokenError)
    async def token_error_handler(request: Request, exc: TokenError):
        return _error(status.HTTP_401_UNAUTHORIZED, "AUTH_REQUIRED", str(exc))

    @app.exception_handler(PrincipalNotFound)
    async def principal_not_found_handler(request: Request, exc: PrincipalNotFound):
        logger.warning(f"Authenticated identity without profile: {exc.user_id}")
        return _error(status.HTTP_403_FORBIDDEN, "PROFILE_NOT_PROVISIONED", str(exc))

    @app.exception_handler(NotPermitted)
    async def not_permitted_handler(request: Request, exc: NotPermitted):
        """Hidden rows and missing rows look the same to the caller."""
        if exc.decision.reason == "not_visible":
            return _error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", "Resource not found")
        return _error(status.HTTP_403_FORBIDDEN, "PERMISSION_DENIED", str(exc))

    @app.exception_handler(ReferenceNotFound)
    async def reference_not_found_handler(request: Request, exc: ReferenceNotFound):
        return _error(status.HTTP_404_NOT_FOUND, "NOT_FOUND", str(exc))

    @app.exception_handler(InvalidStateTransition)
    async def invalid_transition_handler(request: Request, exc: InvalidStateTransition):
        return _error(status.HTTP_409_CONFLICT, "INVALID_STATE_TRANSITION", str(exc))

    @app.exception_handler(ConstraintViolation)
    async def constraint_violation_handler(request: Request, exc: ConstraintViolation):
        logger.warning(f"Constraint violation: {exc}")
        return _error(status.HTTP_409_CONFLICT, "CONSTRAINT_VIOLATION", str(exc))

    @app.exception_handler(FolderCycleError)
    async def folder_cycle_handler(request: Request, exc: FolderCycleError):
        return _error(status.HTTP_409_CONFLICT, "FOLDER_CYCLE", str(exc))

    @app.exception_handler(IneligibleTarget)
    async def ineligible_target_handler(request: Request, exc: IneligibleTarget):
        return _error(status.HTTP_422_UNPROCESSABLE_ENTITY, "INELIGIBLE_TARGET", str(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Handle HTTP exceptions."""
        return _error(exc.status_code, "HTTP_ERROR", exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Handle request validation errors."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"]
            })

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "details": errors
                }
            }
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"[{get_correlation_id(request)}] Unhandled exception: {str(exc)}")
        logger.error(traceback.format_exc())

        from config.settings import settings

        if settings.api_env == "development":
            message = str(exc)
        else:
            message = "An internal error occurred"

        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", message)
