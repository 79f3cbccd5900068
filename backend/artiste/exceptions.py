from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Iterable
import traceback
from .logger import logger
from .schemas import ApiError


class ArtisteBaseException(Exception):
    """Base exception for the generation service"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class ParameterError(ArtisteBaseException):
    """Raised when user supplied prompt parameters are malformed"""
    def __init__(self, message: str = "Invalid prompt parameters"):
        super().__init__(message, "PARAMETER_ERROR", 400)


class BackendTransportError(ArtisteBaseException):
    """Raised on non-success HTTP status or an unparseable backend response"""
    def __init__(self, message: str = "Generation backend request failed"):
        super().__init__(message, "BACKEND_TRANSPORT_ERROR", 502)


class BackendSemanticError(ArtisteBaseException):
    """Raised when the backend itself reports a failed generation"""
    def __init__(self, message: str = "Generation failed", code: str = "BACKEND_GENERATION_ERROR"):
        super().__init__(message, code, 502)

    @classmethod
    def from_messages(cls, messages: Iterable[str]) -> "BackendSemanticError":
        collected = [m for m in messages if m]
        if not collected:
            return cls("Generation failed without an error message")
        return cls("Generation failed: " + "; ".join(collected))


class WorkflowTemplateError(BackendSemanticError):
    """Raised when a workflow template is missing or lacks its x-params block"""
    def __init__(self, message: str):
        super().__init__(message, "WORKFLOW_TEMPLATE_ERROR")


class GenerationTimeoutError(ArtisteBaseException):
    """Raised when a running generation exceeds its wall-clock budget"""
    def __init__(self, max_wait_seconds: float):
        super().__init__(
            f"Image generation timed out after {max_wait_seconds:g} seconds",
            "GENERATION_TIMEOUT",
            504,
        )


class PersistenceError(ArtisteBaseException):
    """Raised when the job store cannot write a record"""
    def __init__(self, message: str = "Failed to persist job"):
        super().__init__(message, "PERSISTENCE_ERROR", 500)


class JobNotFoundError(ArtisteBaseException):
    """Raised when job is not found"""
    def __init__(self, job_id: str):
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND", 404)


class InvalidJobStateError(ArtisteBaseException):
    """Raised when job is in invalid state for operation"""
    def __init__(self, job_id: str, current_state: str, expected_state: str):
        super().__init__(
            f"Job {job_id} is in state '{current_state}', expected '{expected_state}'",
            "INVALID_JOB_STATE",
            409,
        )


async def artiste_exception_handler(request: Request, exc: ArtisteBaseException):
    """Handle custom application exceptions"""
    logger.error(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiError(error=exc.code, message=exc.message, status_code=exc.status_code).model_dump(),
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=ApiError(error="HTTP_ERROR", message=exc.detail, status_code=exc.status_code).model_dump(),
        headers=getattr(exc, "headers", None),
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content=ApiError(
            error="INTERNAL_SERVER_ERROR",
            message="An internal error occurred. Please try again later.",
        ).model_dump(exclude_none=True),
    )
