from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class SchedulerError(Exception):
    """Base class for scheduler rule violations and store failures."""

    status_code = 500
    code = "SCHEDULER_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulerError):
    status_code = 422
    code = "VALIDATION_ERROR"


class PermissionDenied(SchedulerError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(SchedulerError):
    status_code = 404
    code = "NOT_FOUND"


class TransientStoreError(SchedulerError):
    """Store read/write failed. Never retried here; retry policy belongs to the caller."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


class AttendanceLookupFailure(SchedulerError):
    status_code = 502
    code = "ATTENDANCE_UNAVAILABLE"


def get_request_id(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if request_id:
        return str(request_id)
    return "unknown"


def error_response(request: Request, *, status_code: int, code: str, message: str) -> JSONResponse:
    payload = {
        "error": {
            "code": code,
            "message": message,
            "request_id": get_request_id(request),
        }
    }
    return JSONResponse(status_code=status_code, content=payload)
