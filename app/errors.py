from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse


class ApiError(Exception):
    def __init__(self, status_code: int, code: str, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message


class SummaryError(ApiError):
    """Base for monthly summary workflow failures.

    Subclasses pin the HTTP status and machine code so services can raise
    ``NoAttendanceData("...")`` and the app-level handler still renders the
    standard error envelope.
    """

    status_code = 400
    code = "SUMMARY_ERROR"

    def __init__(self, message: str):
        super().__init__(status_code=type(self).status_code, code=type(self).code, message=message)


class ValidationError(SummaryError):
    status_code = 422
    code = "VALIDATION_ERROR"


class NoAttendanceData(SummaryError):
    status_code = 409
    code = "NO_ATTENDANCE_DATA"


class AlreadyFinal(SummaryError):
    status_code = 409
    code = "SUMMARY_ALREADY_FINAL"


class InvalidTransition(SummaryError):
    status_code = 409
    code = "INVALID_TRANSITION"


class ConcurrentModification(SummaryError):
    status_code = 409
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, message: str, *, current_status: str | None = None):
        super().__init__(message)
        self.current_status = current_status


class NotOwner(SummaryError):
    status_code = 403
    code = "NOT_OWNER"


class Unauthorized(SummaryError):
    status_code = 403
    code = "FORBIDDEN"


class SummaryNotFound(SummaryError):
    status_code = 404
    code = "NOT_FOUND"


class EmployeeNotFound(SummaryError):
    status_code = 404
    code = "NOT_FOUND"


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
