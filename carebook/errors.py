"""
Typed application errors.

Every error carries a stable code, a human readable message and an HTTP status.
Services raise these; main.py renders them through a single exception handler.
"""

from typing import Any, Optional


class AppError(Exception):
    """Base class for errors surfaced to API callers"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        details: Optional[Any] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details

    def to_dict(self) -> dict:
        payload = {"code": self.code, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return {"error": payload}


class ValidationError(AppError):
    """Malformed input, business-rule violation or invalid state transition"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, code="VALIDATION_ERROR", status_code=400, details=details)


class NotFoundError(AppError):
    """Referenced entity does not exist"""

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found", code="NOT_FOUND", status_code=404)


class ConflictError(AppError):
    """Overlap, full capacity, already booked slot or duplicate"""

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message, code="CONFLICT_ERROR", status_code=409, details=details)


class ServiceUnavailableError(AppError):
    """A required external collaborator is not configured"""

    def __init__(self, message: str, code: str = "SERVICE_UNAVAILABLE"):
        super().__init__(message, code=code, status_code=503)
