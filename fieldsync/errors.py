"""API error hierarchy and the uniform error envelope."""

import logging
from contextlib import contextmanager
from typing import Any

from fieldsync.utils.timeutil import format_ts, utcnow

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """An error that maps onto ``{success: false, message, error: {...}}``."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str = "Internal server error",
        code: str | None = None,
        details: dict[str, Any] | None = None,
        status_code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_envelope(self) -> dict:
        return error_envelope(self.message, self.code, self.details)


class ValidationFailed(ApiError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class AuthenticationError(ApiError):
    status_code = 401
    default_code = "INVALID_CREDENTIALS"


class AuthorizationError(ApiError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(ApiError):
    status_code = 404
    default_code = "NOT_FOUND"


class UpgradeRequired(ApiError):
    status_code = 426
    default_code = "FORCE_UPDATE_REQUIRED"


def error_envelope(message: str, code: str, details: dict[str, Any] | None = None) -> dict:
    error: dict[str, Any] = {"code": code, "timestamp": format_ts(utcnow())}
    if details is not None:
        error["details"] = details
    return {"success": False, "message": message, "error": error}


@contextmanager
def failure_code(code: str):
    """Re-raise unexpected exceptions as a generic 500 carrying ``code``."""
    try:
        yield
    except ApiError:
        raise
    except Exception:
        logger.exception("Unhandled error (%s)", code)
        raise ApiError("Internal server error", code=code)
