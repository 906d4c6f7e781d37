"""
Error taxonomy for NearHelp

Every rejected operation raises one of these. Each carries a stable,
machine-checkable ``kind`` plus the HTTP status the API layer renders.
"""

from typing import Any, Dict


class NearHelpError(Exception):
    """Base class for errors surfaced to callers"""

    kind = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class ValidationError(NearHelpError):
    """Missing or malformed required fields"""
    kind = "validation_error"
    status_code = 400


class NotFoundError(NearHelpError):
    """Referenced entity absent or not in the expected state"""
    kind = "not_found"
    status_code = 404


class ForbiddenError(NearHelpError):
    """Authenticated but not allowed to act on this entity"""
    kind = "forbidden"
    status_code = 403


class ConflictError(NearHelpError):
    """State conflict, e.g. report already resolved or duplicate email"""
    kind = "conflict"
    status_code = 409


class UnauthenticatedError(NearHelpError):
    """Missing or invalid credential on a protected operation"""
    kind = "unauthenticated"
    status_code = 401


class UnavailableError(NearHelpError):
    """Advisory side channel is misconfigured or down"""
    kind = "unavailable"
    status_code = 503
