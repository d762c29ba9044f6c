"""Domain error taxonomy for the reservation lifecycle.

Every error carries an HTTP status and renders to the JSON body the API
returns for it. ``main.py`` installs a single exception handler that calls
``to_dict()``; services raise these instead of ``HTTPException`` so they stay
usable outside a request.
"""
from typing import Any, Optional


class ReservationError(Exception):
    """Base class: carries the HTTP status and machine-readable code."""

    status_code = 500
    code = "InternalError"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message}


class ValidationError(ReservationError):
    """Missing or invalid fields, reported as a field-level list."""

    status_code = 400
    code = "ValidationError"

    def __init__(self, message: str, validation_errors: Optional[list[str]] = None):
        super().__init__(message)
        self.validation_errors = validation_errors or []

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["validationErrors"] = self.validation_errors
        return body


class InvalidTransition(ReservationError):
    """The record exists but its status does not allow the requested transition."""

    status_code = 400
    code = "InvalidTransition"

    def __init__(self, message: str, current_status: Optional[str] = None):
        super().__init__(message)
        self.current_status = current_status

    def to_dict(self) -> dict[str, Any]:
        body = super().to_dict()
        body["currentStatus"] = self.current_status
        return body


class PermissionDenied(ReservationError):
    status_code = 403
    code = "PermissionDenied"


class NotFound(ReservationError):
    status_code = 404
    code = "NotFound"


class VersionConflict(ReservationError):
    """Optimistic-lock mismatch. Always reports the stored version and status."""

    status_code = 409
    code = "VERSION_CONFLICT"

    def __init__(
        self,
        current_version: int,
        current_status: Optional[str],
        last_modified_by: Optional[str] = None,
        last_modified_at: Optional[str] = None,
        message: str = "This event was modified by another user. Please refresh and try again.",
    ):
        super().__init__(message)
        self.current_version = current_version
        self.current_status = current_status
        self.last_modified_by = last_modified_by
        self.last_modified_at = last_modified_at

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "conflictType": "data_changed",
            "currentVersion": self.current_version,
            "currentStatus": self.current_status,
            "lastModifiedBy": self.last_modified_by,
            "lastModifiedDateTime": self.last_modified_at,
        }


class SchedulingConflict(ReservationError):
    """Room/time overlap with one or more published reservations."""

    status_code = 409
    code = "SchedulingConflict"

    def __init__(self, conflicts: list[dict[str, Any]], version: Optional[int] = None):
        count = len(conflicts)
        super().__init__(
            f"Room booking conflicts with {count} published reservation{'s' if count != 1 else ''}"
        )
        self.conflicts = conflicts
        self.version = version

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "conflicts": self.conflicts,
            "_version": self.version,
        }


class ExternalSyncFailure(ReservationError):
    """Raised by calendar providers. Never surfaced to API callers."""

    status_code = 502
    code = "ExternalSyncFailure"
