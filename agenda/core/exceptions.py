"""Booking error taxonomy and the mapping from remote responses onto it."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from agenda.shared.schemas import ConflictReason

HTTP_400_BAD_REQUEST = 400
HTTP_401_UNAUTHORIZED = 401
HTTP_404_NOT_FOUND = 404
HTTP_409_CONFLICT = 409
HTTP_422_UNPROCESSABLE_ENTITY = 422
HTTP_500_INTERNAL_SERVER_ERROR = 500


class BookingError(Exception):
    """Base class for every failure surfaced by the booking core."""

    default_detail = "Booking request failed"
    status_code = HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str | None = None, status_code: int | None = None):
        self.detail = detail or self.default_detail
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.detail)


class ValidationError(BookingError):
    """Malformed interval, missing field, or a value outside its enumerated set."""

    default_detail = "Invalid appointment data"
    status_code = HTTP_400_BAD_REQUEST


class ConflictError(BookingError):
    default_detail = "Appointment conflicts with the existing schedule"
    status_code = HTTP_409_CONFLICT
    resumable = False

    def __init__(self, conflicts: Iterable[ConflictReason], detail: str | None = None):
        self.conflicts: list[ConflictReason] = list(conflicts)
        super().__init__(detail)

    @property
    def reasons(self) -> list[str]:
        return [conflict.message for conflict in self.conflicts]


class ConflictRequiresConfirmation(ConflictError):
    """Overridable double-booking; re-run the operation with the force flag to proceed."""

    default_detail = "Conflicts detected; confirmation required"
    resumable = True


class ConflictUnavailable(ConflictError):
    """The doctor is blocked for the requested time. Never overridable."""

    default_detail = "Doctor is unavailable at the requested time"


class NotFoundError(BookingError):
    """The target appointment no longer exists or was changed by another actor."""

    default_detail = "This appointment was already changed"
    status_code = HTTP_404_NOT_FOUND


class UnauthorizedError(BookingError):
    default_detail = "Authentication required"
    status_code = HTTP_401_UNAUTHORIZED


class UnknownError(BookingError):
    """Transport or server fault."""

    default_detail = "Unexpected error while contacting the scheduling service"


def _message(payload: Any, fallback: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                return value
    return fallback


def error_from_response(status_code: int, payload: Any) -> BookingError:
    """Translate a non-2xx remote response into the booking error taxonomy."""
    if status_code == HTTP_409_CONFLICT:
        raw = payload.get("conflicts") if isinstance(payload, dict) else None
        conflicts = [ConflictReason.from_message(str(item)) for item in raw or []]
        detail = _message(payload, ConflictError.default_detail)
        if any(conflict.fatal for conflict in conflicts):
            return ConflictUnavailable(conflicts, detail)
        return ConflictRequiresConfirmation(conflicts, detail)
    if status_code in (HTTP_400_BAD_REQUEST, HTTP_422_UNPROCESSABLE_ENTITY):
        return ValidationError(_message(payload, ValidationError.default_detail), status_code)
    if status_code == HTTP_401_UNAUTHORIZED:
        return UnauthorizedError(_message(payload, UnauthorizedError.default_detail))
    if status_code == HTTP_404_NOT_FOUND:
        return NotFoundError(_message(payload, NotFoundError.default_detail))
    return UnknownError(_message(payload, UnknownError.default_detail), status_code)
