"""Timestamp codec for the scheduling API.

The server expects ``YYYY-MM-DDTHH:MM:SSZ`` where the digits are the clinic's
local wall clock and the trailing ``Z`` is a literal. The server applies its own
timezone normalization, so values must not be converted to UTC here.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from zoneinfo import ZoneInfo

from agenda.core.config import settings
from agenda.core.exceptions import UnknownError

WIRE_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def clinic_timezone() -> ZoneInfo:
    return ZoneInfo(settings.default_timezone)


def localize(value: datetime, tz: tzinfo | None = None) -> datetime:
    """Return ``value`` as an aware datetime in the clinic zone."""
    tz = tz or clinic_timezone()
    if value.tzinfo is None:
        return value.replace(tzinfo=tz)
    return value.astimezone(tz)


def format_wire_time(value: datetime, tz: tzinfo | None = None) -> str:
    return localize(value, tz).strftime(WIRE_FORMAT)


def parse_wire_time(text: str, tz: tzinfo | None = None) -> datetime:
    if not isinstance(text, str) or not text:
        raise UnknownError(f"Invalid timestamp from server: {text!r}")
    raw = text[:-1] if text.endswith("Z") else text
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError as exc:
        raise UnknownError(f"Invalid timestamp from server: {text!r}") from exc
    # A literal Z still means clinic wall clock; explicit offsets are honored.
    return localize(parsed, tz)


def format_wire_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
