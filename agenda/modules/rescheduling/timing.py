"""Time arithmetic for the rescheduling queue."""

from __future__ import annotations

from datetime import datetime

from dateutil.relativedelta import relativedelta

from agenda.core.exceptions import ValidationError
from agenda.modules.rescheduling.schemas import SNOOZE_QUANTITIES, ReschedulingQueueItem
from agenda.shared.enums import SnoozeUnit


def parse_snooze(number: int, time_unit: str | SnoozeUnit) -> tuple[int, SnoozeUnit]:
    if isinstance(number, bool) or number not in SNOOZE_QUANTITIES:
        allowed = ", ".join(str(value) for value in SNOOZE_QUANTITIES)
        raise ValidationError(f"Snooze quantity must be one of {allowed}")
    try:
        unit = SnoozeUnit(time_unit)
    except ValueError as exc:
        raise ValidationError(f"Unsupported snooze unit '{time_unit}'") from exc
    return number, unit


def snooze_until(now: datetime, number: int, time_unit: str | SnoozeUnit) -> datetime:
    """``now`` advanced by the snooze period; months keep the calendar day, clamped to month end."""
    number, unit = parse_snooze(number, time_unit)
    return now + relativedelta(**{unit.value: number})


def is_active(item: ReschedulingQueueItem, now: datetime) -> bool:
    """Snoozed items stay out of the queue until their timestamp passes."""
    return item.moved_to_needs_rescheduling_at <= now


def time_pending(item: ReschedulingQueueItem, now: datetime) -> str:
    elapsed = now - item.moved_to_needs_rescheduling_at
    hours = int(elapsed.total_seconds() // 3600)
    days = elapsed.days
    if hours < 1:
        return "< 1h"
    if hours < 24:
        return f"{hours}h"
    if days == 1:
        return "1 day"
    return f"{days} days"
