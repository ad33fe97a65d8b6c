"""Appointment status state machine."""

from __future__ import annotations

from datetime import datetime

from agenda.core.exceptions import ValidationError
from agenda.shared.enums import AppointmentStatus

TERMINAL_STATUSES = frozenset(
    {
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
        AppointmentStatus.RESCHEDULED,
    }
)

# Statuses a user may pick from the status dropdown, by whether the start is past.
FUTURE_TARGETS = (AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED)
PAST_TARGETS = (AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW)

# Shown when current, never chosen.
DISPLAY_ONLY_STATUSES = frozenset({AppointmentStatus.RESCHEDULED, AppointmentStatus.NEEDS_RESCHEDULING})

# No manual edits at all; left only through cancel or the rescheduling queue.
LOCKED_STATUSES = DISPLAY_ONLY_STATUSES | {AppointmentStatus.CANCELLED}

STATUS_LABELS: dict[AppointmentStatus, str] = {
    AppointmentStatus.SCHEDULED: "Scheduled",
    AppointmentStatus.CONFIRMED: "Confirmed",
    AppointmentStatus.COMPLETED: "Completed",
    AppointmentStatus.CANCELLED: "Cancelled",
    AppointmentStatus.RESCHEDULED: "Rescheduled",
    AppointmentStatus.NEEDS_RESCHEDULING: "Needs rescheduling",
    AppointmentStatus.NO_SHOW: "No-show",
}


def is_terminal(status: AppointmentStatus) -> bool:
    return status in TERMINAL_STATUSES


def occupies_slot(status: AppointmentStatus) -> bool:
    """Whether an appointment in ``status`` still holds its doctor and unit."""
    return status not in (AppointmentStatus.CANCELLED, AppointmentStatus.RESCHEDULED)


def is_past(start: datetime, now: datetime) -> bool:
    return start < now


def legal_targets(status: AppointmentStatus, start: datetime, now: datetime) -> tuple[AppointmentStatus, ...]:
    """Statuses selectable by hand for an appointment starting at ``start``, as of ``now``."""
    if status in LOCKED_STATUSES:
        return ()
    return PAST_TARGETS if is_past(start, now) else FUTURE_TARGETS


def status_options(status: AppointmentStatus, start: datetime, now: datetime) -> list[AppointmentStatus]:
    """Dropdown options: the legal targets, preceded by a display-only current status."""
    options = list(legal_targets(status, start, now))
    if status in DISPLAY_ONLY_STATUSES:
        options.insert(0, status)
    return options


def ensure_transition(
    current: AppointmentStatus,
    target: AppointmentStatus,
    start: datetime,
    now: datetime,
) -> None:
    """Raise ValidationError unless ``current -> target`` is a legal manual edit."""
    if target == current:
        return
    if target is AppointmentStatus.CANCELLED:
        raise ValidationError("Use the cancel action to cancel an appointment")
    if target in DISPLAY_ONLY_STATUSES:
        raise ValidationError(f"Status '{target}' cannot be selected manually")
    if current in DISPLAY_ONLY_STATUSES:
        raise ValidationError(f"An appointment in '{current}' must be rescheduled or cancelled")
    if current is AppointmentStatus.CANCELLED:
        raise ValidationError("Cancelled appointments cannot change status")
    if target not in legal_targets(current, start, now):
        when = "past" if is_past(start, now) else "future"
        raise ValidationError(f"Status '{target}' is not available for a {when} appointment")


def ensure_cancellable(current: AppointmentStatus) -> None:
    if current is AppointmentStatus.CANCELLED:
        return
    if is_terminal(current):
        raise ValidationError(f"An appointment in '{current}' cannot be cancelled")


def status_label(status: AppointmentStatus) -> str:
    return STATUS_LABELS.get(status, str(status))
