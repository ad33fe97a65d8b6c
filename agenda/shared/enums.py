"""Shared enumerations used across modules."""

from __future__ import annotations

from enum import StrEnum


class AppointmentStatus(StrEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"
    NEEDS_RESCHEDULING = "needs-rescheduling"
    NO_SHOW = "no-show"


class ConflictKind(StrEnum):
    UNIT_CONFLICT = "unit-conflict"
    DOCTOR_CONFLICT = "doctor-conflict"
    DOCTOR_UNAVAILABLE = "doctor-unavailable"

    @property
    def message(self) -> str:
        return CONFLICT_MESSAGES[self]

    @property
    def fatal(self) -> bool:
        return self is ConflictKind.DOCTOR_UNAVAILABLE

    @classmethod
    def from_message(cls, message: str) -> "ConflictKind | None":
        normalized = message.strip().lower()
        for kind, text in CONFLICT_MESSAGES.items():
            if text == normalized:
                return kind
        return None


CONFLICT_MESSAGES: dict[ConflictKind, str] = {
    ConflictKind.UNIT_CONFLICT: "unit already booked",
    ConflictKind.DOCTOR_CONFLICT: "doctor already has an appointment at this time",
    ConflictKind.DOCTOR_UNAVAILABLE: "doctor is unavailable",
}


class SnoozeUnit(StrEnum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class QueueSort(StrEnum):
    OLDEST = "oldest"
    NEWEST = "newest"


class PartitionKind(StrEnum):
    APPOINTMENTS = "appointments"
    BLOCKED_TIMES = "blocked-times"
    RESCHEDULING_QUEUE = "rescheduling-queue"
