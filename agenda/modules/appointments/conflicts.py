"""Double-booking detection over the appointments already loaded for a window."""

from __future__ import annotations

from collections.abc import Iterable

from agenda.modules.appointments.schemas import Appointment, BlockedRange
from agenda.modules.appointments.status import occupies_slot
from agenda.shared.enums import ConflictKind
from agenda.shared.interval import Interval, overlaps
from agenda.shared.schemas import ConflictReason


def detect_conflicts(
    candidate: Interval,
    doctor_id: str,
    unit_id: str,
    appointments: Iterable[Appointment],
    blocked_ranges: Iterable[BlockedRange] = (),
    exclude_ids: Iterable[str] = (),
) -> list[ConflictReason]:
    """Return the reasons ``candidate`` cannot be booked cleanly, in display order.

    Each kind is reported at most once. Inputs are only read.
    """
    excluded = {item for item in exclude_ids if item}
    unit_taken = doctor_busy = doctor_blocked = False

    for appointment in appointments:
        if appointment.id in excluded or not occupies_slot(appointment.status):
            continue
        if not overlaps(candidate, appointment.interval):
            continue
        if appointment.unit_id == unit_id:
            unit_taken = True
        if appointment.doctor_id == doctor_id:
            doctor_busy = True

    for blocked in blocked_ranges:
        if blocked.doctor_id == doctor_id and overlaps(candidate, blocked.interval):
            doctor_blocked = True
            break

    reasons: list[ConflictReason] = []
    if unit_taken:
        reasons.append(ConflictReason.of(ConflictKind.UNIT_CONFLICT))
    if doctor_busy:
        reasons.append(ConflictReason.of(ConflictKind.DOCTOR_CONFLICT))
    if doctor_blocked:
        reasons.append(ConflictReason.of(ConflictKind.DOCTOR_UNAVAILABLE))
    return reasons


def has_fatal(reasons: Iterable[ConflictReason]) -> bool:
    return any(reason.fatal for reason in reasons)
