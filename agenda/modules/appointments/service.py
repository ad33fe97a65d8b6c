"""Appointment booking workflow."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from datetime import datetime

from agenda.core.config import settings
from agenda.core.exceptions import (
    ConflictError,
    ConflictRequiresConfirmation,
    ConflictUnavailable,
    UnknownError,
    ValidationError,
)
from agenda.modules.appointments.calendar import CalendarCache, appended, removed, replaced, with_status
from agenda.modules.appointments.conflicts import detect_conflicts, has_fatal
from agenda.modules.appointments.gateway import AppointmentGateway
from agenda.modules.appointments.schemas import Appointment, AppointmentChanges, AppointmentDraft, BlockedRange
from agenda.modules.appointments.status import ensure_cancellable, ensure_transition, occupies_slot
from agenda.modules.directory.schemas import Directory
from agenda.shared.enums import AppointmentStatus, PartitionKind
from agenda.shared.interval import Interval
from agenda.shared.schemas import ConflictReason
from agenda.shared.ulid import is_provisional, provisional_id
from agenda.shared.wire import localize

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(
        self,
        gateway: AppointmentGateway,
        calendar: CalendarCache,
        directory: Directory | None = None,
    ):
        self.gateway = gateway
        self.calendar = calendar
        self.directory = directory
        self.tz = gateway.tz
        self._inflight: dict[tuple, asyncio.Future[Appointment]] = {}

    def _now(self) -> datetime:
        return datetime.now(tz=self.tz)

    async def create(
        self,
        draft: AppointmentDraft,
        force_create: bool = False,
        now: datetime | None = None,
    ) -> Appointment:
        """Book a new appointment in ``scheduled`` status.

        Overridable conflicts raise ConflictRequiresConfirmation unless
        ``force_create`` is set; a blocked doctor always raises ConflictUnavailable.
        The request is never retried automatically.
        """
        draft = self.normalize(draft)
        self.validate_draft(draft, localize(now or self._now(), self.tz), require_future=True)

        flight_key = (*draft.fingerprint, force_create)
        pending = self._inflight.get(flight_key)
        if pending is not None:
            logger.info("Joining in-flight create for %s", draft.fingerprint)
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._book(draft, force_create))
        self._inflight[flight_key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._inflight.get(flight_key) is task and task.done():
                del self._inflight[flight_key]

    async def update(
        self,
        appointment_id: str,
        changes: AppointmentChanges,
        force_update: bool = False,
        now: datetime | None = None,
    ) -> Appointment:
        now = localize(now or self._now(), self.tz)
        current = await self._current(appointment_id)
        if changes.start is not None:
            changes = changes.model_copy(update={"start": localize(changes.start, self.tz)})
        if changes.end is not None:
            changes = changes.model_copy(update={"end": localize(changes.end, self.tz)})
        updated = changes.apply_to(current)

        if changes.status is not None:
            ensure_transition(current.status, changes.status, updated.start, now)
        if changes.touches_schedule:
            if not updated.interval.is_valid:
                raise ValidationError("Appointment end must be after its start")
            if self.directory is not None and updated.service_id:
                self.directory.validate_booking(updated.doctor_id, updated.unit_id, updated.service_id)
            await self.ensure_bookable(
                updated.interval,
                updated.doctor_id,
                updated.unit_id,
                force=force_update,
                exclude_ids=[appointment_id],
            )

        holding = self.calendar.containing(appointment_id)
        covering = self.calendar.covering(updated.interval)
        leaving = [key for key in holding if key not in covering]
        arriving = [key for key in covering if key not in holding]
        async with self.calendar.store.begin([*holding, *arriving]) as txn:
            txn.apply(replaced(updated), keys=[key for key in holding if key in covering])
            txn.apply(removed(appointment_id), keys=leaving)
            txn.apply(appended(updated), keys=arriving)
            result = await self.gateway.update(appointment_id, changes, force_update=force_update)
        logger.info("Updated appointment %s", appointment_id)
        return result

    async def change_status(
        self,
        appointment_id: str,
        status: AppointmentStatus,
        now: datetime | None = None,
    ) -> Appointment:
        return await self.update(appointment_id, AppointmentChanges(status=status), now=now)

    async def cancel(self, appointment_id: str, reason: str | None = None) -> Appointment | None:
        """Cancel an appointment. Cancelling a cancelled appointment is a no-op."""
        current = self.calendar.find(appointment_id)
        if current is not None:
            if current.is_cancelled:
                logger.debug("Appointment %s already cancelled", appointment_id)
                return current
            ensure_cancellable(current.status)

        keys = self.calendar.containing(appointment_id)
        async with self.calendar.store.begin(keys) as txn:
            txn.apply(with_status(appointment_id, AppointmentStatus.CANCELLED))
            result = await self.cancel_remote(appointment_id, reason)
        logger.info("Cancelled appointment %s", appointment_id)
        if result is None and current is not None:
            return current.model_copy(update={"status": AppointmentStatus.CANCELLED})
        return result

    async def block_time(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
        reason: str | None = None,
    ) -> BlockedRange:
        interval = Interval(localize(start, self.tz), localize(end, self.tz))
        if not interval.is_valid:
            raise ValidationError("Blocked range end must be after its start")
        blocked = await self.gateway.block_time(doctor_id, interval.start, interval.end, reason)
        await self.calendar.store.invalidate(self.calendar.covering(interval, PartitionKind.BLOCKED_TIMES))
        return blocked

    async def conflicts_for(
        self,
        interval: Interval,
        doctor_id: str,
        unit_id: str,
        exclude_ids: Iterable[str] = (),
    ) -> list[ConflictReason]:
        """Preview the conflict reasons for a candidate slot without booking it."""
        interval = Interval(localize(interval.start, self.tz), localize(interval.end, self.tz))
        appointments, blocked = await self.calendar.context_for(interval)
        return detect_conflicts(interval, doctor_id, unit_id, appointments, blocked, exclude_ids)

    async def ensure_bookable(
        self,
        interval: Interval,
        doctor_id: str,
        unit_id: str,
        force: bool = False,
        exclude_ids: Iterable[str] = (),
    ) -> list[Appointment]:
        """Run the conflict detector and raise per the override rules.

        Returns the appointments the check ran against.
        """
        appointments, blocked = await self.calendar.context_for(interval)
        reasons = detect_conflicts(interval, doctor_id, unit_id, appointments, blocked, exclude_ids)
        if has_fatal(reasons):
            raise ConflictUnavailable(reasons)
        if reasons and not force:
            raise ConflictRequiresConfirmation(reasons)
        if reasons:
            logger.info("Overriding conflicts %s", [reason.message for reason in reasons])
        return appointments

    def validate_draft(self, draft: AppointmentDraft, now: datetime, require_future: bool) -> None:
        for field in ("patient_id", "doctor_id", "unit_id", "service_id"):
            if not getattr(draft, field).strip():
                raise ValidationError(f"{field} is required")
        if not draft.interval.is_valid:
            raise ValidationError("Appointment end must be after its start")
        if require_future and draft.start <= now:
            raise ValidationError("Cannot create an appointment in the past")
        if self.directory is not None:
            self.directory.validate_booking(draft.doctor_id, draft.unit_id, draft.service_id)

    def normalize(self, draft: AppointmentDraft) -> AppointmentDraft:
        return draft.model_copy(update={"start": localize(draft.start, self.tz), "end": localize(draft.end, self.tz)})

    async def _book(self, draft: AppointmentDraft, force_create: bool) -> Appointment:
        appointments = await self.ensure_bookable(draft.interval, draft.doctor_id, draft.unit_id, force=force_create)
        if force_create:
            twin = self._persisted_twin(draft, appointments)
            if twin is not None:
                logger.info("Identical appointment %s already booked; not creating another", twin.id)
                return twin

        provisional = draft.to_provisional(provisional_id())
        async with self.calendar.store.begin(self.calendar.covering(draft.interval)) as txn:
            txn.apply(appended(provisional))
            created = await self.gateway.create(draft.to_request(), force_create=force_create)
        logger.info("Created appointment %s", created.id)
        return created

    @staticmethod
    def _persisted_twin(draft: AppointmentDraft, appointments: list[Appointment]) -> Appointment | None:
        for appointment in appointments:
            if is_provisional(appointment.id) or not occupies_slot(appointment.status):
                continue
            if draft.matches(appointment):
                return appointment
        return None

    async def _current(self, appointment_id: str) -> Appointment:
        current = self.calendar.find(appointment_id)
        if current is not None:
            return current
        return await self.gateway.get(appointment_id)

    async def cancel_remote(self, appointment_id: str, reason: str | None) -> Appointment | None:
        """Send the cancel, retrying transient failures. An already-cancelled appointment yields None."""
        attempts = max(1, settings.cancel_retry_attempts)
        attempt = 1
        while True:
            try:
                return await self.gateway.cancel(appointment_id, reason)
            except ConflictError as exc:
                if exc.conflicts:
                    raise
                # The server reports an already-cancelled appointment as a bare 409.
                logger.info("Appointment %s was already cancelled remotely", appointment_id)
                return None
            except UnknownError:
                if attempt == attempts:
                    raise
                delay = settings.cancel_retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning("Cancel of %s failed (attempt %d/%d); retrying in %.2fs", appointment_id, attempt, attempts, delay)
                await asyncio.sleep(delay)
                attempt += 1
