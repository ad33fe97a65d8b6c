"""Rescheduling queue workflow."""

from __future__ import annotations

import logging
from datetime import datetime

from agenda.core.exceptions import ValidationError
from agenda.modules.appointments.calendar import appended, with_status
from agenda.modules.appointments.service import BookingService
from agenda.modules.appointments.status import ensure_cancellable
from agenda.modules.cache.store import PartitionKey
from agenda.modules.rescheduling.gateway import QueueGateway
from agenda.modules.rescheduling.schemas import (
    QueuePage,
    QueueParams,
    ReschedulingQueueItem,
    RescheduleRequest,
    RescheduleResult,
    RescheduleTarget,
    SnoozeResult,
)
from agenda.modules.rescheduling.timing import parse_snooze, snooze_until
from agenda.shared.enums import AppointmentStatus, PartitionKind
from agenda.shared.ulid import provisional_id
from agenda.shared.wire import localize

logger = logging.getLogger(__name__)

COUNT_DISCRIMINATOR = "count"


def dropped(item_id: str):
    def transform(page):
        if isinstance(page, QueuePage):
            return page.without(item_id)
        return page

    return transform


class ReschedulingQueueService:
    def __init__(self, gateway: QueueGateway, booking: BookingService):
        self.gateway = gateway
        self.booking = booking
        self.calendar = booking.calendar
        self.store = booking.calendar.store

    def _now(self) -> datetime:
        return datetime.now(tz=self.booking.tz)

    def key(self, params: QueueParams) -> PartitionKey:
        return self.store.key(PartitionKind.RESCHEDULING_QUEUE, *params.cache_key)

    def queue_keys(self) -> list[PartitionKey]:
        return self.store.keys(PartitionKind.RESCHEDULING_QUEUE)

    async def list(self, params: QueueParams | None = None, *, force: bool = False) -> QueuePage:
        params = params or QueueParams()
        return await self.store.load(self.key(params), lambda: self.gateway.list(params), force=force)

    async def count(self) -> int:
        """Total items waiting, for badge counts."""
        params = QueueParams(limit=1)
        key = self.store.key(PartitionKind.RESCHEDULING_QUEUE, COUNT_DISCRIMINATOR)
        page = await self.store.load(key, lambda: self.gateway.list(params))
        return page.total

    def find(self, item_id: str) -> ReschedulingQueueItem | None:
        for key in self.queue_keys():
            page = self.store.get(key)
            for item in getattr(page, "items", []):
                if item.id == item_id:
                    return item
        return None

    async def cancel(self, item_id: str, reason: str):
        """Cancel a queue item; a non-blank reason is required."""
        if not reason or not reason.strip():
            raise ValidationError("A cancellation reason is required")
        known = self.find(item_id) or self.calendar.find(item_id)
        if known is not None:
            if known.status == AppointmentStatus.CANCELLED:
                logger.debug("Queue item %s already cancelled", item_id)
                return None
            ensure_cancellable(known.status)
        queue_keys = self.queue_keys()
        calendar_keys = self.calendar.containing(item_id)
        async with self.store.begin([*queue_keys, *calendar_keys]) as txn:
            txn.apply(dropped(item_id), keys=queue_keys)
            txn.apply(with_status(item_id, AppointmentStatus.CANCELLED), keys=calendar_keys)
            result = await self.booking.cancel_remote(item_id, reason.strip())
        logger.info("Cancelled queue item %s", item_id)
        return result

    async def reschedule(
        self,
        item_id: str,
        target: RescheduleTarget,
        force_create: bool = False,
        now: datetime | None = None,
    ) -> RescheduleResult:
        """Book ``target`` for the item's patient and mark the item ``rescheduled``.

        The server performs both writes in one request; locally the queue removal,
        the status flip and the provisional booking roll back together.
        """
        now = now or self._now()
        patient_id = await self._patient_for(item_id)
        draft = self.booking.normalize(target.to_draft(patient_id))
        self.booking.validate_draft(draft, now, require_future=False)
        await self.booking.ensure_bookable(
            draft.interval,
            draft.doctor_id,
            draft.unit_id,
            force=force_create,
            exclude_ids=[item_id],
        )

        queue_keys = self.queue_keys()
        holding = self.calendar.containing(item_id)
        arriving = self.calendar.covering(draft.interval)
        provisional = draft.to_provisional(provisional_id())
        async with self.store.begin([*queue_keys, *holding, *arriving]) as txn:
            txn.apply(dropped(item_id), keys=queue_keys)
            txn.apply(with_status(item_id, AppointmentStatus.RESCHEDULED), keys=holding)
            txn.apply(appended(provisional), keys=arriving)
            result = await self.gateway.reschedule(item_id, RescheduleRequest.from_draft(draft), force_create=force_create)
        logger.info("Rescheduled %s as %s", item_id, result.appointment.id)
        return result

    async def snooze(
        self,
        item_id: str,
        number: int,
        time_unit: str,
        now: datetime | None = None,
    ) -> SnoozeResult:
        number, unit = parse_snooze(number, time_unit)
        now = localize(now or self._now(), self.booking.tz)
        until = snooze_until(now, number, unit)
        queue_keys = self.queue_keys()
        async with self.store.begin(queue_keys) as txn:
            txn.apply(dropped(item_id))
            await self.gateway.snooze(item_id, number, unit)
        logger.info("Snoozed %s until %s", item_id, until.isoformat())
        return SnoozeResult(item_id=item_id, number=number, time_unit=unit.value, snoozed_until=until)

    async def _patient_for(self, item_id: str) -> str:
        item = self.find(item_id)
        if item is not None:
            if item.status != AppointmentStatus.NEEDS_RESCHEDULING:
                raise ValidationError(f"Appointment is '{item.status}', not awaiting rescheduling")
            if item.resolved_patient_id:
                return item.resolved_patient_id
        appointment = self.calendar.find(item_id) or await self.booking.gateway.get(item_id)
        if appointment.status != AppointmentStatus.NEEDS_RESCHEDULING:
            raise ValidationError(f"Appointment is '{appointment.status}', not awaiting rescheduling")
        return appointment.patient_id
