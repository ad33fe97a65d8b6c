"""Calendar partitions of the cache: appointments and blocked ranges by local date range."""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, datetime, time, timedelta, tzinfo

from agenda.modules.appointments.gateway import AppointmentGateway
from agenda.modules.appointments.schemas import Appointment, BlockedRange
from agenda.modules.cache.store import CacheStore, PartitionKey
from agenda.shared.enums import AppointmentStatus, PartitionKind
from agenda.shared.interval import Interval, overlaps

AppointmentList = list[Appointment]


def range_interval(start_date: date, end_date: date, tz: tzinfo) -> Interval:
    """The half-open instant range covered by the inclusive date range."""
    return Interval(
        datetime.combine(start_date, time.min, tz),
        datetime.combine(end_date + timedelta(days=1), time.min, tz),
    )


def appended(record: Appointment) -> Callable[[AppointmentList | None], AppointmentList]:
    def transform(items: AppointmentList | None) -> AppointmentList:
        return [*(items or []), record]

    return transform


def replaced(record: Appointment) -> Callable[[AppointmentList | None], AppointmentList]:
    def transform(items: AppointmentList | None) -> AppointmentList:
        return [record if item.id == record.id else item for item in items or []]

    return transform


def removed(appointment_id: str) -> Callable[[AppointmentList | None], AppointmentList]:
    def transform(items: AppointmentList | None) -> AppointmentList:
        return [item for item in items or [] if item.id != appointment_id]

    return transform


def with_status(appointment_id: str, status: AppointmentStatus) -> Callable[[AppointmentList | None], AppointmentList]:
    def transform(items: AppointmentList | None) -> AppointmentList:
        return [
            item.model_copy(update={"status": status}) if item.id == appointment_id else item
            for item in items or []
        ]

    return transform


class CalendarCache:
    def __init__(self, store: CacheStore, gateway: AppointmentGateway):
        self.store = store
        self.gateway = gateway

    @property
    def tz(self) -> tzinfo:
        return self.gateway.tz

    def key(self, start_date: date, end_date: date) -> PartitionKey:
        return self.store.key(PartitionKind.APPOINTMENTS, start_date, end_date)

    def blocked_key(self, start_date: date, end_date: date) -> PartitionKey:
        return self.store.key(PartitionKind.BLOCKED_TIMES, start_date, end_date)

    async def window(self, start_date: date, end_date: date, *, force: bool = False) -> AppointmentList:
        return await self.store.load(
            self.key(start_date, end_date),
            lambda: self.gateway.list_range(start_date, end_date),
            force=force,
        )

    async def blocked(self, start_date: date, end_date: date, *, force: bool = False) -> list[BlockedRange]:
        return await self.store.load(
            self.blocked_key(start_date, end_date),
            lambda: self.gateway.list_blocked(start_date, end_date),
            force=force,
        )

    async def visible(
        self,
        start_date: date,
        end_date: date,
        clinic_ids: list[str] | None = None,
        doctor_ids: list[str] | None = None,
        exclude_cancelled: bool = True,
    ) -> AppointmentList:
        """Window contents filtered the way the schedule grid shows them."""
        items = await self.window(start_date, end_date)
        result = []
        for item in items:
            if exclude_cancelled and item.is_cancelled:
                continue
            if clinic_ids and item.clinic_id not in clinic_ids:
                continue
            if doctor_ids and item.doctor_id not in doctor_ids:
                continue
            result.append(item)
        return result

    def covering(self, interval: Interval, kind: PartitionKind = PartitionKind.APPOINTMENTS) -> list[PartitionKey]:
        """Loaded partitions whose date range touches ``interval``."""
        return [
            key
            for key in self.store.keys(kind)
            if overlaps(range_interval(key.discriminator[0], key.discriminator[1], self.tz), interval)
        ]

    def containing(self, appointment_id: str) -> list[PartitionKey]:
        return [
            key
            for key in self.store.keys(PartitionKind.APPOINTMENTS)
            if any(item.id == appointment_id for item in self.store.get(key) or [])
        ]

    def find(self, appointment_id: str) -> Appointment | None:
        for key in self.store.keys(PartitionKind.APPOINTMENTS):
            for item in self.store.get(key) or []:
                if item.id == appointment_id:
                    return item
        return None

    async def context_for(self, interval: Interval) -> tuple[AppointmentList, list[BlockedRange]]:
        """Appointments and blocked ranges for a window that contains ``interval``."""
        start_date = interval.start.astimezone(self.tz).date()
        end_date = (interval.end - timedelta(microseconds=1)).astimezone(self.tz).date()
        appointments = self._covering_value(interval, PartitionKind.APPOINTMENTS)
        if appointments is None:
            appointments = await self.window(start_date, end_date)
        blocked = self._covering_value(interval, PartitionKind.BLOCKED_TIMES)
        if blocked is None:
            blocked = await self.blocked(start_date, end_date)
        return list(appointments), list(blocked)

    def _covering_value(self, interval: Interval, kind: PartitionKind):
        for key in self.store.keys(kind):
            span = range_interval(key.discriminator[0], key.discriminator[1], self.tz)
            if span.start <= interval.start and interval.end <= span.end and not self.store.is_stale(key):
                return self.store.get(key)
        return None
