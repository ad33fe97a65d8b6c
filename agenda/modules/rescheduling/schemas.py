"""Rescheduling queue schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from agenda.core.config import settings
from agenda.modules.appointments.schemas import Appointment, AppointmentDraft
from agenda.shared.enums import AppointmentStatus, QueueSort
from agenda.shared.schemas import PaginationMeta
from agenda.shared.wire import format_wire_time, parse_wire_time

SNOOZE_QUANTITIES = (1, 2, 3, 5)


class QueuePatient(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class ReschedulingQueueItem(BaseModel):
    """An appointment in ``needs-rescheduling`` as listed by the queue."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    patient: QueuePatient | None = None
    patient_id: str | None = None
    doctor_id: str
    doctor_name: str | None = None
    unit_id: str | None = None
    clinic_id: str | None = None
    service_id: str | None = None
    service_name: str | None = None
    status: AppointmentStatus = AppointmentStatus.NEEDS_RESCHEDULING
    original_start: datetime
    original_end: datetime | None = None
    moved_to_needs_rescheduling_at: datetime
    notes: str | None = None

    @field_validator("original_start", "original_end", "moved_to_needs_rescheduling_at", mode="before")
    @classmethod
    def parse_timestamp(cls, value: Any) -> Any:
        if isinstance(value, str):
            return parse_wire_time(value)
        return value

    @property
    def resolved_patient_id(self) -> str | None:
        if self.patient_id:
            return self.patient_id
        return self.patient.id if self.patient else None


class QueueParams(BaseModel):
    model_config = ConfigDict(frozen=True)

    clinic_id: str | None = None
    doctor_id: str | None = None
    search: str | None = None
    page: int = Field(1, ge=1)
    limit: int = Field(default_factory=lambda: settings.queue_page_size, ge=1, le=100)
    sort: QueueSort = QueueSort.OLDEST

    @property
    def cache_key(self) -> tuple:
        return (self.clinic_id, self.doctor_id, self.search, self.page, self.limit, self.sort.value)

    def to_query(self) -> dict[str, Any]:
        query = self.model_dump(exclude_none=True)
        query["sort"] = self.sort.value
        if not query.get("search"):
            query.pop("search", None)
        return query


class QueuePage(PaginationMeta):
    items: list[ReschedulingQueueItem] = Field(default_factory=list)

    def without(self, item_id: str) -> "QueuePage":
        remaining = [item for item in self.items if item.id != item_id]
        removed = len(self.items) - len(remaining)
        return self.model_copy(update={"items": remaining, "total": max(0, self.total - removed)})


class RescheduleTarget(BaseModel):
    """New slot for a queue item."""

    doctor_id: str
    unit_id: str
    service_id: str
    start: datetime
    end: datetime
    notes: str | None = None

    def to_draft(self, patient_id: str) -> AppointmentDraft:
        return AppointmentDraft(
            patient_id=patient_id,
            doctor_id=self.doctor_id,
            unit_id=self.unit_id,
            service_id=self.service_id,
            start=self.start,
            end=self.end,
            notes=self.notes,
        )


class RescheduleRequest(BaseModel):
    doctor_id: str
    unit_id: str
    service_id: str
    start_time: str
    end_time: str
    notes: str | None = None

    @classmethod
    def from_draft(cls, draft: AppointmentDraft) -> "RescheduleRequest":
        return cls(
            doctor_id=draft.doctor_id,
            unit_id=draft.unit_id,
            service_id=draft.service_id,
            start_time=format_wire_time(draft.start),
            end_time=format_wire_time(draft.end),
            notes=draft.notes or None,
        )


class RescheduleResult(BaseModel):
    original: Appointment | None = None
    appointment: Appointment


class SnoozeResult(BaseModel):
    item_id: str
    number: int
    time_unit: str
    snoozed_until: datetime
