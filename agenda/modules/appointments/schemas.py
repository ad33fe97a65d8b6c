"""Appointments schemas."""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agenda.shared.enums import AppointmentStatus
from agenda.shared.interval import Interval
from agenda.shared.wire import format_wire_time, parse_wire_time

DURATION_PRESETS_MINUTES = (15, 30, 45, 60, 90, 120, 180, 240)


class Appointment(BaseModel):
    """Client view of an appointment. Name fields are display copies only."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    patient_id: str
    doctor_id: str
    unit_id: str
    service_id: str | None = None
    start: datetime
    end: datetime
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    is_first_visit: bool = False

    patient_name: str | None = None
    doctor_name: str | None = None
    unit_name: str | None = None
    clinic_id: str | None = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def is_cancelled(self) -> bool:
        return self.status == AppointmentStatus.CANCELLED


class BlockedRange(BaseModel):
    """A doctor-specific interval that behaves like a phantom appointment."""

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    doctor_id: str
    start: datetime
    end: datetime
    reason: str | None = None

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @classmethod
    def from_wire(cls, payload: dict[str, Any], tz: tzinfo | None = None) -> "BlockedRange":
        return cls(
            id=payload.get("id"),
            doctor_id=payload["doctor_id"],
            start=parse_wire_time(payload["start_time"], tz),
            end=parse_wire_time(payload["end_time"], tz),
            reason=payload.get("reason"),
        )


class AppointmentRecord(BaseModel):
    """Appointment as sent by the server."""

    model_config = ConfigDict(extra="ignore")

    id: str
    patient_id: str
    doctor_id: str
    unit_id: str
    service_id: str | None = None
    treatment_type: str | None = None
    start_time: str
    end_time: str
    status: AppointmentStatus = AppointmentStatus.SCHEDULED
    notes: str | None = None
    is_first_visit: bool | None = None
    patient_name: str | None = None
    doctor_name: str | None = None
    unit_name: str | None = None
    clinic_id: str | None = None

    def to_appointment(self, tz: tzinfo | None = None) -> Appointment:
        return Appointment(
            id=self.id,
            patient_id=self.patient_id,
            doctor_id=self.doctor_id,
            unit_id=self.unit_id,
            service_id=self.service_id or self.treatment_type,
            start=parse_wire_time(self.start_time, tz),
            end=parse_wire_time(self.end_time, tz),
            status=self.status,
            notes=self.notes,
            is_first_visit=bool(self.is_first_visit),
            patient_name=self.patient_name,
            doctor_name=self.doctor_name,
            unit_name=self.unit_name,
            clinic_id=self.clinic_id,
        )


class CreateAppointmentRequest(BaseModel):
    patient_id: str
    doctor_id: str
    unit_id: str
    service_id: str
    start_time: str
    end_time: str
    notes: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AppointmentDraft(BaseModel):
    """Input for a new booking."""

    patient_id: str
    doctor_id: str
    unit_id: str
    service_id: str
    start: datetime
    end: datetime
    notes: str | None = None
    is_first_visit: bool = False

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    @property
    def fingerprint(self) -> tuple[str, ...]:
        return (
            self.patient_id,
            self.doctor_id,
            self.unit_id,
            self.service_id,
            format_wire_time(self.start),
            format_wire_time(self.end),
        )

    def to_request(self) -> CreateAppointmentRequest:
        return CreateAppointmentRequest(
            patient_id=self.patient_id,
            doctor_id=self.doctor_id,
            unit_id=self.unit_id,
            service_id=self.service_id,
            start_time=format_wire_time(self.start),
            end_time=format_wire_time(self.end),
            notes=self.notes or None,
        )

    def to_provisional(self, provisional_id: str) -> Appointment:
        return Appointment(
            id=provisional_id,
            patient_id=self.patient_id,
            doctor_id=self.doctor_id,
            unit_id=self.unit_id,
            service_id=self.service_id,
            start=self.start,
            end=self.end,
            notes=self.notes,
            is_first_visit=self.is_first_visit,
        )

    def matches(self, appointment: Appointment) -> bool:
        return (
            appointment.patient_id == self.patient_id
            and appointment.doctor_id == self.doctor_id
            and appointment.unit_id == self.unit_id
            and appointment.service_id == self.service_id
            and appointment.start == self.start
            and appointment.end == self.end
        )


class AppointmentChanges(BaseModel):
    """Partial update of an existing appointment."""

    patient_id: str | None = None
    doctor_id: str | None = None
    unit_id: str | None = None
    service_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None
    status: AppointmentStatus | None = None
    notes: str | None = None

    @property
    def touches_schedule(self) -> bool:
        fields = self.model_fields_set & {"doctor_id", "unit_id", "start", "end"}
        return bool(fields)

    def apply_to(self, appointment: Appointment) -> Appointment:
        return appointment.model_copy(update=self.model_dump(exclude_unset=True, exclude_none=True))

    def to_payload(self) -> dict[str, Any]:
        data = self.model_dump(exclude_unset=True, exclude_none=True)
        if "start" in data:
            data["start_time"] = format_wire_time(data.pop("start"))
        if "end" in data:
            data["end_time"] = format_wire_time(data.pop("end"))
        if "status" in data:
            data["status"] = AppointmentStatus(data["status"]).value
        return data


class BlockTimeRequest(BaseModel):
    start_time: str
    end_time: str
    reason: str | None = Field(None, max_length=500)
