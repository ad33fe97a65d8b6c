"""Remote calls for appointments and blocked times."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Any

from pydantic import ValidationError as SchemaError

from agenda.core.exceptions import BookingError, UnknownError
from agenda.core.transport import ApiTransport
from agenda.modules.appointments.schemas import (
    Appointment,
    AppointmentChanges,
    AppointmentRecord,
    BlockedRange,
    BlockTimeRequest,
    CreateAppointmentRequest,
)
from agenda.shared.wire import clinic_timezone, format_wire_date, format_wire_time

logger = logging.getLogger(__name__)


def _extract_list(payload: Any, field: str) -> list[dict[str, Any]]:
    """Accept a bare list, ``{field: [...]}``, or ``{data: {field: [...]}}``."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get(field), list):
            return payload[field]
        data = payload.get("data")
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get(field), list):
            return data[field]
    raise UnknownError(f"Invalid response format: no {field} array found")


def to_appointment(payload: Any, tz: tzinfo | None = None) -> Appointment:
    try:
        return AppointmentRecord.model_validate(payload).to_appointment(tz)
    except SchemaError as exc:
        raise UnknownError("Malformed appointment in server response") from exc


class AppointmentGateway:
    def __init__(self, transport: ApiTransport, tz: tzinfo | None = None):
        self.transport = transport
        self.tz = tz or clinic_timezone()

    async def list_range(self, start_date: date, end_date: date) -> list[Appointment]:
        """Appointments for the inclusive local date range ``[start_date, end_date]``."""
        # The server reads endDate as midnight at the start of that day.
        params = {
            "startDate": format_wire_date(start_date),
            "endDate": format_wire_date(end_date + timedelta(days=1)),
        }
        payload = await self.transport.get("/appointments", params=params)
        appointments: list[Appointment] = []
        for raw in _extract_list(payload, "appointments"):
            try:
                appointments.append(to_appointment(raw, self.tz))
            except BookingError:
                logger.warning("Skipping appointment with invalid data: %s", raw.get("id"))
        logger.debug("Loaded %d appointments for %s..%s", len(appointments), start_date, end_date)
        return appointments

    async def get(self, appointment_id: str) -> Appointment:
        payload = await self.transport.get(f"/appointments/{appointment_id}", unwrap=True)
        return to_appointment(payload, self.tz)

    async def list_blocked(self, start_date: date, end_date: date, doctor_id: str | None = None) -> list[BlockedRange]:
        params = {
            "start_date": format_wire_date(start_date),
            "end_date": format_wire_date(end_date + timedelta(days=1)),
            "doctor_id": doctor_id,
        }
        payload = await self.transport.get("/blocked-times", params=params)
        blocked: list[BlockedRange] = []
        for raw in _extract_list(payload, "blocked_times"):
            try:
                blocked.append(BlockedRange.from_wire(raw, self.tz))
            except (KeyError, BookingError, SchemaError):
                logger.warning("Skipping blocked range with invalid data: %s", raw)
        return blocked

    async def block_time(
        self,
        doctor_id: str,
        start: datetime,
        end: datetime,
        reason: str | None = None,
    ) -> BlockedRange:
        body = BlockTimeRequest(
            start_time=format_wire_time(start, self.tz),
            end_time=format_wire_time(end, self.tz),
            reason=reason,
        )
        payload = await self.transport.post(
            f"/doctors/{doctor_id}/blocked-times",
            json=body.model_dump(exclude_none=True),
        )
        if isinstance(payload, dict) and "start_time" in payload:
            return BlockedRange.from_wire({"doctor_id": doctor_id, **payload}, self.tz)
        return BlockedRange(doctor_id=doctor_id, start=start, end=end, reason=reason)

    async def create(self, request: CreateAppointmentRequest, force_create: bool = False) -> Appointment:
        params = {"force_create": "true"} if force_create else None
        payload = await self.transport.post("/appointments", json=request.to_payload(), params=params)
        return to_appointment(payload, self.tz)

    async def update(
        self,
        appointment_id: str,
        changes: AppointmentChanges,
        force_update: bool = False,
    ) -> Appointment:
        params = {"force_update": "true"} if force_update else None
        payload = await self.transport.put(
            f"/appointments/{appointment_id}",
            json=changes.to_payload(),
            params=params,
        )
        return to_appointment(payload, self.tz)

    async def cancel(self, appointment_id: str, reason: str | None = None) -> Appointment | None:
        body = {"reason": reason} if reason else {}
        payload = await self.transport.post(f"/appointments/{appointment_id}/cancel", json=body)
        if not payload:
            return None
        return to_appointment(payload, self.tz)
