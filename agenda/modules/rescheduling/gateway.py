"""Remote calls for the rescheduling queue."""

from __future__ import annotations

from pydantic import ValidationError as SchemaError

from agenda.core.exceptions import UnknownError
from agenda.modules.appointments.gateway import AppointmentGateway, to_appointment
from agenda.modules.rescheduling.schemas import QueuePage, QueueParams, RescheduleRequest, RescheduleResult
from agenda.shared.enums import SnoozeUnit


class QueueGateway:
    def __init__(self, appointments: AppointmentGateway):
        self.appointments = appointments
        self.transport = appointments.transport

    async def list(self, params: QueueParams) -> QueuePage:
        payload = await self.transport.get("/appointments/rescheduling-queue", params=params.to_query(), unwrap=True)
        try:
            return QueuePage.model_validate(payload or {"items": [], "total": 0, "page": params.page, "total_pages": 0})
        except SchemaError as exc:
            raise UnknownError("Malformed rescheduling queue response") from exc

    async def reschedule(
        self,
        appointment_id: str,
        request: RescheduleRequest,
        force_create: bool = False,
    ) -> RescheduleResult:
        params = {"force_create": "true"} if force_create else None
        payload = await self.transport.post(
            f"/appointments/{appointment_id}/reschedule",
            json=request.model_dump(exclude_none=True),
            params=params,
        )
        tz = self.appointments.tz
        if isinstance(payload, dict) and "appointment" in payload:
            original = payload.get("original")
            return RescheduleResult(
                original=to_appointment(original, tz) if original else None,
                appointment=to_appointment(payload["appointment"], tz),
            )
        return RescheduleResult(appointment=to_appointment(payload, tz))

    async def snooze(self, appointment_id: str, number: int, time_unit: SnoozeUnit) -> None:
        await self.transport.post(
            f"/appointments/{appointment_id}/snooze",
            json={"number": number, "time_unit": time_unit.value},
        )
