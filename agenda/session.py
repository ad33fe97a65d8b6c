"""Per-session wiring of transport, cache and workflows."""

from __future__ import annotations

import logging

import httpx

from agenda.core.config import settings
from agenda.core.security import CredentialProvider
from agenda.core.transport import ApiTransport
from agenda.modules.appointments.calendar import CalendarCache
from agenda.modules.appointments.gateway import AppointmentGateway
from agenda.modules.appointments.service import BookingService
from agenda.modules.cache.store import CacheStore
from agenda.modules.directory.gateway import DirectoryGateway
from agenda.modules.directory.schemas import Directory
from agenda.modules.patients.gateway import PatientGateway
from agenda.modules.rescheduling.gateway import QueueGateway
from agenda.modules.rescheduling.service import ReschedulingQueueService
from agenda.shared.enums import PartitionKind

logger = logging.getLogger(__name__)


class AgendaSession:
    """One signed-in user working against one organization."""

    def __init__(self, credentials: CredentialProvider, client: httpx.AsyncClient | None = None):
        self.credentials = credentials
        self.transport = ApiTransport(credentials, client, on_sign_out=self._session_ended)
        self.store = CacheStore()
        self.appointments = AppointmentGateway(self.transport)
        self.calendar = CalendarCache(self.store, self.appointments)
        self.booking = BookingService(self.appointments, self.calendar)
        self.queue = ReschedulingQueueService(QueueGateway(self.appointments), self.booking)
        self.patients = PatientGateway(self.transport)
        self.directory_gateway = DirectoryGateway(self.transport)
        self.directory: Directory | None = None

    async def start(self, organization_id: str, *, poll: bool = True) -> "AgendaSession":
        self.store.init(organization_id)
        self.directory = await self.directory_gateway.fetch()
        self.booking.directory = self.directory
        if poll:
            self.store.start_polling(PartitionKind.APPOINTMENTS, settings.calendar_refresh_seconds)
            self.store.start_polling(PartitionKind.BLOCKED_TIMES, settings.calendar_refresh_seconds)
            self.store.start_polling(PartitionKind.RESCHEDULING_QUEUE, settings.queue_refresh_seconds)
        logger.info("Session started for organization %s", organization_id)
        return self

    async def close(self) -> None:
        self.store.clear()
        await self.transport.aclose()

    def _session_ended(self) -> None:
        logger.warning("Session ended by the server; clearing cached data")
        self.store.clear()

    async def sign_out(self) -> None:
        await self.credentials.sign_out()
        await self.close()
