"""Directory lookup."""

from __future__ import annotations

from pydantic import ValidationError as SchemaError

from agenda.core.exceptions import UnknownError
from agenda.core.transport import ApiTransport
from agenda.modules.directory.schemas import Directory


class DirectoryGateway:
    def __init__(self, transport: ApiTransport):
        self.transport = transport

    async def fetch(self) -> Directory:
        payload = await self.transport.get("/organization", unwrap=True)
        try:
            return Directory.model_validate(payload or {})
        except SchemaError as exc:
            raise UnknownError("Malformed organization data") from exc
