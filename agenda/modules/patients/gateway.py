"""Patient identity lookups."""

from __future__ import annotations

from agenda.core.exceptions import UnknownError
from agenda.core.transport import ApiTransport
from agenda.modules.patients.schemas import Patient, PatientCreate

MIN_QUERY_LENGTH = 2


class PatientGateway:
    def __init__(self, transport: ApiTransport):
        self.transport = transport

    async def search(self, query: str, limit: int = 100) -> list[Patient]:
        query = query.strip()
        if len(query) < MIN_QUERY_LENGTH:
            return []
        data = await self.transport.get("/patients/search", params={"q": query, "limit": limit}, unwrap=True)
        patients = (data or {}).get("patients") or []
        return [Patient.model_validate(item) for item in patients]

    async def create(self, payload: PatientCreate) -> Patient:
        data = await self.transport.post("/patients", json=payload.to_payload())
        if not data:
            raise UnknownError("Invalid response format: missing patient data")
        return Patient.model_validate(data)
