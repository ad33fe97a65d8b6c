"""In-memory scheduling API used by the test suite."""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from zoneinfo import ZoneInfo

import httpx

from agenda.core.config import settings

BASE_URL = "https://agenda.test/api/v1"
PREFIX = "/api/v1"
TZ = ZoneInfo(settings.default_timezone)
ORG_ID = "org-1"

FATAL = "doctor is unavailable"
UNIT = "unit already booked"
DOCTOR = "doctor already has an appointment at this time"


def at(day: int, hour: int, minute: int = 0) -> datetime:
    """Clinic-local wall clock on March ``day``, 2031."""
    return datetime(2031, 3, day, hour, minute, tzinfo=TZ)


def wire(day: int, hour: int, minute: int = 0) -> str:
    return f"2031-03-{day:02d}T{hour:02d}:{minute:02d}:00Z"


DIRECTORY = {
    "organization": {"id": ORG_ID, "name": "Sonrisas"},
    "clinics": [{"id": "clinic-1", "name": "Centro"}, {"id": "clinic-2", "name": "Norte"}],
    "units": [
        {"id": "unit-1", "name": "Sillón 1", "clinic_id": "clinic-1"},
        {"id": "unit-2", "name": "Sillón 2", "clinic_id": "clinic-1"},
        {"id": "unit-3", "name": "Sillón 3", "clinic_id": "clinic-2"},
    ],
    "doctors": [
        {"id": "doc-1", "name": "Dra. Ruiz", "default_unit_id": "unit-1"},
        {"id": "doc-2", "name": "Dr. Peña", "default_unit_id": "unit-3"},
        {"id": "doc-3", "name": "Dr. Soto", "default_unit_id": "unit-2", "is_active": False},
    ],
    "services": [
        {"id": "svc-1", "name": "Limpieza", "duration_minutes": 30},
        {"id": "svc-2", "name": "Endodoncia", "duration_minutes": 90},
    ],
}


def _overlaps(a_start: str, a_end: str, b_start: str, b_end: str) -> bool:
    # Wire timestamps share one fixed-width format, so string order is time order.
    return a_start < b_end and b_start < a_end


class FakeBackend:
    """In-memory stand-in for the scheduling API."""

    def __init__(self):
        self.appointments: dict[str, dict] = {}
        self.blocked: list[dict] = []
        self.queue: dict[str, dict] = {}
        self.patients: list[dict] = [
            {"id": "pat-1", "first_name": "Ana", "last_name": "López", "phone": "555-0101"},
            {"id": "pat-2", "first_name": "Luis", "last_name": None},
        ]
        self.calls: list[tuple[str, str, dict, object]] = []
        self.failures: dict[tuple[str, str], list[int]] = defaultdict(list)
        self.valid_tokens = {"token-1"}
        self._next_id = 100

    # Seeding

    def add_appointment(self, appointment_id: str, **fields) -> dict:
        record = {
            "id": appointment_id,
            "patient_id": "pat-1",
            "doctor_id": "doc-1",
            "unit_id": "unit-1",
            "service_id": "svc-1",
            "status": "scheduled",
            "patient_name": "Ana López",
            "doctor_name": "Dra. Ruiz",
            "clinic_id": "clinic-1",
        }
        record.update(fields)
        self.appointments[appointment_id] = record
        return record

    def add_queue_item(self, appointment_id: str, moved_at: str, **fields) -> dict:
        record = self.add_appointment(appointment_id, status="needs-rescheduling", **fields)
        self.queue[appointment_id] = {"moved_to_needs_rescheduling_at": moved_at}
        return record

    def block(self, doctor_id: str, start_time: str, end_time: str) -> None:
        self.blocked.append({"id": f"blk-{len(self.blocked) + 1}", "doctor_id": doctor_id, "start_time": start_time, "end_time": end_time})

    def fail(self, method: str, path: str, status: int, times: int = 1) -> None:
        self.failures[(method, path)].extend([status] * times)

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call[0] == method and call[1] == path)

    # Dispatch

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix(PREFIX)
        params = dict(request.url.params)
        body = json.loads(request.content) if request.content else None
        self.calls.append((request.method, path, params, body))

        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"message": "token expired"})

        queued = self.failures.get((request.method, path))
        if queued:
            status = queued.pop(0)
            if status == 0:
                raise httpx.ConnectTimeout("timed out", request=request)
            return httpx.Response(status, json={"message": "injected failure"})

        parts = [part for part in path.split("/") if part]
        method = request.method
        if parts == ["organization"] and method == "GET":
            return self._ok(DIRECTORY)
        if parts == ["appointments"] and method == "GET":
            return self._list(params)
        if parts == ["appointments"] and method == "POST":
            return self._create(body, params.get("force_create") == "true")
        if parts == ["appointments", "rescheduling-queue"] and method == "GET":
            return self._queue(params)
        if parts == ["blocked-times"] and method == "GET":
            return self._ok({"blocked_times": list(self.blocked)})
        if len(parts) == 3 and parts[0] == "doctors" and parts[2] == "blocked-times" and method == "POST":
            self.block(parts[1], body["start_time"], body["end_time"])
            return self._ok(self.blocked[-1], status=201)
        if parts == ["patients", "search"] and method == "GET":
            query = params.get("q", "").lower()
            found = [p for p in self.patients if query in f"{p['first_name']} {p.get('last_name') or ''}".lower()]
            return self._ok({"patients": found, "total": len(found)})
        if parts == ["patients"] and method == "POST":
            patient = {"id": f"pat-{self._allocate()}", **body}
            self.patients.append(patient)
            return self._ok(patient, status=201)
        if len(parts) >= 2 and parts[0] == "appointments":
            record = self.appointments.get(parts[1])
            if record is None:
                return httpx.Response(404, json={"message": "Appointment not found"})
            action = parts[2] if len(parts) == 3 else None
            if action is None and method == "GET":
                return self._ok(record)
            if action is None and method == "PUT":
                return self._update(record, body, params.get("force_update") == "true")
            if action == "cancel" and method == "POST":
                if record["status"] == "cancelled":
                    return httpx.Response(409, json={"message": "Already cancelled"})
                record["status"] = "cancelled"
                if body and body.get("reason"):
                    record["cancellation_reason"] = body["reason"]
                self.queue.pop(record["id"], None)
                return self._ok(record)
            if action == "reschedule" and method == "POST":
                return self._reschedule(record, body, params)
            if action == "snooze" and method == "POST":
                self.queue[record["id"]]["snoozed"] = (body["number"], body["time_unit"])
                return self._ok({"id": record["id"]})
        return httpx.Response(404, json={"message": f"No route for {method} {path}"})

    # Handlers

    def _ok(self, data, status: int = 200) -> httpx.Response:
        return httpx.Response(status, json={"data": data, "success": True})

    def _allocate(self) -> int:
        self._next_id += 1
        return self._next_id

    def _conflicts(self, candidate: dict, exclude: str | None = None) -> list[str]:
        reasons = []
        active = [
            item
            for item in self.appointments.values()
            if item["id"] != exclude
            and item["status"] not in ("cancelled", "rescheduled")
            and _overlaps(candidate["start_time"], candidate["end_time"], item["start_time"], item["end_time"])
        ]
        if any(item["unit_id"] == candidate["unit_id"] for item in active):
            reasons.append(UNIT)
        if any(item["doctor_id"] == candidate["doctor_id"] for item in active):
            reasons.append(DOCTOR)
        if any(
            blocked["doctor_id"] == candidate["doctor_id"]
            and _overlaps(candidate["start_time"], candidate["end_time"], blocked["start_time"], blocked["end_time"])
            for blocked in self.blocked
        ):
            reasons.append(FATAL)
        return reasons

    def _reject(self, reasons: list[str], force: bool) -> httpx.Response | None:
        if FATAL in reasons or (reasons and not force):
            return httpx.Response(409, json={"message": "Conflicts detected", "conflicts": reasons})
        return None

    def _list(self, params: dict) -> httpx.Response:
        start, end = params["startDate"], params["endDate"]
        items = [
            item
            for item in self.appointments.values()
            if start <= item["start_time"][:10] < end
        ]
        return self._ok({"appointments": items})

    def _create(self, body: dict, force: bool) -> httpx.Response:
        rejection = self._reject(self._conflicts(body), force)
        if rejection is not None:
            return rejection
        record = self.add_appointment(f"apt-{self._allocate()}", **body)
        return self._ok(record, status=201)

    def _update(self, record: dict, body: dict, force: bool) -> httpx.Response:
        candidate = {**record, **body}
        if {"start_time", "end_time", "doctor_id", "unit_id"} & set(body):
            rejection = self._reject(self._conflicts(candidate, exclude=record["id"]), force)
            if rejection is not None:
                return rejection
        record.update(body)
        return self._ok(record)

    def _reschedule(self, record: dict, body: dict, params: dict) -> httpx.Response:
        if record["status"] != "needs-rescheduling":
            return httpx.Response(400, json={"message": "Appointment is not awaiting rescheduling"})
        candidate = {**body, "patient_id": record["patient_id"]}
        rejection = self._reject(self._conflicts(candidate, exclude=record["id"]), params.get("force_create") == "true")
        if rejection is not None:
            return rejection
        record["status"] = "rescheduled"
        self.queue.pop(record["id"], None)
        created = self.add_appointment(f"apt-{self._allocate()}", **candidate)
        return self._ok({"original": record, "appointment": created}, status=201)

    def _queue(self, params: dict) -> httpx.Response:
        items = []
        for appointment_id, meta in self.queue.items():
            if "snoozed" in meta:
                continue
            record = self.appointments[appointment_id]
            items.append(
                {
                    "id": appointment_id,
                    "patient": {"id": record["patient_id"], "first_name": "Ana", "last_name": "López"},
                    "doctor_id": record["doctor_id"],
                    "unit_id": record["unit_id"],
                    "service_id": record.get("service_id"),
                    "service_name": "Limpieza",
                    "status": record["status"],
                    "original_start": record["start_time"],
                    "original_end": record["end_time"],
                    "moved_to_needs_rescheduling_at": meta["moved_to_needs_rescheduling_at"],
                }
            )
        if params.get("doctor_id"):
            items = [item for item in items if item["doctor_id"] == params["doctor_id"]]
        items.sort(key=lambda item: item["moved_to_needs_rescheduling_at"], reverse=params.get("sort") == "newest")
        page, limit = int(params.get("page", 1)), int(params.get("limit", 20))
        total = len(items)
        window = items[(page - 1) * limit : page * limit]
        return self._ok({"items": window, "total": total, "page": page, "total_pages": -(-total // limit)})
