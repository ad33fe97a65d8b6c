from datetime import date

import pytest

from agenda.core.exceptions import UnauthorizedError, ValidationError
from agenda.modules.patients.schemas import PatientCreate
from agenda.shared.enums import PartitionKind


@pytest.mark.asyncio
async def test_start_loads_directory(session, backend):
    directory = session.directory

    assert directory.organization.id == "org-1"
    assert session.booking.directory is directory
    assert [doctor.id for doctor in directory.doctors_for_clinic("clinic-1")] == ["doc-1", "doc-3"]
    assert [doctor.id for doctor in directory.doctors_for_clinic(None)] == ["doc-1", "doc-2", "doc-3"]
    assert directory.service("svc-2").duration_minutes == 90
    assert directory.clinic_of_unit("unit-3") == "clinic-2"


@pytest.mark.asyncio
async def test_validate_booking_rejects_unknown_entries(session):
    with pytest.raises(ValidationError):
        session.directory.validate_booking("doc-1", "unit-9", "svc-1")
    with pytest.raises(ValidationError):
        session.directory.validate_booking("doc-1", "unit-1", "svc-9")


@pytest.mark.asyncio
async def test_patient_search_and_create(session, backend):
    assert await session.patients.search(" a ") == []
    assert backend.count("GET", "/patients/search") == 0

    found = await session.patients.search("ana")
    assert [patient.name for patient in found] == ["Ana López"]

    created = await session.patients.create(PatientCreate(first_name="  Eva ", phone=""))
    assert created.name == "Eva"
    assert backend.calls[-1][3] == {"first_name": "Eva"}


def test_patient_requires_first_name():
    with pytest.raises(ValueError):
        PatientCreate(first_name="   ")


@pytest.mark.asyncio
async def test_sign_out_clears_cache(session, backend):
    day = date(2031, 3, 12)
    await session.calendar.window(day, day)
    assert session.store.keys(PartitionKind.APPOINTMENTS)

    await session.sign_out()

    assert not session.store.active


@pytest.mark.asyncio
async def test_rejected_credentials_clear_cached_data(session, backend):
    day = date(2031, 3, 12)
    await session.calendar.window(day, day)
    backend.valid_tokens.clear()

    with pytest.raises(UnauthorizedError):
        await session.patients.search("ana")

    assert not session.store.active
    assert session.store.keys(PartitionKind.APPOINTMENTS) == []
