"""Organization reference data."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from agenda.core.exceptions import ValidationError


class _DirectoryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str
    is_active: bool = True


class Organization(_DirectoryEntry):
    pass


class Clinic(_DirectoryEntry):
    organization_id: str | None = None


class Unit(_DirectoryEntry):
    clinic_id: str


class Doctor(_DirectoryEntry):
    specialty: str | None = None
    default_unit_id: str | None = None


class Service(_DirectoryEntry):
    duration_minutes: int | None = None


class Directory(BaseModel):
    """Read-only snapshot of clinics, units, doctors and services."""

    model_config = ConfigDict(extra="ignore")

    organization: Organization | None = None
    clinics: list[Clinic] = Field(default_factory=list)
    units: list[Unit] = Field(default_factory=list)
    doctors: list[Doctor] = Field(default_factory=list)
    services: list[Service] = Field(default_factory=list)

    def unit(self, unit_id: str) -> Unit | None:
        return next((unit for unit in self.units if unit.id == unit_id), None)

    def doctor(self, doctor_id: str) -> Doctor | None:
        return next((doctor for doctor in self.doctors if doctor.id == doctor_id), None)

    def service(self, service_id: str) -> Service | None:
        return next((service for service in self.services if service.id == service_id), None)

    def clinic_of_unit(self, unit_id: str) -> str | None:
        unit = self.unit(unit_id)
        return unit.clinic_id if unit else None

    def doctors_for_clinic(self, clinic_id: str | None) -> list[Doctor]:
        if not clinic_id:
            return list(self.doctors)
        return [
            doctor
            for doctor in self.doctors
            if doctor.default_unit_id and self.clinic_of_unit(doctor.default_unit_id) == clinic_id
        ]

    def validate_booking(self, doctor_id: str, unit_id: str, service_id: str) -> None:
        """Raise ValidationError unless the triple names known, active entries."""
        doctor = self.doctor(doctor_id)
        if doctor is None or not doctor.is_active:
            raise ValidationError(f"Unknown or inactive doctor '{doctor_id}'")
        unit = self.unit(unit_id)
        if unit is None or not unit.is_active:
            raise ValidationError(f"Unknown or inactive unit '{unit_id}'")
        service = self.service(service_id)
        if service is None or not service.is_active:
            raise ValidationError(f"Unknown or inactive service '{service_id}'")
