"""Patient schemas."""

from pydantic import BaseModel, ConfigDict, computed_field, field_validator


class Patient(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


class PatientCreate(BaseModel):
    first_name: str
    last_name: str | None = None
    phone: str | None = None

    @field_validator("first_name", "last_name", "phone", mode="before")
    @classmethod
    def strip_whitespace(cls, value):
        if isinstance(value, str):
            value = value.strip()
        return value

    @field_validator("first_name")
    @classmethod
    def require_first_name(cls, value: str) -> str:
        if not value:
            raise ValueError("first_name is required")
        return value

    def to_payload(self) -> dict[str, str]:
        return {key: value for key, value in self.model_dump().items() if value}
