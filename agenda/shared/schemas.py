"""Common Pydantic schemas."""

from pydantic import BaseModel, ConfigDict

from agenda.shared.enums import ConflictKind


class ConflictReason(BaseModel):
    """A single double-booking finding, keyed by kind and rendered for display."""

    model_config = ConfigDict(frozen=True)

    kind: ConflictKind | None = None
    message: str

    @classmethod
    def of(cls, kind: ConflictKind) -> "ConflictReason":
        return cls(kind=kind, message=kind.message)

    @classmethod
    def from_message(cls, message: str) -> "ConflictReason":
        return cls(kind=ConflictKind.from_message(message), message=message)

    @property
    def fatal(self) -> bool:
        return self.kind is not None and self.kind.fatal


class PaginationMeta(BaseModel):
    total: int
    page: int
    total_pages: int
