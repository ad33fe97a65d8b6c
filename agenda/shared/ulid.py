"""ULID helpers."""

import ulid

PROVISIONAL_PREFIX = "temp-"


def generate_ulid() -> str:
    """Return a string ULID."""
    return str(ulid.new())


def provisional_id() -> str:
    """Return a client-side id for a record the server has not acknowledged yet."""
    return f"{PROVISIONAL_PREFIX}{generate_ulid()}"


def is_provisional(record_id: str | None) -> bool:
    return bool(record_id) and record_id.startswith(PROVISIONAL_PREFIX)
