from datetime import datetime, timezone
from typing import Any, Mapping


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def rename_keys(data: Mapping[str, Any], renames: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of data with keys in renames swapped for their targets."""
    return {renames.get(key, key): value for key, value in data.items()}


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; sqlite hands them back without an offset."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
