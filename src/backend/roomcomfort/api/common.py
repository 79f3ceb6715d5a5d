"""Shared pieces of the HTTP layer."""

from datetime import datetime, timezone
from email.utils import format_datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

NO_CACHE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate",
    "Pragma": "no-cache",
}


class CamelModel(BaseModel):
    """Schema serialized with camelCase keys, accepting either case on input."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def http_date(value: datetime) -> str:
    """Format a timestamp for Last-Modified."""
    return format_datetime(as_utc(value), usegmt=True)
