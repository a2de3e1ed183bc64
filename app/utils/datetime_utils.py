"""Timezone helpers. Timestamps are stored and returned in UTC."""

from datetime import datetime, timezone
from typing import Annotated, Optional

from pydantic import AfterValidator


def get_current_utc_datetime() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Attach UTC to naive datetimes.

    SQLite drops tzinfo on the way back out, so rows read from it carry naive
    values that were written as UTC.
    """
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


UTCDateTime = Annotated[datetime, AfterValidator(as_utc)]
