from datetime import datetime, timezone
from typing import Annotated
from pydantic import AfterValidator, PlainSerializer

NOT_AVAILABLE = "N/A"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are taken as UTC; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    # Fixed width so stored timestamps order lexically
    return ensure_utc(value).isoformat(timespec="microseconds")


UtcDatetime = Annotated[
    datetime,
    AfterValidator(ensure_utc),
    PlainSerializer(format_timestamp, return_type=str, when_used="json"),
]
