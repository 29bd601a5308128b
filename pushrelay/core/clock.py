from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    # All engine instants are timezone-aware UTC.
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # Databases without timezone support hand back naive values stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
