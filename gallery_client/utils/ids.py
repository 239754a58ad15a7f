from __future__ import annotations

import uuid
from datetime import datetime, timezone


def clean_datetime_utc(moment: datetime | None = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    value = moment or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def epoch_to_utc(epoch_seconds: float) -> str:
    return clean_datetime_utc(datetime.fromtimestamp(epoch_seconds, tz=timezone.utc))


def _suffix() -> str:
    return uuid.uuid4().hex[:8]


def generate_session_id(user_id: str, epoch_seconds: float) -> str:
    return f"{user_id}_{int(epoch_seconds * 1000)}_{_suffix()}"


def generate_event_id(event_type: str, piece_id: str, user_id: str, epoch_seconds: float) -> str:
    return f"{event_type}_{piece_id}_{user_id}_{int(epoch_seconds * 1000)}_{_suffix()}"
