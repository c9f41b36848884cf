"""Timestamp helpers for trigger-date windows."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

ODATA_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_odata_datetime(timestamp: int | float) -> str:
    """Format an epoch timestamp as a UTC ISO 8601 literal.

    Args:
        timestamp: Seconds since the epoch.

    Returns:
        String such as ``2024-05-01T10:00:00Z``.
    """
    return datetime.fromtimestamp(int(timestamp), UTC).strftime(ODATA_DATETIME_FORMAT)


def parse_timestamp(value: Any) -> int | None:
    """Parse a remote date value into epoch seconds.

    Naive values are treated as UTC. Anything that is not a parseable
    string yields None, meaning "unknown".
    """
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp())
