"""Per-message timestamp resolution.

Two passes, kept separate:

1. :func:`resolve_direct` looks only at one turn's own fields.
2. :func:`fill_gaps` fills the turns pass 1 could not resolve from their
   neighbours, then the conversation's creation time, then "now".
"""

import math
from datetime import datetime, timezone
from typing import Any

# Valid client times are unix milliseconds after 2001-09-09
MS_EPOCH_FLOOR = 1_000_000_000_000

TIMING_FIELDS = ("clientRpcSendTime", "clientSettleTime", "clientEndTime")


def ms_to_datetime(ms: int | float | None) -> datetime | None:
    """Convert millisecond timestamp to datetime, or None."""
    if ms is None or isinstance(ms, bool):
        return None
    try:
        return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)
    except (ValueError, OSError, OverflowError):
        return None


def parse_iso(value: str | None) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if not value or not isinstance(value, str):
        return None
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_datetime(value: Any) -> datetime | None:
    """Interpret a stored time value: ISO text or unix milliseconds."""
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.isdigit():
            return ms_to_datetime(int(stripped))
        return parse_iso(stripped)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return ms_to_datetime(value)
    return None


def is_valid_client_ms(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and value > MS_EPOCH_FLOOR
    )


def resolve_direct(doc: dict) -> datetime | None:
    """Resolve a turn's time from its own fields, or None.

    ``createdAt`` wins. Otherwise the first valid timing field in
    :data:`TIMING_FIELDS` order. ``clientStartTime`` is never consulted.
    """
    if not isinstance(doc, dict):
        return None

    created = to_datetime(doc.get("createdAt"))
    if created is not None:
        return created

    timing = doc.get("timingInfo")
    if not isinstance(timing, dict):
        return None
    for name in TIMING_FIELDS:
        value = timing.get(name)
        if is_valid_client_ms(value):
            resolved = ms_to_datetime(value)
            if resolved is not None:
                return resolved
    return None


def fill_gaps(
    timestamps: list[datetime | None],
    session_created_at: datetime | None = None,
    now: datetime | None = None,
) -> list[datetime]:
    """Return a copy of ``timestamps`` with every None replaced.

    A gap takes the next resolved value after it, else the previous one,
    else ``session_created_at``, else ``now`` (read once per call).
    """
    count = len(timestamps)
    following: list[datetime | None] = [None] * count
    nxt = None
    for i in range(count - 1, -1, -1):
        following[i] = nxt
        if timestamps[i] is not None:
            nxt = timestamps[i]

    filled: list[datetime] = []
    prev = None
    for i, ts in enumerate(timestamps):
        if ts is not None:
            filled.append(ts)
            prev = ts
            continue
        if following[i] is not None:
            filled.append(following[i])
        elif prev is not None:
            filled.append(prev)
        elif session_created_at is not None:
            filled.append(session_created_at)
        else:
            if now is None:
                now = datetime.now(timezone.utc)
            filled.append(now)
    return filled
