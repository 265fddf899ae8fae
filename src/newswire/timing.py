"""Timestamp and retry-delay helpers shared by the engine and the client."""

from __future__ import annotations

from datetime import UTC, datetime, tzinfo
from zoneinfo import ZoneInfo


def epoch_millis(now: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch for `now` (defaults to current UTC time)."""

    moment = now or datetime.now(tz=UTC)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return int(moment.timestamp() * 1000)


def resolve_timezone(name: str) -> tzinfo:
    """Map a timezone name to tzinfo, keeping UTC independent of the tz database."""

    normalized = name.strip()
    if not normalized or normalized.upper() == "UTC":
        return UTC
    return ZoneInfo(normalized)


def format_published_at(timestamp_ms: int, tz: tzinfo = UTC) -> str:
    """Render a publish timestamp as 24h wall-clock time with milliseconds."""

    moment = datetime.fromtimestamp(timestamp_ms / 1000, tz=tz)
    return f"{moment:%H:%M:%S}.{moment.microsecond // 1000:03d}"


def backoff_delay(retries: int, *, base_seconds: float, cap_seconds: float) -> float:
    """Exponential backoff: `min(base * 2**retries, cap)`."""

    if retries < 0:
        raise ValueError("retries must be >= 0")
    # Larger exponents only ever return the cap.
    exponent = min(retries, 62)
    return min(base_seconds * (2**exponent), cap_seconds)
