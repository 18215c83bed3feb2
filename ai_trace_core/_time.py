"""Timestamp parsing and nanosecond durations."""

from datetime import UTC, datetime, timedelta

from ai_trace_core.logging import get_pipeline_logger

logger = get_pipeline_logger(__name__)

_ONE_MICROSECOND = timedelta(microseconds=1)


def utc_now() -> datetime:
    return datetime.now(UTC)


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse an ISO-8601 string or datetime; naive values are taken as UTC.

    Returns None for missing or unparseable values.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError as e:
            logger.debug(f"Failed to parse timestamp '{value}': {e}")
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def calculate_duration_ns(started_at: datetime | None, ended_at: datetime | None = None) -> int:
    """Nanoseconds between two timestamps, never negative.

    A missing end falls back to now; a missing start yields 0.
    """
    if started_at is None:
        return 0
    end = ended_at or utc_now()
    return max(0, (end - started_at) // _ONE_MICROSECOND * 1000)
