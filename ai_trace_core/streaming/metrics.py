"""Timing of a streamed model response."""

from datetime import datetime

from ai_trace_core._time import calculate_duration_ns, utc_now


class StreamingMetrics:
    """Tracks call start, first chunk arrival and completion."""

    def __init__(self, start_time: datetime | None = None) -> None:
        self.start_time = start_time or utc_now()
        self.first_token_time: datetime | None = None

    def record_first_token(self) -> None:
        if self.first_token_time is None:
            self.first_token_time = utc_now()

    @property
    def ttft_ns(self) -> int | None:
        """Time to first token, or None before the first chunk arrived."""
        if self.first_token_time is None:
            return None
        return calculate_duration_ns(self.start_time, self.first_token_time)

    def duration_ns(self, ended_at: datetime | None = None) -> int:
        """Generation time: from the first chunk (or the call start) to ``ended_at``."""
        return calculate_duration_ns(self.first_token_time or self.start_time, ended_at)
