"""Streaming response aggregation."""

from .aggregator import StreamAggregator, is_responses_event
from .metrics import StreamingMetrics

__all__ = ["StreamAggregator", "StreamingMetrics", "is_responses_event"]
