"""Test helpers for building lifecycle events and inspecting logger doubles."""

from collections.abc import AsyncIterator, Iterable
from typing import Any
from unittest.mock import MagicMock


def call_names(logger: MagicMock) -> list[str]:
    """Names of the logger methods called, in order."""
    return [name for name, _, _ in logger.method_calls]


def trace_event(trace_id: str = "trace_1", name: str | None = "Agent workflow", **extra: Any) -> dict[str, Any]:
    return {"trace_id": trace_id, "name": name, "started_at": "2024-01-01T00:00:00Z", "ended_at": "2024-01-01T00:00:10Z", **extra}


def span_event(
    span_id: str,
    span_data: dict[str, Any],
    parent_id: str | None = None,
    trace_id: str = "trace_1",
    started_at: str = "2024-01-01T00:00:01Z",
    ended_at: str = "2024-01-01T00:00:03Z",
    error: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "span_id": span_id,
        "trace_id": trace_id,
        "parent_id": parent_id,
        "span_data": span_data,
        "started_at": started_at,
        "ended_at": ended_at,
        "error": error,
    }


async def async_stream(chunks: Iterable[Any], error: BaseException | None = None) -> AsyncIterator[Any]:
    """Async generator yielding ``chunks`` and then optionally raising ``error``."""
    for chunk in chunks:
        yield chunk
    if error is not None:
        raise error
