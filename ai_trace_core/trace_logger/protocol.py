"""Trace logger protocol and singleton management.

Defines the TraceLogger protocol the tree builder, the streaming aggregator and
the instrumentation shims emit records through, along with get/set helpers for
the process-global logger.
"""

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from ._models import LlmSpan, StepWithChildSpans, ToolSpan, Trace, WorkflowSpan


@runtime_checkable
class TraceLogger(Protocol):
    """Protocol for loggers that assemble and ship trace records.

    A logger keeps a stack of open parents: ``start_trace`` and
    ``add_workflow_span`` push, ``conclude`` pops, and every ``add_*`` call
    attaches to the top of the stack.

    Implementations: BufferedTraceLogger (in-memory buffer with a pluggable
    ingestion callable).
    """

    def start_trace(
        self,
        *,
        input: str,
        output: str | None = None,
        name: str | None = None,
        created_at: datetime | None = None,
        duration_ns: int | None = None,
        metadata: dict[str, str] | None = None,
    ) -> Trace:
        """Open a new trace. Fails if another trace is still open."""
        ...

    def add_llm_span(
        self,
        *,
        input: Any,
        output: Any,
        model: str | None = None,
        name: str | None = None,
        duration_ns: int | None = None,
        num_input_tokens: int | None = None,
        num_output_tokens: int | None = None,
        total_tokens: int | None = None,
        num_reasoning_tokens: int | None = None,
        num_cached_input_tokens: int | None = None,
        time_to_first_token_ns: int | None = None,
        temperature: float | None = None,
        status_code: int | None = None,
        metadata: dict[str, str] | None = None,
        tools: list[dict[str, Any]] | None = None,
        created_at: datetime | None = None,
    ) -> LlmSpan:
        """Attach an LLM span to the current parent."""
        ...

    def add_tool_span(
        self,
        *,
        input: str,
        output: str | None = None,
        name: str | None = None,
        duration_ns: int | None = None,
        status_code: int | None = None,
        metadata: dict[str, str] | None = None,
        created_at: datetime | None = None,
        tool_call_id: str | None = None,
    ) -> ToolSpan:
        """Attach a tool span to the current parent."""
        ...

    def add_workflow_span(
        self,
        *,
        input: str,
        output: str | None = None,
        name: str | None = None,
        duration_ns: int | None = None,
        metadata: dict[str, str] | None = None,
        created_at: datetime | None = None,
    ) -> WorkflowSpan:
        """Attach a workflow span and make it the current parent."""
        ...

    def conclude(
        self,
        *,
        output: str | None = None,
        duration_ns: int | None = None,
        status_code: int | None = None,
        conclude_all: bool = False,
    ) -> StepWithChildSpans | None:
        """Close the current parent (or every open parent) and return the new current parent."""
        ...

    def current_parent(self) -> StepWithChildSpans | None:
        """Return the innermost open trace or workflow span."""
        ...

    async def flush(self) -> list[Trace]:
        """Submit all completed traces to the backend and return them."""
        ...


_trace_logger: TraceLogger | None = None


def get_trace_logger() -> TraceLogger:
    """Get the process-global trace logger, creating a BufferedTraceLogger on first use."""
    global _trace_logger
    if _trace_logger is None:
        from .logger import BufferedTraceLogger  # noqa: PLC0415

        _trace_logger = BufferedTraceLogger()
    return _trace_logger


def set_trace_logger(trace_logger: TraceLogger | None) -> None:
    """Set the process-global trace logger."""
    global _trace_logger
    _trace_logger = trace_logger
