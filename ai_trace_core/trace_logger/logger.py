"""In-memory trace logger.

Builds the record tree with a parent stack and hands completed traces to an
ingestion callable on flush. The ingestion callable is the only contact point
with the logging backend; transport, auth and retries live behind it.
"""

from collections.abc import Awaitable, Callable
from datetime import datetime
from functools import wraps
from typing import Any, ParamSpec, TypeAlias, TypeVar

from ai_trace_core._time import utc_now
from ai_trace_core.exceptions import LoggerStateError
from ai_trace_core.logging import get_pipeline_logger
from ai_trace_core.serialization import EventSerializer, serialize_to_str
from ai_trace_core.settings import settings

from ._models import BaseStep, LlmMetrics, LlmSpan, Metrics, StepWithChildSpans, ToolSpan, Trace, WorkflowSpan

IngestFn: TypeAlias = Callable[[list[Trace]], Awaitable[None]]

logger = get_pipeline_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _skip_if_disabled(default: Callable[[], Any]) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Return ``default()`` instead of calling the method when logging is disabled."""

    def decorator(method: Callable[P, R]) -> Callable[P, R]:
        @wraps(method)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            if args[0]._disabled:  # type: ignore[attr-defined]
                return default()
            return method(*args, **kwargs)

        return wrapper

    return decorator


class BufferedTraceLogger:
    """TraceLogger that buffers traces in memory until ``flush``.

    Args:
        ingest: Coroutine function receiving each flushed batch of traces.
                When omitted, flushed traces are only returned to the caller.
        disabled: Override for ``settings.disable_logging``.
    """

    def __init__(self, ingest: IngestFn | None = None, *, disabled: bool | None = None) -> None:
        self._ingest = ingest
        self._disabled = settings.disable_logging if disabled is None else disabled
        self._parent_stack: list[StepWithChildSpans] = []
        self._serializer = EventSerializer()
        self.traces: list[Trace] = []

    def is_logging_disabled(self) -> bool:
        return self._disabled

    @staticmethod
    def get_last_output(node: BaseStep | None) -> str | None:
        """Output of the node, or of its most recent descendant that has one."""
        if node is None:
            return None
        if node.output is not None:
            return serialize_to_str(node.output)
        if isinstance(node, StepWithChildSpans) and node.spans:
            return BufferedTraceLogger.get_last_output(node.spans[-1])
        return None

    def current_parent(self) -> StepWithChildSpans | None:
        return self._parent_stack[-1] if self._parent_stack else None

    def _add_child_span(self, span: LlmSpan | ToolSpan | WorkflowSpan) -> None:
        parent = self.current_parent()
        if parent is None:
            raise LoggerStateError("A trace needs to be created in order to add a span.")
        parent.add_child_span(span)

    @_skip_if_disabled(lambda: Trace(name="", input=""))
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
        if self.current_parent() is not None:
            raise LoggerStateError("You must conclude the existing trace before adding a new one.")
        trace = Trace(
            name=name or "trace",
            input=input,
            output=output,
            created_at=created_at or utc_now(),
            metadata=metadata or {},
            metrics=Metrics(duration_ns=duration_ns),
        )
        self.traces.append(trace)
        self._parent_stack.append(trace)
        return trace

    @_skip_if_disabled(lambda: LlmSpan(name="", input=""))
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
        span = LlmSpan(
            name=name or "llm",
            input=self._serializer.default(input),
            output=self._serializer.default(output),
            model=model,
            tools=self._serializer.default(tools) if tools is not None else None,
            temperature=temperature,
            created_at=created_at or utc_now(),
            metadata=metadata or {},
            status_code=status_code,
            metrics=LlmMetrics(
                duration_ns=duration_ns,
                num_input_tokens=num_input_tokens,
                num_output_tokens=num_output_tokens,
                num_total_tokens=total_tokens,
                num_reasoning_tokens=num_reasoning_tokens,
                num_cached_input_tokens=num_cached_input_tokens,
                time_to_first_token_ns=time_to_first_token_ns,
            ),
        )
        self._add_child_span(span)
        return span

    @_skip_if_disabled(lambda: ToolSpan(name="", input=""))
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
        span = ToolSpan(
            name=name or "tool",
            input=input,
            output=output,
            created_at=created_at or utc_now(),
            metadata=metadata or {},
            status_code=status_code,
            tool_call_id=tool_call_id,
            metrics=Metrics(duration_ns=duration_ns),
        )
        self._add_child_span(span)
        return span

    @_skip_if_disabled(lambda: WorkflowSpan(name="", input=""))
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
        """Add a workflow span; spans added next nest under it until ``conclude``."""
        span = WorkflowSpan(
            name=name or "workflow",
            input=input,
            output=output,
            created_at=created_at or utc_now(),
            metadata=metadata or {},
            metrics=Metrics(duration_ns=duration_ns),
        )
        self._add_child_span(span)
        self._parent_stack.append(span)
        return span

    def _conclude_current_parent(self, output: str | None, duration_ns: int | None, status_code: int | None) -> StepWithChildSpans | None:
        parent = self.current_parent()
        if parent is None:
            raise LoggerStateError("No existing workflow to conclude.")

        parent.output = output or parent.output
        if status_code is not None:
            parent.status_code = status_code
        if duration_ns is not None:
            parent.metrics.duration_ns = duration_ns

        finished = self._parent_stack.pop()
        if self.current_parent() is None and not isinstance(finished, Trace):
            raise LoggerStateError("Finished step is not a trace, but has no parent. Not added to the list of traces.")
        return self.current_parent()

    @_skip_if_disabled(lambda: None)
    def conclude(
        self,
        *,
        output: str | None = None,
        duration_ns: int | None = None,
        status_code: int | None = None,
        conclude_all: bool = False,
    ) -> StepWithChildSpans | None:
        if not conclude_all:
            return self._conclude_current_parent(output, duration_ns, status_code)
        current: StepWithChildSpans | None = None
        while self.current_parent() is not None:
            current = self._conclude_current_parent(output, duration_ns, status_code)
        return current

    async def flush(self) -> list[Trace]:
        """Submit buffered traces as one batch; an open trace is concluded first."""
        if self._disabled:
            return []
        if not self.traces:
            logger.debug("No traces to flush.")
            return []

        if (parent := self.current_parent()) is not None:
            logger.info("Concluding the active trace...")
            self.conclude(output=self.get_last_output(parent), conclude_all=True)

        batch = list(self.traces)
        logger.info(f"Flushing {len(batch)} traces...")
        if self._ingest is not None:
            try:
                await self._ingest(batch)
            except Exception as e:
                logger.error(f"Failed to flush {len(batch)} traces: {e}")
                return []

        logger.info(f"Successfully flushed {len(batch)} traces.")
        self.traces = []
        self._parent_stack = []
        return batch

    async def terminate(self) -> None:
        await self.flush()
