"""Agent run tracing processor.

Rebuilds the span hierarchy of an agent run from out-of-order lifecycle
events and emits it to a TraceLogger when the trace ends. Nothing is sent
to the logger before trace end: the tree only exists in memory until then.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from ai_trace_core._time import calculate_duration_ns, parse_timestamp, utc_now
from ai_trace_core.embedded_tools import EMBEDDED_TOOL_CALLS_KEY, embedded_tool_calls_json, extract_embedded_tool_calls
from ai_trace_core.logging import get_pipeline_logger
from ai_trace_core.serialization import convert_to_string_dict
from ai_trace_core.settings import settings
from ai_trace_core.trace_logger import TraceLogger, get_trace_logger

from ._custom_span import create_custom_span_data
from ._events import AgentSpan, AgentTrace
from ._extraction import extract_llm_data, extract_span_data, response_payload
from ._node import Node, NodeType, SpanParams
from ._span_mapping import map_span_name, map_span_type

logger = get_pipeline_logger(__name__)

M = TypeVar("M", bound=BaseModel)

DEFAULT_TRACE_NAME = "Agent Run"

# Kinds emitted as workflow spans and concluded after their children.
_PARENT_KINDS = frozenset({NodeType.WORKFLOW, NodeType.AGENT, NodeType.CUSTOM, NodeType.RETRIEVER})


@dataclass
class TraceContext:
    """Nodes and input/output trackers of one active trace."""

    root_id: str
    nodes: dict[str, Node] = field(default_factory=dict)
    first_input: str | None = None
    last_output: str | None = None

    @property
    def root(self) -> Node:
        return self.nodes[self.root_id]

    def resolve_parent(self, parent_id: str | None) -> Node:
        """Node for ``parent_id``; absent or unknown ids resolve to the root."""
        if parent_id is not None and (parent := self.nodes.get(parent_id)) is not None:
            return parent
        return self.root

    def track(self, params: SpanParams) -> None:
        if self.first_input is None and params.input:
            self.first_input = params.input
        if params.output is not None:
            self.last_output = params.output


def _coerce(model: type[M], event: Any) -> M | None:
    if isinstance(event, model):
        return event
    try:
        return model.model_validate(event)
    except ValidationError as e:
        logger.debug(f"Ignoring malformed {model.__name__} event: {e}")
        return None


class TracingProcessor:
    """Turns agent lifecycle events into trace records.

    Keeps one ``TraceContext`` per active trace id, so interleaved traces do
    not share state. On trace end the tree is walked depth-first and every
    node is emitted parent before children.

    Args:
        trace_logger: Destination for records. Defaults to the process-global logger.
        flush_on_trace_end: Await ``trace_logger.flush()`` after each trace.
                            Defaults to ``settings.flush_on_trace_end``.
    """

    def __init__(self, trace_logger: TraceLogger | None = None, flush_on_trace_end: bool | None = None) -> None:
        self._trace_logger = trace_logger if trace_logger is not None else get_trace_logger()
        self._flush_on_trace_end = settings.flush_on_trace_end if flush_on_trace_end is None else flush_on_trace_end
        self._contexts: dict[str, TraceContext] = {}

    @staticmethod
    def add_custom_span(span: Any, name: str | None = None, extra_data: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Span data that places a pre-built span into the agent span tree."""
        return create_custom_span_data(span, name, extra_data)

    async def on_trace_start(self, trace: Any) -> None:
        if (event := _coerce(AgentTrace, trace)) is None:
            return
        if event.trace_id in self._contexts:
            logger.debug(f"Trace '{event.trace_id}' already started, ignoring duplicate start")
            return

        params = SpanParams(
            name=event.name or DEFAULT_TRACE_NAME,
            started_at=parse_timestamp(event.started_at) or utc_now(),
            metadata=convert_to_string_dict(event.metadata),
        )
        context = TraceContext(root_id=event.trace_id)
        context.nodes[event.trace_id] = Node(node_type=NodeType.AGENT, params=params, run_id=event.trace_id)
        self._contexts[event.trace_id] = context

    async def on_span_start(self, span: Any) -> None:
        if (event := _coerce(AgentSpan, span)) is None:
            return
        context = self._contexts.get(event.trace_id)
        if context is None:
            logger.debug(f"Span '{event.span_id}' started for unknown trace '{event.trace_id}'")
            return
        if event.span_id in context.nodes:
            logger.debug(f"Span '{event.span_id}' already started, ignoring duplicate start")
            return

        node_type = map_span_type(event.span_data)
        params = SpanParams(
            name=map_span_name(event.span_data, node_type),
            started_at=parse_timestamp(event.started_at) or utc_now(),
        )
        params.merge(extract_span_data(node_type, event.span_data))

        parent = context.resolve_parent(event.parent_id)
        context.nodes[event.span_id] = Node(node_type=node_type, params=params, run_id=event.span_id, parent_run_id=parent.run_id)
        parent.children.append(event.span_id)
        if params.input and context.first_input is None:
            context.first_input = params.input

    async def on_span_end(self, span: Any) -> None:
        if (event := _coerce(AgentSpan, span)) is None:
            return
        context = self._contexts.get(event.trace_id)
        node = context.nodes.get(event.span_id) if context is not None else None
        if context is None or node is None or node.run_id == context.root_id:
            return

        params = node.params
        params.ended_at = parse_timestamp(event.ended_at) or utc_now()
        params.duration_ns = calculate_duration_ns(params.started_at, params.ended_at)

        match event.span_data.get("type"):
            case "generation":
                params.merge(extract_llm_data(event.span_data))
            case "response":
                params.merge(extract_llm_data(event.span_data))
                if calls := extract_embedded_tool_calls(response_payload(event.span_data)):
                    params.embedded_tool_calls = calls
                    params.metadata = {**params.metadata, EMBEDDED_TOOL_CALLS_KEY: embedded_tool_calls_json(calls)}

        if event.error is not None:
            params.record_error(event.error.message, event.error.data)

        context.track(params)

    async def on_trace_end(self, trace: Any) -> None:
        if (event := _coerce(AgentTrace, trace)) is None:
            return
        context = self._contexts.get(event.trace_id)
        if context is None:
            logger.debug(f"Trace '{event.trace_id}' ended without being started")
            return

        try:
            root = context.root.params
            root.ended_at = parse_timestamp(event.ended_at) or utc_now()
            root.duration_ns = calculate_duration_ns(root.started_at, root.ended_at)

            try:
                self._log_node_tree(context, context.root, is_root=True)
            except Exception as e:
                logger.warning(f"Failed to emit span tree of trace '{event.trace_id}': {e}")

            try:
                self._trace_logger.conclude(conclude_all=True)
                if self._flush_on_trace_end:
                    await self._trace_logger.flush()
            except Exception as e:
                logger.warning(f"Failed to commit trace '{event.trace_id}': {e}")
        finally:
            self._contexts.pop(event.trace_id, None)

    async def shutdown(self, timeout: float | None = None) -> None:
        await self._trace_logger.flush()

    async def force_flush(self) -> None:
        await self._trace_logger.flush()

    def _log_node_tree(self, context: TraceContext, node: Node, is_root: bool = False) -> None:
        params = node.params
        name = params.name or DEFAULT_TRACE_NAME

        if is_root:
            trace_input = context.first_input if context.first_input is not None else params.input
            self._trace_logger.start_trace(
                input=trace_input or name,
                output=context.last_output if context.last_output is not None else params.output,
                name=name,
                created_at=params.started_at,
                duration_ns=params.duration_ns,
                metadata=params.metadata,
            )
        elif node.node_type is NodeType.LLM:
            self._trace_logger.add_llm_span(
                input=params.input,
                output=params.output or "",
                name=name,
                model=params.model or "unknown",
                duration_ns=params.duration_ns,
                num_input_tokens=params.num_input_tokens,
                num_output_tokens=params.num_output_tokens,
                total_tokens=params.total_tokens,
                num_reasoning_tokens=params.num_reasoning_tokens,
                num_cached_input_tokens=params.num_cached_input_tokens,
                temperature=params.temperature,
                status_code=params.status_code,
                metadata=params.metadata,
                tools=params.tools,
                created_at=params.started_at,
            )
        elif node.node_type is NodeType.TOOL:
            self._trace_logger.add_tool_span(
                input=params.input,
                output=params.output,
                name=name,
                duration_ns=params.duration_ns,
                status_code=params.status_code,
                metadata=params.metadata,
                created_at=params.started_at,
            )
        else:
            self._trace_logger.add_workflow_span(
                input=params.input,
                output=params.output,
                name=name,
                duration_ns=params.duration_ns,
                metadata=params.metadata,
                created_at=params.started_at,
            )

        for child_id in node.children:
            if (child := context.nodes.get(child_id)) is not None:
                self._log_node_tree(context, child)

        if not is_root and node.node_type in _PARENT_KINDS:
            self._trace_logger.conclude(output=params.output, duration_ns=params.duration_ns, status_code=params.status_code)
