"""Span tree builder for agent runs."""

from ._custom_span import create_custom_span_data, is_custom_span_data
from ._events import AgentSpan, AgentTrace, SpanError
from ._extraction import extract_llm_data, extract_tool_data, extract_workflow_data
from ._node import Node, NodeType, SpanParams
from ._span_mapping import map_span_name, map_span_type
from .processor import TraceContext, TracingProcessor

__all__ = [
    "AgentSpan",
    "AgentTrace",
    "Node",
    "NodeType",
    "SpanError",
    "SpanParams",
    "TraceContext",
    "TracingProcessor",
    "create_custom_span_data",
    "extract_llm_data",
    "extract_tool_data",
    "extract_workflow_data",
    "is_custom_span_data",
    "map_span_name",
    "map_span_type",
]
