"""Span data type to node kind and display name."""

from typing import Any

from ._custom_span import is_custom_span_data
from ._node import NodeType

_NODE_TYPES: dict[str, NodeType] = {
    "generation": NodeType.LLM,
    "response": NodeType.LLM,
    "function": NodeType.TOOL,
    "guardrail": NodeType.TOOL,
    "transcription": NodeType.TOOL,
    "speech": NodeType.TOOL,
    "speech_group": NodeType.TOOL,
    "mcp_tools": NodeType.TOOL,
    "agent": NodeType.AGENT,
    "retriever": NodeType.RETRIEVER,
    "custom": NodeType.CUSTOM,
    "handoff": NodeType.WORKFLOW,
}

_DEFAULT_NAMES = {
    "generation": "Generation",
    "response": "Response",
    "function": "Function",
    "guardrail": "Guardrail",
    "agent": "Agent",
    "custom": "Custom",
    "transcription": "Transcription",
    "speech": "Speech",
    "speech_group": "Speech Group",
    "mcp_tools": "MCP Tools",
    "retriever": "Retriever",
}


def map_span_type(span_data: dict[str, Any]) -> NodeType:
    """Resolve the node kind; unknown or missing types fall back to workflow."""
    if is_custom_span_data(span_data):
        return NodeType.CUSTOM
    return _NODE_TYPES.get(str(span_data.get("type") or ""), NodeType.WORKFLOW)


def map_span_name(span_data: dict[str, Any], node_type: NodeType | None = None) -> str:
    if name := span_data.get("name"):
        return str(name)

    span_type = span_data.get("type")
    if span_type == "handoff":
        source = span_data.get("from_agent") or ""
        target = span_data.get("to_agent") or ""
        return f"Handoff: {source} → {target}" if source or target else "Handoff"
    if node_type is NodeType.CUSTOM:
        return "Custom"
    return _DEFAULT_NAMES.get(str(span_type or ""), "Span")
