"""Kind-specific field extraction from agent span data.

Each extractor returns a dict of ``SpanParams`` field updates. Inputs and
outputs are stored as strings: LLM payloads always as JSON text, tool and
workflow payloads as-is when already strings.
"""

from collections.abc import Callable
from typing import Any, TypeAlias

from ai_trace_core.serialization import EventSerializer, convert_to_string_dict, serialize_to_str
from ai_trace_core.usage import TokenUsage, as_float, as_mapping, parse_usage

from ._node import NodeType

Extractor: TypeAlias = Callable[[dict[str, Any]], dict[str, Any]]


def _json(value: Any) -> str:
    return EventSerializer().encode(value)


def _usage_fields(usage: TokenUsage) -> dict[str, Any]:
    return {
        "num_input_tokens": usage.input_tokens,
        "num_output_tokens": usage.output_tokens,
        "total_tokens": usage.total_tokens,
        "num_reasoning_tokens": usage.reasoning_tokens,
        "num_cached_input_tokens": usage.cached_tokens,
    }


def response_payload(span_data: dict[str, Any]) -> dict[str, Any]:
    """The response object attached to a ``response`` span, as a dict."""
    raw = span_data.get("_response")
    if raw is None:
        raw = span_data.get("response")
    return as_mapping(raw)


def _extract_generation(span_data: dict[str, Any]) -> dict[str, Any]:
    model_config = as_mapping(span_data.get("model_config"))
    return {
        "input": _json(span_data["input"]) if span_data.get("input") is not None else "",
        "output": _json(span_data["output"]) if span_data.get("output") is not None else None,
        "model": str(span_data.get("model") or "unknown"),
        "temperature": as_float(model_config.get("temperature")),
        **_usage_fields(parse_usage(span_data.get("usage"))),
        "metadata": {"gen_ai_system": "openai", "model_config": _json(model_config)},
    }


def _extract_response(span_data: dict[str, Any]) -> dict[str, Any]:
    request_input = span_data.get("_input")
    if request_input is None:
        request_input = span_data.get("input")
    response = response_payload(span_data)

    tools = EventSerializer().default(response.get("tools"))
    return {
        "input": _json(request_input) if request_input is not None else "",
        "output": _json(response["output"]) if response.get("output") is not None else None,
        "model": str(response.get("model") or span_data.get("model") or "unknown"),
        "temperature": as_float(response.get("temperature")),
        "tools": tools if isinstance(tools, list) else None,
        **_usage_fields(parse_usage(response.get("usage"))),
        "metadata": {"gen_ai_system": "openai"},
    }


def extract_llm_data(span_data: dict[str, Any]) -> dict[str, Any]:
    match span_data.get("type"):
        case "generation":
            return _extract_generation(span_data)
        case "response":
            return _extract_response(span_data)
        case _:
            return {}


def extract_tool_data(span_data: dict[str, Any]) -> dict[str, Any]:
    match span_data.get("type"):
        case "function":
            metadata = {}
            if span_data.get("mcp_data") is not None:
                metadata["mcp_data"] = _json(span_data["mcp_data"])
            return {
                "input": serialize_to_str(span_data["input"]) if span_data.get("input") is not None else "",
                "output": serialize_to_str(span_data["output"]) if span_data.get("output") is not None else None,
                "metadata": metadata,
            }
        case "guardrail":
            triggered = bool(span_data.get("triggered"))
            return {
                "input": "",
                "output": "Guardrail triggered" if triggered else "Guardrail passed",
                "metadata": {"triggered": str(triggered).lower(), "guardrail_name": str(span_data.get("name") or "")},
            }
        case _:
            return {"input": "", "metadata": {}}


def extract_workflow_data(span_data: dict[str, Any]) -> dict[str, Any]:
    match span_data.get("type"):
        case "agent":
            metadata = {key: _json(span_data[key]) for key in ("tools", "handoffs", "output_type") if span_data.get(key) is not None}
            return {"input": "", "metadata": metadata}
        case "handoff":
            source = str(span_data.get("from_agent") or "")
            target = str(span_data.get("to_agent") or "")
            return {"input": source, "output": target, "metadata": {"from_agent": source, "to_agent": target}}
        case "custom":
            data = as_mapping(span_data.get("data"))
            return {
                "input": serialize_to_str(data["input"]) if data.get("input") is not None else "",
                "output": serialize_to_str(data["output"]) if data.get("output") is not None else None,
                "metadata": convert_to_string_dict({key: value for key, value in data.items() if key not in ("input", "output")}),
            }
        case _:
            return {
                "input": serialize_to_str(span_data["input"]) if span_data.get("input") is not None else "",
                "output": serialize_to_str(span_data["output"]) if span_data.get("output") is not None else None,
            }


_EXTRACTORS: dict[NodeType, Extractor] = {
    NodeType.LLM: extract_llm_data,
    NodeType.TOOL: extract_tool_data,
}


def extract_span_data(node_type: NodeType, span_data: dict[str, Any]) -> dict[str, Any]:
    """Dispatch to the extractor for a node kind; every non-LLM, non-tool kind uses the workflow one."""
    return _EXTRACTORS.get(node_type, extract_workflow_data)(span_data)
