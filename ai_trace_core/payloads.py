"""OpenAI request and response payload helpers.

Shared by the streaming aggregator and the client instrumentation: request
parameters worth recording as span metadata, and consolidation of Responses
API output items into a single assistant message.
"""

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ai_trace_core.embedded_tools import EMBEDDED_TOOL_CALLS_KEY, embedded_tool_calls_json, extract_embedded_tool_calls
from ai_trace_core.serialization import safe_stringify, serialize_to_str
from ai_trace_core.trace_logger import TraceLogger
from ai_trace_core.usage import as_mapping

SCALAR_PARAMETERS = ("max_tokens", "top_p", "frequency_penalty", "presence_penalty", "seed", "n", "temperature")

# Values equal to the API default are not recorded.
PARAMETER_DEFAULTS: dict[str, float] = {
    "n": 1,
    "temperature": 1,
    "top_p": 1,
    "frequency_penalty": 0,
    "presence_penalty": 0,
}


_MESSAGE_ROLES = ("system", "developer", "user", "assistant", "tool")


class ExtractedParameters(BaseModel):
    model_config = ConfigDict(frozen=True)

    metadata: dict[str, str] = Field(default_factory=dict)
    tools: list[dict[str, Any]] | None = None


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return str(value).lower()
    return value if isinstance(value, str) else serialize_to_str(value)


def extract_request_parameters(request: Mapping[str, Any]) -> ExtractedParameters:
    """Collect sampling, reasoning, tool and Responses API parameters of a request.

    Works for both Chat Completions (``messages``) and Responses API
    (``input``/``instructions``) requests. All metadata values are strings.
    """
    metadata: dict[str, str] = {}

    for key in SCALAR_PARAMETERS:
        value = request.get(key)
        if value is None:
            continue
        if key in PARAMETER_DEFAULTS and not isinstance(value, bool) and value == PARAMETER_DEFAULTS[key]:
            continue
        metadata[key] = _to_str(value)

    if request.get("reasoning_effort") is not None:
        metadata["reasoning_effort"] = _to_str(request["reasoning_effort"])
    reasoning = request.get("reasoning")
    if isinstance(reasoning, Mapping):
        if reasoning.get("effort") is not None and "reasoning_effort" not in metadata:
            metadata["reasoning_effort"] = _to_str(reasoning["effort"])
        if reasoning.get("summary") is not None:
            metadata["reasoning_verbosity"] = _to_str(reasoning["summary"])
        if reasoning.get("generate_summary") is not None:
            metadata["reasoning_generate_summary"] = _to_str(reasoning["generate_summary"])

    if (tool_choice := request.get("tool_choice")) is not None:
        metadata["tool_choice"] = _to_str(tool_choice)

    response_format = request.get("response_format")
    if isinstance(response_format, Mapping):
        if list(response_format) == ["type"] and isinstance(response_format["type"], str):
            metadata["response_format"] = response_format["type"]
        else:
            metadata["response_format"] = safe_stringify(response_format, indent=2)
    elif response_format is not None:
        metadata["response_format"] = _to_str(response_format)

    tools = request.get("tools")
    tools_for_span: list[dict[str, Any]] | None = None
    if isinstance(tools, list) and tools:
        tools_for_span = [dict(tool) if isinstance(tool, Mapping) else {"raw": tool} for tool in tools]
        metadata["tools_count"] = str(len(tools))

    if (request_input := request.get("input")) is not None:
        metadata["input_type"] = "array" if isinstance(request_input, list) else "string"
    if isinstance(instructions := request.get("instructions"), str):
        metadata["instructions_length"] = str(len(instructions))
    if (store := request.get("store")) is not None:
        metadata["store"] = _to_str(store)

    if (prediction := request.get("prediction")) is not None:
        prediction_type = prediction.get("type") if isinstance(prediction, Mapping) else None
        metadata["prediction_type"] = "unknown" if prediction_type is None else str(prediction_type)

    if isinstance(tools, list) and any(as_mapping(as_mapping(tool).get("function")).get("strict") is True for tool in tools):
        metadata["tools_include_strict"] = "true"

    return ExtractedParameters(metadata=metadata, tools=tools_for_span)


def _text_parts(content: Any) -> list[str]:
    if isinstance(content, str):
        return [content] if content else []
    if not isinstance(content, list):
        return []
    parts: list[str] = []
    for part in content:
        if isinstance(part, str):
            text = part
        elif (mapped := as_mapping(part)) and "text" in mapped:
            text = str(mapped.get("text") or "")
        else:
            text = serialize_to_str(part)
        if text:
            parts.append(text)
    return parts


def _reasoning_parts(item: Mapping[str, Any]) -> list[str]:
    summary = item.get("summary")
    if isinstance(summary, list) and summary:
        parts = [entry if isinstance(entry, str) else str(as_mapping(entry).get("text") or "") for entry in summary]
        return [part for part in parts if part]
    return _text_parts(item.get("content"))


def consolidate_output(output_items: list[Any]) -> dict[str, Any]:
    """Fold Responses API output items into one ``{content, role, tool_calls?}`` message."""
    content: list[str] = []
    tool_calls: list[dict[str, Any]] = []
    for raw in output_items:
        item = as_mapping(raw)
        match item.get("type"):
            case "message":
                content.extend(_text_parts(item.get("content")))
            case "function_call":
                tool_calls.append(
                    {
                        "id": str(item.get("id") or item.get("call_id") or ""),
                        "function": {"name": str(item.get("name") or ""), "arguments": str(item.get("arguments") or "")},
                    }
                )

    output: dict[str, Any] = {"content": "".join(content), "role": "assistant"}
    if tool_calls:
        output["tool_calls"] = tool_calls
    return output


def reasoning_count(output_items: list[Any]) -> int:
    items = [as_mapping(raw) for raw in output_items]
    return sum(len(_reasoning_parts(item)) for item in items if item.get("type") == "reasoning")


def convert_input_to_messages(request_input: Any) -> list[dict[str, Any]]:
    """Convert a Responses API ``input`` into role/content messages."""
    if request_input is None:
        return []
    items = request_input if isinstance(request_input, list) else [request_input]

    messages: list[dict[str, Any]] = []
    for raw in items:
        if isinstance(raw, str):
            if raw:
                messages.append({"role": "user", "content": raw})
            continue
        item = as_mapping(raw)
        if not item:
            continue
        match item.get("type"):
            case None | "message":
                role = item.get("role")
                if role not in _MESSAGE_ROLES:
                    role = "user"
                messages.append({"role": role, "content": "".join(_text_parts(item.get("content")))})
            case "function_call":
                call = {"id": str(item.get("call_id") or item.get("id") or ""), "function": {"name": str(item.get("name") or ""), "arguments": str(item.get("arguments") or "")}}
                messages.append({"role": "assistant", "content": "", "tool_calls": [call]})
            case "function_call_output":
                output = item.get("output")
                message = {"role": "tool", "content": "" if output is None else serialize_to_str(output)}
                if call_id := item.get("call_id"):
                    message["tool_call_id"] = str(call_id)
                messages.append(message)
            case _:
                messages.append({"role": "user", "content": serialize_to_str(item)})
    return messages


def has_pending_function_calls(output_items: list[Any]) -> bool:
    """True when a ``function_call`` item has no matching ``function_call_output``."""
    calls: set[str] = set()
    outputs: set[str] = set()
    for raw in output_items:
        item = as_mapping(raw)
        match item.get("type"):
            case "function_call":
                if call_id := str(item.get("call_id") or item.get("id") or ""):
                    calls.add(call_id)
            case "function_call_output":
                if call_id := str(item.get("call_id") or ""):
                    outputs.add(call_id)
    return bool(calls - outputs)


def log_function_call_outputs(input_items: list[Any], trace_logger: TraceLogger) -> None:
    """Log a tool span for each tool result sent back in a multi-turn Responses request."""
    calls: dict[str, dict[str, Any]] = {}
    for raw in input_items:
        item = as_mapping(raw)
        if item.get("type") == "function_call":
            calls[str(item.get("call_id") or item.get("id") or "")] = item

    for raw in input_items:
        item = as_mapping(raw)
        if item.get("type") != "function_call_output":
            continue
        call_id = str(item.get("call_id") or "")
        output = item.get("output")
        call = calls.get(call_id)
        if output is None and call is None:
            continue
        call = call or {}
        if output is None:
            output = ""
        trace_logger.add_tool_span(
            input=safe_stringify({"name": call.get("name") or "function", "arguments": call.get("arguments") or "", "call_id": call_id}, indent=2),
            output=output if isinstance(output, str) else safe_stringify(output, indent=2),
            name=str(call.get("name") or "function_call"),
            metadata={"tool_id": call_id, "tool_type": "function_call"},
            tool_call_id=call_id or None,
        )


def error_status_code(error: BaseException, default: int = 500) -> int:
    """HTTP status carried by an API error (``openai.APIStatusError.status_code``), else ``default``."""
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return default


def responses_metadata(output_items: list[Any], metadata: Mapping[str, str]) -> dict[str, str]:
    """Span metadata of a consolidated Responses API output, including embedded tool calls."""
    reasoning = reasoning_count(output_items)
    result = {
        "type": "consolidated_response",
        "includes_reasoning": str(reasoning > 0).lower(),
        "reasoning_count": str(reasoning),
        **metadata,
    }
    if calls := extract_embedded_tool_calls({"output": output_items}):
        result[EMBEDDED_TOOL_CALLS_KEY] = embedded_tool_calls_json(calls)
    return result
