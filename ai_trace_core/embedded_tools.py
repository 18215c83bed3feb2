"""Extraction of hosted tool calls embedded in a Responses API output.

A single model turn can bundle server-side tool invocations (web search, file
search, code interpreter, computer use, custom tools) in its ``output`` list.
They are not separate spans, so they are recorded on the LLM span instead.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict

from ai_trace_core.serialization import serialize_to_str
from ai_trace_core.usage import as_mapping

EMBEDDED_TOOL_CALLS_KEY = "embedded_tool_calls"
"""Metadata key the serialized embedded tool calls are stored under."""

_TOOL_NAMES = {
    "code_interpreter_call": "code_interpreter",
    "file_search_call": "file_search",
    "web_search_call": "web_search",
    "computer_call": "computer",
    "custom_tool_call": "custom_tool",
}


class EmbeddedToolFunction(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str


class EmbeddedToolCall(BaseModel):
    """One hosted tool invocation found in a response's output items."""

    model_config = ConfigDict(frozen=True)

    type: str
    function: EmbeddedToolFunction
    tool_call_id: str | None = None
    tool_call_type: str
    tool_call_input: str | None = None
    tool_call_output: str | None = None
    tool_call_status: str | None = None


def get_tool_name_from_type(item_type: str) -> str:
    return _TOOL_NAMES.get(item_type, item_type)


def extract_tool_input(item: dict[str, Any], item_type: str) -> str | None:
    """Return the invocation input of an embedded tool call item, if any."""
    match item_type:
        case "code_interpreter_call":
            code = item.get("code")
            return None if code is None else str(code)
        case "file_search_call":
            queries = item.get("queries")
            return None if queries is None else serialize_to_str(queries)
        case "web_search_call":
            query = as_mapping(item.get("action")).get("query")
            return None if query is None else str(query)
        case "computer_call":
            action = item.get("action")
            return None if action is None else serialize_to_str(action)
        case "custom_tool_call":
            value = item.get("input")
            return None if value is None else serialize_to_str(value)
        case _:
            return None


def extract_tool_output(item: dict[str, Any], item_type: str) -> str | None:
    """Return the result of an embedded tool call item, if the API reported one."""
    match item_type:
        case "code_interpreter_call":
            parts: list[str] = []
            for raw in item.get("outputs") or []:
                output = as_mapping(raw)
                if output.get("logs") is not None:
                    parts.append(str(output["logs"]))
                elif output.get("url") is not None:
                    parts.append(str(output["url"]))
            return "\n".join(parts) if parts else None
        case "file_search_call":
            results = item.get("results")
            return None if results is None else serialize_to_str(results)
        case "web_search_call":
            action = item.get("action")
            return None if action is None else serialize_to_str(action)
        case "custom_tool_call":
            value = item.get("output")
            return None if value is None else serialize_to_str(value)
        case _:
            return None


def extract_embedded_tool_calls(response: Any) -> list[EmbeddedToolCall]:
    """Walk ``response.output`` and collect every embedded tool call."""
    output = as_mapping(response).get("output")
    if not isinstance(output, list):
        return []

    calls: list[EmbeddedToolCall] = []
    for raw in output:
        item = as_mapping(raw)
        item_type = item.get("type")
        if not isinstance(item_type, str) or item_type not in _TOOL_NAMES:
            continue
        tool_call_id = item.get("id") or item.get("tool_call_id")
        status = item.get("status")
        calls.append(
            EmbeddedToolCall(
                type=item_type,
                function=EmbeddedToolFunction(name=get_tool_name_from_type(item_type)),
                tool_call_id=None if tool_call_id is None else str(tool_call_id),
                tool_call_type=item_type,
                tool_call_input=extract_tool_input(item, item_type),
                tool_call_output=extract_tool_output(item, item_type),
                tool_call_status=None if status is None else str(status),
            )
        )
    return calls


def embedded_tool_calls_json(calls: list[EmbeddedToolCall]) -> str:
    """Serialize embedded tool calls for the metadata string map."""
    return serialize_to_str([call.model_dump() for call in calls])
