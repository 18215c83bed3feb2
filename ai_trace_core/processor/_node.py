"""Internal span tree nodes."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from ai_trace_core.embedded_tools import EmbeddedToolCall
from ai_trace_core.serialization import serialize_to_str

SPAN_ERROR_TYPE = "SpanError"


class NodeType(StrEnum):
    """Kind of a node in the span tree; decides which logger call emits it."""

    LLM = "llm"
    TOOL = "tool"
    WORKFLOW = "workflow"
    AGENT = "agent"
    RETRIEVER = "retriever"
    CUSTOM = "custom"


@dataclass
class SpanParams:
    """Accumulated fields of one span, filled at start and refined at end."""

    name: str = ""
    input: str = ""
    output: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    started_at: datetime | None = None
    ended_at: datetime | None = None
    duration_ns: int = 0
    status_code: int = 200
    model: str | None = None
    temperature: float | None = None
    num_input_tokens: int | None = None
    num_output_tokens: int | None = None
    total_tokens: int | None = None
    num_reasoning_tokens: int | None = None
    num_cached_input_tokens: int | None = None
    tools: list[dict[str, Any]] | None = None
    embedded_tool_calls: list[EmbeddedToolCall] = field(default_factory=list)

    def merge(self, updates: dict[str, Any]) -> None:
        """Apply extracted fields. Metadata is merged key by key; None values are skipped."""
        for key, value in updates.items():
            if value is None:
                continue
            if key == "metadata":
                self.metadata = {**self.metadata, **value}
            elif key in self.__dataclass_fields__:
                setattr(self, key, value)
            else:
                raise KeyError(f"Unknown span field '{key}'")

    def record_error(self, message: str, data: Any = None) -> None:
        self.status_code = 500
        self.metadata = {
            **self.metadata,
            "error_message": message,
            "error_type": SPAN_ERROR_TYPE,
            "error_details": serialize_to_str(data) if data else message,
        }


@dataclass
class Node:
    node_type: NodeType
    params: SpanParams
    run_id: str
    parent_run_id: str | None = None
    children: list[str] = field(default_factory=list)
