"""Pydantic record models for traces and spans submitted to the logging backend."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, Field


class StepType(StrEnum):
    """Record type discriminant."""

    TRACE = "trace"
    LLM = "llm"
    TOOL = "tool"
    WORKFLOW = "workflow"


class Metrics(BaseModel):
    duration_ns: int | None = None


class LlmMetrics(Metrics):
    num_input_tokens: int | None = None
    num_output_tokens: int | None = None
    num_total_tokens: int | None = None
    num_reasoning_tokens: int | None = None
    num_cached_input_tokens: int | None = None
    time_to_first_token_ns: int | None = None


class BaseStep(BaseModel):
    """Fields shared by traces and every span type.

    ``input``/``output`` hold strings for traces, tools and workflows; LLM
    spans may carry JSON-safe message structures instead.
    """

    name: str
    input: Any = ""
    output: Any = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, str] = Field(default_factory=dict)
    status_code: int | None = None


class LlmSpan(BaseStep):
    type: Literal[StepType.LLM] = StepType.LLM
    model: str | None = None
    tools: list[dict[str, Any]] | None = None
    temperature: float | None = None
    metrics: LlmMetrics = Field(default_factory=LlmMetrics)


class ToolSpan(BaseStep):
    type: Literal[StepType.TOOL] = StepType.TOOL
    tool_call_id: str | None = None
    metrics: Metrics = Field(default_factory=Metrics)


class StepWithChildSpans(BaseStep):
    """A record other spans can be nested under."""

    spans: list["LlmSpan | ToolSpan | WorkflowSpan"] = Field(default_factory=list)
    metrics: Metrics = Field(default_factory=Metrics)

    def add_child_span(self, span: "LlmSpan | ToolSpan | WorkflowSpan") -> None:
        self.spans.append(span)


class WorkflowSpan(StepWithChildSpans):
    type: Literal[StepType.WORKFLOW] = StepType.WORKFLOW


class Trace(StepWithChildSpans):
    type: Literal[StepType.TRACE] = StepType.TRACE


Span: TypeAlias = LlmSpan | ToolSpan | WorkflowSpan

StepWithChildSpans.model_rebuild()
WorkflowSpan.model_rebuild()
Trace.model_rebuild()
