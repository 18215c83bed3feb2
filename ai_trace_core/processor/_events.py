"""Lifecycle event models accepted by the tracing processor.

Events may arrive as dicts, as these models, or as the trace and span objects
of the OpenAI Agents SDK (anything exposing the same attributes, with
``span_data.export()``).
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from ai_trace_core.usage import as_mapping

# Attributes of SDK span data that are not part of its export().
_UNEXPORTED_SPAN_DATA_FIELDS = ("input", "response")


def _object_fields(value: Any, names: tuple[str, ...]) -> dict[str, Any]:
    return {name: getattr(value, name) for name in names if getattr(value, name, None) is not None}


def span_data_to_dict(span_data: Any) -> dict[str, Any]:
    """Normalize span data to a dict carrying a ``type`` key when one is known."""
    if span_data is None:
        return {}
    if isinstance(span_data, Mapping):
        return dict(span_data)

    export = getattr(span_data, "export", None)
    data = dict(export() or {}) if callable(export) else as_mapping(span_data)
    for name in (*_UNEXPORTED_SPAN_DATA_FIELDS, "type"):
        if data.get(name) is None and (value := getattr(span_data, name, None)) is not None:
            data[name] = value
    return data


class SpanError(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str = "Unknown error"
    data: Any = None

    @field_validator("message", mode="before")
    @classmethod
    def default_empty_message(cls, v: Any) -> str:
        return str(v) if v else "Unknown error"


class AgentTrace(BaseModel):
    """Trace start/end event."""

    model_config = ConfigDict(frozen=True)

    trace_id: str
    name: str | None = None
    metadata: dict[str, Any] | None = None
    started_at: str | datetime | None = None
    ended_at: str | datetime | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_object(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return data
        fields = _object_fields(data, ("trace_id", "name", "metadata", "started_at", "ended_at"))
        if "metadata" not in fields and callable(export := getattr(data, "export", None)):
            metadata = (export() or {}).get("metadata")
            if metadata is not None:
                fields["metadata"] = metadata
        return fields


class AgentSpan(BaseModel):
    """Span start/end event."""

    model_config = ConfigDict(frozen=True)

    span_id: str
    trace_id: str
    parent_id: str | None = None
    span_data: dict[str, Any] = {}
    started_at: str | datetime | None = None
    ended_at: str | datetime | None = None
    error: SpanError | None = None

    @model_validator(mode="before")
    @classmethod
    def _from_object(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            return data
        return _object_fields(data, ("span_id", "trace_id", "parent_id", "span_data", "started_at", "ended_at", "error"))

    @field_validator("span_data", mode="before")
    @classmethod
    def convert_span_data(cls, v: Any) -> dict[str, Any]:
        return span_data_to_dict(v)

    @field_validator("error", mode="before")
    @classmethod
    def convert_error(cls, v: Any) -> Any:
        if v is None or isinstance(v, (Mapping, SpanError)):
            return v
        return as_mapping(v)
