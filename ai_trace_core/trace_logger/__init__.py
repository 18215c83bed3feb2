"""Trace logger contract, record models and the in-memory implementation."""

from ._models import BaseStep, LlmMetrics, LlmSpan, Metrics, Span, StepType, StepWithChildSpans, ToolSpan, Trace, WorkflowSpan
from .logger import BufferedTraceLogger, IngestFn
from .protocol import TraceLogger, get_trace_logger, set_trace_logger

__all__ = [
    "BaseStep",
    "BufferedTraceLogger",
    "IngestFn",
    "LlmMetrics",
    "LlmSpan",
    "Metrics",
    "Span",
    "StepType",
    "StepWithChildSpans",
    "ToolSpan",
    "Trace",
    "TraceLogger",
    "WorkflowSpan",
    "get_trace_logger",
    "set_trace_logger",
]
