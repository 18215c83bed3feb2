"""AI Trace Core - Trace instrumentation for LLM applications.

Turns the call graph of an LLM application (agent runs, model calls, tool
calls, handoffs) into hierarchical trace records for a logging backend.

Core Capabilities:
    - **Span Tree Builder**: Rebuilds agent span hierarchies from out-of-order
      lifecycle events and emits them on trace end
    - **Streaming Aggregation**: Reassembles streamed Chat Completions and
      Responses API output, tool calls and usage into one LLM span
    - **Safe Serialization**: JSON-safe conversion of arbitrary, possibly
      cyclic values that never raises
    - **Client Instrumentation**: Drop-in tracing proxy for ``openai.AsyncOpenAI``

Quick Start:
    >>> from ai_trace_core import BufferedTraceLogger, TracingProcessor, wrap_openai
    >>>
    >>> async def ingest(traces):
    ...     await backend.submit([trace.model_dump(mode="json") for trace in traces])
    >>>
    >>> trace_logger = BufferedTraceLogger(ingest)
    >>> processor = TracingProcessor(trace_logger)
    >>> client = wrap_openai(openai.AsyncOpenAI(), trace_logger)

Optional Environment Variables:
    - AI_TRACE_DISABLE_LOGGING: Turn every trace logger call into a no-op
    - AI_TRACE_FLUSH_ON_TRACE_END: Flush the logger after each agent trace
    - AI_TRACE_LOG_LEVEL: Level of the library's own logs
"""

from .exceptions import IngestionError, LoggerStateError, TraceCoreError
from .integrations import TracedOpenAI, extract_request_parameters, wrap_openai
from .logging import LoggingConfig, get_pipeline_logger, setup_logging
from .processor import AgentSpan, AgentTrace, TracingProcessor, create_custom_span_data, map_span_name, map_span_type
from .serialization import EventSerializer, convert_to_string_dict, safe_stringify, serialize_to_str
from .settings import Settings, settings
from .streaming import StreamAggregator, StreamingMetrics
from .trace_logger import BufferedTraceLogger, LlmSpan, ToolSpan, Trace, TraceLogger, WorkflowSpan, get_trace_logger, set_trace_logger
from .usage import TokenUsage, parse_usage

__version__ = "0.1.0"

__all__ = [
    "AgentSpan",
    "AgentTrace",
    "BufferedTraceLogger",
    "EventSerializer",
    "IngestionError",
    "LlmSpan",
    "LoggerStateError",
    "LoggingConfig",
    "Settings",
    "StreamAggregator",
    "StreamingMetrics",
    "TokenUsage",
    "ToolSpan",
    "Trace",
    "TraceCoreError",
    "TraceLogger",
    "TracedOpenAI",
    "TracingProcessor",
    "WorkflowSpan",
    "convert_to_string_dict",
    "create_custom_span_data",
    "extract_request_parameters",
    "get_pipeline_logger",
    "get_trace_logger",
    "map_span_name",
    "map_span_type",
    "parse_usage",
    "safe_stringify",
    "serialize_to_str",
    "set_trace_logger",
    "settings",
    "setup_logging",
]
