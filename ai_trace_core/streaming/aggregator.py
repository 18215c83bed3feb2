"""Reassembly of streamed model responses into one LLM span.

The aggregator sits between the caller and an OpenAI stream. Every chunk is
forwarded unchanged after being folded into the accumulated response; when
the stream ends, fails or is closed early, the accumulated response is logged
as a single LLM span.
"""

import asyncio
import inspect
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from datetime import datetime
from types import TracebackType
from typing import Any, Self

from ai_trace_core._time import utc_now
from ai_trace_core.logging import get_pipeline_logger
from ai_trace_core.payloads import (
    consolidate_output,
    convert_input_to_messages,
    error_status_code,
    extract_request_parameters,
    has_pending_function_calls,
    log_function_call_outputs,
    responses_metadata,
)
from ai_trace_core.serialization import serialize_to_str
from ai_trace_core.trace_logger import TraceLogger
from ai_trace_core.usage import as_float, as_mapping, parse_usage

from .metrics import StreamingMetrics

logger = get_pipeline_logger(__name__)

CHAT_SPAN_NAME = "openai-client-generation"
RESPONSES_SPAN_NAME = "openai-responses-generation"


def is_responses_event(chunk: Mapping[str, Any]) -> bool:
    """Responses API events carry a ``response.*`` type or a bare ``output`` list."""
    event_type = chunk.get("type")
    if isinstance(event_type, str) and event_type.startswith("response."):
        return True
    return isinstance(chunk.get("output"), list) and "choices" not in chunk


class StreamAggregator:
    """Async iterator over a model stream that logs the complete response once.

    Args:
        stream: The async iterable returned by the client for ``stream=True``.
        request: Request keyword arguments of the call.
        trace_logger: Destination of the finished LLM span.
        start_time: When the call was issued. Defaults to now.
        should_complete_trace: Conclude the enclosing trace after logging,
                               for calls that opened their own trace.
        name: Span name; defaults per API.
    """

    def __init__(
        self,
        stream: AsyncIterable[Any],
        request: Mapping[str, Any],
        trace_logger: TraceLogger,
        *,
        start_time: datetime | None = None,
        should_complete_trace: bool = False,
        name: str | None = None,
    ) -> None:
        self._stream = stream
        self._iterator: AsyncIterator[Any] = aiter(stream)
        self._request = dict(request)
        self._trace_logger = trace_logger
        self._should_complete_trace = should_complete_trace
        self._name = name
        self.metrics = StreamingMetrics(start_time)

        self.chunks: list[Any] = []
        self.finalized = False
        self._is_responses_api = False

        self._role = "assistant"
        self._content: list[str] = []
        self._tool_calls: dict[int, dict[str, Any]] = {}

        self._output_items: list[dict[str, Any]] = []
        self._output_text: list[str] = []
        self._completed_response: dict[str, Any] | None = None

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return getattr(self._stream, name)

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> Any:
        try:
            chunk = await anext(self._iterator)
        except StopAsyncIteration:
            self._finalize()
            raise
        except asyncio.CancelledError:
            self._finalize()
            raise
        except Exception as e:
            logger.warning(f"Stream failed after {len(self.chunks)} chunks: {e}")
            self._finalize(error=e)
            raise

        self.metrics.record_first_token()
        self.chunks.append(chunk)
        self._process_chunk(chunk)
        return chunk

    async def aclose(self) -> None:
        """Stop consuming early; the partial response is logged."""
        self._finalize()
        close = getattr(self._stream, "aclose", None) or getattr(self._stream, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result

    async def athrow(self, error: BaseException) -> Any:
        """Log the partial response with the error, then raise it."""
        self._finalize(error=error if isinstance(error, Exception) else None)
        raise error

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if isinstance(exc_val, Exception):
            self._finalize(error=exc_val)
        await self.aclose()

    def _process_chunk(self, chunk: Any) -> None:
        data = as_mapping(chunk)
        if not self._is_responses_api and is_responses_event(data):
            self._is_responses_api = True
        if self._is_responses_api:
            self._fold_responses_event(data)
        else:
            self._fold_chat_chunk(data)

    def _fold_chat_chunk(self, data: dict[str, Any]) -> None:
        choices = data.get("choices")
        if not isinstance(choices, list) or not choices:
            return
        delta = as_mapping(as_mapping(choices[0]).get("delta"))
        if not delta:
            return

        if content := delta.get("content"):
            self._content.append(str(content))
        if role := delta.get("role"):
            self._role = str(role)

        for position, raw in enumerate(delta.get("tool_calls") or []):
            fragment = as_mapping(raw)
            index = fragment.get("index")
            self._merge_tool_call(index if isinstance(index, int) else position, fragment.get("id"), as_mapping(fragment.get("function")))

        if delta.get("function_call") is not None:
            self._merge_tool_call(0, "function_call_0", as_mapping(delta["function_call"]))

    def _merge_tool_call(self, index: int, call_id: Any, function: dict[str, Any]) -> None:
        existing = self._tool_calls.get(index)
        if existing is None:
            self._tool_calls[index] = {
                "id": str(call_id) if call_id else f"tool_{index}",
                "type": "function",
                "function": {"name": str(function.get("name") or ""), "arguments": str(function.get("arguments") or "")},
            }
            return
        if function.get("name"):
            existing["function"]["name"] = str(function["name"])
        if function.get("arguments"):
            existing["function"]["arguments"] += str(function["arguments"])

    def _fold_responses_event(self, data: dict[str, Any]) -> None:
        event_type = data.get("type")
        match event_type:
            case "response.completed" | "response.done":
                self._completed_response = as_mapping(data.get("response"))
            case "response.output_item.done":
                if data.get("item") is not None:
                    self._output_items.append(as_mapping(data["item"]))
            case "response.output_text.delta":
                if delta := data.get("delta"):
                    self._output_text.append(str(delta))
            case None if isinstance(data.get("output"), list):
                self._output_items.extend(as_mapping(item) for item in data["output"])

    def _responses_output_items(self) -> list[dict[str, Any]]:
        completed = self._completed_response or {}
        if isinstance(completed.get("output"), list):
            return [as_mapping(item) for item in completed["output"]]
        items = list(self._output_items)
        if self._output_text and not any(item.get("type") == "message" for item in items):
            items.append({"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "".join(self._output_text)}]})
        return items

    def _chat_output(self) -> dict[str, Any]:
        output: dict[str, Any] = {"content": "".join(self._content), "role": self._role}
        if self._tool_calls:
            output["tool_calls"] = [self._tool_calls[index] for index in sorted(self._tool_calls)]
        return output

    def _usage_payload(self) -> Any:
        if self._completed_response and self._completed_response.get("usage") is not None:
            return self._completed_response["usage"]
        if self.chunks:
            return as_mapping(self.chunks[-1]).get("usage")
        return None

    def _model(self) -> str:
        if model := self._request.get("model"):
            return str(model)
        if self._completed_response and (model := self._completed_response.get("model")):
            return str(model)
        if self.chunks and (model := as_mapping(self.chunks[0]).get("model")):
            return str(model)
        return "unknown"

    def _finalize(self, error: Exception | None = None) -> None:
        if self.finalized:
            return
        self.finalized = True
        try:
            self._log_span(error)
        except Exception as e:
            logger.warning(f"Failed to log streamed response: {e}")

    def _log_span(self, error: Exception | None) -> None:
        ended_at = utc_now()
        duration_ns = self.metrics.duration_ns(ended_at)
        parameters = extract_request_parameters(self._request)
        usage = parse_usage(self._usage_payload())

        metadata = dict(parameters.metadata)
        if (ttft_ns := self.metrics.ttft_ns) is not None:
            metadata["time_to_first_token_ns"] = str(ttft_ns)
        if usage.rejected_prediction_tokens > 0:
            metadata["rejected_prediction_tokens"] = str(usage.rejected_prediction_tokens)
        if error is not None:
            metadata["error_message"] = str(error)
            metadata["error_type"] = type(error).__name__

        pending_calls = False
        if self._is_responses_api:
            items = self._responses_output_items()
            request_input = self._request.get("input")
            if isinstance(request_input, list):
                log_function_call_outputs(request_input, self._trace_logger)
            output = consolidate_output(items)
            span_input: Any = convert_input_to_messages(request_input)
            metadata = responses_metadata(items, metadata)
            pending_calls = has_pending_function_calls(items)
            default_name = RESPONSES_SPAN_NAME
        else:
            output = self._chat_output()
            span_input = self._request.get("messages") or ""
            default_name = CHAT_SPAN_NAME

        self._trace_logger.add_llm_span(
            input=span_input,
            output=output,
            name=self._name or default_name,
            model=self._model(),
            duration_ns=duration_ns,
            num_input_tokens=usage.input_tokens,
            num_output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            num_reasoning_tokens=usage.reasoning_tokens,
            num_cached_input_tokens=usage.cached_tokens,
            time_to_first_token_ns=self.metrics.ttft_ns,
            temperature=as_float(self._request.get("temperature")),
            status_code=error_status_code(error) if error is not None else 200,
            metadata=metadata,
            tools=parameters.tools,
            created_at=self.metrics.start_time,
        )

        if self._should_complete_trace and not pending_calls:
            self._trace_logger.conclude(output=serialize_to_str(output), duration_ns=duration_ns)
