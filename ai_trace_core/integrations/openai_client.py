"""Tracing wrapper for the OpenAI async client.

``wrap_openai`` returns a proxy that behaves like the wrapped client and logs
every ``chat.completions.create`` and ``responses.create`` call as an LLM span.
A call made outside of any open trace gets its own trace, which is concluded
when the response (or the stream) completes.
"""

from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime
from typing import Any, TypeAlias

import openai

from ai_trace_core._time import calculate_duration_ns, utc_now
from ai_trace_core.logging import get_pipeline_logger
from ai_trace_core.payloads import (
    ExtractedParameters,
    consolidate_output,
    convert_input_to_messages,
    error_status_code,
    extract_request_parameters,
    has_pending_function_calls,
    log_function_call_outputs,
    responses_metadata,
)
from ai_trace_core.serialization import serialize_to_str
from ai_trace_core.streaming import StreamAggregator
from ai_trace_core.streaming.aggregator import CHAT_SPAN_NAME, RESPONSES_SPAN_NAME
from ai_trace_core.trace_logger import TraceLogger, get_trace_logger
from ai_trace_core.usage import as_float, as_mapping, parse_usage

logger = get_pipeline_logger(__name__)

CreateFn: TypeAlias = Callable[..., Awaitable[Any]]

__all__ = ["TracedOpenAI", "extract_request_parameters", "wrap_openai"]


def _status_code(error: Exception) -> int:
    if isinstance(error, openai.APIStatusError):
        return error.status_code
    return error_status_code(error)


def _span_input(request: Mapping[str, Any], is_responses: bool) -> Any:
    if is_responses:
        return convert_input_to_messages(request.get("input"))
    return request.get("messages") or ""


def _trace_input(request: Mapping[str, Any], is_responses: bool) -> str:
    value = request.get("input") if is_responses else request.get("messages")
    return "" if value is None else serialize_to_str(value)


class _TracedCall:
    """One instrumented ``create`` invocation."""

    def __init__(self, create: CreateFn, request: dict[str, Any], trace_logger: TraceLogger, *, is_responses: bool) -> None:
        self.create = create
        self.request = request
        self.trace_logger = trace_logger
        self.is_responses = is_responses
        self.name = RESPONSES_SPAN_NAME if is_responses else CHAT_SPAN_NAME
        self.start_time: datetime = utc_now()
        self.owns_trace = False

    async def run(self) -> Any:
        try:
            self.owns_trace = self.trace_logger.current_parent() is None
            if self.owns_trace:
                self.trace_logger.start_trace(input=_trace_input(self.request, self.is_responses), name=self.name, created_at=self.start_time)
        except Exception as e:
            logger.warning(f"Failed to start trace for {self.name}: {e}")
            self.owns_trace = False

        try:
            response = await self.create(**self.request)
        except Exception as e:
            self._log_safely(self._log_error, e)
            raise

        if self.request.get("stream") or isinstance(response, openai.AsyncStream):
            return StreamAggregator(
                response,
                self.request,
                self.trace_logger,
                start_time=self.start_time,
                should_complete_trace=self.owns_trace,
                name=self.name,
            )

        if self.is_responses:
            self._log_safely(self._log_response, response)
        else:
            self._log_safely(self._log_chat_completion, response)
        return response

    def _log_safely(self, log: Callable[[Any], None], value: Any) -> None:
        try:
            log(value)
        except Exception as e:
            logger.warning(f"Failed to log {self.name} span: {e}")

    def _add_span(self, *, output: Any, model: str, parameters: ExtractedParameters, metadata: dict[str, str], usage_payload: Any, duration_ns: int) -> None:
        usage = parse_usage(usage_payload)
        if usage.rejected_prediction_tokens > 0:
            metadata = {**metadata, "rejected_prediction_tokens": str(usage.rejected_prediction_tokens)}
        self.trace_logger.add_llm_span(
            input=_span_input(self.request, self.is_responses),
            output=output,
            name=self.name,
            model=model,
            duration_ns=duration_ns,
            num_input_tokens=usage.input_tokens,
            num_output_tokens=usage.output_tokens,
            total_tokens=usage.total_tokens,
            num_reasoning_tokens=usage.reasoning_tokens,
            num_cached_input_tokens=usage.cached_tokens,
            temperature=as_float(self.request.get("temperature")),
            status_code=200,
            metadata=metadata,
            tools=parameters.tools,
            created_at=self.start_time,
        )

    def _log_chat_completion(self, response: Any) -> None:
        data = as_mapping(response)
        duration_ns = calculate_duration_ns(self.start_time)
        parameters = extract_request_parameters(self.request)
        output = [as_mapping(choice).get("message") for choice in data.get("choices") or []]

        self._add_span(
            output=output,
            model=str(self.request.get("model") or data.get("model") or "unknown"),
            parameters=parameters,
            metadata=dict(parameters.metadata),
            usage_payload=data.get("usage"),
            duration_ns=duration_ns,
        )
        if self.owns_trace:
            self.trace_logger.conclude(output=serialize_to_str(output), duration_ns=duration_ns)

    def _log_response(self, response: Any) -> None:
        data = as_mapping(response)
        duration_ns = calculate_duration_ns(self.start_time)
        parameters = extract_request_parameters(self.request)
        items = data.get("output") if isinstance(data.get("output"), list) else []

        if isinstance(self.request.get("input"), list):
            log_function_call_outputs(self.request["input"], self.trace_logger)
        output = consolidate_output(items)
        self._add_span(
            output=output,
            model=str(data.get("model") or self.request.get("model") or "unknown"),
            parameters=parameters,
            metadata=responses_metadata(items, parameters.metadata),
            usage_payload=data.get("usage"),
            duration_ns=duration_ns,
        )
        # A pending function call means the conversation continues in a later call.
        if self.owns_trace and not has_pending_function_calls(items):
            self.trace_logger.conclude(output=serialize_to_str(output), duration_ns=duration_ns)

    def _log_error(self, error: Exception) -> None:
        duration_ns = calculate_duration_ns(self.start_time)
        status_code = _status_code(error)
        message = f"Error: {error}"
        parameters = extract_request_parameters(self.request)

        self.trace_logger.add_llm_span(
            input=_span_input(self.request, self.is_responses),
            output={"content": message},
            name=self.name,
            model=str(self.request.get("model") or "unknown"),
            duration_ns=duration_ns,
            num_input_tokens=0,
            num_output_tokens=0,
            temperature=as_float(self.request.get("temperature")),
            status_code=status_code,
            metadata={**parameters.metadata, "error_message": str(error), "error_type": type(error).__name__},
            created_at=self.start_time,
        )
        if self.owns_trace:
            self.trace_logger.conclude(output=message, duration_ns=duration_ns, status_code=status_code)


class _TracedResource:
    """Proxy over a client resource whose ``create`` is instrumented."""

    def __init__(self, resource: Any, trace_logger: TraceLogger | None, *, is_responses: bool) -> None:
        self._resource = resource
        self._trace_logger = trace_logger
        self._is_responses = is_responses

    def __getattr__(self, name: str) -> Any:
        return getattr(self._resource, name)

    async def create(self, **kwargs: Any) -> Any:
        trace_logger = self._trace_logger if self._trace_logger is not None else get_trace_logger()
        return await _TracedCall(self._resource.create, kwargs, trace_logger, is_responses=self._is_responses).run()


class _TracedChat:
    def __init__(self, chat: Any, trace_logger: TraceLogger | None) -> None:
        self._chat = chat
        self.completions = _TracedResource(chat.completions, trace_logger, is_responses=False)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._chat, name)


class TracedOpenAI:
    """An ``openai.AsyncOpenAI`` client with traced ``chat.completions`` and ``responses``.

    Every other attribute is served by the wrapped client.
    """

    def __init__(self, client: openai.AsyncOpenAI, trace_logger: TraceLogger | None = None) -> None:
        self._client = client
        self.chat = _TracedChat(client.chat, trace_logger)
        self.responses = _TracedResource(client.responses, trace_logger, is_responses=True)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._client, name)

    @property
    def wrapped(self) -> openai.AsyncOpenAI:
        return self._client


def wrap_openai(client: openai.AsyncOpenAI, trace_logger: TraceLogger | None = None) -> TracedOpenAI:
    """Wrap an async OpenAI (or Azure OpenAI) client so its model calls are traced.

    Args:
        client: The client to instrument. It is not modified.
        trace_logger: Destination of the spans. Defaults to the process-global
                      logger, resolved at call time.

    Example:
        >>> client = wrap_openai(openai.AsyncOpenAI())
        >>> await client.chat.completions.create(model="gpt-4o", messages=[{"role": "user", "content": "Hi"}])
    """
    return TracedOpenAI(client, trace_logger)
