"""Tests for the traced OpenAI client proxy."""

import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import openai
import pytest
from openai.types import CompletionUsage
from openai.types.chat import ChatCompletion, ChatCompletionMessage
from openai.types.chat.chat_completion import Choice

from ai_trace_core.integrations import TracedOpenAI, wrap_openai
from ai_trace_core.streaming import StreamAggregator
from ai_trace_core.trace_logger import BufferedTraceLogger, set_trace_logger
from tests.support.helpers import async_stream, call_names

MESSAGES = [{"role": "user", "content": "Hi"}]


def chat_completion(content: str = "Hello!") -> ChatCompletion:
    return ChatCompletion(
        id="chatcmpl-1",
        choices=[Choice(index=0, finish_reason="stop", message=ChatCompletionMessage(role="assistant", content=content))],
        created=0,
        model="gpt-4o-2024-08-06",
        object="chat.completion",
        usage=CompletionUsage(prompt_tokens=9, completion_tokens=3, total_tokens=12),
    )


def fake_client(chat_result=None, responses_result=None) -> SimpleNamespace:
    return SimpleNamespace(
        api_key="sk-test",
        chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(return_value=chat_result), with_raw_response="raw")),
        responses=SimpleNamespace(create=AsyncMock(return_value=responses_result)),
        models=SimpleNamespace(list=AsyncMock(return_value=["gpt-4o"])),
    )


def status_error(status_code: int) -> openai.APIStatusError:
    request = SimpleNamespace(method="POST", url="https://api.openai.com/v1/chat/completions")
    response = SimpleNamespace(status_code=status_code, headers={}, request=request)
    return openai.APIStatusError("Rate limit reached", response=response, body=None)  # type: ignore[arg-type]


class TestChatCompletions:
    async def test_call_is_logged_in_own_trace(self, mock_logger: MagicMock):
        client = fake_client(chat_result=chat_completion())
        traced = wrap_openai(client, mock_logger)

        response = await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES, temperature=0.2)

        assert response.choices[0].message.content == "Hello!"
        client.chat.completions.create.assert_awaited_once_with(model="gpt-4o", messages=MESSAGES, temperature=0.2)
        assert call_names(mock_logger) == ["current_parent", "start_trace", "add_llm_span", "conclude"]

        trace_kwargs = mock_logger.start_trace.call_args.kwargs
        assert json.loads(trace_kwargs["input"]) == MESSAGES
        assert trace_kwargs["name"] == "openai-client-generation"

        kwargs = mock_logger.add_llm_span.call_args.kwargs
        assert kwargs["input"] == MESSAGES
        assert kwargs["output"][0]["content"] == "Hello!"
        assert kwargs["model"] == "gpt-4o"
        assert (kwargs["num_input_tokens"], kwargs["num_output_tokens"], kwargs["total_tokens"]) == (9, 3, 12)
        assert kwargs["temperature"] == 0.2
        assert kwargs["metadata"] == {"temperature": "0.2"}
        assert kwargs["status_code"] == 200

        conclude_kwargs = mock_logger.conclude.call_args.kwargs
        assert json.loads(conclude_kwargs["output"])[0]["content"] == "Hello!"

    async def test_nested_call_does_not_open_trace(self, mock_logger: MagicMock):
        mock_logger.current_parent.return_value = MagicMock()
        traced = wrap_openai(fake_client(chat_result=chat_completion()), mock_logger)

        await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES)

        assert call_names(mock_logger) == ["current_parent", "add_llm_span"]

    async def test_buffered_logger_trace(self, buffered_logger: BufferedTraceLogger):
        traced = wrap_openai(fake_client(chat_result=chat_completion("Hey")), buffered_logger)

        await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES)

        (trace,) = buffered_logger.traces
        assert buffered_logger.current_parent() is None
        assert json.loads(trace.output)[0]["content"] == "Hey"
        assert trace.spans[0].metrics.num_total_tokens == 12

    async def test_start_trace_failure_does_not_break_call(self, mock_logger: MagicMock):
        mock_logger.start_trace.side_effect = RuntimeError("logger down")
        traced = wrap_openai(fake_client(chat_result=chat_completion()), mock_logger)

        response = await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES)

        assert response.choices[0].message.content == "Hello!"
        mock_logger.conclude.assert_not_called()

    async def test_uses_global_logger_at_call_time(self, mock_logger: MagicMock):
        traced = wrap_openai(fake_client(chat_result=chat_completion()))
        set_trace_logger(mock_logger)

        await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES)

        mock_logger.add_llm_span.assert_called_once()


class TestErrors:
    async def test_api_error_is_logged_and_reraised(self, mock_logger: MagicMock):
        client = fake_client()
        client.chat.completions.create.side_effect = status_error(429)
        traced = wrap_openai(client, mock_logger)

        with pytest.raises(openai.APIStatusError):
            await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES, temperature=0.3)

        kwargs = mock_logger.add_llm_span.call_args.kwargs
        assert kwargs["status_code"] == 429
        assert kwargs["output"] == {"content": "Error: Rate limit reached"}
        assert (kwargs["num_input_tokens"], kwargs["num_output_tokens"]) == (0, 0)
        assert kwargs["metadata"]["error_message"] == "Rate limit reached"
        assert kwargs["metadata"]["error_type"] == "APIStatusError"
        assert kwargs["metadata"]["temperature"] == "0.3"
        mock_logger.conclude.assert_called_once_with(output="Error: Rate limit reached", duration_ns=kwargs["duration_ns"], status_code=429)

    async def test_generic_error_is_500(self, mock_logger: MagicMock):
        client = fake_client()
        client.responses.create.side_effect = ConnectionError("reset by peer")
        traced = wrap_openai(client, mock_logger)

        with pytest.raises(ConnectionError):
            await traced.responses.create(model="gpt-4o", input="hi")

        kwargs = mock_logger.add_llm_span.call_args.kwargs
        assert kwargs["status_code"] == 500
        assert kwargs["input"] == [{"role": "user", "content": "hi"}]
        assert kwargs["name"] == "openai-responses-generation"

    async def test_logging_failure_returns_response(self, mock_logger: MagicMock):
        mock_logger.add_llm_span.side_effect = RuntimeError("logger down")
        traced = wrap_openai(fake_client(chat_result=chat_completion()), mock_logger)

        response = await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES)

        assert response.choices[0].message.content == "Hello!"


class TestResponses:
    async def test_response_is_consolidated(self, mock_logger: MagicMock):
        result = {
            "id": "resp_1",
            "model": "gpt-4o-mini-2024",
            "output": [
                {"type": "reasoning", "summary": [{"type": "summary_text", "text": "plan"}]},
                {"type": "web_search_call", "id": "ws_1", "status": "completed", "action": {"type": "search", "query": "news"}},
                {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "Here is the news."}]},
            ],
            "usage": {"input_tokens": 20, "output_tokens": 10, "total_tokens": 30, "output_tokens_details": {"reasoning_tokens": 4}},
        }
        traced = wrap_openai(fake_client(responses_result=result), mock_logger)

        assert await traced.responses.create(model="gpt-4o-mini", input="news?", instructions="Be short.") is result

        kwargs = mock_logger.add_llm_span.call_args.kwargs
        assert kwargs["output"] == {"content": "Here is the news.", "role": "assistant"}
        assert kwargs["model"] == "gpt-4o-mini-2024"
        assert kwargs["num_reasoning_tokens"] == 4
        metadata = kwargs["metadata"]
        assert metadata["type"] == "consolidated_response"
        assert metadata["reasoning_count"] == "1"
        assert metadata["instructions_length"] == "9"
        assert json.loads(metadata["embedded_tool_calls"])[0]["function"]["name"] == "web_search"
        mock_logger.conclude.assert_called_once()

    async def test_pending_function_call_leaves_trace_open(self, mock_logger: MagicMock):
        result = {"model": "gpt-4o", "output": [{"type": "function_call", "call_id": "c1", "name": "calc", "arguments": "{}"}]}
        traced = wrap_openai(fake_client(responses_result=result), mock_logger)

        await traced.responses.create(model="gpt-4o", input="2+2?", tools=[{"type": "function", "name": "calc"}])

        kwargs = mock_logger.add_llm_span.call_args.kwargs
        assert kwargs["output"]["tool_calls"] == [{"id": "c1", "function": {"name": "calc", "arguments": "{}"}}]
        assert kwargs["tools"] == [{"type": "function", "name": "calc"}]
        mock_logger.conclude.assert_not_called()

    async def test_follow_up_logs_tool_results(self, mock_logger: MagicMock):
        result = {"model": "gpt-4o", "output": [{"type": "message", "content": [{"type": "output_text", "text": "4"}]}]}
        traced = wrap_openai(fake_client(responses_result=result), mock_logger)
        follow_up = [
            {"type": "function_call", "call_id": "c1", "name": "calc", "arguments": "{}"},
            {"type": "function_call_output", "call_id": "c1", "output": "4"},
        ]

        await traced.responses.create(model="gpt-4o", input=follow_up)

        assert call_names(mock_logger) == ["current_parent", "start_trace", "add_tool_span", "add_llm_span", "conclude"]
        assert mock_logger.add_tool_span.call_args.kwargs["tool_call_id"] == "c1"


class TestStreaming:
    async def test_stream_returns_aggregator(self, mock_logger: MagicMock):
        chunks = [{"choices": [{"index": 0, "delta": {"content": "Hi"}}]}, {"choices": [{"index": 0, "delta": {"content": "!"}}]}]
        traced = wrap_openai(fake_client(chat_result=async_stream(chunks)), mock_logger)

        stream = await traced.chat.completions.create(model="gpt-4o", messages=MESSAGES, stream=True)

        assert isinstance(stream, StreamAggregator)
        mock_logger.add_llm_span.assert_not_called()

        assert [chunk async for chunk in stream] == chunks
        assert mock_logger.add_llm_span.call_args.kwargs["output"] == {"content": "Hi!", "role": "assistant"}
        mock_logger.conclude.assert_called_once()

    async def test_nested_stream_does_not_conclude(self, mock_logger: MagicMock):
        mock_logger.current_parent.return_value = MagicMock()
        traced = wrap_openai(fake_client(responses_result=async_stream([{"type": "response.output_text.delta", "delta": "ok"}])), mock_logger)

        stream = await traced.responses.create(model="gpt-4o", input="hi", stream=True)
        async for _ in stream:
            pass

        assert mock_logger.add_llm_span.call_args.kwargs["name"] == "openai-responses-generation"
        mock_logger.conclude.assert_not_called()


class TestProxy:
    def test_attributes_pass_through(self, mock_logger: MagicMock):
        client = fake_client()
        traced = wrap_openai(client, mock_logger)

        assert isinstance(traced, TracedOpenAI)
        assert traced.wrapped is client
        assert traced.api_key == "sk-test"
        assert traced.models is client.models
        assert traced.chat.completions.with_raw_response == "raw"

    async def test_client_is_not_modified(self, mock_logger: MagicMock):
        client = fake_client(chat_result=chat_completion())
        original_create = client.chat.completions.create
        wrap_openai(client, mock_logger)

        assert client.chat.completions.create is original_create
        await client.chat.completions.create(model="gpt-4o", messages=MESSAGES)
        mock_logger.add_llm_span.assert_not_called()
