"""
Tests for the chat-completions provider against httpx.MockTransport.

- Request shape (model mapping, tools, stream options, auth header)
- Frame parsing into RawDelta (text, tool-call fragments, usage)
- Transport failures: non-2xx, silent upstream, missing key
"""
import asyncio
import json

import httpx
import pytest

from relay_service.core.errors import TransportError
from relay_service.core.tool_registry import ParameterSpec, ToolDescriptor
from relay_service.core.types import ToolInvocation
from relay_service.providers.openai.provider import OpenAIProvider, parse_chunk


def _sse(*frames) -> bytes:
    body = b"".join(f"data: {json.dumps(f)}\n\n".encode("utf-8") for f in frames)
    return body + b"data: [DONE]\n\n"


def _provider(handler, **kwargs) -> OpenAIProvider:
    return OpenAIProvider(api_key="sk-test", transport=httpx.MockTransport(handler), **kwargs)


async def _drain(provider, payload=None):
    return [d async for d in provider.stream(payload or {"model": "gpt-4o-mini", "messages": []})]


class TestBuildRequest:
    def test_body_shape_without_tools(self):
        body = OpenAIProvider(api_key="k").build_request("relay-pro", [{"role": "user", "content": "hi"}])
        assert body["model"] == "gpt-4o-mini"
        assert body["stream"] is True
        assert body["stream_options"] == {"include_usage": True}
        assert "tools" not in body and "tool_choice" not in body

    def test_tools_are_wrapped_as_functions(self):
        provider = OpenAIProvider(api_key="k", models={"fast": "gpt-x"})
        desc = ToolDescriptor(name="calculator", parameters=[ParameterSpec("expression", required=True)])
        body = provider.build_request("fast", [], [provider.translate_tool(desc)])
        assert body["model"] == "gpt-x"
        assert body["tool_choice"] == "auto"
        assert body["tools"][0]["type"] == "function"
        assert body["tools"][0]["function"]["parameters"]["required"] == ["expression"]

    def test_unknown_model_maps_to_default(self):
        assert OpenAIProvider(api_key="k").build_request("whatever", [])["model"] == "gpt-4o-mini"


class TestParseChunk:
    def test_text_delta(self):
        d = parse_chunk({"choices": [{"delta": {"content": "Hi"}, "finish_reason": None}]})
        assert d.text == "Hi" and d.tool_calls == [] and d.finish_reason is None

    def test_tool_call_fragment(self):
        d = parse_chunk(
            {"choices": [{"delta": {"tool_calls": [{"index": 1, "id": "c", "function": {"name": "calculator", "arguments": "{"}}]}}]}
        )
        assert (d.tool_calls[0].index, d.tool_calls[0].id, d.tool_calls[0].name, d.tool_calls[0].arguments) == (
            1,
            "c",
            "calculator",
            "{",
        )

    def test_usage_only_frame(self):
        d = parse_chunk({"choices": [], "usage": {"prompt_tokens": 11, "completion_tokens": 4, "total_tokens": 15}})
        assert d.usage == {"prompt_tokens": 11, "completion_tokens": 4}
        assert d.text is None


class TestStream:
    @pytest.mark.asyncio
    async def test_frames_become_deltas(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                content=_sse(
                    {"choices": [{"delta": {"content": "Hel"}}]},
                    {"choices": [{"delta": {"content": "lo"}, "finish_reason": "stop"}]},
                    {"choices": [], "usage": {"prompt_tokens": 3, "completion_tokens": 2}},
                ),
                headers={"content-type": "text/event-stream"},
            )

        deltas = await _drain(_provider(handler), {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "x"}]})
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["messages"] == [{"role": "user", "content": "x"}]
        assert [d.text for d in deltas] == ["Hel", "lo", None]
        assert deltas[1].finish_reason == "stop"
        assert deltas[2].usage == {"prompt_tokens": 3, "completion_tokens": 2}

    @pytest.mark.asyncio
    async def test_non_2xx_is_transport_error(self):
        def handler(request):
            return httpx.Response(429, json={"error": {"message": "rate limited, key sk-secret"}})

        with pytest.raises(TransportError) as exc:
            await _drain(_provider(handler))
        assert exc.value.status_code == 429
        assert "HTTP 429" in str(exc.value)
        assert "sk-secret" not in str(exc.value)

    @pytest.mark.asyncio
    async def test_error_frame_is_transport_error(self):
        def handler(request):
            return httpx.Response(200, content=_sse({"error": {"message": "overloaded"}}))

        with pytest.raises(TransportError):
            await _drain(_provider(handler))

    @pytest.mark.asyncio
    async def test_silent_upstream_is_transport_error(self):
        async def silent():
            await asyncio.sleep(5)
            yield b""

        def handler(request):
            return httpx.Response(200, content=silent())

        with pytest.raises(TransportError, match="stopped responding"):
            await _drain(_provider(handler, read_timeout_sec=0.05))

    @pytest.mark.asyncio
    async def test_stall_after_data_ends_stream(self):
        async def stalls():
            yield b'data: {"choices": [{"delta": {"content": "partial"}}]}\n\n'
            await asyncio.sleep(5)
            yield b"data: [DONE]\n\n"

        def handler(request):
            return httpx.Response(200, content=stalls())

        deltas = await _drain(_provider(handler, read_timeout_sec=0.05))
        assert [d.text for d in deltas] == ["partial"]

    @pytest.mark.asyncio
    async def test_connect_failure(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(TransportError, match="Could not reach"):
            await _drain(_provider(handler))

    @pytest.mark.asyncio
    async def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        provider = OpenAIProvider(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(TransportError, match="not configured"):
            await _drain(provider)

    @pytest.mark.asyncio
    async def test_closing_the_stream_closes_the_upstream_response(self, monkeypatch):
        closed = []

        async def frames(client, request, **kwargs):
            try:
                yield {"choices": [{"delta": {"content": "par"}}]}
                await asyncio.Event().wait()
            finally:
                closed.append(True)

        monkeypatch.setattr("relay_service.providers.openai.provider.iter_sse_payloads", frames)
        stream = _provider(lambda r: httpx.Response(200)).stream({"model": "gpt-4o-mini", "messages": []})

        first = await stream.__anext__()
        assert first.text == "par"
        await stream.aclose()
        assert closed == [True]


def test_tool_exchange_records():
    inv = ToolInvocation(id="call_9", name="calculator", arguments={"expression": "1+1"}, raw_arguments='{"expression": "1+1"}')
    assistant, tool = OpenAIProvider(api_key="k").tool_exchange(inv, '{"result": 2}')
    assert assistant["tool_calls"][0]["function"] == {"name": "calculator", "arguments": '{"expression": "1+1"}'}
    assert tool == {"role": "tool", "tool_call_id": "call_9", "content": '{"result": 2}'}
