import json

import httpx
import pytest

from relay_service.core.tool_registry import ParameterSpec, ToolDescriptor
from relay_service.core.types import ToolInvocation
from relay_service.protocol.parsers.accumulator import ToolCallAccumulator
from relay_service.providers.gemini.provider import GeminiProvider, parse_frame


def _sse(*frames) -> bytes:
    return b"".join(f"data: {json.dumps(f)}\r\n\r\n".encode("utf-8") for f in frames)


class TestGeminiRequest:
    def test_system_text_moves_to_system_instruction(self):
        provider = GeminiProvider(api_key="g")
        body = provider.build_request(
            "relay-pro",
            [
                {"role": "system", "content": "be brief"},
                {"role": "user", "content": "hi"},
                {"role": "assistant", "content": "hello"},
            ],
        )
        assert body["model"] == "gemini-2.5-pro"
        assert body["systemInstruction"] == {"parts": [{"text": "be brief"}]}
        assert body["contents"] == [
            {"role": "user", "parts": [{"text": "hi"}]},
            {"role": "model", "parts": [{"text": "hello"}]},
        ]
        assert "tools" not in body

    def test_images_become_inline_data(self):
        body = GeminiProvider(api_key="g").build_request(
            "relay-beta",
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": "what?"},
                        {"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,/9j/AA"}},
                    ],
                }
            ],
        )
        assert body["contents"][0]["parts"][1] == {"inline_data": {"mime_type": "image/jpeg", "data": "/9j/AA"}}

    def test_tool_declarations_use_upper_case_types(self):
        provider = GeminiProvider(api_key="g")
        desc = ToolDescriptor(
            name="search_flights",
            parameters=[ParameterSpec("departure_id", required=True), ParameterSpec("stops", "array")],
        )
        decl = provider.translate_tool(desc)
        assert decl["parameters"]["type"] == "OBJECT"
        assert decl["parameters"]["properties"]["departure_id"]["type"] == "STRING"
        assert decl["parameters"]["properties"]["stops"]["items"] == {"type": "STRING"}
        body = provider.build_request("relay-beta", [{"role": "user", "content": "x"}], [decl])
        assert body["tools"] == [{"functionDeclarations": [decl]}]

    def test_exchange_records_pass_through(self):
        provider = GeminiProvider(api_key="g")
        inv = ToolInvocation(id="call_1", name="get_world_time", arguments={"timezone": "UTC"})
        records = provider.tool_exchange(inv, '{"time": "12:00"}')
        body = provider.build_request("relay-beta", [{"role": "user", "content": "time?"}, *records])
        assert body["contents"][1] == {"role": "model", "parts": [{"functionCall": {"name": "get_world_time", "args": {"timezone": "UTC"}}}]}
        response = body["contents"][2]["parts"][0]["functionResponse"]
        assert response == {"name": "get_world_time", "response": {"name": "get_world_time", "content": '{"time": "12:00"}'}}


class TestGeminiFrames:
    def test_finish_reasons_are_normalized(self):
        assert parse_frame({"candidates": [{"finishReason": "MAX_TOKENS"}]}).finish_reason == "length"
        assert parse_frame({"candidates": [{"finishReason": "STOP"}]}).finish_reason == "stop"
        assert parse_frame({"candidates": [{"finishReason": "SAFETY"}]}).finish_reason == "safety"

    def test_function_call_gets_synthesized_id(self):
        d = parse_frame({"candidates": [{"content": {"parts": [{"functionCall": {"name": "calculator", "args": {"expression": "2*3"}}}]}}]})
        assert d.tool_calls[0].id.startswith("call_")
        assert json.loads(d.tool_calls[0].arguments) == {"expression": "2*3"}


class TestGeminiStream:
    @pytest.mark.asyncio
    async def test_stream_text_calls_and_usage(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers.get("x-goog-api-key")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                content=_sse(
                    {"candidates": [{"content": {"parts": [{"text": "Let me check. "}]}}], "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 2}},
                    {
                        "candidates": [
                            {
                                "content": {
                                    "parts": [
                                        {"functionCall": {"name": "google_search", "args": {"query": "a"}}},
                                        {"functionCall": {"name": "calculator", "args": {"expression": "1"}}},
                                    ]
                                },
                                "finishReason": "STOP",
                            }
                        ],
                        "usageMetadata": {"promptTokenCount": 10, "candidatesTokenCount": 9},
                    },
                ),
            )

        provider = GeminiProvider(api_key="gk", transport=httpx.MockTransport(handler))
        payload = provider.build_request("relay-beta", [{"role": "user", "content": "q"}])
        deltas = [d async for d in provider.stream(payload)]

        assert seen["url"].endswith("/gemini-2.0-flash:streamGenerateContent?alt=sse")
        assert seen["key"] == "gk"
        assert "model" not in seen["body"]

        assert deltas[0].text == "Let me check. "
        # cumulative usage is reported once, at the end
        assert [d.usage for d in deltas[:-1]] == [None, None]
        assert deltas[-1].usage == {"prompt_tokens": 10, "completion_tokens": 9}

        acc = ToolCallAccumulator()
        for d in deltas:
            for f in d.tool_calls:
                acc.absorb(f)
        assert [i.name for i in acc.invocations()] == ["google_search", "calculator"]
        assert acc.materialize().arguments == {"query": "a"}
