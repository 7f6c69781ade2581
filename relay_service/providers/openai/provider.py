from contextlib import aclosing
import os
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relay_service.core.errors import TransportError
from relay_service.core.interfaces import CompletionProvider
from relay_service.core.logging import logger
from relay_service.core.tool_registry import ToolDescriptor
from relay_service.core.types import RawDelta, ToolCallFragment, ToolInvocation
from relay_service.providers.streaming import iter_sse_payloads

DEFAULT_API_URL = "https://api.openai.com/v1/chat/completions"
DEFAULT_UPSTREAM_MODEL = "gpt-4o-mini"
DEFAULT_MODELS = {
    "relay-beta": DEFAULT_UPSTREAM_MODEL,
    "relay-pro": DEFAULT_UPSTREAM_MODEL,
    "relay-deep": DEFAULT_UPSTREAM_MODEL,
}


def parse_chunk(payload: Dict[str, Any]) -> RawDelta:
    """Classify one chat-completions stream frame."""
    usage = None
    if isinstance(payload.get("usage"), dict):
        usage = {
            "prompt_tokens": int(payload["usage"].get("prompt_tokens") or 0),
            "completion_tokens": int(payload["usage"].get("completion_tokens") or 0),
        }

    choices = payload.get("choices") or []
    choice = choices[0] if choices else {}
    delta = choice.get("delta") or {}

    fragments = []
    for tc in delta.get("tool_calls") or []:
        fn = tc.get("function") or {}
        fragments.append(
            ToolCallFragment(
                index=int(tc.get("index") or 0),
                id=tc.get("id"),
                name=fn.get("name"),
                arguments=fn.get("arguments"),
            )
        )

    return RawDelta(
        text=delta.get("content") or None,
        tool_calls=fragments,
        finish_reason=choice.get("finish_reason"),
        usage=usage,
    )


def _api_key_from_env() -> str:
    key = (os.environ.get("OPENAI_API_KEY") or "").strip()
    key = key.split()[0] if key else ""
    if key.startswith("OPENAI_API_KEY="):
        key = key[len("OPENAI_API_KEY=") :]
    return key


class OpenAIProvider(CompletionProvider):
    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        api_key: Optional[str] = None,
        models: Optional[Dict[str, str]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        connect_timeout_sec: float = 60.0,
        read_timeout_sec: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Chat-completions provider. `transport` is for tests (httpx.MockTransport)."""
        self.api_url = api_url
        self._api_key = api_key
        self.models = dict(models or DEFAULT_MODELS)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.connect_timeout = float(connect_timeout_sec)
        self.read_timeout = float(read_timeout_sec)
        self.transport = transport

    @property
    def api_key(self) -> str:
        return self._api_key or _api_key_from_env()

    def list_models(self) -> List[str]:
        return list(self.models)

    def resolve_model(self, model_name: str) -> str:
        return self.models.get(model_name) or DEFAULT_UPSTREAM_MODEL

    def translate_tool(self, descriptor: ToolDescriptor) -> Dict[str, Any]:
        return {"type": "function", "function": descriptor.to_declaration()}

    def build_request(
        self,
        model_name: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "model": self.resolve_model(model_name),
            "messages": list(messages),
            "stream": True,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "stream_options": {"include_usage": True},
        }
        if tools:
            body["tools"] = tools
            body["tool_choice"] = "auto"
        return body

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[RawDelta]:
        api_key = self.api_key
        if not api_key:
            logger.error("OPENAI_API_KEY is not configured")
            raise TransportError("The model service is not configured.")

        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(self.connect_timeout, read=None),
        ) as client:
            request = client.build_request(
                "POST",
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {api_key}", "Accept": "text/event-stream"},
            )
            frames = iter_sse_payloads(
                client,
                request,
                connect_timeout=self.connect_timeout,
                read_timeout=self.read_timeout,
                service="model service",
            )
            async with aclosing(frames):
                async for frame in frames:
                    if not isinstance(frame, dict):
                        continue
                    if frame.get("error"):
                        logger.error(f"Upstream error frame: {str(frame['error'])[:300]}")
                        raise TransportError("The model service reported an error.")
                    yield parse_chunk(frame)

    def tool_exchange(self, invocation: ToolInvocation, content: str) -> List[Dict[str, Any]]:
        return [
            {
                "role": "assistant",
                "content": None,
                "tool_calls": [
                    {
                        "id": invocation.id,
                        "type": "function",
                        "function": {"name": invocation.name, "arguments": invocation.raw_arguments},
                    }
                ],
            },
            {"role": "tool", "tool_call_id": invocation.id, "content": content},
        ]
