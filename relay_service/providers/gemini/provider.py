"""
Gemini provider: streamGenerateContent over SSE.

Differences from chat-completions that this module hides from the loop:
- system text travels in `systemInstruction`, not as a message
- assistant turns use role "model"; images are `inline_data` parts
- a function call arrives whole in a single frame, without an id
- `usageMetadata` is cumulative and repeated on every frame
"""

from contextlib import aclosing
import json
import os
import re
import uuid
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relay_service.core.errors import TransportError
from relay_service.core.interfaces import CompletionProvider
from relay_service.core.logging import logger
from relay_service.core.tool_registry import ToolDescriptor
from relay_service.core.types import RawDelta, ToolCallFragment, ToolInvocation
from relay_service.providers.streaming import iter_sse_payloads

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_UPSTREAM_MODEL = "gemini-2.0-flash"
DEFAULT_MODELS = {
    "relay-beta": DEFAULT_UPSTREAM_MODEL,
    "relay-pro": "gemini-2.5-pro",
    "relay-deep": "gemini-2.5-pro",
}

FINISH_REASONS = {"STOP": "stop", "MAX_TOKENS": "length"}

_DATA_URL = re.compile(r"^data:(?P<mime>[^;,]+)?(;base64)?,(?P<data>.*)$", re.DOTALL)


def _schema_type(json_type: str) -> str:
    return (json_type or "string").upper()


def _content_parts(content: Any) -> List[Dict[str, Any]]:
    if content is None:
        return []
    if isinstance(content, str):
        return [{"text": content}]
    parts: List[Dict[str, Any]] = []
    for p in content:
        if p.get("type") == "text":
            parts.append({"text": p.get("text", "")})
        elif p.get("type") == "image_url":
            url = (p.get("image_url") or {}).get("url", "")
            m = _DATA_URL.match(url)
            if m:
                parts.append({"inline_data": {"mime_type": m.group("mime") or "image/png", "data": m.group("data")}})
            else:
                parts.append({"text": f"[Image: {url}]"})
    return parts


def parse_frame(payload: Dict[str, Any]) -> RawDelta:
    """Classify one streamGenerateContent frame. Function calls get index -1; the stream renumbers them."""
    candidates = payload.get("candidates") or []
    candidate = candidates[0] if candidates else {}
    parts = (candidate.get("content") or {}).get("parts") or []

    texts = []
    fragments = []
    for part in parts:
        if part.get("text"):
            texts.append(part["text"])
        call = part.get("functionCall")
        if call and call.get("name"):
            fragments.append(
                ToolCallFragment(
                    index=-1,
                    id=f"call_{uuid.uuid4().hex[:24]}",
                    name=call["name"],
                    arguments=json.dumps(call.get("args") or {}),
                )
            )

    reason = candidate.get("finishReason")
    usage = None
    meta = payload.get("usageMetadata")
    if isinstance(meta, dict):
        usage = {
            "prompt_tokens": int(meta.get("promptTokenCount") or 0),
            "completion_tokens": int(meta.get("candidatesTokenCount") or 0),
        }
    return RawDelta(
        text="".join(texts) or None,
        tool_calls=fragments,
        finish_reason=FINISH_REASONS.get(reason, reason.lower()) if reason else None,
        usage=usage,
    )


class GeminiProvider(CompletionProvider):
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        models: Optional[Dict[str, str]] = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        connect_timeout_sec: float = 60.0,
        read_timeout_sec: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._api_key = api_key
        self.models = dict(models or DEFAULT_MODELS)
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.connect_timeout = float(connect_timeout_sec)
        self.read_timeout = float(read_timeout_sec)
        self.transport = transport

    @property
    def api_key(self) -> str:
        return self._api_key or (os.environ.get("GOOGLE_GEMINI_API_KEY") or "").strip()

    def list_models(self) -> List[str]:
        return list(self.models)

    def resolve_model(self, model_name: str) -> str:
        return self.models.get(model_name) or DEFAULT_UPSTREAM_MODEL

    def translate_tool(self, descriptor: ToolDescriptor) -> Dict[str, Any]:
        properties: Dict[str, Any] = {}
        for p in descriptor.parameters:
            prop: Dict[str, Any] = {"type": _schema_type(p.type), "description": p.description}
            if p.type == "array":
                prop["items"] = {"type": "STRING"}
            properties[p.name] = prop
        return {
            "name": descriptor.name,
            "description": descriptor.description,
            "parameters": {"type": "OBJECT", "properties": properties, "required": descriptor.required},
        }

    def build_request(
        self,
        model_name: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """The upstream model id rides along under "model"; stream() moves it into the URL."""
        system_texts: List[str] = []
        contents: List[Dict[str, Any]] = []
        for m in messages:
            if "parts" in m:
                # exchange records produced by tool_exchange()
                contents.append({"role": m["role"], "parts": m["parts"]})
                continue
            if m.get("role") == "system":
                if m.get("content"):
                    system_texts.append(str(m["content"]))
                continue
            role = "user" if m.get("role") == "user" else "model"
            parts = _content_parts(m.get("content"))
            if parts:
                contents.append({"role": role, "parts": parts})

        body: Dict[str, Any] = {
            "model": self.resolve_model(model_name),
            "contents": contents,
            "generationConfig": {
                "maxOutputTokens": self.max_tokens,
                "temperature": self.temperature,
                "topP": 0.95,
                "topK": 40,
            },
        }
        if system_texts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_texts)}]}
        if tools:
            body["tools"] = [{"functionDeclarations": tools}]
        return body

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[RawDelta]:
        api_key = self.api_key
        if not api_key:
            logger.error("GOOGLE_GEMINI_API_KEY is not configured")
            raise TransportError("The model service is not configured.")

        body = dict(payload)
        model = body.pop("model", None) or DEFAULT_UPSTREAM_MODEL
        url = f"{self.base_url}/{model}:streamGenerateContent"

        calls_seen = 0
        last_usage: Optional[Dict[str, int]] = None
        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=httpx.Timeout(self.connect_timeout, read=None),
        ) as client:
            request = client.build_request(
                "POST",
                url,
                params={"alt": "sse"},
                json=body,
                headers={"x-goog-api-key": api_key},
            )
            frames = iter_sse_payloads(
                client,
                request,
                connect_timeout=self.connect_timeout,
                read_timeout=self.read_timeout,
            )
            async with aclosing(frames):
                async for frame in frames:
                    if not isinstance(frame, dict):
                        continue
                    if frame.get("error"):
                        logger.error(f"Upstream error frame: {str(frame['error'])[:300]}")
                        raise TransportError("The model service reported an error.")
                    delta = parse_frame(frame)
                    for fragment in delta.tool_calls:
                        fragment.index = calls_seen
                        calls_seen += 1
                    if delta.usage:
                        last_usage = delta.usage
                        delta.usage = None
                    yield delta

        if last_usage:
            yield RawDelta(usage=last_usage)

    def tool_exchange(self, invocation: ToolInvocation, content: str) -> List[Dict[str, Any]]:
        return [
            {"role": "model", "parts": [{"functionCall": {"name": invocation.name, "args": invocation.arguments}}]},
            {
                "role": "user",
                "parts": [
                    {
                        "functionResponse": {
                            "name": invocation.name,
                            "response": {"name": invocation.name, "content": content},
                        }
                    }
                ],
            },
        ]
