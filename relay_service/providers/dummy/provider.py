import asyncio
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

from relay_service.core.interfaces import CompletionProvider
from relay_service.core.tool_registry import ToolDescriptor
from relay_service.core.types import RawDelta, ToolCallFragment, ToolInvocation

Step = Any  # RawDelta | str | dict | BaseException


def _coerce(step: Step, round_no: int) -> RawDelta:
    if isinstance(step, RawDelta):
        return step
    if isinstance(step, str):
        return RawDelta(text=step)
    if isinstance(step, dict):
        call = step.get("tool_call")
        fragments = []
        if call:
            fragments.append(
                ToolCallFragment(
                    index=0,
                    id=call.get("id") or f"call_{round_no}",
                    name=call.get("name"),
                    arguments=json.dumps(call.get("arguments") or {}),
                )
            )
        return RawDelta(
            text=step.get("text"),
            tool_calls=fragments,
            finish_reason=step.get("finish_reason"),
            usage=step.get("usage"),
        )
    raise TypeError(f"Unsupported script step: {step!r}")


class ScriptedProvider(CompletionProvider):
    """
    Replays canned rounds of deltas, one round per request.

    A step is a RawDelta, a plain string (text delta), a dict such as
    {"text": ...} or {"tool_call": {"name": ..., "arguments": {...}}}, or an
    exception instance which is raised at that point of the stream. Once the
    script runs out, the provider echoes the latest user message.
    """

    def __init__(
        self,
        rounds: Optional[Sequence[Sequence[Step]]] = None,
        delay: float = 0.0,
        models: Optional[List[str]] = None,
    ):
        self.rounds = [list(r) for r in (rounds or [])]
        self.delay = delay
        self.models = list(models or ["dummy-model-1", "dummy-model-2"])
        self.requests: List[Dict[str, Any]] = []

    def list_models(self) -> List[str]:
        return list(self.models)

    def translate_tool(self, descriptor: ToolDescriptor) -> Dict[str, Any]:
        return descriptor.to_declaration()

    def build_request(
        self,
        model_name: str,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        return {"model": model_name, "messages": list(messages), "tools": tools or []}

    def _echo(self, payload: Dict[str, Any]) -> List[Step]:
        prompt = ""
        for m in reversed(payload.get("messages") or []):
            if m.get("role") == "user":
                content = m.get("content")
                prompt = content if isinstance(content, str) else json.dumps(content)
                break
        return [f"{prompt}-{i}" for i in range(3)] + [RawDelta(finish_reason="stop")]

    async def stream(self, payload: Dict[str, Any]) -> AsyncIterator[RawDelta]:
        round_no = len(self.requests)
        self.requests.append(payload)
        script = self.rounds[round_no] if round_no < len(self.rounds) else self._echo(payload)
        for step in script:
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(step, BaseException):
                raise step
            yield _coerce(step, round_no)

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
