from contextlib import aclosing
import json
from typing import Any, AsyncGenerator, Dict, List

from relay_service.core.errors import TransportError
from relay_service.core.interfaces import CompletionProvider
from relay_service.core.logging import logger
from relay_service.core.tool_registry import ToolRegistry
from relay_service.core.types import ConversationTurn, Event, Message, StreamEvent, ToolInvocation
from relay_service.protocol.orchestration.status import (
    card_instruction,
    result_summary,
    status_label,
    structured_events,
)
from relay_service.protocol.orchestration.tool_runner import ExecutionCoordinator
from relay_service.protocol.parsers.accumulator import ToolCallAccumulator

ITERATION_CAP_TEXT = "\n\n*I've gathered the information but hit a limit. Please try asking more specifically.*"
DEGENERATE_TEXT = "I'm having trouble with that right now. Please try again in a moment."
GENERIC_ERROR_TEXT = "Something went wrong while generating a response. Please try again."


def _text(delta: str) -> Event:
    return {"type": StreamEvent.TEXT, "data": {"delta": delta}}


def _status(label: str) -> Event:
    return {"type": StreamEvent.STATUS, "data": {"label": label}}


def tool_content(invocation: ToolInvocation, content: Any, rendered_as_cards: bool) -> str:
    """The text handed back to the model as the tool's answer."""
    body = content if isinstance(content, str) else json.dumps(content, ensure_ascii=False, default=str)
    prefix = card_instruction(invocation.name) if rendered_as_cards else None
    return f"{prefix}\n\n{body}" if prefix else body


class ConversationLoop:
    """
    Drives one user turn: request -> stream -> (tool round -> request again)* -> done.
    - Text deltas are forwarded as soon as they arrive
    - Tool-call fragments are rebuilt per round; only the first complete call runs
    - Tool rounds are capped; hitting the cap or getting an empty round ends the
      turn with canned text and a normal `done`
    - Transport failures end the turn with a single `error` event
    """

    def __init__(
        self,
        provider: CompletionProvider,
        coordinator: ExecutionCoordinator,
        registry: ToolRegistry,
        max_tool_iterations: int = 5,
    ):
        self.provider = provider
        self.coordinator = coordinator
        self.registry = registry
        self.max_tool_iterations = max_tool_iterations

    async def run(self, messages: List[Message], model_name: str) -> AsyncGenerator[Event, None]:
        turn = ConversationTurn()
        conversation: List[Dict[str, Any]] = list(messages)
        declarations = self.registry.declarations(self.provider.translate_tool) if len(self.registry) else None

        try:
            while True:
                payload = self.provider.build_request(model_name, conversation, declarations)
                accumulator = ToolCallAccumulator()
                round_text = False
                finish_reason = None

                async with aclosing(self.provider.stream(payload)) as deltas:
                    async for delta in deltas:
                        if delta.text:
                            round_text = True
                            turn.text += delta.text
                            yield _text(delta.text)
                        for fragment in delta.tool_calls:
                            accumulator.absorb(fragment)
                        if delta.finish_reason:
                            finish_reason = delta.finish_reason
                        if delta.usage:
                            turn.usage.add(delta.usage)
                # only the last round decides whether the answer was cut short
                turn.truncated = finish_reason == "length"

                invocations = accumulator.invocations(finish_reason == "tool_calls")
                if invocations:
                    if len(invocations) > 1:
                        dropped = ", ".join(i.name for i in invocations[1:])
                        logger.info(f"Model requested {len(invocations)} tool calls; running the first, dropping: {dropped}")
                    turn.iterations += 1
                    if turn.iterations > self.max_tool_iterations:
                        logger.warning(f"Tool iteration cap ({self.max_tool_iterations}) reached")
                        turn.text += ITERATION_CAP_TEXT
                        yield _text(ITERATION_CAP_TEXT)
                        break
                    turn.pending = invocations[0]
                    async with aclosing(self._execute(turn, conversation)) as events:
                        async for event in events:
                            yield event
                    continue

                if not round_text:
                    logger.warning("Model round produced neither text nor a tool call")
                    turn.text += DEGENERATE_TEXT
                    yield _text(DEGENERATE_TEXT)
                break

        except TransportError as e:
            logger.error(f"Upstream transport error: {e}")
            yield {"type": StreamEvent.ERROR, "data": {"message": str(e)}}
            return
        except Exception:
            logger.exception("Unexpected error in conversation loop")
            yield {"type": StreamEvent.ERROR, "data": {"message": GENERIC_ERROR_TEXT}}
            return

        turn.finalized = True
        logger.info(
            f"Turn complete: iterations={turn.iterations} truncated={turn.truncated} "
            f"chars={len(turn.text)} usage={turn.usage.as_dict()}"
        )
        yield {"type": StreamEvent.DONE, "data": {"truncated": turn.truncated, "usage": turn.usage.as_dict()}}

    async def _execute(self, turn: ConversationTurn, conversation: List[Dict[str, Any]]) -> AsyncGenerator[Event, None]:
        invocation = turn.pending
        assert invocation is not None
        logger.info(f"Running tool {invocation.name} (round {turn.iterations})")
        yield _status(status_label(invocation.name, invocation.arguments))

        result = await self.coordinator.run(invocation.name, invocation.arguments)
        content = result.content()

        summary = result_summary(invocation.name, content) if result.success else None
        if summary:
            yield _status(summary)

        extras = structured_events(invocation.name, content) if result.success else []
        for event in extras:
            if event["type"] == StreamEvent.ARTIFACT:
                turn.artifacts.append(event["data"])
            else:
                turn.payloads.append(event["data"])
            yield event

        rendered = any(e["type"] == StreamEvent.PAYLOAD for e in extras)
        conversation.extend(self.provider.tool_exchange(invocation, tool_content(invocation, content, rendered)))
        turn.pending = None
