from contextlib import aclosing
from dataclasses import dataclass, field
from typing import AsyncGenerator, List, Optional

from relay_service.core.interfaces import CompletionProvider, HistoryStore, ProfileSource
from relay_service.core.logging import logger
from relay_service.core.tool_registry import ToolRegistry
from relay_service.core.types import Attachment, Event, Message, ProfileContext, StreamEvent
from relay_service.protocol.composer import RequestComposer
from relay_service.protocol.orchestration.emitter import SseEmitter
from relay_service.protocol.orchestration.orchestrator import GENERIC_ERROR_TEXT, ConversationLoop
from relay_service.protocol.orchestration.tool_runner import ExecutionCoordinator

ANALYZING_LABEL = "Analyzing your attachments…"


@dataclass
class GenerationRequest:
    """
    One chat turn as the HTTP layer hands it over.

    `messages` is the full client-side history. When it is empty and a
    `conversation_id` is given, history comes from the HistoryStore instead.
    `prompt` is an extra user message appended after that history.
    `profile` wins over a ProfileSource lookup by `user_id`.
    """
    messages: List[Message] = field(default_factory=list)
    prompt: Optional[str] = None
    model: Optional[str] = None
    conversation_id: Optional[str] = None
    user_id: Optional[str] = None
    persona: Optional[str] = None
    profile: Optional[ProfileContext] = None
    attachments: List[Attachment] = field(default_factory=list)


class GenerationService:
    def __init__(
        self,
        provider: CompletionProvider,
        registry: ToolRegistry,
        coordinator: ExecutionCoordinator,
        composer: Optional[RequestComposer] = None,
        history_store: Optional[HistoryStore] = None,
        profile_source: Optional[ProfileSource] = None,
        max_tool_iterations: int = 5,
        default_model: str = "relay-beta",
    ):
        """Initialize with provider, tool registry, coordinator and optional history store"""
        self.provider = provider
        self.registry = registry
        self.composer = composer or RequestComposer()
        self.store = history_store
        self.profiles = profile_source
        self.default_model = default_model
        self.loop = ConversationLoop(provider, coordinator, registry, max_tool_iterations=max_tool_iterations)
        self.emitter = SseEmitter()

    async def _history(self, request: GenerationRequest) -> List[Message]:
        history: List[Message] = list(request.messages or [])
        if not history and request.conversation_id and self.store:
            history = await self.store.recent(request.conversation_id, self.composer.max_history)
        if request.prompt:
            history.append({"role": "user", "content": request.prompt})
        return history

    async def _profile(self, request: GenerationRequest) -> Optional[ProfileContext]:
        if request.profile is not None or not (self.profiles and request.user_id):
            return request.profile
        return await self.profiles.get_profile(request.user_id)

    async def events(self, request: GenerationRequest) -> AsyncGenerator[Event, None]:
        """Run one turn and yield engine events, ending with `done` or `error`."""
        history = await self._history(request)
        profile = await self._profile(request)
        messages = self.composer.compose(history, request.persona, profile, request.attachments)
        model = request.model or self.default_model
        logger.info(f"Generation started: model={model} messages={len(messages)} conversation={request.conversation_id}")

        if request.attachments:
            yield {"type": StreamEvent.STATUS, "data": {"label": ANALYZING_LABEL}}

        reply: List[str] = []
        completed = False
        async with aclosing(self.loop.run(messages, model)) as events:
            async for event in events:
                if event["type"] == StreamEvent.TEXT:
                    reply.append(event["data"]["delta"])
                elif event["type"] == StreamEvent.DONE:
                    completed = True
                yield event

        if completed:
            await self._remember(request, history, "".join(reply))

    async def _remember(self, request: GenerationRequest, history: List[Message], reply: str) -> None:
        if not (self.store and request.conversation_id):
            return
        user = next((m for m in reversed(history) if m.get("role") == "user"), None)
        if user is not None:
            await self.store.append(request.conversation_id, {"role": "user", "content": user.get("content", "")})
        if reply:
            await self.store.append(request.conversation_id, {"role": "assistant", "content": reply})

    async def stream(self, request: GenerationRequest) -> AsyncGenerator[bytes, None]:
        """Drive one turn and stream SSE bytes, always terminated by [DONE]"""
        try:
            async with aclosing(self.events(request)) as events:
                async for event in events:
                    yield self.emitter.emit(event)
        except Exception:
            logger.exception("Generation failed before the turn could finish")
            yield self.emitter.emit({"type": StreamEvent.ERROR, "data": {"message": GENERIC_ERROR_TEXT}})
        yield self.emitter.close()

    # --- Model Management ---

    def list_models(self) -> List[str]:
        """Lists available models from the provider."""
        return self.provider.list_models()
