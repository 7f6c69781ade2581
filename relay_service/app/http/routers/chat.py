from typing import List, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from relay_service.core.logging import logger
from relay_service.core.types import Attachment, CrossChatItem, ProfileContext
from relay_service.protocol.service.generation_service import GenerationRequest

router = APIRouter(prefix="/chat", tags=["chat"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


PROFILE_FIELDS = frozenset(
    {
        "web_search_enabled",
        "response_style",
        "skills",
        "profile_name",
        "preferred_name",
        "work_function",
        "personal_preferences",
        "memory_facts",
        "cross_chat_context",
    }
)


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class AttachmentIn(BaseModel):
    name: str
    data_url: str = Field(..., description="base64 data URL of the file")
    mime_type: Optional[str] = None
    type: Literal["image", "document"] = "document"


class CrossChatIn(BaseModel):
    title: str
    last_preview: str = ""


class ChatRequest(BaseModel):
    messages: List[ChatMessage] = Field(default_factory=list, description="Conversation so far, oldest first.")
    prompt: Optional[str] = Field(None, description="New user message appended after the history.")
    model: Optional[str] = Field(None, description="Model alias, e.g. relay-beta.")
    conversation_id: Optional[str] = None
    user_id: Optional[str] = Field(None, description="Looked up in the profile source when no profile fields are sent.")
    persona: str = "default"
    mode: Optional[str] = Field(None, description="Overrides persona when set.")
    web_search_enabled: bool = True
    response_style: str = "normal"
    skills: List[str] = Field(default_factory=list)
    profile_name: Optional[str] = None
    preferred_name: Optional[str] = None
    work_function: Optional[str] = None
    personal_preferences: Optional[str] = None
    memory_facts: List[str] = Field(default_factory=list)
    cross_chat_context: List[CrossChatIn] = Field(default_factory=list)
    attachments: List[AttachmentIn] = Field(default_factory=list, description="For the latest user message.")

    def to_generation_request(self) -> GenerationRequest:
        profile: Optional[ProfileContext] = None
        if not (self.user_id and self.model_fields_set.isdisjoint(PROFILE_FIELDS)):
            profile = ProfileContext(
                response_style=self.response_style,
                web_search_enabled=self.web_search_enabled,
                skills=list(self.skills),
                profile_name=self.profile_name,
                preferred_name=self.preferred_name,
                work_function=self.work_function,
                personal_preferences=self.personal_preferences,
                memory_facts=list(self.memory_facts),
                cross_chat_context=[CrossChatItem(title=c.title, last_preview=c.last_preview) for c in self.cross_chat_context],
            )
        return GenerationRequest(
            messages=[m.model_dump() for m in self.messages],
            prompt=self.prompt,
            model=self.model,
            conversation_id=self.conversation_id,
            user_id=self.user_id,
            persona=self.mode or self.persona,
            profile=profile,
            attachments=[Attachment(**a.model_dump()) for a in self.attachments],
        )


@router.post("/stream")
async def stream(request: Request, body: ChatRequest):
    if not body.messages and not body.prompt:
        raise HTTPException(status_code=400, detail="Messages are required")
    logger.info(
        f"/chat/stream called: model={body.model} messages={len(body.messages)} "
        f"attachments={len(body.attachments)} conversation_id={body.conversation_id}"
    )
    gen_service = request.app.state.gen_svc

    async def event_generator():
        agen = gen_service.stream(body.to_generation_request())
        try:
            async for chunk in agen:
                # Check disconnect BEFORE yielding
                if await request.is_disconnected():
                    logger.info(f"Client disconnected: conversation_id={body.conversation_id}")
                    break
                yield chunk
        finally:
            await agen.aclose()

    return StreamingResponse(event_generator(), media_type="text/event-stream", headers=SSE_HEADERS)
