from typing import Any, List, Optional

from relay_service.core.interfaces import TextExtractor
from relay_service.core.logging import logger
from relay_service.core.types import Attachment, Message, ProfileContext
from relay_service.protocol.attachments import DataUrlTextExtractor, build_multimodal_content
from relay_service.protocol.prompts import build_system_prompt


def _plain_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "\n".join(p.get("text", "") for p in content if isinstance(p, dict) and p.get("type") == "text")
    return "" if content is None else str(content)


class RequestComposer:
    """Turns stored history plus per-request context into the message list sent upstream."""

    def __init__(self, max_history: int = 20, text_extractor: Optional[TextExtractor] = None):
        self.max_history = max_history
        self.text_extractor = text_extractor or DataUrlTextExtractor()

    def compose(
        self,
        history: List[Message],
        persona: Optional[str] = None,
        profile_context: Optional[ProfileContext] = None,
        attachments: Optional[List[Attachment]] = None,
    ) -> List[Message]:
        recent = list(history or [])
        if self.max_history > 0 and len(recent) > self.max_history:
            logger.debug(f"Composer: dropping {len(recent) - self.max_history} older messages")
            recent = recent[-self.max_history :]

        messages: List[Message] = [{"role": "system", "content": build_system_prompt(persona, profile_context)}]
        for m in recent:
            role = m.get("role")
            if role == "system":
                continue
            messages.append({"role": "user" if role == "user" else "assistant", "content": m.get("content", "")})

        if attachments:
            latest_user = next((m for m in reversed(messages) if m["role"] == "user"), None)
            if latest_user is None:
                logger.warning("Composer: attachments supplied without a user message; ignoring them")
            else:
                latest_user["content"] = build_multimodal_content(
                    _plain_text(latest_user["content"]), attachments, self.text_extractor
                )
        return messages
