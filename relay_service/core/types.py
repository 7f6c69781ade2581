from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Dict, List, Optional, TypedDict

from relay_service.core.errors import ToolExecutionError


class StreamEvent(StrEnum):
    TEXT = "text"
    STATUS = "status"
    PAYLOAD = "payload"
    ARTIFACT = "artifact"
    ERROR = "error"
    DONE = "done"


class Event(TypedDict, total=False):
    type: str  # "text" | "status" | "payload" | "artifact" | "error" | "done"
    data: Dict[str, Any]


class Message(TypedDict, total=False):
    role: str  # "user" | "assistant" | "system"
    content: Any  # str or list of {"type": "text"|"image_url", ...} parts


@dataclass
class ToolCallFragment:
    """One streamed piece of a tool call. Fragments sharing an index belong together."""
    index: int
    id: Optional[str] = None
    name: Optional[str] = None
    arguments: Optional[str] = None


@dataclass
class ToolInvocation:
    id: str
    name: str
    arguments: Dict[str, Any]
    raw_arguments: str = "{}"


@dataclass
class ToolResult:
    value: Any = None
    error: Optional[str] = None
    duration_ms: int = 0
    success: bool = True

    def content(self) -> Any:
        """What gets fed back to the model as the tool's answer."""
        if not self.success and self.error and self.value is None:
            return {"error": self.error}
        return self.value

    def raise_for_error(self) -> None:
        if not self.success:
            raise ToolExecutionError(self.error or "tool failed")


@dataclass
class RawDelta:
    """A single decoded upstream frame."""
    text: Optional[str] = None
    tool_calls: List[ToolCallFragment] = field(default_factory=list)
    finish_reason: Optional[str] = None  # "stop", "length", "tool_calls", ...
    usage: Optional[Dict[str, int]] = None


@dataclass
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0

    def add(self, other: Optional[Dict[str, int]]) -> None:
        if not other:
            return
        self.prompt_tokens += int(other.get("prompt_tokens") or 0)
        self.completion_tokens += int(other.get("completion_tokens") or 0)

    def as_dict(self) -> Dict[str, int]:
        return {"prompt_tokens": self.prompt_tokens, "completion_tokens": self.completion_tokens}


@dataclass
class ConversationTurn:
    """Ephemeral state for one submitted user message."""
    text: str = ""
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    artifacts: List[Dict[str, Any]] = field(default_factory=list)
    pending: Optional[ToolInvocation] = None
    iterations: int = 0
    truncated: bool = False
    usage: Usage = field(default_factory=Usage)
    finalized: bool = False


@dataclass
class Attachment:
    name: str
    data_url: str
    mime_type: Optional[str] = None
    type: str = "document"  # "image" | "document"


@dataclass
class CrossChatItem:
    title: str
    last_preview: str = ""


@dataclass
class ProfileContext:
    """Per-user context folded into the system prompt. Every field is optional."""
    response_style: Optional[str] = None
    web_search_enabled: bool = True
    skills: List[str] = field(default_factory=list)
    profile_name: Optional[str] = None
    preferred_name: Optional[str] = None
    work_function: Optional[str] = None
    personal_preferences: Optional[str] = None
    memory_facts: List[str] = field(default_factory=list)
    cross_chat_context: List[CrossChatItem] = field(default_factory=list)
