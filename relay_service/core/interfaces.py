from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional

from relay_service.core.types import (
    Attachment,
    Message,
    ProfileContext,
    RawDelta,
    ToolInvocation,
)


class CompletionProvider(ABC):
    """One upstream completion service: its request/response encoding and tool schema shape."""

    @abstractmethod
    def translate_tool(self, descriptor: Any) -> Dict[str, Any]:
        """Convert a registry ToolDescriptor into this provider's declaration shape."""
        ...

    @abstractmethod
    def build_request(
        self,
        model_name: str,
        messages: List[Message],
        tools: Optional[List[Dict[str, Any]]] = None,
    ) -> Dict[str, Any]:
        """Build the outbound request payload."""
        ...

    @abstractmethod
    def stream(self, payload: Dict[str, Any]) -> AsyncIterator[RawDelta]:
        """Issue the request and yield decoded deltas until the upstream turn ends."""
        ...

    @abstractmethod
    def tool_exchange(self, invocation: ToolInvocation, content: str) -> List[Dict[str, Any]]:
        """Records for 'assistant called this tool' and 'tool responded with content'."""
        ...

    @abstractmethod
    def list_models(self) -> List[str]:
        ...


class Tool(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @property
    @abstractmethod
    def descriptor(self) -> Any:
        ...

    @abstractmethod
    async def run(self, **kwargs: Any) -> Any:
        ...


class HistoryStore(ABC):
    @abstractmethod
    async def recent(self, conversation_id: str, limit: int) -> List[Message]:
        ...

    @abstractmethod
    async def append(self, conversation_id: str, message: Message) -> None:
        ...


class ProfileSource(ABC):
    @abstractmethod
    async def get_profile(self, user_id: str) -> Optional[ProfileContext]:
        ...


class TextExtractor(ABC):
    @abstractmethod
    def extract(self, attachment: Attachment) -> Optional[str]:
        """Return the attachment's text, or None when it has none to offer."""
        ...


class ObservabilitySink(ABC):
    @abstractmethod
    def tool_call(self, name: str, duration_ms: int, success: bool, error: Optional[str] = None) -> None:
        ...
