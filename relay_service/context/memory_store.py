"""Async in-memory history store implementing HistoryStore

Meant for development and single-process runs: history is lost on restart.
Only the `max_conversations` most recently used conversations are kept.
"""
import asyncio
from collections import OrderedDict
from typing import List

from relay_service.core.interfaces import HistoryStore
from relay_service.core.types import Message


class MemoryHistoryStore(HistoryStore):
    def __init__(self, max_messages: int = 200, max_conversations: int = 1000):
        self.conversations: "OrderedDict[str, List[Message]]" = OrderedDict()
        self.max_messages = max_messages
        self.max_conversations = max_conversations
        self._lock = asyncio.Lock()

    async def recent(self, conversation_id: str, limit: int) -> List[Message]:
        history = self.conversations.get(conversation_id, [])
        if limit and limit > 0:
            history = history[-limit:]
        return [dict(m) for m in history]

    async def append(self, conversation_id: str, message: Message) -> None:
        async with self._lock:
            history = self.conversations.setdefault(conversation_id, [])
            self.conversations.move_to_end(conversation_id)
            history.append(dict(message))
            if self.max_messages and len(history) > self.max_messages:
                del history[: len(history) - self.max_messages]
            while self.max_conversations and len(self.conversations) > self.max_conversations:
                self.conversations.popitem(last=False)
