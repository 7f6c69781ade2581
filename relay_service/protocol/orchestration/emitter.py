import json
from typing import Any, Dict

DONE_FRAME = b"data: [DONE]\n\n"


class SseEmitter:
    """Emitter producing server-sent event frames for the unified event schema"""

    def emit(self, event: Dict[str, Any]) -> bytes:
        out = {
            "type": str(event.get("type", "")),
            "data": event.get("data", {}),
        }
        return f"data: {json.dumps(out, ensure_ascii=False, default=str)}\n\n".encode("utf-8")

    def close(self) -> bytes:
        return DONE_FRAME
