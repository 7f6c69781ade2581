import codecs
import json
from typing import Any, List

from relay_service.core.logging import logger


class SseDecoder:
    """
    Incremental decoder for `data: <json>` server-sent event streams.
    - Accepts raw byte chunks cut at arbitrary points (including inside a
      multi-byte UTF-8 character) and yields the same payloads regardless of
      where the cuts fall
    - Only complete lines are processed; the remainder waits for the next chunk
    - The sentinel payload (`[DONE]`) stops decoding and drops anything after it
    - A payload that is not valid JSON is skipped
    """

    def __init__(self, prefix: str = "data:", sentinel: str = "[DONE]"):
        self.prefix = prefix
        self.sentinel = sentinel
        self.done = False
        self.bytes_received = 0
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buf = ""

    def feed(self, chunk: bytes) -> List[Any]:
        if self.done or not chunk:
            return []
        self.bytes_received += len(chunk)
        self._buf += self._decoder.decode(chunk)
        return self._drain()

    def finish(self) -> List[Any]:
        """Flush at end of stream. A trailing line without a newline is discarded."""
        if self.done:
            return []
        self._buf += self._decoder.decode(b"", final=True)
        payloads = self._drain()
        if self._buf.strip():
            logger.debug(f"SSE: discarding incomplete trailing line ({len(self._buf)} chars)")
        self._buf = ""
        self.done = True
        return payloads

    def _drain(self) -> List[Any]:
        payloads: List[Any] = []
        while not self.done:
            nl = self._buf.find("\n")
            if nl == -1:
                break
            line = self._buf[:nl].rstrip("\r")
            self._buf = self._buf[nl + 1 :]

            if not line.startswith(self.prefix):
                # blank separators, comments and other fields (event:, id:, retry:)
                continue
            data = line[len(self.prefix) :].strip()
            if not data:
                continue
            if data == self.sentinel:
                self.done = True
                self._buf = ""
                break
            try:
                payloads.append(json.loads(data))
            except json.JSONDecodeError:
                logger.debug(f"SSE: skipping malformed frame: {data[:120]}")
        return payloads
