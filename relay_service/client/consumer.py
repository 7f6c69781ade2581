"""
Client side of the engine's event stream.

StreamConsumer posts a chat request, decodes the `data:` frames with the same
SseDecoder the engine uses upstream, and enforces a hard wall-clock limit on
the whole turn.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from relay_service.core.errors import RelayStreamError
from relay_service.core.logging import logger
from relay_service.core.types import Event, StreamEvent
from relay_service.protocol.parsers.sse import SseDecoder

API_BASE_URL = "http://127.0.0.1:8080/api/v1"
STREAM_PATH = "/chat/stream"
WALL_TIMEOUT_SEC = 90.0


@dataclass
class TurnTranscript:
    text: str = ""
    statuses: List[str] = field(default_factory=list)
    payloads: List[Dict[str, Any]] = field(default_factory=list)
    artifacts: List[Dict[str, Any]] = field(default_factory=list)
    done: bool = False
    truncated: bool = False
    usage: Dict[str, int] = field(default_factory=dict)
    timed_out: bool = False


class StreamConsumer:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        wall_timeout: float = WALL_TIMEOUT_SEC,
        connect_timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.wall_timeout = wall_timeout
        self.connect_timeout = connect_timeout
        self.transport = transport
        self.timed_out = False

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, transport=self.transport, timeout=timeout)

    async def list_models(self) -> List[str]:
        async with self._client(httpx.Timeout(self.connect_timeout)) as client:
            try:
                response = await client.get("/models")
                response.raise_for_status()
            except httpx.HTTPError as e:
                raise RelayStreamError(f"Could not list models: {e}")
            return list(response.json())

    def _stop_on_deadline(self) -> None:
        self.timed_out = True
        logger.warning(f"Stream exceeded the {self.wall_timeout:g}s wall-clock limit; closing connection")

    @staticmethod
    def _checked(event: Any) -> Optional[Event]:
        if not isinstance(event, dict):
            return None
        if event.get("type") == StreamEvent.ERROR:
            raise RelayStreamError((event.get("data") or {}).get("message") or "The relay service reported an error.")
        return event

    async def events(self, body: Dict[str, Any]) -> AsyncIterator[Event]:
        """POST `body` to the stream endpoint and yield events until [DONE], EOF or the deadline."""
        self.timed_out = False
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.wall_timeout

        async with self._client(httpx.Timeout(self.connect_timeout, read=None)) as client:
            request = client.build_request("POST", STREAM_PATH, json=body, headers={"Accept": "text/event-stream"})
            try:
                response = await asyncio.wait_for(client.send(request, stream=True), timeout=self.wall_timeout)
            except asyncio.TimeoutError:
                self._stop_on_deadline()
                return
            except httpx.HTTPError as e:
                raise RelayStreamError(f"Could not reach the relay service at {self.base_url}: {e}")

            try:
                if response.status_code >= 400:
                    await response.aread()
                    try:
                        detail = response.json().get("detail")
                    except ValueError:
                        detail = response.text[:200]
                    raise RelayStreamError(f"HTTP {response.status_code}: {detail}")

                decoder = SseDecoder()
                chunks = response.aiter_bytes()
                while not decoder.done:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        self._stop_on_deadline()
                        return
                    try:
                        chunk = await asyncio.wait_for(chunks.__anext__(), timeout=remaining)
                    except StopAsyncIteration:
                        break
                    except asyncio.TimeoutError:
                        self._stop_on_deadline()
                        return
                    for raw in decoder.feed(chunk):
                        event = self._checked(raw)
                        if event:
                            yield event
                for raw in decoder.finish():
                    event = self._checked(raw)
                    if event:
                        yield event
            finally:
                await response.aclose()

    async def collect(self, body: Dict[str, Any]) -> TurnTranscript:
        """Fold one whole turn into a transcript."""
        transcript = TurnTranscript()
        async for event in self.events(body):
            kind = event.get("type")
            data = event.get("data") or {}
            if kind == StreamEvent.TEXT:
                transcript.text += data.get("delta", "")
            elif kind == StreamEvent.STATUS:
                transcript.statuses.append(data.get("label", ""))
            elif kind == StreamEvent.PAYLOAD:
                transcript.payloads.append(data)
            elif kind == StreamEvent.ARTIFACT:
                transcript.artifacts.append(data)
            elif kind == StreamEvent.DONE:
                transcript.done = True
                transcript.truncated = bool(data.get("truncated"))
                transcript.usage = dict(data.get("usage") or {})
        transcript.timed_out = self.timed_out
        return transcript
