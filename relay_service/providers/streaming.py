import asyncio
from typing import Any, AsyncIterator

import httpx

from relay_service.core.errors import TransportError
from relay_service.core.logging import logger
from relay_service.protocol.parsers.sse import SseDecoder

ERROR_BODY_LOG_CHARS = 500


async def iter_sse_payloads(
    client: httpx.AsyncClient,
    request: httpx.Request,
    connect_timeout: float = 60.0,
    read_timeout: float = 30.0,
    service: str = "model service",
) -> AsyncIterator[Any]:
    """
    Send `request` and yield the JSON payload of every `data:` line in the streamed body.

    - Waiting for response headers is bounded by connect_timeout
    - Each body chunk is bounded by read_timeout; a stall after some data has
      arrived ends the stream, a stall before any data is a TransportError
    - Non-2xx responses raise TransportError; the body is logged, never returned
    - The response is closed however iteration ends
    """
    try:
        response = await asyncio.wait_for(client.send(request, stream=True), timeout=connect_timeout)
    except asyncio.TimeoutError:
        logger.error(f"{service}: no response headers within {connect_timeout:g}s")
        raise TransportError(f"The {service} did not respond in time.")
    except httpx.HTTPError as e:
        logger.error(f"{service}: request failed: {type(e).__name__}: {e}")
        raise TransportError(f"Could not reach the {service}.")

    decoder = SseDecoder()
    try:
        if not response.is_success:
            try:
                body = await asyncio.wait_for(response.aread(), timeout=read_timeout)
            except (asyncio.TimeoutError, httpx.HTTPError):
                body = b""
            text = body.decode("utf-8", errors="replace")
            logger.error(f"{service}: HTTP {response.status_code}: {text[:ERROR_BODY_LOG_CHARS]}")
            raise TransportError(
                f"The {service} returned an error (HTTP {response.status_code}).",
                status_code=response.status_code,
            )

        chunks = response.aiter_bytes()
        while not decoder.done:
            try:
                chunk = await asyncio.wait_for(chunks.__anext__(), timeout=read_timeout)
            except StopAsyncIteration:
                break
            except asyncio.TimeoutError:
                if decoder.bytes_received == 0:
                    logger.error(f"{service}: no data within {read_timeout:g}s")
                    raise TransportError(f"The {service} stopped responding.")
                logger.warning(f"{service}: stream stalled for {read_timeout:g}s, treating as end of stream")
                break
            except httpx.HTTPError as e:
                if decoder.bytes_received == 0:
                    logger.error(f"{service}: read failed: {type(e).__name__}: {e}")
                    raise TransportError(f"The {service} connection was interrupted.")
                logger.warning(f"{service}: read failed mid-stream ({type(e).__name__}), treating as end of stream")
                break
            for payload in decoder.feed(chunk):
                yield payload

        for payload in decoder.finish():
            yield payload
    finally:
        await response.aclose()
