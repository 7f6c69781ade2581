"""
web_fetch_tool.py - Fetch the text of a public http(s) URL for the model to read.
"""

from typing import Any, Dict
from urllib.parse import urlparse

import httpx

from relay_service.core.logging import logger
from relay_service.tools.base import BaseTool, clean_str, error

MAX_BODY_BYTES = 100_000
FETCH_TIMEOUT_SEC = 15.0
USER_AGENT = "relay-service/0.1"
ALLOWED_CONTENT_TYPES = ("text/html", "text/plain", "application/json")


def _size_label(n: int) -> str:
    return f"{n // 1000}KB" if n >= 1000 else f"{n} bytes"


class WebFetchTool(BaseTool):
    """Fetch and return the text content of a URL. Use for reading web pages, docs, APIs (JSON), or any public URL. Only supports http/https. Returns raw HTML/text; extract the relevant parts in your response."""

    tool_name = "web_fetch"

    def __init__(self, timeout: float = FETCH_TIMEOUT_SEC, max_bytes: int = MAX_BODY_BYTES):
        super().__init__()
        self.timeout = timeout
        self.max_bytes = max_bytes

    async def run(self, url: str) -> Dict[str, Any]:
        """
        Args:
            url: The full URL to fetch (must start with http:// or https://)
        """
        target = clean_str(url)
        if not target:
            return error("URL is required")
        if urlparse(target).scheme not in ("http", "https"):
            return error("Only http and https URLs are allowed")

        try:
            async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                async with client.stream("GET", target, headers={"User-Agent": USER_AGENT}) as response:
                    if response.status_code >= 400:
                        return error(f"HTTP {response.status_code}")
                    content_type = response.headers.get("content-type", "")
                    if not any(t in content_type for t in ALLOWED_CONTENT_TYPES):
                        return error(f"Unsupported content type: {content_type.split(';')[0]}")

                    body = bytearray()
                    truncated = False
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_bytes:
                            truncated = True
                            break
        except httpx.TimeoutException:
            return error("Fetch timed out")
        except httpx.HTTPError as e:
            logger.warning(f"web_fetch failed for {target[:80]}: {type(e).__name__}")
            return error("Fetch failed")

        content = bytes(body[: self.max_bytes]).decode("utf-8", errors="replace")
        if truncated:
            content += f"\n\n[Content truncated - response exceeded {_size_label(self.max_bytes)}]"
        return {"content": content}
