"""
serpapi_client.py - SerpApi (Google search engines) client wrapper.

Provides an async HTTP client for https://serpapi.com with:
- Separate connect/read timeouts
- Exponential backoff retry logic (429, 5xx only)
- Security: no API keys or full responses in logs
"""

import asyncio
import os
import time
from typing import Any, Dict, Optional

import httpx

from relay_service.core.logging import logger


class SerpApiError(Exception):
    """Non-retryable SerpApi failure with a user-safe message."""


class SerpApiClient:
    """Async client for the SerpApi JSON endpoint shared by all Google engines."""

    BASE_URL = "https://serpapi.com/search.json"

    def __init__(
        self,
        api_key: str,
        connect_timeout: float = 3.0,
        read_timeout: float = 15.0,
        max_retries: int = 2,
        backoff_base: float = 0.5,
    ):
        if not api_key:
            raise ValueError("API key cannot be empty")
        self.api_key = api_key
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self.timeout = httpx.Timeout(connect=connect_timeout, read=read_timeout, write=5.0, pool=5.0)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "SerpApiClient":
        api_key = os.getenv("SERPAPI_API_KEY", "")
        if not api_key:
            raise ValueError("SERPAPI_API_KEY not configured")
        return cls(api_key=api_key, **kwargs)

    async def search(self, engine: str, **params: Any) -> Dict[str, Any]:
        """
        Run one SerpApi query and return the decoded JSON body.

        Raises:
            SerpApiError: for API-reported errors and non-retryable statuses
            httpx.HTTPStatusError: when 429/5xx persist after all retries
        """
        query = {"engine": engine, "hl": "en", "gl": "us", **params, "api_key": self.api_key}
        start = time.time()
        attempt = 0

        while True:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.BASE_URL, params=query)

            logger.info(
                f"SerpApi response: engine={engine}, status={response.status_code}, "
                f"latency={int((time.time() - start) * 1000)}ms, attempt={attempt + 1}"
            )

            if response.status_code == 200:
                data = response.json()
                if data.get("error"):
                    message = data["error"] if isinstance(data["error"], str) else "Search failed"
                    raise SerpApiError(message)
                if (data.get("search_metadata") or {}).get("status") == "Error":
                    raise SerpApiError("Search temporarily unavailable. Please try again in a moment.")
                return data

            if response.status_code == 429 or response.status_code >= 500:
                if attempt < self.max_retries:
                    delay = self.backoff_base * (2 ** attempt)
                    logger.warning(
                        f"SerpApi status {response.status_code} - attempt {attempt + 1}/{self.max_retries + 1}, "
                        f"retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue
                response.raise_for_status()

            if response.status_code in (401, 403):
                logger.error(f"SerpApi authentication failed ({response.status_code}) - check SERPAPI_API_KEY")
                raise SerpApiError("Search provider authentication failed.")

            logger.error(f"SerpApi client error ({response.status_code}): {response.text[:100]}")
            raise SerpApiError(f"SerpApi error: {response.status_code}")


def get_client(client: Optional[SerpApiClient] = None) -> SerpApiClient:
    return client or SerpApiClient.from_env()
