"""
web_search_tool.py - Google web and image search through SerpApi.
"""

from typing import Any, Dict, Optional

from relay_service.tools.base import BaseTool, clean_str, error
from relay_service.tools.serpapi_client import SerpApiClient, SerpApiError, get_client

MAX_RESULTS = 5


class WebSearchTool(BaseTool):
    """Search the web for information, news, and current events."""

    tool_name = "google_search"

    def __init__(self, client: Optional[SerpApiClient] = None):
        super().__init__()
        self._client = client

    async def run(self, query: str) -> Dict[str, Any]:
        """
        Args:
            query: The search query
        """
        q = clean_str(query)
        if not q:
            return error("Search query is required")
        try:
            data = await get_client(self._client).search("google", q=q, google_domain="google.com")
        except (ValueError, SerpApiError) as e:
            return error(str(e))

        organic = data.get("organic_results") or []
        return {
            "results": [
                {
                    "title": r.get("title", ""),
                    "link": r.get("link", ""),
                    "snippet": r.get("snippet", ""),
                }
                for r in organic[:MAX_RESULTS]
            ]
        }


class ImageSearchTool(BaseTool):
    """Search for images."""

    tool_name = "google_image_search"

    def __init__(self, client: Optional[SerpApiClient] = None):
        super().__init__()
        self._client = client

    async def run(self, query: str) -> Dict[str, Any]:
        """
        Args:
            query: Image search query
        """
        q = clean_str(query)
        if not q:
            return error("Image search query is required")
        try:
            data = await get_client(self._client).search("google_images", q=q)
        except (ValueError, SerpApiError) as e:
            return error(str(e))

        raw = data.get("images_results") or []
        return {
            "images": [
                {
                    "title": img.get("title", ""),
                    "url": img.get("original") or img.get("thumbnail") or "",
                    "thumbnail": img.get("thumbnail") or img.get("original") or "",
                }
                for img in raw[:MAX_RESULTS]
            ]
        }
