from typing import Any, Dict

from relay_service.tools.base import BaseTool

ARTIFACT_TYPES = ("code", "document", "html", "image")


class CreateArtifactTool(BaseTool):
    """Create an artifact (code, document, HTML, etc.) that the user can view and use. Call this when the user asks you to create, write, or generate something they can open (e.g. a webpage, a script, a document)."""

    tool_name = "create_artifact"

    async def run(self, title: str, type: str, content: str) -> Dict[str, Any]:
        """
        Args:
            title: Short title for the artifact (e.g. 'Homepage', 'API script')
            type: One of: code, document, html, image
            content: Full content of the artifact (HTML, code, or markdown text)
        """
        return {
            "title": (title or "").strip()[:200] or "Untitled",
            "type": type if type in ARTIFACT_TYPES else "document",
            "content": content or "",
        }
