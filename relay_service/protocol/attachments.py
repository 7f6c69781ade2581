"""
Attachments for the latest user message.

Supported images are embedded as image_url parts. Everything else is folded into
the message text: extracted text when a TextExtractor can provide it, otherwise
a labeled placeholder.
"""

import base64
import binascii
import re
from typing import Any, Dict, List, Optional, Union

from relay_service.core.interfaces import TextExtractor
from relay_service.core.types import Attachment

IMAGE_MIME_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}
WORD_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}
MAX_EXTRACTED_CHARS = 30_000

_DATA_URL_PREFIX = re.compile(r"^data:[^;,]*(;[^,]*)?,")

ContentPart = Dict[str, Any]


def _text_mime(mime: str) -> bool:
    if not mime:
        return True
    return mime.startswith("text/") or any(t in mime for t in ("json", "xml", "csv"))


class DataUrlTextExtractor(TextExtractor):
    """Decode base64 data URLs whose mime type is textual (text/*, JSON, XML, CSV)."""

    def __init__(self, max_chars: int = MAX_EXTRACTED_CHARS):
        self.max_chars = max_chars

    def extract(self, attachment: Attachment) -> Optional[str]:
        mime = (attachment.mime_type or "").lower()
        if not _text_mime(mime):
            return None
        raw = _DATA_URL_PREFIX.sub("", attachment.data_url or "", count=1)
        try:
            text = base64.b64decode(raw, validate=False).decode("utf-8", errors="replace")
        except (binascii.Error, ValueError):
            return None
        return text[: self.max_chars] or None


def build_multimodal_content(
    user_text: str,
    attachments: Optional[List[Attachment]],
    extractor: Optional[TextExtractor] = None,
) -> Union[str, List[ContentPart]]:
    """Message content for the latest user message: a plain string, or [text part, image parts...]."""
    if not attachments:
        return user_text

    extractor = extractor or DataUrlTextExtractor()
    text = (user_text or "").strip()
    images: List[ContentPart] = []

    for a in attachments:
        mime = (a.mime_type or "").lower()
        if mime in IMAGE_MIME_TYPES:
            images.append({"type": "image_url", "image_url": {"url": a.data_url}})
            continue
        if mime == "application/pdf":
            text += f"\n\n[Attached: {a.name} (PDF)]"
        elif mime in WORD_MIME_TYPES:
            text += f"\n\n[Attached: {a.name} (Word document)]"
        else:
            doc = extractor.extract(a)
            if doc:
                text += f"\n\n[Document: {a.name}]\n{doc[:MAX_EXTRACTED_CHARS]}"
            else:
                text += f"\n\n[Attached file: {a.name}]"

    if not images:
        return text
    return [{"type": "text", "text": text}, *images]
