"""
Custom validators
"""
from typing import Any, Dict, List, Optional

from app.core.config import settings
from app.utils.exceptions import ValidationFailedError


def validate_message_content(text: Optional[str], attachments: Optional[List[Dict[str, Any]]]) -> str:
    """
    A message needs text or at least one attachment.
    Returns the stripped text.
    """
    clean = (text or "").strip()
    if not clean and not attachments:
        raise ValidationFailedError("Message must contain text or at least one attachment")
    return clean


def validate_attachments(attachments: Optional[List[Dict[str, Any]]]) -> List[Dict[str, str]]:
    """
    Attachment descriptors must be {name, url, type} with non-empty values.
    Returns normalized copies (extra keys dropped).
    """
    items = attachments or []
    if len(items) > settings.ATTACHMENT_MAX_PER_MESSAGE:
        raise ValidationFailedError(
            f"At most {settings.ATTACHMENT_MAX_PER_MESSAGE} attachments per message"
        )

    normalized: List[Dict[str, str]] = []
    for index, item in enumerate(items):
        name = str(item.get("name") or "").strip()
        url = str(item.get("url") or "").strip()
        media_type = str(item.get("type") or "").strip()
        if not name or not url or not media_type:
            raise ValidationFailedError(f"Attachment {index} must have name, url and type")
        if not url.startswith(("https://", "http://")):
            raise ValidationFailedError(f"Attachment {index} has an invalid url")
        normalized.append({"name": name, "url": url, "type": media_type})
    return normalized


def validate_attachment_size(file_size: int) -> bool:
    """Reject uploads over the per-file limit before anything is signed"""
    if file_size <= 0:
        raise ValidationFailedError("File size must be positive")
    if file_size > settings.ATTACHMENT_MAX_BYTES:
        limit_mb = settings.ATTACHMENT_MAX_BYTES // (1024 * 1024)
        raise ValidationFailedError(f"File exceeds {limit_mb}MB limit")
    return True


def require_text(value: Optional[str], field: str) -> str:
    """Non-blank required string"""
    clean = (value or "").strip()
    if not clean:
        raise ValidationFailedError(f"{field} is required")
    return clean
