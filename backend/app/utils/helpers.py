"""
Utility helper functions
"""
from datetime import datetime, timezone
import re
import secrets


def utcnow() -> datetime:
    """Naive UTC timestamp (columns are TIMESTAMP WITHOUT TIME ZONE)"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def random_suffix(length: int = 7) -> str:
    """Short lowercase alphanumeric suffix for write-once object keys"""
    alphabet = "abcdefghijklmnopqrstuvwxyz0123456789"
    return "".join(secrets.choice(alphabet) for _ in range(length))


def safe_path_segment(value: str) -> str:
    """Strip anything that is not safe inside an S3 key segment"""
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", (value or "").strip())
    return cleaned[:120] or "unknown"


def file_extension(filename: str) -> str:
    """Lowercased extension without the dot, or empty string"""
    name = (filename or "").strip()
    if "." not in name:
        return ""
    ext = name.rsplit(".", 1)[-1].lower()
    return re.sub(r"[^a-z0-9]", "", ext)[:16]
