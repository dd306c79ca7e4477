"""
Input hygiene and access control for the classification pipeline.

Text is cleaned before it is sent to an inference backend, image URLs are
checked before the NSFW classifier considers them, and the HTTP surface is
guarded by an optional shared API key.
"""

import hashlib
import hmac
import re
from typing import Optional

from fastapi import Header

from moderation_pipeline.core.config import settings
from moderation_pipeline.core.exceptions import AuthenticationException

SUPPORTED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff")
MAX_IMAGE_URL_LENGTH = 2048  # characters for image URLs


def sanitize_input(text: str) -> str:
    """
    Strip control characters and collapse long whitespace runs.

    Args:
        text: Raw user text

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    text = text.replace('\x00', '')

    # Remove control characters except newlines and tabs
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)

    # Limit consecutive whitespace
    text = re.sub(r'\s{3,}', '  ', text)

    return text.strip()


def truncate_content(text: str, max_chars: int) -> str:
    """Cut text to ``max_chars``, preferring the last word boundary."""
    if len(text) <= max_chars:
        return text

    cut = text[:max_chars]
    boundary = cut.rfind(" ")
    if boundary > max_chars // 2:
        cut = cut[:boundary]
    return cut.rstrip()


def is_supported_image_url(url: str) -> bool:
    """
    Check whether a URL points at an image format the NSFW backends accept.

    Args:
        url: Upload URL

    Returns:
        True if the URL is an http(s) URL with a supported image extension
    """
    if not url or not url.strip():
        return False

    if len(url) > MAX_IMAGE_URL_LENGTH:
        return False

    if not re.match(r'^https?://[^\s/$.?#].[^\s]*$', url):
        return False

    path = url.split("?", 1)[0].lower()
    return path.endswith(SUPPORTED_IMAGE_EXTENSIONS)


def create_content_hash(content: str) -> str:
    """SHA256 of the content, logged instead of the raw text."""
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def require_api_key(x_api_key: Optional[str] = Header(default=None)) -> None:
    """
    FastAPI dependency enforcing the shared API key when one is configured.

    Raises:
        AuthenticationException: If the key is configured and the header differs
    """
    if not settings.api_key:
        return

    if not x_api_key or not hmac.compare_digest(x_api_key, settings.api_key):
        raise AuthenticationException()
