"""
DANGIT Backend — Content Variants
===================================

What:  One immutable dataclass per content kind (image, url, text) and the
       parser that builds them from request payloads.
Why:   The extractor and orchestrator `match` on the variant instead of
       comparing contentType strings, so every kind is handled explicitly.

Image trust model:
    The data-URL prefix is only a claim. The decoded bytes are sniffed with
    libmagic (python-magic) and the detected type is what the rest of the
    system sees: it picks the stored file extension and the Content-Type the
    file is later served with. A payload whose bytes are not a supported
    image, or disagree with the declared type, is rejected.
"""

import base64
import binascii
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import magic

from dangit.config import settings
from dangit.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

CONTENT_TYPES = ("image", "url", "text")

# Detected MIME type → extension the blob is stored under
ALLOWED_IMAGE_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

# Reverse map used when serving stored blobs
MEDIA_TYPES_BY_EXTENSION = {ext: mime for mime, ext in ALLOWED_IMAGE_TYPES.items()}

# Non-canonical names browsers put in data URLs
DECLARED_ALIASES = {"image/jpg": "image/jpeg", "image/pjpeg": "image/jpeg"}

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+);base64,", re.IGNORECASE)


@dataclass(frozen=True)
class ImageContent:
    data: bytes
    mime_type: str
    # Encoded payload as submitted; its length drives the size estimate
    payload: str

    @property
    def approximate_size(self) -> int:
        return round(len(self.payload) * 0.75)

    @property
    def extension(self) -> str:
        return ALLOWED_IMAGE_TYPES.get(self.mime_type, ".png")


@dataclass(frozen=True)
class UrlContent:
    url: str
    title: str = ""
    description: str = ""
    thumbnail: Optional[str] = None
    author: Optional[str] = None
    platform: Optional[str] = None
    post_type: Optional[str] = None
    post_id: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v not in (None, "")}


@dataclass(frozen=True)
class TextContent:
    text: str


Content = Union[ImageContent, UrlContent, TextContent]


def detect_image_type(data: bytes) -> str:
    """
    Sniff the real MIME type from the leading bytes.

    Raises:
        ValidationError: the bytes are not a supported image.
        FileStorageError: libmagic itself failed.
    """
    try:
        detected = magic.from_buffer(data, mime=True)
    except magic.MagicException as e:
        logger.error("MIME type detection failed: %s", e)
        raise FileStorageError(
            message="Could not verify image type. Please try again.",
            context={"error": str(e)},
        )

    if detected not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            message=f"Image content type '{detected}' is not supported. The file must be a PNG, JPEG, WebP or GIF.",
            field="content",
            context={"detected_mime": detected, "allowed": sorted(ALLOWED_IMAGE_TYPES)},
        )
    return detected


def parse_image(payload: str) -> ImageContent:
    """
    Decode a data URL (`data:image/png;base64,...`) or bare base64 string.

    Order of checks:
        1. declared type (data-URL prefix) is on the allow-list
        2. payload is valid base64 and not empty
        3. decoded size is within MAX_IMAGE_SIZE
        4. magic bytes name a supported image that agrees with the declared type

    Raises:
        ValidationError: not base64, empty, unsupported type, type mismatch, or too large.
    """
    if not isinstance(payload, str) or not payload.strip():
        raise ValidationError(message="Image data is required", field="content")

    payload = payload.strip()
    declared: Optional[str] = None
    encoded = payload
    match = _DATA_URL_RE.match(payload)
    if match:
        declared = DECLARED_ALIASES.get(match.group("mime").lower(), match.group("mime").lower())
        encoded = payload[match.end():]

    if declared is not None and declared not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(
            message=(
                f"Image type '{declared}' is not supported. "
                f"Allowed: {', '.join(sorted(ALLOWED_IMAGE_TYPES))}"
            ),
            field="content",
        )

    try:
        data = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError(message="Image data is not valid base64", field="content")

    if not data:
        raise ValidationError(message="Image data is empty", field="content")

    if len(data) > settings.max_image_size:
        max_mb = settings.max_image_size / (1024 * 1024)
        raise ValidationError(
            message=f"Image exceeds the maximum size of {max_mb:.0f}MB",
            field="content",
            context={"size": len(data)},
        )

    detected = detect_image_type(data)
    if declared is not None and declared != detected:
        raise ValidationError(
            message=f"Image data is '{detected}' but was sent as '{declared}'",
            field="content",
            context={"declared_mime": declared, "detected_mime": detected},
        )

    return ImageContent(data=data, mime_type=detected, payload=payload)


def parse_text(text: str) -> TextContent:
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(message="Note text is required", field="content")
    if len(text) > settings.max_text_length:
        raise ValidationError(
            message=f"Note is too long (maximum {settings.max_text_length} characters)",
            field="content",
            context={"length": len(text)},
        )
    return TextContent(text=text)


def parse_url(content: Union[str, Dict[str, Any]]) -> UrlContent:
    """Accepts a bare URL or a resolved struct ({title, description, url, ...})."""
    if isinstance(content, dict):
        url = str(content.get("url") or "").strip()
        if not url:
            raise ValidationError(message="URL is required", field="content")
        return UrlContent(
            url=url,
            title=str(content.get("title") or ""),
            description=str(content.get("description") or ""),
            thumbnail=content.get("thumbnail"),
            author=content.get("author"),
            platform=content.get("platform"),
            post_type=content.get("post_type"),
            post_id=content.get("post_id"),
        )
    if not isinstance(content, str) or not content.strip():
        raise ValidationError(message="URL is required", field="content")
    return UrlContent(url=content.strip())


def parse_content(content: Any, content_type: str) -> Content:
    """Build the variant for a declared content type."""
    if content_type == "image":
        return parse_image(content)
    if content_type == "url":
        return parse_url(content)
    if content_type == "text":
        return parse_text(content)
    raise ValidationError(
        message=f"Unsupported contentType '{content_type}'. Expected one of: {', '.join(CONTENT_TYPES)}",
        field="contentType",
    )


def content_type_of(content: Content) -> str:
    match content:
        case ImageContent():
            return "image"
        case UrlContent():
            return "url"
        case TextContent():
            return "text"
    raise TypeError(f"Unknown content variant: {type(content).__name__}")
