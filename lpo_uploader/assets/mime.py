"""Content-based MIME detection for uploaded documents.

Client-supplied content types are trusted unless they are missing or the
generic binary type; then magic bytes decide, then the file extension.
"""

from __future__ import annotations

import mimetypes

DEFAULT_MIME_TYPE = "application/octet-stream"

# File signatures (magic bytes)
_MAGIC_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF", "application/pdf"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"RIFF", "image/webp"),  # WebP (RIFF container)
]


def detect_mime(data: bytes, filename: str = "") -> str:
    """Detect MIME type from file content (magic bytes), not extension.

    Falls back to extension-based detection if magic bytes don't match.
    """
    for signature, mime_type in _MAGIC_SIGNATURES:
        if data[:len(signature)] == signature:
            # RIFF is only WebP when the form type says so
            if mime_type == "image/webp" and data[8:12] != b"WEBP":
                continue
            return mime_type

    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed

    return DEFAULT_MIME_TYPE


def resolve_mime(data: bytes, filename: str, declared: str | None) -> str:
    """Declared type when it is specific, otherwise detected."""
    declared = (declared or "").split(";", 1)[0].strip().lower()
    if declared and declared != DEFAULT_MIME_TYPE:
        return declared
    return detect_mime(data, filename)


def content_type_for(mime_type: str) -> str:
    """Shopify FileContentType for a MIME type."""
    return "IMAGE" if mime_type.startswith("image/") else "FILE"
