"""Base64 image payload helpers.

Images travel between the editor and the providers either as bare base64
or as ``data:image/<type>;base64,<payload>`` URIs.
"""

from __future__ import annotations

import re
from typing import NamedTuple

DATA_URL_RE = re.compile(r"data:image/[a-zA-Z0-9.+-]+;base64,([A-Za-z0-9+/=_-]+)")
_FULL_DATA_URL_RE = re.compile(r"^data:image/([a-zA-Z0-9.+-]+);base64,([A-Za-z0-9+/=_-]+)$")
_ANY_DATA_PREFIX_RE = re.compile(r"^data:.*?base64,")
_BASE64_BLOB_RE = re.compile(r"^[A-Za-z0-9+/=_-]+$")
_WHITESPACE_RE = re.compile(r"\s+")

# Free text shorter than this is never treated as a bare base64 image.
MIN_BASE64_BLOB_LENGTH = 200
DEFAULT_MIME_TYPE = "image/png"


class NormalizedImage(NamedTuple):
    mime_type: str
    base64: str


def looks_like_base64(value: str) -> bool:
    if len(value) < MIN_BASE64_BLOB_LENGTH:
        return False
    return bool(_BASE64_BLOB_RE.match(value))


def extract_base64_image_from_text(text: str | None) -> str | None:
    """Salvage an image payload embedded in free-text model output.

    Returns the payload of the first data URI found in ``text``; failing
    that, the whole trimmed text if it is a self-contained base64 blob.
    """
    if not text:
        return None

    for match in DATA_URL_RE.finditer(text):
        payload = _WHITESPACE_RE.sub("", match.group(1))
        if payload:
            return payload

    trimmed = text.strip()
    if looks_like_base64(trimmed):
        return _WHITESPACE_RE.sub("", trimmed)
    return None


def normalize_image_input(image_data: str) -> NormalizedImage:
    """Split a data URI (or bare base64) into mime type and payload."""
    trimmed = image_data.strip()
    match = _FULL_DATA_URL_RE.match(trimmed)
    if match:
        return NormalizedImage(mime_type=f"image/{match.group(1)}", base64=match.group(2))
    return NormalizedImage(
        mime_type=DEFAULT_MIME_TYPE,
        base64=_ANY_DATA_PREFIX_RE.sub("", trimmed),
    )


def to_data_url(base64_data: str, mime_type: str = DEFAULT_MIME_TYPE) -> str:
    return f"data:{mime_type};base64,{base64_data}"
