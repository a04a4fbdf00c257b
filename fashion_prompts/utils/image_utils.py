"""
Image payload utilities.

Jobs carry images as base64 strings, optionally wrapped in a data URL.
"""
from pathlib import Path
from typing import Optional
import base64
import binascii
import io
import mimetypes
import re

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE = "image/jpeg"

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

# Pillow format name -> MIME type
_FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def strip_data_url(image_base64: str) -> str:
    """Remove a `data:image/...;base64,` prefix if present."""
    return _DATA_URL_PREFIX.sub("", image_base64.strip())


def decode_image(image_base64: str) -> bytes:
    """Decode a (possibly data-URL wrapped) base64 image payload."""
    return base64.b64decode(strip_data_url(image_base64))


def detect_mime_type(image_base64: str, file_name: Optional[str] = None) -> str:
    """
    Determine the MIME type of an image payload.

    Content signature first, then the filename extension, then JPEG.
    """
    try:
        with Image.open(io.BytesIO(decode_image(image_base64))) as img:
            mime = _FORMAT_MIME_TYPES.get(img.format or "")
            if mime:
                return mime
    except (UnidentifiedImageError, binascii.Error, ValueError, OSError):
        pass

    if file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        if guessed and guessed.startswith("image/"):
            return guessed

    return DEFAULT_MIME_TYPE


def alternate_mime_type(mime_type: str) -> str:
    """MIME type to declare on the last-chance retry."""
    return "image/png" if mime_type == DEFAULT_MIME_TYPE else DEFAULT_MIME_TYPE


def reference_filename(mime_type: str) -> str:
    """Attachment filename for an uploaded reference image."""
    ext = mimetypes.guess_extension(mime_type) or ".jpg"
    if ext == ".jpe":
        ext = ".jpg"
    return f"reference{ext}"


def display_name(file_name: Optional[str], index: int) -> str:
    """Human label for a job's image."""
    if file_name:
        return Path(file_name).name
    return f"Image {index + 1}"
