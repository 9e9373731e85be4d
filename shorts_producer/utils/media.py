"""
Media Utilities
===============

Helper functions for MIME types, data URIs, image sniffing and audio wrapping.
"""

import base64
import io
import logging
import re
import wave
from pathlib import Path
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)


MIME_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/wave": "wav",
    "audio/mpeg": "mp3",
    "audio/mp3": "mp3",
    "audio/ogg": "ogg",
    "audio/l16": "pcm",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/quicktime": "mov",
}

_DATA_URI = re.compile(r"^data:(?P<mime>[\w.+\-/]+(?:;[\w\-]+=[\w\-]+)*)?;base64,(?P<data>.*)$", re.DOTALL)


def base_mime(mime_type: str) -> str:
    """Strip parameters from a MIME type (``audio/L16;rate=24000`` -> ``audio/l16``)."""
    return (mime_type or "").split(";", 1)[0].strip().lower()


def extension_for(mime_type: str, default: str = "bin") -> str:
    """File extension (without dot) for a MIME type."""
    return MIME_EXTENSIONS.get(base_mime(mime_type), default)


def parse_data_uri(uri: str) -> Tuple[bytes, str]:
    """
    Decode a ``data:<mime>;base64,<payload>`` URI.

    Returns:
        Tuple of (raw bytes, mime type)
    """
    match = _DATA_URI.match(uri.strip())
    if not match:
        raise ValidationError("Not a base64 data URI", field="uri", value=uri[:40])
    try:
        data = base64.b64decode(match.group("data"), validate=True)
    except ValueError as e:
        raise ValidationError(f"Invalid base64 payload: {e}", field="uri")
    return data, match.group("mime") or "application/octet-stream"


def to_data_uri(data: bytes, mime_type: str) -> str:
    """Encode raw bytes as a data URI."""
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('utf-8')}"


def detect_image_mime(data: bytes) -> str:
    """
    Confirm ``data`` is a decodable image and return its MIME type.

    Raises:
        ValidationError: If Pillow cannot identify the payload as an image
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValidationError(f"Not a valid image: {e}", field="image")

    mime_type = Image.MIME.get(image_format or "")
    if not mime_type:
        raise ValidationError(f"Unsupported image format: {image_format}", field="image")
    return mime_type


def read_image_file(image_path: Union[str, Path]) -> Tuple[bytes, str]:
    """
    Read an image file, validating it with Pillow.

    Returns:
        Tuple of (raw bytes, mime type)
    """
    path = Path(image_path)
    if not path.exists():
        raise ValidationError(f"Image not found: {image_path}", field="image_path", value=str(image_path))

    data = path.read_bytes()
    return data, detect_image_mime(data)


def pcm_sample_rate(mime_type: str, default: int = 24000) -> int:
    """Read the ``rate=`` parameter of a raw PCM MIME type."""
    match = re.search(r"rate=(\d+)", mime_type or "")
    return int(match.group(1)) if match else default


def pcm_to_wav(
    pcm: bytes,
    sample_rate: int = 24000,
    channels: int = 1,
    sample_width: int = 2,
) -> bytes:
    """
    Wrap raw little-endian PCM samples in a WAV container.

    Args:
        pcm: Raw sample bytes
        sample_rate: Samples per second
        channels: Channel count
        sample_width: Bytes per sample

    Returns:
        WAV file bytes
    """
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm)
    return buffer.getvalue()


def format_file_size(size_bytes: float) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ["B", "KB", "MB", "GB"]:
        if size_bytes < 1024:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024
    return f"{size_bytes:.1f} TB"
