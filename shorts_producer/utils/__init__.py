"""
Utilities
=========

Helper functions and utilities for the Shorts Producer.
"""

from .media import (
    extension_for,
    parse_data_uri,
    to_data_uri,
    detect_image_mime,
    read_image_file,
    pcm_to_wav,
)
from .storage import ensure_dir, save_bytes

__all__ = [
    "extension_for",
    "parse_data_uri",
    "to_data_uri",
    "detect_image_mime",
    "read_image_file",
    "pcm_to_wav",
    "ensure_dir",
    "save_bytes",
]
