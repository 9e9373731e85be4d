"""
Storage Utilities
=================

Helper functions for writing exported artifacts to disk.
"""

import logging
from pathlib import Path
from typing import Union

import aiofiles

from .media import format_file_size

logger = logging.getLogger(__name__)


def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


async def save_bytes(
    data: bytes,
    output_path: Union[str, Path],
) -> str:
    """
    Save raw bytes to a file without blocking the event loop.

    Args:
        data: Raw bytes
        output_path: Path to save to

    Returns:
        Path to the saved file
    """
    output_path = Path(output_path)
    ensure_dir(output_path.parent)

    async with aiofiles.open(output_path, "wb") as f:
        await f.write(data)

    logger.info(f"Saved {format_file_size(len(data))} to {output_path}")
    return str(output_path)
