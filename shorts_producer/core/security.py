"""
Security Utilities
==================

Input sanitization and secret redaction.
"""

import re
import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str, max_length: int = 120) -> str:
    """
    Sanitize a filename by removing dangerous characters.

    Whitespace runs collapse to a single underscore, so a package title such
    as ``"AI Beats  Chess"`` becomes ``"AI_Beats_Chess"``.

    Args:
        filename: Original filename
        max_length: Maximum allowed length

    Returns:
        Sanitized filename safe for filesystem operations
    """
    if not filename:
        return "unnamed"

    # Keep: alphanumeric, underscore, hyphen, dot, space
    sanitized = re.sub(r"[^\w\-. ]", "_", filename)

    # Remove multiple consecutive underscores/spaces
    sanitized = re.sub(r"[_\s]+", "_", sanitized)

    # Remove leading/trailing special characters
    sanitized = sanitized.strip("._- ")

    # Truncate if too long (preserve extension)
    if len(sanitized) > max_length:
        name = Path(sanitized).stem
        ext = Path(sanitized).suffix
        max_name_len = max_length - len(ext)
        sanitized = name[:max_name_len] + ext

    if not sanitized or sanitized in (".", ".."):
        sanitized = "unnamed"

    return sanitized


def sanitize_prompt(prompt: str, max_length: int = 4000) -> str:
    """
    Sanitize a prompt string before it is sent to the generation service.

    Args:
        prompt: Prompt text (often produced by an earlier generation step)
        max_length: Maximum allowed length

    Returns:
        Sanitized prompt string
    """
    if not prompt:
        return ""

    # Remove control characters
    sanitized = "".join(char for char in prompt if char.isprintable() or char in "\n\t")

    injection_patterns = [
        r"ignore previous instructions",
        r"disregard above",
        r"\[INST\]",
        r"\[/INST\]",
        r"<\|im_start\|>",
        r"<\|im_end\|>",
    ]

    for pattern in injection_patterns:
        sanitized = re.sub(pattern, "", sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]
        logger.warning(f"Prompt truncated from {len(prompt)} to {max_length} characters")

    return sanitized.strip()


def redact_api_key(text: str) -> str:
    """
    Redact API keys and sensitive tokens from text.

    Args:
        text: Text that might contain API keys

    Returns:
        Text with API keys redacted
    """
    if not text:
        return text

    patterns = [
        # Google API keys
        (r"AIza[A-Za-z0-9_\-]{35}", "AIza***REDACTED***"),
        # Key passed as query parameter
        (r"([?&]key=)[^&\s'\"]+", r"\1***REDACTED***"),
        # Header form
        (r"(x-goog-api-key['\"]?\s*[:=]\s*['\"]?)[A-Za-z0-9_\-]+", r"\1***REDACTED***"),
        # Environment variable patterns
        (r"(GEMINI_API_KEY|GOOGLE_API_KEY)=[^\s]+", r"\1=***REDACTED***"),
    ]

    result = text
    for pattern, replacement in patterns:
        result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)

    return result
