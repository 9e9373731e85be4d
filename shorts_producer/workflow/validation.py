"""
Response Validation
===================

Shape checks at the gateway boundary. Raw payloads are either turned into
complete domain records or rejected with ``MalformedResponse``; nothing
partially shaped reaches the aggregate.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import IdeationOption, NewsItem, ReferenceCandidate, ScriptPackage, Segment, new_id
from ..api.base import BinaryRef
from ..core.exceptions import MalformedResponse

logger = logging.getLogger(__name__)


def _reject(message: str, field: str, operation: str, constraint: Optional[str] = None) -> MalformedResponse:
    logger.error(f"Malformed {operation} response: {message}")
    return MalformedResponse(message, field=field, constraint=constraint, operation=operation)


def _require_list(raw: Any, field: str, operation: str) -> List[Any]:
    if not isinstance(raw, list):
        raise _reject(f"{field} is not a list", field, operation)
    return raw


def _require_str(item: Any, key: str, where: str, operation: str, optional: bool = False) -> str:
    if not isinstance(item, dict):
        raise _reject(f"{where} is not an object", where, operation)
    value = item.get(key)
    if optional and (value is None or value == ""):
        return ""
    if not isinstance(value, str) or not value.strip():
        raise _reject(f"{where}.{key} is missing or empty", f"{where}.{key}", operation)
    return value.strip()


def format_time_offset(seconds: int) -> str:
    """``m:ss`` label for a segment start."""
    return f"{seconds // 60}:{seconds % 60:02d}"


def validate_news(raw: Any, max_items: int = 5) -> Tuple[NewsItem, ...]:
    """Build news items with local ids; extra items beyond ``max_items`` are dropped."""
    items = _require_list(raw, "news", "fetch_news")
    if len(items) > max_items:
        logger.warning(f"News returned {len(items)} items, keeping the first {max_items}")
        items = items[:max_items]

    return tuple(
        NewsItem(
            id=new_id("news"),
            title=_require_str(item, "title", f"news[{i}]", "fetch_news"),
            snippet=_require_str(item, "snippet", f"news[{i}]", "fetch_news"),
            source_url=_require_str(item, "source_url", f"news[{i}]", "fetch_news"),
        )
        for i, item in enumerate(items)
    )


def validate_ideas(raw: Any, count: int = 3) -> Tuple[IdeationOption, ...]:
    """Build ideation options; an empty answer is rejected."""
    items = _require_list(raw, "ideas", "generate_ideas")
    if not items:
        raise _reject("no ideas returned", "ideas", "generate_ideas", constraint=f"{count} items")
    if len(items) > count:
        logger.warning(f"Ideation returned {len(items)} options, keeping the first {count}")
        items = items[:count]

    return tuple(
        IdeationOption(
            id=new_id("idea"),
            title=_require_str(item, "title", f"ideas[{i}]", "generate_ideas"),
            description=_require_str(item, "description", f"ideas[{i}]", "generate_ideas"),
        )
        for i, item in enumerate(items)
    )


def validate_script(
    raw: Any,
    segment_count: int = 10,
    segment_seconds: int = 3,
) -> ScriptPackage:
    """
    Build a script package.

    The segment count must match exactly; a wrong count is rejected rather
    than padded or truncated. Segments get local ids and positional indexes.
    """
    operation = "generate_script"
    if not isinstance(raw, dict):
        raise _reject("script is not an object", "script", operation)

    fields: Dict[str, str] = {
        key: _require_str(raw, key, "script", operation)
        for key in (
            "title", "description", "call_to_action", "thumbnail_prompt",
            "main_reference_prompt", "full_narration_text",
        )
    }

    tags = _require_list(raw.get("tags"), "script.tags", operation)
    if not all(isinstance(tag, str) for tag in tags):
        raise _reject("tags must be strings", "script.tags", operation)

    segments = _require_list(raw.get("segments"), "script.segments", operation)
    if len(segments) != segment_count:
        raise _reject(
            f"expected {segment_count} segments, got {len(segments)}",
            "script.segments",
            operation,
            constraint=f"exactly {segment_count}",
        )

    built = []
    for index, item in enumerate(segments):
        where = f"segments[{index}]"
        time_offset = _require_str(item, "time_offset", where, operation, optional=True)
        built.append(Segment(
            id=new_id("seg"),
            index=index,
            time_offset=time_offset or format_time_offset(index * segment_seconds),
            narration_text=_require_str(item, "narration_text", where, operation),
            image_prompt=_require_str(item, "image_prompt", where, operation),
        ))

    return ScriptPackage(
        tags=tuple(tag.strip() for tag in tags if tag.strip()),
        segments=tuple(built),
        **fields,
    )


def validate_reference_variants(raw: Sequence[Any], count: int = 4) -> Tuple[ReferenceCandidate, ...]:
    """Build exactly ``count`` reference candidates."""
    operation = "generate_reference_variants"
    variants = _require_list(list(raw) if isinstance(raw, (list, tuple)) else raw, "references", operation)
    if len(variants) != count:
        raise _reject(
            f"expected {count} reference variants, got {len(variants)}",
            "references",
            operation,
            constraint=f"exactly {count}",
        )
    if not all(isinstance(ref, BinaryRef) for ref in variants):
        raise _reject("reference variants must be binary refs", "references", operation)

    return tuple(ReferenceCandidate(id=new_id("ref"), binary=ref) for ref in variants)
