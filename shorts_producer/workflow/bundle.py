"""
Bundle Assembler
================

Packs every successful artifact of a production into one zip archive,
together with a JSON manifest and the plain-text script.

Entries are written in a fixed order with a fixed timestamp, so rebuilding
an unchanged production yields the same entries and, apart from
``generated_at``, the same manifest.
"""

import io
import json
import logging
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

from .models import ScriptPackage, Segment, TaskState, is_success
from ..api.base import BinaryRef
from ..core.exceptions import BundleAssemblyFailure, ProducerError
from ..core.security import redact_api_key, sanitize_filename
from ..utils.storage import save_bytes

logger = logging.getLogger(__name__)


MANIFEST_NAME = "production_metadata.json"
SCRIPT_NAME = "full_script.txt"

# Zip entries carry this timestamp instead of the wall clock
ENTRY_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

Fetcher = Callable[[BinaryRef], Awaitable[bytes]]


@dataclass(frozen=True)
class Bundle:
    """A built archive, ready to be written or streamed."""

    filename: str
    data: bytes = field(repr=False)
    manifest: Dict[str, Any] = field(repr=False)
    entries: Tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return len(self.data)


def segment_entry_name(segment: Segment, kind: str, binary: BinaryRef) -> str:
    """``scenes/segment_03_frame.png`` style path for one scene artifact."""
    return f"scenes/segment_{segment.number:02d}_{kind}.{binary.extension}"


def bundle_filename(title: str, suffix: str = ".zip") -> str:
    return f"{sanitize_filename(title)}{suffix}"


class BundleAssembler:
    """
    Builds the deliverable archive from a script package.

    Args:
        fetch: Resolves a ``BinaryRef`` to bytes (usually
            ``GenerationGateway.fetch_binary``)
        suffix: Archive filename suffix
    """

    def __init__(self, fetch: Fetcher, suffix: str = ".zip"):
        self.fetch = fetch
        self.suffix = suffix

    async def build_bundle(
        self,
        package: ScriptPackage,
        generated_at: Optional[datetime] = None,
    ) -> Bundle:
        """
        Collect artifacts and write the archive in memory.

        Raises:
            BundleAssemblyFailure: If any successful artifact cannot be fetched
        """
        planned = self._plan(package)

        files: List[Tuple[str, bytes]] = []
        for name, binary in planned:
            files.append((name, await self._fetch(name, binary)))

        entries = tuple(name for name, _ in planned)
        manifest = self.build_manifest(package, entries, generated_at)

        files.append((MANIFEST_NAME, json.dumps(manifest, indent=2, ensure_ascii=False).encode("utf-8")))
        files.append((SCRIPT_NAME, render_script(package).encode("utf-8")))

        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, data in files:
                info = zipfile.ZipInfo(name, date_time=ENTRY_TIMESTAMP)
                info.compress_type = zipfile.ZIP_DEFLATED
                zf.writestr(info, data)

        bundle = Bundle(
            filename=bundle_filename(package.title, self.suffix),
            data=buffer.getvalue(),
            manifest=manifest,
            entries=entries + (MANIFEST_NAME, SCRIPT_NAME),
        )
        logger.info(f"Bundle {bundle.filename}: {len(entries)} artifacts, {bundle.size} bytes")
        return bundle

    def build_manifest(
        self,
        package: ScriptPackage,
        entries: Tuple[str, ...],
        generated_at: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Manifest describing the package and which artifacts were included."""
        generated_at = generated_at or datetime.now(timezone.utc)
        by_segment = dict(self._segment_artifacts(package))

        return {
            "title": package.title,
            "description": package.description,
            "tags": list(package.tags),
            "call_to_action": package.call_to_action,
            "full_script": package.full_narration_text,
            "generated_at": generated_at.isoformat(),
            "entries": list(entries),
            "segments": [
                {
                    "index": segment.index,
                    "number": segment.number,
                    "time_offset": segment.time_offset,
                    "narration_text": segment.narration_text,
                    "image_prompt": segment.image_prompt,
                    "artifact": by_segment.get(segment.id),
                }
                for segment in package.segments
            ],
        }

    async def save_bundle(self, bundle: Bundle, directory: Union[str, Path]) -> str:
        """Write ``bundle`` into ``directory``; returns the archive path."""
        return await save_bytes(bundle.data, Path(directory) / bundle.filename)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _plan(self, package: ScriptPackage) -> List[Tuple[str, BinaryRef]]:
        planned: List[Tuple[str, BinaryRef]] = []

        if is_success(package.narration):
            planned.append((f"narration.{package.narration.value.extension}", package.narration.value))
        if is_success(package.thumbnail):
            planned.append((f"thumbnail.{package.thumbnail.value.extension}", package.thumbnail.value))

        for segment in package.segments:
            chosen = preferred_artifact(segment)
            if chosen is not None:
                kind, task = chosen
                planned.append((segment_entry_name(segment, kind, task.value), task.value))

        return planned

    def _segment_artifacts(self, package: ScriptPackage):
        for segment in package.segments:
            chosen = preferred_artifact(segment)
            if chosen is not None:
                kind, task = chosen
                yield segment.id, segment_entry_name(segment, kind, task.value)

    async def _fetch(self, name: str, binary: BinaryRef) -> bytes:
        try:
            return await self.fetch(binary)
        except ProducerError as e:
            logger.error(f"Bundle entry {name} could not be fetched: {redact_api_key(e.message)}")
            raise BundleAssemblyFailure(
                f"Could not fetch {name}: {e.message}",
                entry=name,
            ) from e


def preferred_artifact(segment: Segment) -> Optional[Tuple[str, TaskState]]:
    """The scene's motion clip if it succeeded, else its still, else nothing."""
    if is_success(segment.motion):
        return "motion", segment.motion
    if is_success(segment.image):
        return "frame", segment.image
    return None


def render_script(package: ScriptPackage) -> str:
    """Plain-text script: headline copy followed by the timed segments."""
    lines = [
        package.title,
        "",
        package.description,
        "",
        " ".join(f"#{tag.lstrip('#')}" for tag in package.tags),
        "",
        f"CTA: {package.call_to_action}",
        "",
        "NARRATION",
        package.full_narration_text,
        "",
        "SEGMENTS",
    ]
    for segment in package.segments:
        lines.append(f"[{segment.time_offset}] {segment.narration_text}")
        lines.append(f"    image: {segment.image_prompt}")
    return "\n".join(lines) + "\n"
