"""
Segment Orchestrator
====================

Runs the Production stage: narration, thumbnail and the per-scene images as
three concurrent streams. Scene work is a queue of ``SceneWorkItem`` drained
by ``scene_concurrency`` workers (one by default, so scenes go strictly in
order to respect upstream rate limits). Every stream writes only its own
task slots, and every write is a merge into the latest aggregate.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from .models import ScriptPackage, Stage, TaskStatus, WorkflowAggregate
from .store import WorkflowStore
from .tasks import image_slot, narration_slot, run_task, thumbnail_slot
from ..api.base import BinaryRef, GenerationGateway
from ..core.config import ProductionConfig
from ..core.exceptions import PreconditionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SceneWorkItem:
    """One queued scene-image generation."""

    segment_id: str
    index: int


@dataclass
class ProductionSummary:
    """Terminal view of a production run."""

    scenes_succeeded: int = 0
    scenes_failed: int = 0
    scenes_pending: int = 0
    narration: Optional[TaskStatus] = None
    thumbnail: Optional[TaskStatus] = None

    @classmethod
    def from_package(cls, package: ScriptPackage) -> "ProductionSummary":
        summary = cls(
            narration=package.narration.status if package.narration else None,
            thumbnail=package.thumbnail.status if package.thumbnail else None,
        )
        for segment in package.segments:
            if segment.image is None or segment.image.is_pending:
                summary.scenes_pending += 1
            elif segment.image.is_success:
                summary.scenes_succeeded += 1
            else:
                summary.scenes_failed += 1
        return summary


class SegmentOrchestrator:
    """
    Fans out Production-stage generation.

    Usage:
        orchestrator = SegmentOrchestrator(store, gateway)
        run = orchestrator.start()
        summary = await run
    """

    def __init__(
        self,
        store: WorkflowStore,
        gateway: GenerationGateway,
        settings: Optional[ProductionConfig] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or ProductionConfig()
        self._run: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._run is not None and not self._run.done()

    def start(self) -> asyncio.Task:
        """Launch the production run in the background and return its handle."""
        self._require_production(self.store.state)
        if self.running:
            raise PreconditionError("Production is already running", operation="start_production")

        self._run = asyncio.create_task(self.run(), name="production-run")
        return self._run

    async def wait(self) -> Optional[ProductionSummary]:
        """Wait for the current run, if any."""
        if self._run is None:
            return None
        return await self._run

    async def cancel(self) -> None:
        """Tear down a running production (e.g. on restart)."""
        if self.running:
            logger.info("Cancelling production run")
            self._run.cancel()
            await asyncio.gather(self._run, return_exceptions=True)
        self._run = None

    async def run(self) -> ProductionSummary:
        """Drive all three streams until every task is terminal."""
        state = self.store.state
        self._require_production(state)

        package = state.script_package
        reference = state.selected_reference.binary

        queue: asyncio.Queue = asyncio.Queue()
        for segment in package.segments:
            queue.put_nowait(SceneWorkItem(segment_id=segment.id, index=segment.index))

        logger.info(
            f"Production started: {queue.qsize()} scenes, "
            f"{self.settings.scene_concurrency} scene worker(s)"
        )

        workers = [
            self._scene_worker(queue, reference)
            for _ in range(self.settings.scene_concurrency)
        ]
        await asyncio.gather(
            self._narration_stream(package.full_narration_text),
            self._thumbnail_stream(package.thumbnail_prompt),
            *workers,
        )

        final = self.store.state.script_package
        summary = ProductionSummary.from_package(final) if final else ProductionSummary()
        logger.info(
            f"Production finished: {summary.scenes_succeeded} scenes ok, "
            f"{summary.scenes_failed} failed"
        )
        return summary

    # -------------------------------------------------------------------------
    # Streams
    # -------------------------------------------------------------------------

    async def _narration_stream(self, text: str) -> None:
        await run_task(
            self.store,
            narration_slot(),
            "generate_narration",
            lambda: self.gateway.generate_narration(text),
        )

    async def _thumbnail_stream(self, prompt: str) -> None:
        await run_task(
            self.store,
            thumbnail_slot(),
            "generate_thumbnail",
            lambda: self.gateway.generate_thumbnail(prompt),
        )

    async def _scene_worker(self, queue: asyncio.Queue, reference: BinaryRef) -> None:
        while True:
            try:
                item: SceneWorkItem = queue.get_nowait()
            except asyncio.QueueEmpty:
                return

            package = self.store.state.script_package
            segment = package.segment(item.segment_id) if package else None
            if segment is None:
                # Workflow was reset underneath us
                logger.warning(f"Segment {item.segment_id} is gone, stopping scene worker")
                return

            logger.info(f"Generating scene {item.index + 1}/{len(package.segments)}")
            await run_task(
                self.store,
                image_slot(item.segment_id),
                "generate_scene_image",
                lambda: self.gateway.generate_scene_image(reference, segment.image_prompt),
            )
            queue.task_done()

    @staticmethod
    def _require_production(state: WorkflowAggregate) -> None:
        if state.stage is not Stage.PRODUCTION or state.selected_reference is None:
            raise PreconditionError(
                "Production needs a selected reference",
                operation="start_production",
                required=Stage.PRODUCTION.value,
            )
