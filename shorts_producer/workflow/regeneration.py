"""
Regeneration Controller
=======================

Re-runs generation for exactly one entity (a scene image, the thumbnail, the
narration, or one reference variant) and animates individual scenes. Sibling
task states are never touched.
"""

import asyncio
import logging
from dataclasses import replace
from typing import Callable, Dict, Optional

from .calls import invoke
from .models import ReferenceCandidate, Segment, Stage, TaskState, is_success, with_reference, with_segment
from .motion import MotionPoller
from .store import WorkflowStore
from .tasks import begin, image_slot, motion_slot, narration_slot, release, run_task, settle, thumbnail_slot
from ..api.base import GenerationGateway
from ..core.config import ProductionConfig
from ..core.exceptions import CredentialRequired, PreconditionError, ProducerError
from ..core.security import redact_api_key

logger = logging.getLogger(__name__)


class RegenerationController:
    """
    Targeted regeneration and scene animation.

    Args:
        store: Workflow store
        gateway: Generation gateway
        settings: Production settings (motion pacing)
        credential_check: Returns True once the environment confirmed a
            credential that may run motion generation
    """

    def __init__(
        self,
        store: WorkflowStore,
        gateway: GenerationGateway,
        settings: Optional[ProductionConfig] = None,
        credential_check: Optional[Callable[[], bool]] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or ProductionConfig()
        self.credential_check = credential_check or gateway.has_credential
        self.poller = MotionPoller(
            gateway,
            poll_interval=self.settings.motion_poll_interval,
            max_wait=self.settings.motion_max_wait,
        )
        self._motion_tasks: Dict[str, asyncio.Task] = {}

    # -------------------------------------------------------------------------
    # Scenes
    # -------------------------------------------------------------------------

    async def regenerate_scene(self, segment_id: str) -> TaskState:
        """
        Generate a new still for one scene.

        The scene's motion is cleared to absent in the same commit that marks
        the image pending, before the image call is issued.
        """
        if self.store.state.selected_reference is None:
            raise PreconditionError(
                "Select a reference before regenerating scenes",
                operation="regenerate_scene",
                required="selected_reference",
            )
        self._segment(segment_id, "regenerate_scene")

        await self._cancel_motion(segment_id)

        state = self.store.state
        segment = self._segment(segment_id, "regenerate_scene")
        reference = state.selected_reference.binary

        logger.info(f"Regenerating scene {segment.number}")
        return await run_task(
            self.store,
            image_slot(segment_id),
            "generate_scene_image",
            lambda: self.gateway.generate_scene_image(reference, segment.image_prompt),
            prepare=lambda s: with_segment(s, segment_id, motion=None),
        )

    def start_animation(self, segment_id: str) -> asyncio.Task:
        """
        Validate preconditions and launch motion generation for one scene.

        Raises:
            PreconditionError: If the scene has no successful still
            CredentialRequired: If no qualifying credential is confirmed
        """
        segment = self._segment(segment_id, "animate_scene")
        if not is_success(segment.image):
            raise PreconditionError(
                f"Scene {segment.number} needs a generated image before it can be animated",
                operation="animate_scene",
                required="image success",
            )
        if not self.credential_check():
            self.store.update(lambda s: replace(s, needs_credential=True), reason="motion credential")
            raise CredentialRequired(
                "Motion generation requires a billing-enabled API key",
                operation="animate_scene",
            )
        existing = self._motion_tasks.get(segment_id)
        if existing is not None and not existing.done():
            raise PreconditionError(
                f"Scene {segment.number} is already being animated",
                operation="animate_scene",
            )

        task = asyncio.create_task(self._animate(segment), name=f"motion-{segment_id}")
        self._motion_tasks[segment_id] = task
        task.add_done_callback(lambda t: self._forget(segment_id, t))
        return task

    async def animate_scene(self, segment_id: str) -> TaskState:
        """Animate one scene and wait for the outcome."""
        return await self.start_animation(segment_id)

    async def _animate(self, segment: Segment) -> TaskState:
        slot = motion_slot(segment.id)
        request_id = begin(self.store, slot)
        try:
            job = await invoke(
                self.store,
                "submit_scene_motion",
                self.gateway.submit_scene_motion(segment.image.value, segment.image_prompt),
            )
            video = await self.poller.wait(job)
        except asyncio.CancelledError:
            release(self.store, slot, request_id)
            raise
        except CredentialRequired:
            self.store.update(lambda s: replace(s, needs_credential=True), reason="motion credential")
            release(self.store, slot, request_id)
            raise
        except ProducerError as e:
            outcome = TaskState.failed(e.message, request_id=request_id)
        except Exception as e:
            message = redact_api_key(f"Motion failed: {e}")
            logger.error(f"Scene {segment.number} {message}")
            outcome = TaskState.failed(message, request_id=request_id)
        else:
            outcome = TaskState.succeeded(video, request_id=request_id)

        settle(self.store, slot, request_id, outcome)
        logger.info(f"Scene {segment.number} motion: {outcome.status.value}")
        return outcome

    # -------------------------------------------------------------------------
    # Package-level artifacts
    # -------------------------------------------------------------------------

    async def regenerate_thumbnail(self) -> TaskState:
        package = self._production_package("regenerate_thumbnail")
        return await run_task(
            self.store,
            thumbnail_slot(),
            "generate_thumbnail",
            lambda: self.gateway.generate_thumbnail(package.thumbnail_prompt),
        )

    async def regenerate_narration(self) -> TaskState:
        package = self._production_package("regenerate_narration")
        return await run_task(
            self.store,
            narration_slot(),
            "generate_narration",
            lambda: self.gateway.generate_narration(package.full_narration_text),
        )

    async def regenerate_reference_variant(self, candidate_id: str) -> ReferenceCandidate:
        """Replace one generated reference candidate in place (same id, same position)."""
        state = self.store.state
        if state.stage is not Stage.REFERENCE_SELECTION:
            raise PreconditionError(
                "Reference variants can only be regenerated while choosing a reference",
                operation="regenerate_reference_variant",
                required=Stage.REFERENCE_SELECTION.value,
            )
        position = next(
            (i for i, c in enumerate(state.reference_candidates) if c.id == candidate_id),
            None,
        )
        if position is None:
            raise PreconditionError(
                f"Unknown reference candidate: {candidate_id}",
                operation="regenerate_reference_variant",
            )

        binary = await invoke(
            self.store,
            "generate_reference_variant",
            self.gateway.generate_reference_variant(state.script_package.main_reference_prompt, position),
        )

        current = self.store.state
        if current.stage is not Stage.REFERENCE_SELECTION or all(
            c.id != candidate_id for c in current.reference_candidates
        ):
            raise PreconditionError(
                "Workflow changed while the reference variant was generating",
                operation="regenerate_reference_variant",
            )
        updated = self.store.update(
            lambda s: with_reference(s, candidate_id, binary),
            reason=f"reference {candidate_id} regenerated",
        )
        return next(c for c in updated.reference_candidates if c.id == candidate_id)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------

    async def cancel_all(self) -> None:
        """Stop every motion poll (used when Production is torn down)."""
        for segment_id in list(self._motion_tasks):
            await self._cancel_motion(segment_id)

    async def _cancel_motion(self, segment_id: str) -> None:
        task = self._motion_tasks.pop(segment_id, None)
        if task is not None and not task.done():
            logger.info(f"Cancelling motion generation for {segment_id}")
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    def _forget(self, segment_id: str, task: asyncio.Task) -> None:
        if self._motion_tasks.get(segment_id) is task:
            del self._motion_tasks[segment_id]

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _segment(self, segment_id: str, operation: str) -> Segment:
        package = self.store.state.script_package
        segment = package.segment(segment_id) if package else None
        if segment is None:
            raise PreconditionError(f"Unknown segment: {segment_id}", operation=operation)
        return segment

    def _production_package(self, operation: str):
        state = self.store.state
        if state.stage is not Stage.PRODUCTION:
            raise PreconditionError(
                f"{operation} is only available during production",
                operation=operation,
                required=Stage.PRODUCTION.value,
            )
        return state.script_package
