"""
Stage Controller
================

Drives the workflow through News -> Ideation -> Script ->
Reference-Selection -> Production. Each transition commits only after its
gateway call resolved and its payload validated; a failed call leaves the
stage and every published field as they were, and is retried by calling the
same operation again.
"""

import logging
from dataclasses import replace
from typing import Callable, Optional, Tuple

from .calls import invoke
from .models import IdeationOption, NewsItem, ReferenceCandidate, ScriptPackage, Stage, WorkflowAggregate
from .store import WorkflowStore
from .validation import validate_ideas, validate_news, validate_reference_variants, validate_script
from ..api.base import GenerationGateway
from ..core.config import ProductionConfig
from ..core.exceptions import PreconditionError, ValidationError

logger = logging.getLogger(__name__)


class StageController:
    """Guarded, forward-only stage progression."""

    def __init__(
        self,
        store: WorkflowStore,
        gateway: GenerationGateway,
        settings: Optional[ProductionConfig] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.settings = settings or ProductionConfig()

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def enter_news(self) -> Tuple[NewsItem, ...]:
        """Fetch (or re-fetch) trending news; the stage stays News."""
        self._require_stage(Stage.NEWS, "enter_news")

        raw = await invoke(self.store, "fetch_news", self.gateway.fetch_news())
        items = validate_news(raw, self.settings.max_news_items)

        self._require_current(lambda s: s.stage is Stage.NEWS, "enter_news")
        self.store.update(lambda s: replace(s, news_candidates=items), reason="news fetched")
        logger.info(f"Fetched {len(items)} news items")
        return items

    async def select_news(self, item: NewsItem) -> Tuple[IdeationOption, ...]:
        """Pick a story and generate ideation options for it."""
        self._require_stage(Stage.NEWS, "select_news")
        self.store.update(
            lambda s: replace(s, selected_news=item, ideation_options=()),
            reason="news selected",
        )

        raw = await invoke(self.store, "generate_ideas", self.gateway.generate_ideas(item.title, item.snippet))
        options = validate_ideas(raw, self.settings.idea_count)

        self._require_current(
            lambda s: s.stage is Stage.NEWS and s.selected_news == item,
            "select_news",
        )
        self.store.update(
            lambda s: replace(s, stage=Stage.IDEATION, ideation_options=options),
            reason="ideas generated",
        )
        return options

    async def select_idea(self, option: IdeationOption) -> ScriptPackage:
        """Pick an angle and generate the script package."""
        self._require_stage(Stage.IDEATION, "select_idea")
        self.store.update(lambda s: replace(s, selected_idea=option), reason="idea selected")

        raw = await invoke(
            self.store,
            "generate_script",
            self.gateway.generate_script(option.title, option.description),
        )
        package = validate_script(raw, self.settings.segment_count, self.settings.segment_seconds)

        self._require_current(
            lambda s: s.stage is Stage.IDEATION and s.selected_idea == option,
            "select_idea",
        )
        self.store.update(
            lambda s: replace(s, stage=Stage.SCRIPT, script_package=package),
            reason="script generated",
        )
        logger.info(f"Script ready: {package.title!r} ({len(package.segments)} segments)")
        return package

    async def request_reference_variants(self) -> Tuple[ReferenceCandidate, ...]:
        """Generate the style reference candidates from the main reference prompt."""
        self._require_stage(Stage.SCRIPT, "request_reference_variants")
        package = self.store.state.script_package

        raw = await invoke(
            self.store,
            "generate_reference_variants",
            self.gateway.generate_reference_variants(
                package.main_reference_prompt, count=self.settings.reference_variants,
            ),
        )
        candidates = validate_reference_variants(raw, self.settings.reference_variants)

        self._require_current(
            lambda s: s.stage is Stage.SCRIPT and s.script_package is package,
            "request_reference_variants",
        )
        self.store.update(
            lambda s: replace(s, stage=Stage.REFERENCE_SELECTION, reference_candidates=candidates),
            reason="reference variants generated",
        )
        return candidates

    def select_reference(self, candidate: ReferenceCandidate) -> WorkflowAggregate:
        """
        Anchor the production on one reference and enter Production.

        Generated candidates must come from the current list; uploads are
        accepted as-is, and from the Script stage too, where the upload
        becomes the only candidate. Starting the scene work is the caller's job.
        """
        if candidate.uploaded and self.store.state.stage is Stage.SCRIPT:
            return self.store.update(
                lambda s: replace(
                    s,
                    stage=Stage.PRODUCTION,
                    reference_candidates=(candidate,),
                    selected_reference=candidate,
                ),
                reason="uploaded reference selected",
            )

        self._require_stage(Stage.REFERENCE_SELECTION, "select_reference")

        if not candidate.uploaded:
            known = {c.id for c in self.store.state.reference_candidates}
            if candidate.id not in known:
                raise ValidationError(
                    f"Unknown reference candidate: {candidate.id}",
                    field="candidate",
                    value=candidate.id,
                )

        return self.store.update(
            lambda s: replace(s, stage=Stage.PRODUCTION, selected_reference=candidate),
            reason="reference selected",
        )

    def restart(self) -> WorkflowAggregate:
        """Clear everything back to the News stage."""
        return self.store.restart()

    # -------------------------------------------------------------------------
    # Guards
    # -------------------------------------------------------------------------

    def _require_stage(self, stage: Stage, operation: str) -> None:
        current = self.store.state.stage
        if current is not stage:
            raise PreconditionError(
                f"{operation} needs stage {stage.value}, workflow is at {current.value}",
                operation=operation,
                required=stage.value,
            )

    def _require_current(self, still_valid: Callable[[WorkflowAggregate], bool], operation: str) -> None:
        """Refuse to publish a result the workflow moved past during the await."""
        if not still_valid(self.store.state):
            logger.warning(f"Discarding {operation} result: workflow changed while it was running")
            raise PreconditionError(
                f"Workflow changed while {operation} was running",
                operation=operation,
            )
