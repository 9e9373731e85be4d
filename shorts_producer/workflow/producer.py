"""
Shorts Producer
===============

Main entry point: wires the gateway, the workflow store and the controllers
together and owns teardown of in-flight work.
"""

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional, Tuple, Union

from .bundle import Bundle, BundleAssembler
from .models import (
    IdeationOption,
    NewsItem,
    ReferenceCandidate,
    ScriptPackage,
    Stage,
    TaskState,
    WorkflowAggregate,
    new_id,
)
from .orchestrator import ProductionSummary, SegmentOrchestrator
from .regeneration import RegenerationController
from .stages import StageController
from .store import Listener, WorkflowStore
from ..api.base import BinaryRef, GenerationGateway
from ..api.factory import gateway_from_config
from ..core.config import Config, get_config
from ..core.exceptions import PreconditionError, ValidationError
from ..utils.media import detect_image_mime, parse_data_uri, read_image_file

logger = logging.getLogger(__name__)


# =============================================================================
# Reference uploads
# =============================================================================


def load_reference_upload(data: Union[bytes, str], mime_type: Optional[str] = None) -> ReferenceCandidate:
    """
    Build an uploaded reference from raw image bytes or a ``data:`` URI.

    The payload must decode as an image; its MIME type is taken from the
    image itself, not from the caller.

    Raises:
        ValidationError: If the payload is not a decodable image
    """
    if isinstance(data, str):
        data, declared = parse_data_uri(data)
        mime_type = mime_type or declared
    if not data:
        raise ValidationError("Reference upload is empty", field="data")

    detected = detect_image_mime(data)
    if mime_type and mime_type != detected:
        logger.debug(f"Upload declared {mime_type} but decodes as {detected}")

    return ReferenceCandidate(
        id=new_id("upload"),
        binary=BinaryRef(mime_type=detected, data=data),
        uploaded=True,
    )


def load_reference_file(path: Union[str, Path]) -> ReferenceCandidate:
    """Build an uploaded reference from an image file on disk."""
    data, mime_type = read_image_file(path)
    return load_reference_upload(data, mime_type)


# =============================================================================
# Facade
# =============================================================================


class ShortsProducer:
    """
    Produces one short-form video package from a trending news item.

    Usage:
        async with ShortsProducer() as producer:
            news = await producer.enter_news()
            ideas = await producer.select_news(news[0])
            await producer.select_idea(ideas[0])
            variants = await producer.request_reference_variants()
            await producer.select_reference(variants[0])
            await producer.wait_for_production()
            path = await producer.export_bundle()
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        gateway: Optional[GenerationGateway] = None,
        credential_check: Optional[Callable[[], bool]] = None,
    ):
        """
        Initialize the producer.

        Args:
            config: Configuration (defaults to the global config)
            gateway: Generation gateway (defaults to the configured provider)
            credential_check: Confirms a credential able to run motion generation
        """
        self.config = config or get_config()
        self.gateway = gateway or gateway_from_config(self.config.gateway)

        settings = self.config.production
        self.store = WorkflowStore()
        self.stages = StageController(self.store, self.gateway, settings)
        self.orchestrator = SegmentOrchestrator(self.store, self.gateway, settings)
        self.regeneration = RegenerationController(
            self.store, self.gateway, settings, credential_check=credential_check,
        )
        self.assembler = BundleAssembler(self.gateway.fetch_binary, suffix=self.config.output.bundle_suffix)

        logger.info("ShortsProducer initialized")
        logger.info(f"  Gateway: {self.gateway.provider_name}")
        logger.info(f"  Output path: {self.config.output.base_path}")

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> WorkflowAggregate:
        return self.store.state

    @property
    def stage(self) -> Stage:
        return self.store.state.stage

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Observe every committed aggregate."""
        return self.store.subscribe(listener)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    async def enter_news(self) -> Tuple[NewsItem, ...]:
        return await self.stages.enter_news()

    async def select_news(self, item: NewsItem) -> Tuple[IdeationOption, ...]:
        return await self.stages.select_news(item)

    async def select_idea(self, option: IdeationOption) -> ScriptPackage:
        return await self.stages.select_idea(option)

    async def request_reference_variants(self) -> Tuple[ReferenceCandidate, ...]:
        return await self.stages.request_reference_variants()

    async def select_reference(self, candidate: ReferenceCandidate) -> asyncio.Task:
        """
        Enter Production with ``candidate`` and start generating.

        Returns:
            Handle of the background production run
        """
        self.stages.select_reference(candidate)
        return self.orchestrator.start()

    async def upload_reference(self, data: Union[bytes, str], mime_type: Optional[str] = None) -> asyncio.Task:
        """Enter Production anchored on an uploaded image, from Script or Reference-Selection."""
        return await self.select_reference(load_reference_upload(data, mime_type))

    async def wait_for_production(self) -> Optional[ProductionSummary]:
        return await self.orchestrator.wait()

    async def restart(self) -> WorkflowAggregate:
        """Tear down in-flight work and clear the workflow back to News."""
        await self.orchestrator.cancel()
        await self.regeneration.cancel_all()
        return self.stages.restart()

    # -------------------------------------------------------------------------
    # Regeneration
    # -------------------------------------------------------------------------

    async def regenerate_scene(self, segment_id: str) -> TaskState:
        return await self.regeneration.regenerate_scene(segment_id)

    async def regenerate_thumbnail(self) -> TaskState:
        return await self.regeneration.regenerate_thumbnail()

    async def regenerate_narration(self) -> TaskState:
        return await self.regeneration.regenerate_narration()

    async def regenerate_reference_variant(self, candidate_id: str) -> ReferenceCandidate:
        return await self.regeneration.regenerate_reference_variant(candidate_id)

    async def animate_scene(self, segment_id: str) -> TaskState:
        return await self.regeneration.animate_scene(segment_id)

    # -------------------------------------------------------------------------
    # Credentials
    # -------------------------------------------------------------------------

    async def provide_credential(self, api_key: str) -> None:
        """Install a new API key and clear the credential prompt."""
        if not api_key:
            raise ValidationError("API key must not be empty", field="api_key")
        await self.gateway.set_api_key(api_key)
        self.store.update(lambda s: replace(s, needs_credential=False), reason="credential provided")
        logger.info("Credential updated")

    # -------------------------------------------------------------------------
    # Export
    # -------------------------------------------------------------------------

    async def build_bundle(self) -> Bundle:
        """Assemble the archive from whatever has succeeded so far."""
        package = self.store.state.script_package
        if self.store.state.stage is not Stage.PRODUCTION or package is None:
            raise PreconditionError(
                "Nothing to export before production starts",
                operation="build_bundle",
                required=Stage.PRODUCTION.value,
            )
        return await self.assembler.build_bundle(package)

    async def export_bundle(self, directory: Optional[Union[str, Path]] = None) -> str:
        """
        Build the archive and write it to disk.

        Args:
            directory: Target directory (defaults to ``output.base_path``)

        Returns:
            Path to the written archive
        """
        bundle = await self.build_bundle()
        return await self.assembler.save_bundle(bundle, directory or self.config.output.base_path)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def close(self) -> None:
        """Stop background work and close the gateway."""
        await self.orchestrator.cancel()
        await self.regeneration.cancel_all()
        await self.gateway.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
