"""
Shorts Producer
===============

Turns one trending news story into a complete short-form video package:
script, narration, thumbnail and a sequence of per-scene stills or clips,
exported as a single zip bundle.

Features:
- Gemini-backed news scan, ideation and script writing
- Style reference variants or an uploaded reference image
- Concurrent narration, thumbnail and scene generation with isolated failures
- Targeted regeneration of any single scene, thumbnail or narration
- Optional Veo scene motion with bounded, cancellable polling
- Deterministic bundle export with a JSON manifest

Quick Start:
    from shorts_producer import ShortsProducer

    async with ShortsProducer() as producer:
        news = await producer.enter_news()
        ideas = await producer.select_news(news[0])
        package = await producer.select_idea(ideas[0])
        variants = await producer.request_reference_variants()
        await producer.select_reference(variants[0])
        await producer.wait_for_production()
        await producer.regenerate_scene(package.segments[6].id)
        path = await producer.export_bundle("./output")
"""

__version__ = "0.1.0"
__author__ = "Shorts Producer"

# Main entry point
from .workflow import (
    ShortsProducer,
    load_reference_upload,
    load_reference_file,
)

# Workflow models
from .workflow.models import (
    Stage,
    TaskStatus,
    TaskState,
    NewsItem,
    IdeationOption,
    Segment,
    ScriptPackage,
    ReferenceCandidate,
    WorkflowAggregate,
)
from .workflow.bundle import Bundle

# Core Utilities
from .core.config import Config, get_config
from .core.exceptions import (
    ProducerError,
    ConfigurationError,
    FetchFailure,
    RateLimitError,
    MalformedResponse,
    MissingArtifact,
    CredentialRequired,
    PreconditionError,
    BundleAssemblyFailure,
    GenerationTimeout,
    ValidationError,
)
from .core.security import sanitize_filename

# Gateways
from .api import BinaryRef, GenerationGateway, get_gateway, list_gateways

__all__ = [
    # Version
    "__version__",

    # Main entry point
    "ShortsProducer",
    "load_reference_upload",
    "load_reference_file",

    # Models
    "Stage",
    "TaskStatus",
    "TaskState",
    "NewsItem",
    "IdeationOption",
    "Segment",
    "ScriptPackage",
    "ReferenceCandidate",
    "WorkflowAggregate",
    "Bundle",

    # Core
    "Config",
    "get_config",
    "sanitize_filename",

    # Exceptions
    "ProducerError",
    "ConfigurationError",
    "FetchFailure",
    "RateLimitError",
    "MalformedResponse",
    "MissingArtifact",
    "CredentialRequired",
    "PreconditionError",
    "BundleAssemblyFailure",
    "GenerationTimeout",
    "ValidationError",

    # Gateways
    "BinaryRef",
    "GenerationGateway",
    "get_gateway",
    "list_gateways",
]
