"""
Workflow Orchestration
======================

Stage progression, concurrent production and export for one short.

Components:
- ShortsProducer: Main entry point wiring everything together
- StageController: Guarded News -> ... -> Production progression
- SegmentOrchestrator: Narration, thumbnail and scene streams
- RegenerationController: Single-entity regeneration and scene motion
- BundleAssembler: Deterministic zip export
"""

from .models import (
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
from .store import WorkflowStore
from .stages import StageController
from .orchestrator import SegmentOrchestrator, SceneWorkItem, ProductionSummary
from .regeneration import RegenerationController
from .motion import MotionPoller
from .bundle import Bundle, BundleAssembler
from .producer import ShortsProducer, load_reference_upload, load_reference_file

__all__ = [
    "Stage",
    "TaskStatus",
    "TaskState",
    "NewsItem",
    "IdeationOption",
    "Segment",
    "ScriptPackage",
    "ReferenceCandidate",
    "WorkflowAggregate",
    "WorkflowStore",
    "StageController",
    "SegmentOrchestrator",
    "SceneWorkItem",
    "ProductionSummary",
    "RegenerationController",
    "MotionPoller",
    "Bundle",
    "BundleAssembler",
    "ShortsProducer",
    "load_reference_upload",
    "load_reference_file",
]
