"""
Workflow Models
===============

Immutable records for everything a production accumulates: news, ideas,
the script package with its segments, reference candidates, and the
per-artifact task states. Updates always build new instances with
``dataclasses.replace``.
"""

import uuid
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Generic, Optional, Tuple, TypeVar

from ..api.base import BinaryRef
from ..core.exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def new_id(prefix: str) -> str:
    """Locally generated entity id, never taken from the service."""
    return f"{prefix}-{uuid.uuid4().hex[:8]}"


class Stage(Enum):
    """Steps of the production workflow, in order."""

    NEWS = "news"
    IDEATION = "ideation"
    SCRIPT = "script"
    REFERENCE_SELECTION = "reference_selection"
    PRODUCTION = "production"

    @property
    def order(self) -> int:
        return list(Stage).index(self)

    def __ge__(self, other: "Stage") -> bool:
        return self.order >= other.order

    def __gt__(self, other: "Stage") -> bool:
        return self.order > other.order

    def __le__(self, other: "Stage") -> bool:
        return self.order <= other.order

    def __lt__(self, other: "Stage") -> bool:
        return self.order < other.order


class TaskStatus(Enum):
    """Lifecycle of one asynchronous generation."""

    PENDING = "pending"
    SUCCESS = "success"
    ERROR = "error"


@dataclass(frozen=True)
class TaskState(Generic[T]):
    """
    Tri-state record for one generation result.

    ``value`` is present iff the task succeeded and ``error_message`` iff it
    failed. ``request_id`` identifies the call that owns a pending state so
    late completions of superseded calls can be recognised and dropped.
    """

    status: TaskStatus
    value: Optional[T] = None
    error_message: Optional[str] = None
    request_id: Optional[str] = None

    def __post_init__(self):
        if (self.value is not None) != (self.status is TaskStatus.SUCCESS):
            raise ValidationError(
                "TaskState value must be present exactly when status is success",
                field="value",
                value=self.status.value,
            )
        if (self.error_message is not None) != (self.status is TaskStatus.ERROR):
            raise ValidationError(
                "TaskState error_message must be present exactly when status is error",
                field="error_message",
                value=self.status.value,
            )

    @classmethod
    def pending(cls, request_id: Optional[str] = None) -> "TaskState[T]":
        return cls(TaskStatus.PENDING, request_id=request_id or new_id("req"))

    @classmethod
    def succeeded(cls, value: T, request_id: Optional[str] = None) -> "TaskState[T]":
        return cls(TaskStatus.SUCCESS, value=value, request_id=request_id)

    @classmethod
    def failed(cls, error_message: str, request_id: Optional[str] = None) -> "TaskState[T]":
        return cls(TaskStatus.ERROR, error_message=error_message or "Unknown error", request_id=request_id)

    @property
    def is_pending(self) -> bool:
        return self.status is TaskStatus.PENDING

    @property
    def is_success(self) -> bool:
        return self.status is TaskStatus.SUCCESS

    @property
    def is_error(self) -> bool:
        return self.status is TaskStatus.ERROR


def is_success(task: Optional[TaskState]) -> bool:
    """True when a possibly-absent task slot holds a successful result."""
    return task is not None and task.is_success


@dataclass(frozen=True)
class NewsItem:
    """A trending story that can seed a production."""

    id: str
    title: str
    snippet: str
    source_url: str


@dataclass(frozen=True)
class IdeationOption:
    """A candidate narrative angle for the selected story."""

    id: str
    title: str
    description: str


@dataclass(frozen=True)
class Segment:
    """
    One fixed-length slice of the script.

    ``image`` and ``motion`` are replaced independently of the text fields;
    ``None`` means never attempted (for motion: absent).
    """

    id: str
    index: int
    time_offset: str
    narration_text: str
    image_prompt: str
    image: Optional[TaskState[BinaryRef]] = None
    motion: Optional[TaskState[BinaryRef]] = None

    @property
    def number(self) -> int:
        """1-based position used for bundle naming."""
        return self.index + 1


@dataclass(frozen=True)
class ScriptPackage:
    """The creative asset: copy, prompts, segments and package-level artifacts."""

    title: str
    description: str
    tags: Tuple[str, ...]
    call_to_action: str
    thumbnail_prompt: str
    main_reference_prompt: str
    full_narration_text: str
    segments: Tuple[Segment, ...]
    thumbnail: Optional[TaskState[BinaryRef]] = None
    narration: Optional[TaskState[BinaryRef]] = None

    def segment(self, segment_id: str) -> Optional[Segment]:
        for segment in self.segments:
            if segment.id == segment_id:
                return segment
        return None


@dataclass(frozen=True)
class ReferenceCandidate:
    """A style anchor: a generated variant or a user upload."""

    id: str
    binary: BinaryRef
    uploaded: bool = False


@dataclass(frozen=True)
class WorkflowAggregate:
    """
    Everything produced so far.

    Fields belonging to a later stage stay empty until that stage is entered;
    ``check_consistency`` enforces this on every commit.
    """

    stage: Stage = Stage.NEWS
    news_candidates: Tuple[NewsItem, ...] = ()
    selected_news: Optional[NewsItem] = None
    ideation_options: Tuple[IdeationOption, ...] = ()
    selected_idea: Optional[IdeationOption] = None
    script_package: Optional[ScriptPackage] = None
    reference_candidates: Tuple[ReferenceCandidate, ...] = ()
    selected_reference: Optional[ReferenceCandidate] = None
    needs_credential: bool = False

    def check_consistency(self) -> None:
        """Raise ValidationError if stage and populated fields disagree."""
        stage = self.stage

        required = [
            (Stage.IDEATION, "selected_news", self.selected_news is not None),
            (Stage.IDEATION, "ideation_options", bool(self.ideation_options)),
            (Stage.SCRIPT, "selected_idea", self.selected_idea is not None),
            (Stage.SCRIPT, "script_package", self.script_package is not None),
            (Stage.REFERENCE_SELECTION, "reference_candidates", bool(self.reference_candidates)),
            (Stage.PRODUCTION, "selected_reference", self.selected_reference is not None),
        ]
        for entered, name, present in required:
            if stage >= entered and not present:
                raise ValidationError(
                    f"Stage {stage.value} requires {name}",
                    field=name,
                    constraint=f"present from {entered.value}",
                )

        premature = [
            (Stage.IDEATION, "ideation_options", bool(self.ideation_options)),
            (Stage.IDEATION, "selected_idea", self.selected_idea is not None),
            (Stage.SCRIPT, "script_package", self.script_package is not None),
            (Stage.REFERENCE_SELECTION, "reference_candidates", bool(self.reference_candidates)),
            (Stage.PRODUCTION, "selected_reference", self.selected_reference is not None),
        ]
        for entered, name, present in premature:
            if stage < entered and present:
                raise ValidationError(
                    f"Stage {stage.value} must not carry {name}",
                    field=name,
                    constraint=f"absent before {entered.value}",
                )


# =============================================================================
# Pure Transforms
# =============================================================================


def with_segment(state: WorkflowAggregate, segment_id: str, **changes) -> WorkflowAggregate:
    """Replace fields of one segment; unknown ids leave the state unchanged."""
    package = state.script_package
    if package is None or package.segment(segment_id) is None:
        return state

    segments = tuple(
        replace(segment, **changes) if segment.id == segment_id else segment
        for segment in package.segments
    )
    return replace(state, script_package=replace(package, segments=segments))


def with_package(state: WorkflowAggregate, **changes) -> WorkflowAggregate:
    """Replace package-level fields (thumbnail, narration, ...)."""
    if state.script_package is None:
        return state
    return replace(state, script_package=replace(state.script_package, **changes))


def with_reference(state: WorkflowAggregate, candidate_id: str, binary: BinaryRef) -> WorkflowAggregate:
    """Replace one reference candidate's binary, keeping its id and position."""
    candidates = tuple(
        replace(candidate, binary=binary) if candidate.id == candidate_id else candidate
        for candidate in state.reference_candidates
    )
    return replace(state, reference_candidates=candidates)


def resolve_task(
    current: Optional[TaskState],
    request_id: str,
    outcome: TaskState,
) -> Optional[TaskState]:
    """
    Outcome to store for a completed call, or ``None`` if the call is stale.

    A call is stale when the slot no longer holds the pending state it created
    (the slot was regenerated, cleared, or the production restarted).
    """
    if current is None or not current.is_pending or current.request_id != request_id:
        return None
    return outcome
