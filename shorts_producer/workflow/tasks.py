"""
Task Slots
==========

Uniform plumbing for every tracked generation (scene image, scene motion,
thumbnail, narration). A ``TaskSlot`` knows how to read and replace one
``TaskState`` inside the aggregate; ``run_task`` marks it pending, awaits the
call, and merges the outcome into the latest aggregate, dropping it if a
newer request took over the slot in the meantime.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from .calls import invoke
from .models import TaskState, WorkflowAggregate, resolve_task, with_package, with_segment
from .store import WorkflowStore
from ..core.exceptions import PreconditionError, ProducerError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskSlot:
    """Location of one TaskState inside the aggregate."""

    name: str
    read: Callable[[WorkflowAggregate], Optional[TaskState]]
    write: Callable[[WorkflowAggregate, Optional[TaskState]], WorkflowAggregate]

    def exists(self, state: WorkflowAggregate) -> bool:
        return self.write(state, TaskState.pending()) is not state


def _segment_field(segment_id: str, field_name: str) -> TaskSlot:
    def read(state: WorkflowAggregate) -> Optional[TaskState]:
        package = state.script_package
        segment = package.segment(segment_id) if package else None
        return getattr(segment, field_name) if segment else None

    def write(state: WorkflowAggregate, task: Optional[TaskState]) -> WorkflowAggregate:
        return with_segment(state, segment_id, **{field_name: task})

    return TaskSlot(f"{segment_id}.{field_name}", read, write)


def _package_field(field_name: str) -> TaskSlot:
    def read(state: WorkflowAggregate) -> Optional[TaskState]:
        return getattr(state.script_package, field_name) if state.script_package else None

    def write(state: WorkflowAggregate, task: Optional[TaskState]) -> WorkflowAggregate:
        return with_package(state, **{field_name: task})

    return TaskSlot(field_name, read, write)


def image_slot(segment_id: str) -> TaskSlot:
    return _segment_field(segment_id, "image")


def motion_slot(segment_id: str) -> TaskSlot:
    return _segment_field(segment_id, "motion")


def thumbnail_slot() -> TaskSlot:
    return _package_field("thumbnail")


def narration_slot() -> TaskSlot:
    return _package_field("narration")


# =============================================================================
# Lifecycle
# =============================================================================


def begin(
    store: WorkflowStore,
    slot: TaskSlot,
    prepare: Optional[Callable[[WorkflowAggregate], WorkflowAggregate]] = None,
) -> str:
    """
    Mark ``slot`` pending and return the request id that owns it.

    ``prepare`` runs in the same commit, before the slot is written.
    """
    if not slot.exists(store.state):
        raise PreconditionError(f"No task slot {slot.name} in the current workflow", operation=slot.name)

    pending = TaskState.pending()

    def transform(state: WorkflowAggregate) -> WorkflowAggregate:
        if prepare is not None:
            state = prepare(state)
        return slot.write(state, pending)

    store.update(transform, reason=f"{slot.name} pending")
    return pending.request_id


def settle(store: WorkflowStore, slot: TaskSlot, request_id: str, outcome: TaskState) -> bool:
    """Merge a finished call's outcome; returns False if the call was superseded."""

    def transform(state: WorkflowAggregate) -> WorkflowAggregate:
        resolved = resolve_task(slot.read(state), request_id, outcome)
        return state if resolved is None else slot.write(state, resolved)

    before = store.state
    applied = store.update(transform, reason=f"{slot.name} {outcome.status.value}") is not before
    if not applied:
        logger.warning(f"Dropped stale {outcome.status.value} result for {slot.name}")
    return applied


def release(store: WorkflowStore, slot: TaskSlot, request_id: str) -> None:
    """Clear a slot back to absent if ``request_id`` still owns it."""

    def transform(state: WorkflowAggregate) -> WorkflowAggregate:
        current = slot.read(state)
        if current is None or not current.is_pending or current.request_id != request_id:
            return state
        return slot.write(state, None)

    store.update(transform, reason=f"{slot.name} released")


async def run_task(
    store: WorkflowStore,
    slot: TaskSlot,
    operation: str,
    call: Callable[[], Awaitable],
    prepare: Optional[Callable[[WorkflowAggregate], WorkflowAggregate]] = None,
) -> TaskState:
    """
    Track one generation call in ``slot``.

    Failures are recorded in the slot rather than raised, so one entity's
    failure never stops its siblings.
    """
    request_id = begin(store, slot, prepare)
    try:
        value = await invoke(store, operation, call())
    except ProducerError as e:
        outcome = TaskState.failed(e.message, request_id=request_id)
    else:
        outcome = TaskState.succeeded(value, request_id=request_id)

    if settle(store, slot, request_id, outcome):
        logger.info(f"{slot.name}: {outcome.status.value}")
    return outcome
