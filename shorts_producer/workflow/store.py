"""
Workflow Store
==============

The single mutable holder of the ``WorkflowAggregate``.

Writers never edit the aggregate: they hand ``update`` a pure function from
the latest aggregate to the next one. Since the event loop runs one callback
at a time and ``update`` never awaits, each transform sees every earlier
commit, so concurrently resolving tasks compose instead of clobbering each
other.
"""

import logging
from typing import Callable, List, Optional

from .models import Stage, WorkflowAggregate
from ..core.exceptions import PreconditionError

logger = logging.getLogger(__name__)

Transform = Callable[[WorkflowAggregate], WorkflowAggregate]
Listener = Callable[[WorkflowAggregate, int], None]


class WorkflowStore:
    """
    Versioned state container.

    Usage:
        store = WorkflowStore()
        store.update(lambda s: replace(s, needs_credential=True), reason="motion refused")
    """

    def __init__(self, initial: Optional[WorkflowAggregate] = None):
        self._state = initial or WorkflowAggregate()
        self._state.check_consistency()
        self._version = 0
        self._listeners: List[Listener] = []

    @property
    def state(self) -> WorkflowAggregate:
        """Latest committed aggregate."""
        return self._state

    @property
    def version(self) -> int:
        """Number of commits so far."""
        return self._version

    def update(self, transform: Transform, reason: str = "") -> WorkflowAggregate:
        """
        Apply ``transform`` to the latest aggregate and commit the result.

        Raises:
            PreconditionError: If the transform would move the stage backwards
            ValidationError: If the result violates the stage invariants
        """
        previous = self._state
        updated = transform(previous)

        if updated is previous:
            return previous

        if updated.stage < previous.stage:
            raise PreconditionError(
                f"Stage cannot move back from {previous.stage.value} to {updated.stage.value}",
                operation=reason or "update",
                required="restart",
            )
        updated.check_consistency()

        self._commit(updated, reason)
        return updated

    def restart(self) -> WorkflowAggregate:
        """Discard everything and return to the News stage."""
        logger.info("Workflow restarted")
        self._commit(WorkflowAggregate(stage=Stage.NEWS), "restart")
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a callback run after every commit.

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, state: WorkflowAggregate, reason: str) -> None:
        if state.stage is not self._state.stage:
            logger.info(f"Stage {self._state.stage.value} -> {state.stage.value}")
        self._state = state
        self._version += 1
        logger.debug(f"Commit v{self._version}: {reason or 'update'}")

        for listener in list(self._listeners):
            listener(state, self._version)
