"""Batch coordinator and propagation wavefront.

Writes never run dependents directly. They are applied by a Batch (an
unbatched write is a batch of one), whose commit hands every affected
computation to a single Propagation pass. The pass runs each computation at
most once, and only after nothing upstream of it is still pending, so no
computation ever observes a half-updated graph.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from rivulet import _anchor
from rivulet._tracking import current_batch, current_listener, current_pass
from rivulet.errors import CircularReferenceError

if TYPE_CHECKING:
    from rivulet._computation import Computation
    from rivulet.cells import Cell

logger = logging.getLogger("rivulet.scheduler")


class Batch:
    """Deferred writes plus the computations they will wake on commit."""

    __slots__ = ("_mutations", "_pending_values", "_scheduled")

    def __init__(self) -> None:
        self._mutations: list[tuple[Cell, object]] = []
        self._pending_values: dict[int, object] = {}
        self._scheduled: dict[int, None] = {}

    def __bool__(self) -> bool:
        return bool(self._mutations)

    @property
    def scheduled_count(self) -> int:
        return len(self._scheduled)

    def pending_value(self, cell_id: int, current: object) -> object:
        """The value a cell will hold after commit, as far as is known now."""
        return self._pending_values.get(cell_id, current)

    def defer(self, cell: Cell, value: object) -> None:
        self._mutations.append((cell, value))
        self._pending_values[cell._id] = value
        self._scheduled.update(_anchor.observers[cell._id])

    def commit(self) -> None:
        """Apply every deferred write, then propagate once.

        Writes made during the pass by code outside any computation (cleanup
        callbacks) land in a follow-up batch, committed after this pass, even
        when the pass raises.
        """
        batch = self
        while batch:
            followup = Batch()
            token = current_batch.set(followup)
            try:
                batch._flush()
            except BaseException:
                current_batch.reset(token)
                followup.commit()
                raise
            current_batch.reset(token)
            batch = followup

    def _flush(self) -> None:
        for cell, value in self._mutations:
            _anchor.values[cell._id] = value
            # Computations that subscribed after the write still need the new value.
            self._scheduled.update(_anchor.observers.get(cell._id, {}))
        logger.debug(
            "Committing %d deferred writes to %d dependents",
            len(self._mutations), len(self._scheduled),
        )
        Propagation(self._scheduled).run()


def _owned_by(node_id: int, owner_id: int) -> bool:
    parent = _anchor.owners.get(node_id)
    while parent is not None:
        if parent == owner_id:
            return True
        parent = _anchor.owners.get(parent)
    return False


def _upstream(node_id: int, through_owners: bool) -> list[int]:
    """Live computations a node waits on: derivations it watches, maybe its owner.

    A node never waits on computations it owns; its own run replaces them.
    """
    upstream = [
        readable_id
        for readable_id in _anchor.dependencies.get(node_id, ())
        if readable_id in _anchor.computations and not _owned_by(readable_id, node_id)
    ]
    if through_owners:
        owner_id = _anchor.owners.get(node_id)
        if owner_id is not None:
            upstream.append(owner_id)
    return upstream


class Propagation:
    """One wavefront pass: a pending set drained in topological order."""

    __slots__ = ("_pending", "_done", "_refreshing", "runs")

    def __init__(self, scheduled: Iterable[int]) -> None:
        self._pending: dict[int, None] = dict.fromkeys(scheduled)
        self._done: set[int] = set()
        self._refreshing: set[int] = set()
        self.runs = 0

    def run(self) -> None:
        token = current_pass.set(self)
        try:
            while self._pending:
                self._execute(self._next_ready())
        finally:
            current_pass.reset(token)
        logger.debug("Propagation settled after %d runs", self.runs)

    def refresh(self, computation: Computation) -> None:
        """Bring a derivation up to date before it is read mid-pass.

        Covers edges created during this pass, which the ready check could
        not see when the reader was picked.
        """
        node_id = computation._id
        listener = current_listener.get()
        if listener is not None and self._depends_on(node_id, listener._id):
            raise CircularReferenceError(
                f"circular reference: {listener!r} reads {computation!r}, "
                "which depends on it"
            )
        if not self._stale(node_id):
            return
        if node_id in self._refreshing:
            raise CircularReferenceError(
                f"circular reference: {computation!r} depends on itself"
            )
        self._refreshing.add(node_id)
        try:
            for upstream_id in _upstream(node_id, through_owners=False):
                if self._stale(upstream_id):
                    self.refresh(_anchor.computations[upstream_id])
            if node_id in self._pending:
                self._execute(node_id)
        finally:
            self._refreshing.discard(node_id)

    def _next_ready(self) -> int:
        for node_id in self._pending:
            if node_id not in _anchor.computations:
                return node_id  # disposed mid-pass, _execute drops it
            if not self._reaches_pending(_upstream(node_id, through_owners=True), True):
                return node_id
        raise CircularReferenceError(
            f"circular reference: {len(self._pending)} pending computations "
            "are waiting on each other"
        )

    def _stale(self, node_id: int) -> bool:
        return self._reaches_pending([node_id], False)

    @staticmethod
    def _depends_on(node_id: int, target_id: int) -> bool:
        seen: set[int] = set()
        stack = [node_id]
        while stack:
            current = stack.pop()
            if current == target_id:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(_upstream(current, through_owners=False))
        return False

    def _reaches_pending(self, start: Iterable[int], through_owners: bool) -> bool:
        seen: set[int] = set()
        stack = list(start)
        while stack:
            node_id = stack.pop()
            if node_id in seen:
                continue
            seen.add(node_id)
            if node_id in self._pending:
                return True
            stack.extend(_upstream(node_id, through_owners))
        return False

    def _execute(self, node_id: int) -> None:
        del self._pending[node_id]
        computation = _anchor.computations.get(node_id)
        if computation is None:
            return
        self._done.add(node_id)
        self.runs += 1
        if computation._run():
            for dependent_id in list(_anchor.observers.get(node_id, ())):
                if dependent_id not in self._done:
                    self._pending.setdefault(dependent_id)
