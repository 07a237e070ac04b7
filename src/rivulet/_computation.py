"""Computation protocol shared by derivations and effects.

A computation owns nothing it reads: its watched set is a set of readable
ids in _anchor, torn down before every run and rebuilt by the reads the run
makes. It does own the computations created while it runs; those are
disposed before it runs again and when it is disposed.
"""

from __future__ import annotations

import weakref
from typing import Callable

from rivulet import _anchor
from rivulet._tracking import current_owner, evaluating
from rivulet.errors import CircularReferenceError


class Computation:
    """Base for anything that re-evaluates when what it read changes."""

    __slots__ = ("_id", "__weakref__")

    def __init__(self, fn: Callable) -> None:
        self._id = _anchor.new_id()
        _anchor.functions[self._id] = fn
        _anchor.dependencies[self._id] = {}
        _anchor.owned[self._id] = []
        _anchor.computations[self._id] = self
        owner = current_owner.get()
        if owner is not None:
            _anchor.owners[self._id] = owner._id
            _anchor.owned[owner._id].append(self)
        weakref.finalize(self, _anchor.release, self._id)

    @property
    def _fn(self) -> Callable:
        return _anchor.functions[self._id]

    @property
    def disposed(self) -> bool:
        return self._id not in _anchor.computations

    def _evaluate(self):
        """Tear down the previous run, then run as the active computation."""
        if self._id in _anchor.running:
            raise CircularReferenceError(
                f"circular reference: {self!r} re-entered its own evaluation"
            )
        self._reset()
        with evaluating(self):
            return self._compute()

    def _compute(self):
        raise NotImplementedError

    def _run(self) -> bool:
        """Re-run for a propagation pass. Returns True if dependents must follow."""
        raise NotImplementedError

    def _reset(self) -> None:
        self._detach()
        self._dispose_children()

    def _detach(self) -> None:
        """Remove this computation from everything it watched."""
        for readable_id in _anchor.dependencies[self._id]:
            dependents = _anchor.observers.get(readable_id)
            if dependents is not None:
                dependents.pop(self._id, None)
        _anchor.dependencies[self._id].clear()

    def _dispose_children(self) -> None:
        children = _anchor.owned[self._id]
        _anchor.owned[self._id] = []
        for child in children:
            child.dispose()

    def dispose(self) -> None:
        """Detach from the graph for good. Safe to call more than once."""
        if self.disposed:
            return
        del _anchor.computations[self._id]
        self._reset()
        owner_id = _anchor.owners.pop(self._id, None)
        if owner_id is not None:
            siblings = _anchor.owned.get(owner_id, [])
            if self in siblings:
                siblings.remove(self)
