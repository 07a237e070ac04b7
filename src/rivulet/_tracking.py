"""Evaluation context: the heart of rivulet's dependency tracking.

Uses contextvars to track which computation is currently evaluating, so any
read() made during a derivation or effect run registers itself as a
dependency, building the graph automatically.

Every change to the context goes through a context manager that restores
the previous value on exit, including when the run raises.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, TypeVar

from rivulet import _anchor
from rivulet.errors import ReadonlyContextError

if TYPE_CHECKING:
    from rivulet._computation import Computation
    from rivulet._scheduler import Batch, Propagation

T = TypeVar("T")

# The computation whose reads are being recorded.
current_listener: contextvars.ContextVar[Computation | None] = contextvars.ContextVar(
    "current_listener", default=None
)

# The computation that owns anything created right now.
current_owner: contextvars.ContextVar[Computation | None] = contextvars.ContextVar(
    "current_owner", default=None
)

# False while a computation runs. Writes are rejected when False.
mutation_allowed: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "mutation_allowed", default=True
)

# The batch collecting deferred writes, if any.
current_batch: contextvars.ContextVar[Batch | None] = contextvars.ContextVar(
    "current_batch", default=None
)

# The propagation pass being executed, if any.
current_pass: contextvars.ContextVar[Propagation | None] = contextvars.ContextVar(
    "current_pass", default=None
)


def track(readable_id: int) -> None:
    """Record an edge between the current listener and a readable."""
    listener = current_listener.get()
    if listener is not None:
        _anchor.observers[readable_id][listener._id] = None
        _anchor.dependencies[listener._id][readable_id] = None


def check_writable(target: object, value: object) -> None:
    if not mutation_allowed.get():
        raise ReadonlyContextError(
            f"attempted to write {value!r} to {target!r} in a readonly context"
        )


@contextmanager
def evaluating(computation: Computation) -> Iterator[None]:
    """Run a block as ``computation``: it listens, owns, and may not write."""
    listener = current_listener.set(computation)
    owner = current_owner.set(computation)
    mutation = mutation_allowed.set(False)
    _anchor.running.add(computation._id)
    try:
        yield
    finally:
        _anchor.running.discard(computation._id)
        mutation_allowed.reset(mutation)
        current_owner.reset(owner)
        current_listener.reset(listener)


@contextmanager
def untracked() -> Iterator[None]:
    """Suspend dependency registration. Mutation rules are unchanged."""
    token = current_listener.set(None)
    try:
        yield
    finally:
        current_listener.reset(token)


@contextmanager
def detached() -> Iterator[None]:
    """Evaluate outside the graph: no listener, no owner, no writes."""
    listener = current_listener.set(None)
    owner = current_owner.set(None)
    mutation = mutation_allowed.set(False)
    try:
        yield
    finally:
        mutation_allowed.reset(mutation)
        current_owner.reset(owner)
        current_listener.reset(listener)


def sample(readable) -> T:
    """Read a value without registering a dependency on it.

    Usage:
        @effect
        def log(cleanup):
            print(sample(prefix), message.read())  # re-runs on message only
    """
    with untracked():
        return readable.read()
