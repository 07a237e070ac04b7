"""Batches, transactions and actions: coalesced state mutations.

Writes made inside batch(), `with transaction()` or an @action are deferred:
reads keep returning the old values and no dependent runs until the
outermost scope exits. The commit then applies every write in call order and
runs each affected computation exactly once, after its upstream has settled.
"""

from __future__ import annotations

import functools
from contextlib import contextmanager
from typing import Callable, Iterator, ParamSpec, TypeVar

from rivulet._scheduler import Batch
from rivulet._tracking import current_batch

P = ParamSpec("P")
R = TypeVar("R")


@contextmanager
def transaction() -> Iterator[None]:
    """Context manager for batching writes.

    Usage:
        with transaction():
            first.write("Bob")
            last.write("Jones")
            # first.read() is still the old value here
        # dependents run here, once, seeing both writes

    Nested transactions join the outermost one. Writes deferred before an
    exception are still committed when the block exits.
    """
    if current_batch.get() is not None:
        yield
        return
    pending = Batch()
    token = current_batch.set(pending)
    try:
        yield
    finally:
        current_batch.reset(token)
        pending.commit()


def batch(fn: Callable[[], R]) -> R:
    """Run fn, deferring its writes; commit them in one pass afterwards.

    Returns whatever fn returns.
    """
    with transaction():
        return fn()


def action(fn: Callable[P, R]) -> Callable[P, R]:
    """Decorator: batch all writes inside fn.

    Usage:
        left = primitive(0)
        right = primitive(0)

        @action
        def swap():
            a, b = left.read(), right.read()
            left.write(b)
            right.write(a)
            # dependents see both changes at once, not one at a time
    """

    @functools.wraps(fn)
    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        with transaction():
            return fn(*args, **kwargs)

    return wrapper


def get_pending_count() -> int:
    """Number of computations the active batch will run. Useful for testing."""
    pending = current_batch.get()
    return pending.scheduled_count if pending is not None else 0
