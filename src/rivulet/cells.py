"""Source cells: state that tracks its readers.

When a cell is read inside a derivation or effect run, the dependency is
registered automatically. When it is written with a value its variant does
not consider equal, every dependent is re-evaluated in one propagation pass,
or, inside batch(), once the batch commits.

All state lives in _anchor; instances are thin handles holding an _id.

Thread safety: call set_scheduler() once from the owning thread. After that,
any write() from a background thread is auto-marshaled. Owning-thread writes
remain synchronous.
"""

from __future__ import annotations

import threading
import weakref
from typing import Callable, Generic, TypeVar

from rivulet import _anchor
from rivulet._scheduler import Batch
from rivulet._tracking import check_writable, current_batch, track

T = TypeVar("T")

Comparator = Callable[[T, T], bool]

# ─── Auto-marshal ────────────────────────────────────────────────────────────
_scheduler = None
_scheduler_thread = None


def set_scheduler(scheduler) -> None:
    """Set the global thread scheduler for cross-thread writes.

    Call once from the thread that owns the graph:
        rivulet.set_scheduler(app.call_from_thread)

    After this, any write() from another thread is handed to the scheduler.
    Writes on the owning thread remain synchronous. Pass None to turn
    marshaling off again.
    """
    global _scheduler, _scheduler_thread
    _scheduler = scheduler
    _scheduler_thread = threading.current_thread() if scheduler is not None else None


class Cell(Generic[T]):
    """A source value with automatic dependency tracking.

    Subclasses decide which writes count as changes by overriding _equal().
    """

    __slots__ = ("_id", "__weakref__")

    def __init__(self, value: T) -> None:
        self._id = _anchor.new_id()
        _anchor.values[self._id] = value
        _anchor.observers[self._id] = {}
        weakref.finalize(self, _anchor.release, self._id)

    def read(self) -> T:
        """Read the value. If inside a computation, registers the dependency."""
        track(self._id)
        return _anchor.values[self._id]

    def write(self, value: T) -> None:
        """Write a new value. Auto-marshals from background threads."""
        if _scheduler is not None and threading.current_thread() != _scheduler_thread:
            _scheduler(lambda v=value: self._write_direct(v))
        else:
            self._write_direct(value)

    def _write_direct(self, value: T) -> None:
        check_writable(self, value)
        batch = current_batch.get()
        current = _anchor.values[self._id]
        if batch is not None:
            current = batch.pending_value(self._id, current)
        if self._equal(current, value):
            return
        if batch is not None:
            batch.defer(self, value)
        else:
            single = Batch()
            single.defer(self, value)
            single.commit()

    def _equal(self, old: T, new: T) -> bool:
        return old is new or old == new

    def __repr__(self) -> str:
        return f"{type(self).__name__}({_anchor.values[self._id]!r})"


class Primitive(Cell[T]):
    """Scalar cell. Writing an equal value is a no-op."""

    __slots__ = ()


class Pointer(Cell[T]):
    """Reference cell. Only writing the very same object is a no-op."""

    __slots__ = ()

    def _equal(self, old: T, new: T) -> bool:
        return old is new


class Distinct(Cell[T]):
    """Cell with a caller-supplied comparator.

    Writes the comparator calls equal are dropped: the old value stays, even
    when the new one is a different object.
    """

    __slots__ = ("_comparator",)

    def __init__(self, value: T, comparator: Comparator) -> None:
        super().__init__(value)
        self._comparator = comparator

    def _equal(self, old: T, new: T) -> bool:
        return self._comparator(old, new)


class Channel(Cell[T]):
    """Cell that notifies on every write, equal or not."""

    __slots__ = ()

    def _equal(self, old: T, new: T) -> bool:
        return False


class Signal(Cell[None]):
    """Value-less cell, read and written purely to force re-evaluation."""

    __slots__ = ()

    def __init__(self) -> None:
        super().__init__(None)

    def read(self) -> None:
        track(self._id)

    def write(self) -> None:
        super().write(None)

    notify = write

    def _equal(self, old: None, new: None) -> bool:
        return False

    def __repr__(self) -> str:
        return "Signal()"


class Borrow(Generic[T]):
    """Read-only view of a cell. Reads track the underlying cell."""

    __slots__ = ("_source",)

    def __init__(self, source: Cell[T]) -> None:
        self._source = source

    def read(self) -> T:
        return self._source.read()

    def __repr__(self) -> str:
        return f"Borrow({self._source!r})"


def primitive(value: T) -> Primitive[T]:
    return Primitive(value)


def pointer(value: T) -> Pointer[T]:
    return Pointer(value)


def distinct(value: T, comparator: Comparator) -> Distinct[T]:
    """Create a cell that drops writes ``comparator(old, new)`` calls equal.

    Usage:
        sizes = distinct([0, 0, 0], lambda a, b: len(a) == len(b))
        sizes.write([1, 2, 3])  # dropped, same length
        sizes.read()            # [0, 0, 0]
    """
    return Distinct(value, comparator)


def channel(value: T) -> Channel[T]:
    return Channel(value)


def signal() -> Signal:
    return Signal()


def borrow(cell: Cell[T]) -> Borrow[T]:
    return Borrow(cell)


def protect(cell: Cell[T]) -> tuple[Cell[T], Borrow[T]]:
    """Split a cell into its writable handle and a read-only view.

    Usage:
        class Account:
            def __init__(self):
                self._balance, self.balance = protect(primitive(0))
    """
    return cell, Borrow(cell)
