"""Derivations: derived state with automatic dependency tracking.

A Derivation wraps a function. It evaluates eagerly: once on creation, and
again whenever something it read during its last run changes. The result is
cached and republished to whoever reads it. A recomputation that yields a
value equal to the cached one keeps the old value and does not wake the
derivation's own dependents.

thunk() is the exception: a lazy, detached snapshot computed on first read.

All state lives in _anchor; instances are thin handles holding an _id.
"""

from __future__ import annotations

from typing import Callable, Generic, TypeVar

from rivulet import _anchor
from rivulet._computation import Computation
from rivulet._tracking import current_pass, detached, track, untracked
from rivulet.errors import CircularReferenceError

T = TypeVar("T")

_UNSET = object()


def _default_equal(old: object, new: object) -> bool:
    return old is new or old == new


def _never_equal(old: object, new: object) -> bool:
    return False


class Derivation(Computation, Generic[T]):
    """A cached value recomputed from the readables it reads.

    Held weakly by the graph: once nothing references it, it is collected
    and stops recomputing.
    """

    __slots__ = ("_comparator",)

    def __init__(
        self,
        fn: Callable[[], T],
        comparator: Callable[[T, T], bool] | None = None,
    ) -> None:
        super().__init__(fn)
        self._comparator = comparator or _default_equal
        _anchor.observers[self._id] = {}
        try:
            _anchor.values[self._id] = self._evaluate()
        except BaseException:
            self.dispose()
            raise

    def read(self) -> T:
        """Read the cached value. If inside a computation, registers the dependency."""
        if self._id in _anchor.running:
            raise CircularReferenceError(
                f"circular reference: {self!r} read during its own evaluation"
            )
        propagation = current_pass.get()
        if propagation is not None and not self.disposed:
            propagation.refresh(self)
        track(self._id)
        return _anchor.values[self._id]

    def _compute(self) -> T:
        return self._fn()

    def _run(self) -> bool:
        old = _anchor.values[self._id]
        new = self._evaluate()
        if self._comparator(old, new):
            return False
        _anchor.values[self._id] = new
        return True

    def dispose(self) -> None:
        """Disconnect from the graph. The last value stays readable."""
        super().dispose()
        _anchor.observers[self._id].clear()

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", "derivation")
        return f"Derivation({name}, cached={_anchor.values.get(self._id, _UNSET)!r})"


class Thunk(Generic[T]):
    """Computed once on first read, outside the graph, then frozen."""

    __slots__ = ("_fn", "_value")

    def __init__(self, fn: Callable[[], T]) -> None:
        self._fn = fn
        self._value = _UNSET

    def read(self) -> T:
        if self._value is _UNSET:
            with detached():
                self._value = self._fn()
        return self._value

    def __repr__(self) -> str:
        state = "pending" if self._value is _UNSET else f"value={self._value!r}"
        return f"Thunk({state})"


def computed(
    fn: Callable[[], T] | None = None,
    *,
    comparator: Callable[[T, T], bool] | None = None,
):
    """Decorator/factory to create a Derivation from a function.

    Usage:
        name = primitive("ada")

        @computed
        def shout():
            return name.read().upper()

        shout.read()  # "ADA"
        name.write("grace")
        shout.read()  # "GRACE"

    With a comparator, use it as ``computed(fn, comparator=...)`` or
    ``@computed(comparator=...)``.
    """
    if fn is None:
        return lambda f: Derivation(f, comparator)
    return Derivation(fn, comparator)


def derived(
    fn: Callable[..., T],
    *cells,
    comparator: Callable[[T, T], bool] | None = None,
) -> Derivation[T]:
    """Derivation over a fixed set of readables.

    ``fn`` receives the values of ``cells`` and runs untracked, so the
    derivation watches exactly ``cells`` whatever ``fn`` reads.

    Usage:
        full = derived(lambda a, b: f"{a} {b}", first, last)
    """

    def _from_cells() -> T:
        values = [cell.read() for cell in cells]
        with untracked():
            return fn(*values)

    _from_cells.__name__ = getattr(fn, "__name__", "derived")
    return Derivation(_from_cells, comparator)


def derived_signal(*cells) -> Derivation[None]:
    """Collapse several readables into one value-less notification."""

    def _touch() -> None:
        for cell in cells:
            cell.read()

    return Derivation(_touch, _never_equal)


def thunk(fn: Callable[[], T]) -> Thunk[T]:
    return Thunk(fn)
