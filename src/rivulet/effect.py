"""Effects: side effects triggered by state changes.

Unlike a Derivation, an Effect publishes nothing and is never read. It runs
immediately on creation and re-runs whenever something it read during its
last run changes.

Three flavors:
- effect(fn): fn(cleanup) runs now and on every change.
- stateful_effect(fn, initial): fn(state, cleanup) returns the next state.
- reaction(data_fn, effect_fn): tracks data_fn, calls effect_fn with the new
  value only when data_fn's result changes.

Cleanup callbacks registered during a run fire, in registration order,
right before the next run and on disposal. Effects and derivations created
during a run belong to it and are disposed at the same moments.

All graph state lives in _anchor; instances are thin handles holding an _id.
"""

from __future__ import annotations

from typing import Callable, TypeVar

from rivulet import _anchor
from rivulet._computation import Computation
from rivulet._tracking import untracked
from rivulet.computed import _default_equal

T = TypeVar("T")
S = TypeVar("S")

_UNSET = object()

Cleanup = Callable[[Callable[[], None]], None]


class Effect(Computation):
    """A reactive side effect. Calling it disposes it."""

    __slots__ = ()

    def __init__(self, fn: Callable) -> None:
        super().__init__(fn)
        _anchor.cleanups[self._id] = []
        _anchor.effects[self._id] = self

    def on_cleanup(self, callback: Callable[[], None]) -> None:
        """Register a callback for the end of the current run."""
        if self.disposed:
            callback()
        else:
            _anchor.cleanups[self._id].append(callback)

    def _start(self) -> None:
        """Initial run. A run that raises leaves nothing subscribed."""
        try:
            self._evaluate()
        except BaseException:
            self.dispose()
            raise

    def _compute(self) -> None:
        self._fn(self.on_cleanup)

    def _run(self) -> bool:
        if not self.disposed:
            self._evaluate()
        return False

    def _reset(self) -> None:
        super()._reset()
        callbacks = _anchor.cleanups[self._id]
        _anchor.cleanups[self._id] = []
        for callback in callbacks:
            callback()

    def dispose(self) -> None:
        super().dispose()
        _anchor.effects.pop(self._id, None)

    def __call__(self) -> None:
        self.dispose()

    def __repr__(self) -> str:
        name = getattr(self._fn, "__name__", "effect")
        state = "disposed" if self.disposed else "active"
        return f"{type(self).__name__}({name}, {state})"


class StatefulEffect(Effect):
    """Effect threading a state value from one run into the next."""

    __slots__ = ("_state",)

    def __init__(self, fn: Callable, initial) -> None:
        super().__init__(fn)
        self._state = initial

    @property
    def state(self):
        return self._state

    def _compute(self) -> None:
        self._state = self._fn(self._state, self.on_cleanup)


class Reaction(Effect):
    """Internal: reaction(data_fn, effect_fn) implementation.

    Tracks data_fn's dependencies. When they change, re-runs data_fn.
    If the result differs from last time, calls effect_fn with the new value.
    """

    __slots__ = ("_effect_fn", "_comparator", "_fire_immediately", "_last_value")

    def __init__(
        self,
        data_fn: Callable,
        effect_fn: Callable,
        fire_immediately: bool,
        comparator: Callable | None,
    ) -> None:
        super().__init__(data_fn)
        self._effect_fn = effect_fn
        self._fire_immediately = fire_immediately
        self._comparator = comparator or _default_equal
        self._last_value = _UNSET

    def _compute(self) -> None:
        value = self._fn()
        if self._last_value is _UNSET:
            self._last_value = value
            if not self._fire_immediately:
                return
        elif self._comparator(self._last_value, value):
            return
        else:
            self._last_value = value
        with untracked():
            self._effect_fn(value)


def effect(fn: Callable[[Cleanup], None]) -> Effect:
    """Run fn(cleanup) now, then again whenever anything it read changes.

    Returns the Effect; call it (or its .dispose()) to stop.

    Usage:
        name = primitive("ada")
        log = []

        @effect
        def greet(cleanup):
            log.append(f"hello {name.read()}")
            cleanup(lambda: log.append("bye"))

        name.write("grace")
        # log == ["hello ada", "bye", "hello grace"]

        greet()
        # log == ["hello ada", "bye", "hello grace", "bye"]
    """
    e = Effect(fn)
    e._start()
    return e


def stateful_effect(fn: Callable[[S, Cleanup], S], initial: S) -> StatefulEffect:
    """Like effect(), but fn(state, cleanup) returns the state for its next run.

    Usage:
        ticks = signal()
        counter = stateful_effect(lambda n, cleanup: (ticks.read(), n + 1)[1], 0)
        ticks.notify()
        counter.state  # 2
    """
    e = StatefulEffect(fn, initial)
    e._start()
    return e


def reaction(
    data_fn: Callable[[], T],
    effect_fn: Callable[[T], None],
    *,
    fire_immediately: bool = False,
    comparator: Callable[[T, T], bool] | None = None,
) -> Reaction:
    """Track data_fn's reads; call effect_fn when the result changes.

    Unlike effect, effect_fn only fires when data_fn's *return value*
    changes, and its own reads are not tracked.

    Usage:
        first = primitive("Alice")
        last = primitive("Smith")

        names = []
        r = reaction(
            lambda: f"{first.read()} {last.read()}",
            names.append,
        )
        # names == [] since data_fn ran to establish deps, effect_fn did not

        first.write("Bob")
        # names == ["Bob Smith"]

        r.dispose()
    """
    r = Reaction(data_fn, effect_fn, fire_immediately, comparator)
    r._start()
    return r
