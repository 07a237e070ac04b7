"""Rivulet: glitch-free fine-grained reactive dataflow for Python."""

from importlib.metadata import version as _version

__version__ = _version("rivulet")

from rivulet._tracking import sample
from rivulet.errors import CircularReferenceError, ReactivityError, ReadonlyContextError
from rivulet.cells import (
    Borrow,
    Cell,
    Channel,
    Distinct,
    Pointer,
    Primitive,
    Signal,
    borrow,
    channel,
    distinct,
    pointer,
    primitive,
    protect,
    set_scheduler,
    signal,
)
from rivulet.computed import Derivation, Thunk, computed, derived, derived_signal, thunk
from rivulet.effect import Effect, StatefulEffect, effect, reaction, stateful_effect
from rivulet.batch import action, batch, get_pending_count, transaction
# textual NOT auto-imported, opt-in only

__all__ = [
    "Borrow",
    "Cell",
    "Channel",
    "CircularReferenceError",
    "Derivation",
    "Distinct",
    "Effect",
    "Pointer",
    "Primitive",
    "ReactivityError",
    "ReadonlyContextError",
    "Signal",
    "StatefulEffect",
    "Thunk",
    "action",
    "batch",
    "borrow",
    "channel",
    "computed",
    "derived",
    "derived_signal",
    "distinct",
    "effect",
    "get_pending_count",
    "pointer",
    "primitive",
    "protect",
    "reaction",
    "sample",
    "set_scheduler",
    "signal",
    "stateful_effect",
    "thunk",
    "transaction",
]
