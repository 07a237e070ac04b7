"""Data anchor: plain Python structures that hold all reactive state.

Every cell, derivation and effect is a thin handle holding an integer id.
The graph itself lives here, in id-keyed dicts, so edges never hold
references to the objects on either end of them.

Sets of ids are dicts with ``None`` values: insertion-ordered, which keeps
propagation order deterministic.

Live computations are registered weakly. A derivation lives as long as its
caller, its owner or a reader's closure holds it. Effects are also pinned in
``effects`` until disposed, since nothing else is expected to hold them.
"""

import itertools
import weakref

# Readable state (cells and derivations)
values: dict[int, object] = {}  # readable id -> current / cached value
observers: dict[int, dict[int, None]] = {}  # readable id -> computation ids

# Computation state (derivations and effects)
dependencies: dict[int, dict[int, None]] = {}  # computation id -> readable ids
computations: weakref.WeakValueDictionary = weakref.WeakValueDictionary()  # live, by id
effects: dict[int, object] = {}  # undisposed effects, by id
functions: dict[int, object] = {}  # computation id -> callable
cleanups: dict[int, list] = {}  # effect id -> cleanup callbacks
owners: dict[int, int] = {}  # child id -> owning computation id
owned: dict[int, list] = {}  # owner id -> child computations
running: set[int] = set()  # computations currently evaluating

_id_counter = itertools.count(1)


def new_id() -> int:
    return next(_id_counter)


def release(node_id: int) -> None:
    """Drop every entry for a handle that has been garbage collected."""
    for readable_id in dependencies.pop(node_id, ()):
        dependents = observers.get(readable_id)
        if dependents is not None:
            dependents.pop(node_id, None)
    values.pop(node_id, None)
    observers.pop(node_id, None)
    functions.pop(node_id, None)
    cleanups.pop(node_id, None)
    owners.pop(node_id, None)
    for child in owned.pop(node_id, ()):
        child.dispose()
