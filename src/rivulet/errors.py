"""Rivulet error hierarchy.

All rivulet-specific errors inherit from ReactivityError for easy catching.
Both concrete errors are usage errors: they are raised synchronously to the
caller of ``write``/``batch`` and never retried.
"""


class ReactivityError(Exception):
    """Base error for all rivulet operations."""


class ReadonlyContextError(ReactivityError):
    """A cell was written while a computation was running."""


class CircularReferenceError(ReactivityError):
    """A derivation would re-enter its own in-progress evaluation."""
