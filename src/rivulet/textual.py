"""Textual integration for rivulet. Opt-in, requires textual.

The safety guard, NoMatches handling and thread marshaling live here, not at
callsites. Nothing else in rivulet imports textual.

_paused_apps has a single owner (this module): an id is present exactly
while its app is inside a pause() block. Effects skipped during a pause
subscribe to the app's resume signal and catch up when the pause ends.

For effect() bodies, marshaling cannot happen per run (reads must stay on
the evaluating thread); install rivulet.set_scheduler(app.call_from_thread)
so propagation itself stays on the UI thread.
"""

import logging
import threading
import weakref
from contextlib import contextmanager

from textual.css.query import NoMatches

from rivulet import effect as _effect, reaction as _reaction, signal as _signal

logger = logging.getLogger("rivulet.textual")

# Pause state is keyed by id(app) so several apps can coexist.
_paused_apps: set[int] = set()
_resume_signals: dict[int, object] = {}  # released with their app


def _resume_signal(app):
    key = id(app)
    if key not in _resume_signals:
        _resume_signals[key] = _signal()
        # the id may be reused once the app is gone
        weakref.finalize(app, _resume_signals.pop, key, None)
    return _resume_signals[key]


@contextmanager
def pause(app):
    """Suspend guarded bodies during widget replacement."""
    key = id(app)
    _paused_apps.add(key)
    try:
        yield
    finally:
        _paused_apps.discard(key)
        resume = _resume_signals.get(key)
        if resume is not None:
            resume.notify()


def is_safe(app) -> bool:
    """Is the widget tree in a queryable state?"""
    return app.is_running and id(app) not in _paused_apps


def effect(app, fn):
    """effect() that safely bridges to Textual widgets.

    Skips the body while the app is paused or not running, and drops
    NoMatches raised by widget queries that are not mounted yet.
    """

    def _guarded(cleanup):
        if not is_safe(app):
            _resume_signal(app).read()
            return
        try:
            fn(cleanup)
        except NoMatches as exc:
            logger.debug("Effect %r hit a missing widget: %s", fn, exc)

    return _effect(_guarded)


def reaction(app, data_fn, effect_fn, *, fire_immediately=False):
    """reaction() that safely bridges to Textual widgets.

    Guards against firing during pause/not-running, catches NoMatches
    from widget queries, and marshals cross-thread calls via call_from_thread.
    """
    _main = threading.get_ident()

    def _guarded(value):
        if not is_safe(app):
            return
        if threading.get_ident() != _main:
            app.call_from_thread(_safe, value)
        else:
            _safe(value)

    def _safe(value):
        try:
            effect_fn(value)
        except NoMatches as exc:
            logger.debug("Reaction %r hit a missing widget: %s", effect_fn, exc)

    return _reaction(data_fn, _guarded, fire_immediately=fire_immediately)
