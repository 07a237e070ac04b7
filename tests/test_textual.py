"""Tests for rivulet.textual, the Textual integration layer."""

import gc
import threading

import pytest
from textual.css.query import NoMatches

from rivulet import primitive
from rivulet import textual as rtx


class _MockApp:
    """Minimal mock matching the Textual App interface rtx needs."""

    def __init__(self, *, is_running=True):
        self.is_running = is_running
        self._call_from_thread_log = []

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)


class TestReaction:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        o = primitive(1)
        effects = []
        rtx.reaction(app, lambda: o.read(), effects.append)
        o.write(2)
        assert effects == []

    def test_skips_during_pause(self):
        app = _MockApp()
        o = primitive(1)
        effects = []
        rtx.reaction(app, lambda: o.read(), effects.append)
        with rtx.pause(app):
            o.write(2)
        assert effects == []

    def test_fires_when_safe(self):
        app = _MockApp()
        o = primitive(1)
        effects = []
        rtx.reaction(app, lambda: o.read(), effects.append)
        o.write(2)
        assert effects == [2]

    def test_fire_immediately(self):
        app = _MockApp()
        o = primitive(1)
        effects = []
        rtx.reaction(app, lambda: o.read(), effects.append, fire_immediately=True)
        assert effects == [1]

    def test_catches_nomatch(self):
        app = _MockApp()
        o = primitive(1)

        def _raise_nomatch(v):
            raise NoMatches("StatusFooter")

        r = rtx.reaction(app, lambda: o.read(), _raise_nomatch)
        o.write(2)
        r.dispose()

    def test_propagates_real_errors(self):
        """Non-NoMatches exceptions reach the writer."""
        app = _MockApp()
        o = primitive(1)

        def _raise_value_error(v):
            raise ValueError("boom")

        rtx.reaction(app, lambda: o.read(), _raise_value_error)
        with pytest.raises(ValueError, match="boom"):
            o.write(2)

    def test_dispose_stops_reaction(self):
        app = _MockApp()
        o = primitive(1)
        effects = []
        r = rtx.reaction(app, lambda: o.read(), effects.append)
        o.write(2)
        assert effects == [2]
        r.dispose()
        o.write(3)
        assert effects == [2]

    def test_thread_marshal(self):
        """Triggers from a background thread go through call_from_thread."""
        app = _MockApp()
        o = primitive(1)
        effects = []
        rtx.reaction(app, lambda: o.read(), effects.append)

        t = threading.Thread(target=lambda: o.write(2))
        t.start()
        t.join()

        assert effects == [2]
        assert len(app._call_from_thread_log) == 1


class TestEffect:
    def test_fires_when_safe(self):
        app = _MockApp()
        o = primitive(1)
        log = []
        rtx.effect(app, lambda cleanup: log.append(o.read()))
        o.write(2)
        assert log == [1, 2]

    def test_catches_up_after_pause(self):
        app = _MockApp()
        o = primitive(1)
        log = []
        rtx.effect(app, lambda cleanup: log.append(o.read()))
        assert log == [1]

        with rtx.pause(app):
            o.write(2)
            assert log == [1]

        assert log == [1, 2]

    def test_catches_nomatch(self):
        app = _MockApp()
        o = primitive(1)
        calls = 0

        def _fn(cleanup):
            nonlocal calls
            calls += 1
            if o.read() > 1:
                raise NoMatches("Widget")

        rtx.effect(app, _fn)
        o.write(2)
        assert calls == 2

    def test_cleanup_and_dispose(self):
        app = _MockApp()
        o = primitive(1)
        log = []

        def _fn(cleanup):
            value = o.read()
            log.append(f"mount {value}")
            cleanup(lambda: log.append(f"unmount {value}"))

        stop = rtx.effect(app, _fn)
        o.write(2)
        stop()
        o.write(3)
        assert log == ["mount 1", "unmount 1", "mount 2", "unmount 2"]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert rtx.is_safe(app)

        with pytest.raises(RuntimeError):
            with rtx.pause(app):
                assert not rtx.is_safe(app)
                raise RuntimeError("oops")

        assert rtx.is_safe(app)

    def test_not_running_is_unsafe(self):
        assert not rtx.is_safe(_MockApp(is_running=False))

    def test_pause_does_not_mutate_app(self):
        """Pause state lives in the module, not on the app."""
        app = _MockApp()
        attrs_before = set(vars(app))
        with rtx.pause(app):
            attrs_during = set(vars(app))
        assert attrs_before == attrs_during
        assert attrs_before == set(vars(app))

    def test_multiple_apps_independent(self):
        app_a = _MockApp()
        app_b = _MockApp()
        with rtx.pause(app_a):
            assert not rtx.is_safe(app_a)
            assert rtx.is_safe(app_b)

    def test_resume_signal_released_with_app(self):
        app = _MockApp(is_running=False)
        key = id(app)
        stop = rtx.effect(app, lambda cleanup: None)
        assert key in rtx._resume_signals

        stop()
        del stop, app
        gc.collect()
        assert key not in rtx._resume_signals
