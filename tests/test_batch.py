"""Tests for batch(), transaction() and @action."""

import pytest

from rivulet import (
    action,
    batch,
    computed,
    distinct,
    effect,
    get_pending_count,
    primitive,
    transaction,
)


class TestBatch:
    def test_deferred_visibility(self):
        s = primitive("initial")
        count = primitive(1)
        run_count = 0
        message = ""

        def render(cleanup):
            nonlocal run_count, message
            run_count += 1
            message = s.read() * count.read()

        effect(render)
        assert (run_count, message) == (1, "initial")

        def body():
            count.write(4)
            assert count.read() == 1
            assert (run_count, message) == (1, "initial")

            s.write("blah")
            assert s.read() == "initial"
            assert (run_count, message) == (1, "initial")

        batch(body)
        assert (run_count, message) == (2, "blahblahblahblah")

    def test_returns_result(self):
        assert batch(lambda: 42) == 42

    def test_empty_batch_runs_nothing(self):
        o = primitive(0)
        log = []
        effect(lambda cleanup: log.append(o.read()))
        batch(lambda: None)
        assert log == [0]

    def test_derivations_settle_once(self):
        a = primitive(1)
        b = primitive(2)
        runs = 0

        def add():
            nonlocal runs
            runs += 1
            return a.read() + b.read()

        total = computed(add)
        batch(lambda: (a.write(10), b.write(20)))
        assert total.read() == 30
        assert runs == 2

    def test_writes_apply_in_call_order(self):
        o = primitive(0)
        log = []
        effect(lambda cleanup: log.append(o.read()))
        batch(lambda: (o.write(1), o.write(2), o.write(3)))
        assert o.read() == 3
        assert log == [0, 3]

    def test_repeat_write_compares_with_pending_value(self):
        sized = distinct([0], lambda left, right: len(left) == len(right))
        log = []
        effect(lambda cleanup: log.append(sized.read()))

        def body():
            sized.write([1, 2])
            sized.write([3, 4])  # same length as the pending value, dropped
            sized.write([5])

        batch(body)
        assert sized.read() == [5]
        assert log == [[0], [5]]

    def test_subscribers_added_during_batch_are_updated(self):
        o = primitive(1)
        holder = {}

        def body():
            o.write(2)
            holder["doubled"] = computed(lambda: o.read() * 2)
            assert holder["doubled"].read() == 2

        batch(body)
        assert holder["doubled"].read() == 4

    def test_pending_count(self):
        o = primitive(0)
        effect(lambda cleanup: o.read())
        effect(lambda cleanup: o.read())
        seen = []
        assert get_pending_count() == 0
        batch(lambda: (o.write(1), seen.append(get_pending_count())))
        assert seen == [2]
        assert get_pending_count() == 0


class TestAction:
    def test_batches_updates(self):
        a = primitive(0)
        b = primitive(0)
        log = []
        effect(lambda cleanup: log.append((a.read(), b.read())))
        assert log == [(0, 0)]

        @action
        def update_both():
            a.write(1)
            b.write(2)

        update_both()
        # (1, 2), never the intermediate (1, 0)
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        o = primitive(0)
        log = []
        effect(lambda cleanup: log.append(o.read()))

        @action
        def outer():
            o.write(1)

            @action
            def inner():
                o.write(2)

            inner()
            o.write(3)

        outer()
        # Only fires after outermost action completes
        assert log == [0, 3]

    def test_preserves_return_value(self):
        @action
        def compute():
            return 42

        assert compute() == 42


class TestTransaction:
    def test_batches_updates(self):
        a = primitive(0)
        b = primitive(0)
        log = []
        effect(lambda cleanup: log.append((a.read(), b.read())))

        with transaction():
            a.write(10)
            b.write(20)

        assert log == [(0, 0), (10, 20)]

    def test_nested_transactions(self):
        o = primitive(0)
        log = []
        effect(lambda cleanup: log.append(o.read()))

        with transaction():
            o.write(1)
            with transaction():
                o.write(2)
                assert o.read() == 0
            o.write(3)

        assert log == [0, 3]

    def test_commits_on_exception(self):
        o = primitive(0)
        log = []
        effect(lambda cleanup: log.append(o.read()))

        with pytest.raises(RuntimeError):
            with transaction():
                o.write(5)
                raise RuntimeError("oops")

        assert o.read() == 5
        assert log == [0, 5]
        assert get_pending_count() == 0
