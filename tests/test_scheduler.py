"""Tests for the notification scheduler: deferral, batching scopes, error channel."""

import asyncio
import logging

from tether import (
    action,
    create_reactive_state,
    drain,
    flush,
    get_pending_count,
    run_effect,
    set_error_handler,
    set_scheduler,
    transaction,
)


class TestDeferral:
    def test_without_loop_waits_for_flush(self):
        state = create_reactive_state({"a": 0})
        log = []
        run_effect(lambda: log.append(state["a"]))
        state["a"] = 1
        assert log == [0]
        assert flush() == 1
        assert log == [0, 1]

    def test_loop_picks_up_after_manual_writes(self):
        state = create_reactive_state({"n": 0})
        log = []
        run_effect(lambda: log.append(state["n"]))
        state["n"] = 1  # no loop yet

        async def main():
            state["n"] = 2
            await asyncio.sleep(0)
            await asyncio.sleep(0)

        asyncio.run(main())
        assert log == [0, 2]

    def test_deferral_installed_after_manual_writes(self):
        state = create_reactive_state({"n": 0})
        log = []
        run_effect(lambda: log.append(state["n"]))
        state["n"] = 1
        queued = []
        set_scheduler(queued.append)
        state["n"] = 2
        assert len(queued) == 1
        queued.pop()()
        assert log == [0, 2]

    def test_asyncio_loop_flushes_after_burst(self):
        state = create_reactive_state({"a": 0, "b": 0})
        log = []

        async def main():
            run_effect(lambda: log.append((state["a"], state["b"])))
            state["a"] = 1
            state["b"] = 2
            assert log == [(0, 0)]  # nothing inline
            await asyncio.sleep(0)
            assert log == [(0, 0), (1, 2)]

        asyncio.run(main())

    def test_asyncio_reentrant_flush_runs_later(self):
        state = create_reactive_state({"source": 0, "mirror": 0})
        log = []

        async def main():
            run_effect(lambda: state.__setitem__("mirror", state["source"] + 1))
            run_effect(lambda: log.append(state["mirror"]))
            state["source"] = 10
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            assert log == [1, 11]

        asyncio.run(main())

    def test_custom_scheduler_called_once_per_burst(self):
        queued = []
        set_scheduler(queued.append)
        state = create_reactive_state({"a": 0, "b": 0})
        log = []
        run_effect(lambda: log.append(state["a"] + state["b"]))
        state["a"] = 1
        state["b"] = 1
        assert len(queued) == 1
        queued.pop()()
        assert log == [0, 2]
        state["a"] = 5
        assert len(queued) == 1

    def test_reset_to_default(self):
        queued = []
        set_scheduler(queued.append)
        set_scheduler(None)
        state = create_reactive_state({"a": 0})
        run_effect(lambda: state["a"])
        state["a"] = 1
        assert queued == []
        assert get_pending_count() == 1


class TestDrain:
    def test_drains_cascades(self):
        state = create_reactive_state({"a": 0, "b": 0, "c": 0})
        run_effect(lambda: state.__setitem__("b", state["a"] + 1))
        run_effect(lambda: state.__setitem__("c", state["b"] + 1))
        state["a"] = 10
        assert drain() == 2
        assert state["c"] == 12

    def test_bounded(self, caplog):
        state = create_reactive_state({"n": 0})
        run_effect(lambda: state.__setitem__("n", state["n"] + 1))
        with caplog.at_level(logging.WARNING, logger="tether.scheduler"):
            assert drain(max_rounds=5) == 5
        assert "drain() stopped after 5 rounds" in caplog.text
        assert get_pending_count() == 1


class TestAction:
    def test_batches_and_drains(self):
        state = create_reactive_state({"a": 0, "b": 0})
        log = []
        run_effect(lambda: log.append((state["a"], state["b"])))

        @action
        def update_both():
            state["a"] = 1
            state["b"] = 2

        update_both()
        # Ran synchronously, once, with both values
        assert log == [(0, 0), (1, 2)]

    def test_nested_actions(self):
        state = create_reactive_state({"v": 0})
        log = []
        run_effect(lambda: log.append(state["v"]))

        @action
        def outer():
            state["v"] = 1

            @action
            def inner():
                state["v"] = 2

            inner()
            assert log == [0]
            state["v"] = 3

        outer()
        assert log == [0, 3]

    def test_preserves_return_value(self):
        @action
        def compute():
            return 42

        assert compute() == 42


class TestTransaction:
    def test_batches_updates(self):
        state = create_reactive_state({"a": 0, "b": 0})
        log = []
        run_effect(lambda: log.append((state["a"], state["b"])))

        with transaction():
            state["a"] = 10
            state["b"] = 20

        assert log == [(0, 0), (10, 20)]

    def test_no_deferred_request_inside(self):
        queued = []
        set_scheduler(queued.append)
        state = create_reactive_state({"a": 0})
        run_effect(lambda: state["a"])
        with transaction():
            state["a"] = 1
        assert queued == []
        assert get_pending_count() == 0

    def test_drains_on_exception(self):
        state = create_reactive_state({"v": 0})
        log = []
        run_effect(lambda: log.append(state["v"]))
        try:
            with transaction():
                state["v"] = 1
                raise RuntimeError("oops")
        except RuntimeError:
            pass
        assert log == [0, 1]


class TestErrorChannel:
    def test_logged_without_handler(self, caplog):
        state = create_reactive_state({"v": 0})

        def bad():
            if state["v"]:
                raise ValueError("boom")

        run_effect(bad)
        state["v"] = 1
        with caplog.at_level(logging.ERROR, logger="tether.scheduler"):
            flush()
        assert "failed" in caplog.text
        assert "ValueError: boom" in caplog.text

    def test_initial_run_failure_reported(self):
        errors = []
        set_error_handler(errors.append)

        def bad():
            raise KeyError("missing")

        dispose = run_effect(bad)
        assert len(errors) == 1
        assert not dispose.__self__.disposed

    def test_broken_handler_is_logged(self, caplog):
        def handler(error):
            raise RuntimeError("handler broke")

        set_error_handler(handler)
        state = create_reactive_state({"v": 0})
        seen = []

        def bad():
            if state["v"]:
                raise ValueError("boom")

        run_effect(bad)
        run_effect(lambda: seen.append(state["v"]))
        state["v"] = 1
        with caplog.at_level(logging.ERROR, logger="tether.scheduler"):
            flush()
        assert "Error handler failed" in caplog.text
        assert seen == [0, 1]
