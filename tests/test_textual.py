"""Tests for tether.textual — Textual integration layer."""

import threading

import pytest
from textual.css.query import NoMatches

from tether import create_reactive_state, flush, set_error_handler
from tether import textual as ttx


class _MockWidget:
    def __init__(self):
        self.renders = []

    def update(self, content):
        self.renders.append(content)


class _MockApp:
    """Minimal mock matching the Textual App interface ttx needs."""

    def __init__(self, *, is_running=True, widgets=None):
        self.is_running = is_running
        self.widgets = widgets or {}
        self._call_later_queue = []
        self._call_from_thread_log = []

    def call_later(self, fn, *args):
        self._call_later_queue.append((fn, args))
        return True

    def call_from_thread(self, fn, *args):
        self._call_from_thread_log.append((fn, args))
        fn(*args)

    def query_one(self, selector):
        try:
            return self.widgets[selector]
        except KeyError:
            raise NoMatches(f"No nodes match {selector!r}") from None

    def run_pending(self):
        while self._call_later_queue:
            fn, args = self._call_later_queue.pop(0)
            fn(*args)


class TestInstall:
    def test_flush_goes_through_call_later(self):
        app = _MockApp()
        ttx.install(app)
        state = create_reactive_state({"v": 1})
        log = []
        ttx.effect(app, lambda: log.append(state["v"]))
        state["v"] = 2
        state["v"] = 3
        assert log == [1]
        assert len(app._call_later_queue) == 1
        app.run_pending()
        assert log == [1, 3]

    def test_thread_marshal(self):
        """Writes from a worker thread hand the flush over with call_from_thread."""
        app = _MockApp()
        ttx.install(app)
        state = create_reactive_state({"v": 1})
        log = []
        ttx.effect(app, lambda: log.append(state["v"]))

        def _bg():
            state["v"] = 2

        t = threading.Thread(target=_bg)
        t.start()
        t.join()

        assert log == [1, 2]
        assert len(app._call_from_thread_log) == 1
        assert app._call_later_queue == []


class TestEffect:
    def test_skips_when_not_running(self):
        app = _MockApp(is_running=False)
        state = create_reactive_state({"v": 1})
        log = []
        ttx.effect(app, lambda: log.append(state["v"]))
        assert log == []

    def test_skips_during_pause(self):
        app = _MockApp()
        state = create_reactive_state({"v": 1})
        log = []
        ttx.effect(app, lambda: log.append(state["v"]))
        assert log == [1]

        with ttx.pause(app):
            state["v"] = 2
            flush()
        assert log == [1]

        # The edge survives the skipped run
        state["v"] = 3
        flush()
        assert log == [1, 3]

    def test_catches_nomatch(self):
        """NoMatches from widget queries are silently swallowed."""
        app = _MockApp()
        state = create_reactive_state({"v": 1})
        call_count = [0]
        errors = []

        def _fn():
            call_count[0] += 1
            state["v"]  # track dependency
            if call_count[0] > 1:
                raise NoMatches("Widget")

        set_error_handler(errors.append)
        ttx.effect(app, _fn)
        state["v"] = 2
        flush()
        assert call_count[0] == 2
        assert errors == []

    def test_real_errors_reach_error_handler(self):
        app = _MockApp()
        state = create_reactive_state({"v": 1})
        errors = []

        def _fn():
            if state["v"] > 1:
                raise ValueError("boom")

        set_error_handler(errors.append)
        ttx.effect(app, _fn)
        state["v"] = 2
        flush()
        assert len(errors) == 1
        assert str(errors[0]) == "boom"

    def test_dispose_stops_effect(self):
        app = _MockApp()
        state = create_reactive_state({"v": 1})
        log = []
        dispose = ttx.effect(app, lambda: log.append(state["v"]))
        dispose()
        state["v"] = 2
        flush()
        assert log == [1]


class TestBind:
    def test_renders_and_updates(self):
        label = _MockWidget()
        app = _MockApp(widgets={"#count": label})
        state = create_reactive_state({"todos": ["a"]})
        ttx.bind(app, "#count", lambda: f"{len(state['todos'])} todos")
        assert label.renders == ["1 todos"]
        state["todos"].append("b")
        flush()
        assert label.renders == ["1 todos", "2 todos"]

    def test_missing_widget_tracks_anyway(self):
        app = _MockApp()
        state = create_reactive_state({"title": "x"})
        ttx.bind(app, "#title", lambda: state["title"])
        label = _MockWidget()
        app.widgets["#title"] = label
        state["title"] = "y"
        flush()
        assert label.renders == ["y"]


class TestPause:
    def test_pause_restores_on_exception(self):
        app = _MockApp()
        assert ttx.is_safe(app)

        with pytest.raises(RuntimeError):
            with ttx.pause(app):
                assert not ttx.is_safe(app)
                raise RuntimeError("oops")

        # Restored despite exception
        assert ttx.is_safe(app)

    def test_pause_does_not_mutate_app(self):
        """// [LAW:no-shared-mutable-globals] pause state lives in the module, not on the app.

        This test prevents regression to setting attributes on external objects.
        """
        app = _MockApp()
        attrs_before = set(vars(app))
        with ttx.pause(app):
            attrs_during = set(vars(app))
        attrs_after = set(vars(app))
        assert attrs_before == attrs_during, (
            f"pause() added attributes to app: {attrs_during - attrs_before}"
        )
        assert attrs_before == attrs_after

    def test_multiple_apps_independent(self):
        """Pausing one app does not affect another."""
        app_a = _MockApp()
        app_b = _MockApp()
        with ttx.pause(app_a):
            assert not ttx.is_safe(app_a)
            assert ttx.is_safe(app_b)
