"""Tests for the streaming search session."""

from __future__ import annotations

import logging
import threading
import time

import pytest

from sgsearch.config import ConnectionConfig
from sgsearch.session import (
    CancellationToken,
    NotificationKind,
    SearchSession,
    format_summary,
)
from sgsearch.types import (
    Alert,
    PathMatch,
    PatternType,
    Progress,
    SearchResult,
    SessionState,
    Suggestion,
)


# =========================================================================
# Helpers
# =========================================================================


def _result(name: str) -> SearchResult:
    return SearchResult(url=f"https://sg.example.com/{name}", match=PathMatch("a/b", name))


def _session(transport, connection, notifications=None) -> SearchSession:
    sink = notifications if notifications is not None else []
    return SearchSession(transport, connection, notify=sink.append)


# =========================================================================
# CancellationToken
# =========================================================================


class TestCancellationToken:
    def test_starts_active(self) -> None:
        assert CancellationToken().cancelled is False

    def test_cancel(self) -> None:
        token = CancellationToken()
        token.cancel()
        token.cancel()
        assert token.cancelled is True


# =========================================================================
# Lifecycle
# =========================================================================


class TestLifecycle:
    def test_initial_state(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        assert session.state == SessionState()
        assert session.generation == 0
        assert session.wait(0) is True

    def test_initial_text_uses_default_context(self, controlled_transport) -> None:
        session = _session(controlled_transport, ConnectionConfig(default_context="global"))
        assert session.initial_text == "context:global "

    def test_search_resets_and_loads(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        assert session.state == SessionState(results=(), suggestions=(), summary=None, is_loading=True)
        assert call.pattern_type is PatternType.LITERAL
        assert call.token.cancelled is False
        call.finish()
        assert session.wait(5)
        assert session.state.is_loading is False

    def test_invalid_pattern_type(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        with pytest.raises(ValueError):
            session.search("foo", "fuzzy")

    def test_results_append_in_arrival_order_without_dedup(
        self, controlled_transport, connection
    ) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", PatternType.LITERAL)
        call = controlled_transport.call_for("foo")
        a, b, c = _result("a"), _result("b"), _result("c")
        call.handlers.on_results([b, a])
        call.handlers.on_results([c, b])
        call.finish()
        session.wait(5)
        assert session.state.results == (b, a, c, b)

    def test_second_search_resets_previous_results(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        first = controlled_transport.call_for("foo")
        first.handlers.on_results([_result("a")])
        first.handlers.on_suggestions([Suggestion("s")], False)
        first.finish()
        session.wait(5)

        session.search("bar", "literal")
        assert session.state.results == ()
        assert session.state.suggestions == ()
        assert session.state.is_loading is True
        controlled_transport.call_for("bar").finish()
        session.wait(5)


# =========================================================================
# Event folding
# =========================================================================


class TestFolding:
    def test_suggestions_push_to_top(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        late = [Suggestion("lang:go", query="lang:go"), Suggestion("lang:rust", query="lang:rust")]
        urgent = [Suggestion("Did you mean bar?", query="bar")]
        call.handlers.on_suggestions(late, False)
        call.handlers.on_suggestions(urgent, True)
        call.finish()
        session.wait(5)
        assert session.state.suggestions == tuple(urgent + late)

    def test_progress_last_write_wins(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        call.handlers.on_progress(Progress(match_count=3, duration_ms=10))
        call.handlers.on_progress(Progress(match_count=42, duration_ms=120.4))
        call.finish()
        session.wait(5)
        assert session.state.summary == "42 results in 120ms"

    def test_alert_notifies_without_touching_state(self, controlled_transport, connection) -> None:
        notifications: list = []
        session = _session(controlled_transport, connection, notifications)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        before = session.state
        call.handlers.on_alert(Alert("Search timed out", "Try a narrower query"))
        assert session.state is before
        call.finish()
        session.wait(5)
        assert len(notifications) == 1
        assert notifications[0].kind is NotificationKind.ALERT
        assert notifications[0].title == "Search timed out"
        assert notifications[0].message == "Try a narrower query"

    def test_concurrent_batches_are_all_folded(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")

        def deliver(prefix: str) -> None:
            for i in range(50):
                call.handlers.on_results([_result(f"{prefix}{i}")])

        threads = [threading.Thread(target=deliver, args=(p,)) for p in "xyz"]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        call.finish()
        session.wait(5)
        assert len(session.state.results) == 150


def test_format_summary() -> None:
    assert format_summary(Progress(match_count=7, duration_ms=1500.0)) == "7 results in 1500ms"


# =========================================================================
# Supersession
# =========================================================================


class TestSupersession:
    def test_late_events_from_superseded_search_are_dropped(
        self, controlled_transport, connection
    ) -> None:
        notifications: list = []
        session = _session(controlled_transport, connection, notifications)
        session.search("foo", "literal")
        session.search("bar", "regexp")
        foo = controlled_transport.call_for("foo")
        bar = controlled_transport.call_for("bar")
        assert foo.token.cancelled is True
        assert bar.token.cancelled is False

        bar_result = _result("bar")
        bar.handlers.on_results([bar_result])
        foo.handlers.on_results([_result("foo")])
        foo.handlers.on_suggestions([Suggestion("stale")], True)
        foo.handlers.on_progress(Progress(match_count=999, duration_ms=1))
        foo.handlers.on_alert(Alert("stale alert"))
        foo.finish()
        bar.finish()
        session.wait(5)

        assert session.state.results == (bar_result,)
        assert session.state.suggestions == ()
        assert session.state.summary is None
        assert session.state.is_loading is False
        assert notifications == []

    def test_superseded_failure_is_silent(self, controlled_transport, connection) -> None:
        notifications: list = []
        session = _session(controlled_transport, connection, notifications)
        session.search("foo", "literal")
        foo = controlled_transport.call_for("foo")
        session.search("bar", "literal")
        bar = controlled_transport.call_for("bar")
        foo.fail(RuntimeError("aborted"))
        assert session.state.is_loading is True
        bar.finish()
        session.wait(5)
        assert notifications == []
        assert session.state.is_loading is False

    def test_superseded_completion_does_not_clear_loading(
        self, controlled_transport, connection
    ) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        foo = controlled_transport.call_for("foo")
        session.search("bar", "literal")
        bar = controlled_transport.call_for("bar")
        foo.finish()
        time.sleep(0.1)
        assert session.state.is_loading is True
        bar.finish()
        session.wait(5)

    def test_many_rapid_searches_keep_only_the_last(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        queries = [f"q{i}" for i in range(10)]
        for query in queries:
            session.search(query, "literal")
        calls = [controlled_transport.call_for(q) for q in queries]
        for query, call in zip(queries, calls):
            call.handlers.on_results([_result(query)])
        for call in calls:
            call.finish()
        session.wait(5)
        assert [r.match.path for r in session.state.results] == ["q9"]
        assert all(c.token.cancelled for c in calls[:-1])

    def test_close_drops_in_flight_events(self, controlled_transport, connection) -> None:
        session = _session(controlled_transport, connection)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        session.close()
        assert call.token.cancelled is True
        assert session.state.is_loading is False
        call.handlers.on_results([_result("late")])
        call.finish()
        session.wait(5)
        assert session.state.results == ()


# =========================================================================
# Failures
# =========================================================================


class TestFailures:
    def test_failure_keeps_partial_results(self, controlled_transport, connection) -> None:
        notifications: list = []
        session = _session(controlled_transport, connection, notifications)
        session.search("foo", "literal")
        call = controlled_transport.call_for("foo")
        partial = _result("partial")
        call.handlers.on_results([partial])
        call.handlers.on_suggestions([Suggestion("kept")], False)
        call.fail(RuntimeError("connection reset"))
        session.wait(5)

        assert session.state.results == (partial,)
        assert session.state.suggestions == (Suggestion("kept"),)
        assert session.state.is_loading is False
        assert len(notifications) == 1
        assert notifications[0].kind is NotificationKind.ERROR
        assert notifications[0].title == "Search failed"
        assert "connection reset" in notifications[0].message

    def test_failure_can_be_retried_with_new_search(self, scripted_transport, connection) -> None:
        notifications: list = []
        failing = scripted_transport(error=RuntimeError("boom"))
        session = _session(failing, connection, notifications)
        session.search("foo", "literal")
        session.wait(5)
        failing.error = None
        failing.script = [("on_results", [_result("ok")])]
        session.search("foo", "literal")
        session.wait(5)
        assert [r.match.path for r in session.state.results] == ["ok"]
        assert [n.kind for n in notifications] == [NotificationKind.ERROR]

    def test_failing_notifier_does_not_stop_the_stream(
        self, scripted_transport, connection, caplog
    ) -> None:
        seen: list[str] = []

        def notify(notification) -> None:
            seen.append(notification.title)
            raise RuntimeError("toast unavailable")

        transport = scripted_transport(
            [("on_alert", Alert("timeout")), ("on_results", [_result("after-alert")])]
        )
        session = SearchSession(transport, connection, notify=notify)
        with caplog.at_level(logging.WARNING, logger="sgsearch.session"):
            session.search("foo", "literal")
            session.wait(5)
        assert seen == ["timeout"]
        assert [r.match.path for r in session.state.results] == ["after-alert"]
        assert session.state.is_loading is False
        assert "Notifier" in caplog.text

    def test_failing_notifier_on_error_is_contained(self, scripted_transport, connection) -> None:
        def notify(notification) -> None:
            raise RuntimeError("toast unavailable")

        session = SearchSession(scripted_transport(error=RuntimeError("boom")), connection, notify=notify)
        session.search("foo", "literal")
        assert session.wait(5)
        assert session.state.is_loading is False

    def test_default_notifier_logs(self, scripted_transport, connection, caplog) -> None:
        session = SearchSession(scripted_transport(error=RuntimeError("boom")), connection)
        with caplog.at_level(logging.ERROR, logger="sgsearch.session"):
            session.search("foo", "literal")
            session.wait(5)
        assert "Search failed: boom" in caplog.text


# =========================================================================
# Subscriptions
# =========================================================================


class TestSubscribe:
    def test_listener_sees_every_snapshot(self, scripted_transport, connection) -> None:
        transport = scripted_transport(
            [
                ("on_results", [_result("a")]),
                ("on_progress", Progress(match_count=1, duration_ms=5)),
            ]
        )
        session = _session(transport, connection)
        snapshots: list[SessionState] = []
        session.subscribe(snapshots.append)
        session.search("foo", "literal")
        session.wait(5)
        assert [s.is_loading for s in snapshots] == [True, True, True, False]
        assert snapshots[1].results == (_result("a"),)
        assert snapshots[2].summary == "1 results in 5ms"

    def test_unsubscribe(self, scripted_transport, connection) -> None:
        session = _session(scripted_transport(), connection)
        snapshots: list = []
        unsubscribe = session.subscribe(snapshots.append)
        unsubscribe()
        unsubscribe()
        session.search("foo", "literal")
        session.wait(5)
        assert snapshots == []

    def test_failing_listener_is_logged(self, scripted_transport, connection, caplog) -> None:
        session = _session(scripted_transport([("on_results", [_result("a")])]), connection)

        def broken(state: SessionState) -> None:
            raise RuntimeError("listener bug")

        session.subscribe(broken)
        with caplog.at_level(logging.WARNING, logger="sgsearch.session"):
            session.search("foo", "literal")
            session.wait(5)
        assert "State listener" in caplog.text
        assert session.state.results == (_result("a"),)
        assert session.state.is_loading is False
