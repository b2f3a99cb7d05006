"""Shared fixtures and fakes for sgsearch tests."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

import pytest

from sgsearch.config import ConnectionConfig
from sgsearch.session import CancellationToken, SearchHandlers
from sgsearch.types import (
    CommitMatch,
    ContentMatch,
    LineMatch,
    PathMatch,
    PatternType,
    RepoMatch,
    SearchResult,
    SymbolInfo,
    SymbolMatch,
)

BASE = "https://sg.example.com"


# =========================================================================
# Transports
# =========================================================================


@dataclass
class TransportCall:
    """One perform_search invocation, held open until released."""

    token: CancellationToken
    query: str
    pattern_type: PatternType
    handlers: SearchHandlers
    released: threading.Event = field(default_factory=threading.Event)
    error: Exception | None = None

    def finish(self) -> None:
        self.released.set()

    def fail(self, error: Exception) -> None:
        self.error = error
        self.released.set()


class ControlledTransport:
    """Captures each search's handlers so the test drives event delivery."""

    def __init__(self) -> None:
        self.calls: dict[str, TransportCall] = {}
        self._changed = threading.Condition()

    def perform_search(self, token, connection, query, pattern_type, handlers) -> None:
        call = TransportCall(token, query, pattern_type, handlers)
        with self._changed:
            self.calls[query] = call
            self._changed.notify_all()
        call.released.wait(5)
        if call.error is not None:
            raise call.error

    def call_for(self, query: str, timeout: float = 5) -> TransportCall:
        with self._changed:
            if not self._changed.wait_for(lambda: query in self.calls, timeout):
                raise AssertionError(f"transport never called for {query!r}")
            return self.calls[query]


class ScriptedTransport:
    """Replays a fixed list of handler invocations, then returns or raises."""

    def __init__(self, script=(), error: Exception | None = None) -> None:
        self.script = list(script)
        self.error = error
        self.queries: list[tuple[str, PatternType]] = []

    def perform_search(self, token, connection, query, pattern_type, handlers) -> None:
        self.queries.append((query, pattern_type))
        for name, *args in self.script:
            getattr(handlers, name)(*args)
        if self.error is not None:
            raise self.error


# =========================================================================
# Sample data
# =========================================================================


@pytest.fixture
def connection() -> ConnectionConfig:
    return ConnectionConfig(instance_url=BASE)


@pytest.fixture
def repo_match() -> RepoMatch:
    return RepoMatch(
        repository="github.com/acme/widgets",
        description="Widgets for everyone",
        stars=1200,
        branches=("main",),
    )


@pytest.fixture
def commit_match() -> CommitMatch:
    return CommitMatch(
        repository="github.com/acme/widgets",
        message="Fix widget alignment",
        author_name="Sam Doe",
        author_date="2024-03-01T12:00:00Z",
        oid="abc123",
    )


@pytest.fixture
def path_match() -> PathMatch:
    return PathMatch(repository="github.com/acme/widgets", path="src/widget.py", commit="abc123")


@pytest.fixture
def content_match() -> ContentMatch:
    return ContentMatch(
        repository="github.com/acme/widgets",
        path="src/widget.py",
        line_matches=(
            LineMatch("   def render(self):", 10),
            LineMatch("return render(widget)  ", 42),
        ),
    )


@pytest.fixture
def symbol_match() -> SymbolMatch:
    return SymbolMatch(
        repository="github.com/acme/widgets",
        path="src/widget.py",
        symbols=(
            SymbolInfo("Widget", "widget", "CLASS", f"{BASE}/github.com/acme/widgets/-/blob/src/widget.py#L3"),
            SymbolInfo("render", "Widget", "METHOD", f"{BASE}/github.com/acme/widgets/-/blob/src/widget.py#L10"),
        ),
    )


@pytest.fixture
def make_result():
    def factory(match, url: str | None = None) -> SearchResult:
        return SearchResult(url=url or f"{BASE}/{match.repository}/-/blob/x", match=match)

    return factory


@pytest.fixture
def controlled_transport() -> ControlledTransport:
    return ControlledTransport()


@pytest.fixture
def scripted_transport():
    return ScriptedTransport
