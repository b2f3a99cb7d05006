"""Streaming search transport.

Reads the instance's server-sent event stream and turns each event into the
typed callbacks of :class:`~sgsearch.session.SearchHandlers`.
"""

from __future__ import annotations

import json
import logging
from typing import Callable, Iterable, Iterator, List, Optional, Tuple

from .config import ConnectionConfig
from .session import CancellationToken, SearchHandlers
from .sourcegraph import SourcegraphClient
from .types import (
    Alert,
    CommitMatch,
    ContentMatch,
    LineMatch,
    Match,
    PathMatch,
    PatternType,
    Progress,
    RepoMatch,
    SearchResult,
    Suggestion,
    SymbolInfo,
    SymbolMatch,
)

logger = logging.getLogger(__name__)

FILTER_SUGGESTION_LIMIT = 5

Event = Tuple[str, str]


class SearchStreamError(RuntimeError):
    """The backend aborted the stream with an error event."""


def iter_events(
    lines: Iterable[str],
    token: Optional[CancellationToken] = None,
) -> Iterator[Event]:
    """Parse server-sent event lines into ``(event, data)`` pairs.

    Stops without error as soon as ``token`` is cancelled.
    """
    event = "message"
    data: List[str] = []
    for raw in lines:
        if token is not None and token.cancelled:
            return
        line = raw.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data and not (token is not None and token.cancelled):
        yield event, "\n".join(data)


def decode_lines(lines: Iterable[bytes]) -> Iterator[str]:
    """Decode raw stream lines one at a time.

    Lines must be split as bytes: ``str.splitlines`` also breaks on U+0085
    and U+2028, which the backend leaves unescaped inside JSON strings.
    """
    for line in lines:
        yield line.decode("utf-8", "replace")


class StreamSearchTransport:
    """Runs searches against the streaming search API."""

    def __init__(
        self,
        client_factory: Callable[[ConnectionConfig], SourcegraphClient] = SourcegraphClient,
    ) -> None:
        self._client_factory = client_factory

    def perform_search(
        self,
        token: CancellationToken,
        connection: ConnectionConfig,
        query: str,
        pattern_type: PatternType,
        handlers: SearchHandlers,
    ) -> None:
        if token.cancelled:
            return
        client = self._client_factory(connection)
        response = client.open_stream(query, pattern_type)
        try:
            events = iter_events(decode_lines(response.iter_lines()), token)
            consume_events(events, client.base_url, handlers)
        finally:
            response.close()


def consume_events(events: Iterable[Event], base_url: str, handlers: SearchHandlers) -> None:
    """Dispatch parsed stream events to ``handlers`` until the stream is done."""
    filters: List[dict] = []
    for event, data in events:
        if event == "done":
            break
        payload = json.loads(data)
        if event == "matches":
            results = [r for r in (parse_result(base_url, raw) for raw in payload) if r]
            if results:
                handlers.on_results(results)
        elif event == "progress":
            handlers.on_progress(
                Progress(
                    match_count=int(payload.get("matchCount") or 0),
                    duration_ms=float(payload.get("durationMs") or 0),
                )
            )
            if payload.get("done"):
                skipped = [_skipped_suggestion(item) for item in payload.get("skipped") or []]
                if skipped:
                    handlers.on_suggestions(skipped, False)
        elif event == "alert":
            handlers.on_alert(
                Alert(title=payload.get("title", ""), description=payload.get("description"))
            )
            proposed = [
                Suggestion(
                    title=item.get("description") or item.get("query", ""),
                    query=item.get("query"),
                )
                for item in payload.get("proposedQueries") or []
            ]
            if proposed:
                handlers.on_suggestions(proposed, True)
        elif event == "filters":
            filters = list(payload or [])
        elif event == "error":
            raise SearchStreamError(payload.get("message") or "Search stream failed")
        else:
            logger.debug("Ignoring stream event %r", event)

    if filters:
        handlers.on_suggestions(
            [
                Suggestion(
                    title=item.get("label") or item.get("value", ""),
                    description=f"{item.get('count', 0)} results",
                    query=item.get("value"),
                )
                for item in filters[:FILTER_SUGGESTION_LIMIT]
            ],
            False,
        )


def _skipped_suggestion(item: dict) -> Suggestion:
    suggested = item.get("suggested") or {}
    return Suggestion(
        title=item.get("title") or item.get("reason", ""),
        description=item.get("message"),
        query=suggested.get("queryExpression"),
    )


def parse_match(raw: dict) -> Optional[Match]:
    """Build a typed match from one stream match object."""
    kind = raw.get("type")
    repository = raw.get("repository", "")
    if kind == "repo":
        return RepoMatch(
            repository=repository,
            description=raw.get("description") or None,
            stars=raw.get("repoStars") or None,
            is_fork=bool(raw.get("fork")),
            is_archived=bool(raw.get("archived")),
            is_private=bool(raw.get("private")),
            branches=tuple(raw.get("branches") or ()),
        )
    if kind == "commit":
        return CommitMatch(
            repository=repository,
            message=raw.get("message", ""),
            author_name=raw.get("authorName", ""),
            author_date=raw.get("authorDate", ""),
            oid=raw.get("oid", ""),
            url=raw.get("url", ""),
        )
    if kind == "path":
        return PathMatch(repository=repository, path=raw.get("path", ""), commit=_revision(raw))
    if kind == "content":
        return ContentMatch(
            repository=repository,
            path=raw.get("path", ""),
            line_matches=tuple(
                LineMatch(line=lm.get("line", ""), line_number=int(lm.get("lineNumber", 0)))
                for lm in raw.get("lineMatches") or []
            ),
            commit=_revision(raw),
        )
    if kind == "symbol":
        return SymbolMatch(
            repository=repository,
            path=raw.get("path", ""),
            symbols=tuple(
                SymbolInfo(
                    name=sym.get("name", ""),
                    container_name=sym.get("containerName", ""),
                    kind=sym.get("kind", ""),
                    url=sym.get("url", ""),
                )
                for sym in raw.get("symbols") or []
            ),
            commit=_revision(raw),
        )
    logger.debug("Skipping unsupported match type %r", kind)
    return None


def parse_result(base_url: str, raw: dict) -> Optional[SearchResult]:
    match = parse_match(raw)
    if match is None:
        return None
    if isinstance(match, SymbolMatch):
        match = SymbolMatch(
            repository=match.repository,
            path=match.path,
            symbols=tuple(
                SymbolInfo(s.name, s.container_name, s.kind, _absolute(base_url, s.url))
                for s in match.symbols
            ),
            commit=match.commit,
        )
    return SearchResult(url=_absolute(base_url, _match_path(match)), match=match)


def _revision(raw: dict) -> Optional[str]:
    if raw.get("commit"):
        return raw["commit"]
    branches = raw.get("branches") or []
    return branches[0] if branches else None


def _match_path(match: Match) -> str:
    if isinstance(match, RepoMatch):
        return f"/{match.repository}"
    if isinstance(match, CommitMatch):
        return match.url or f"/{match.repository}/-/commit/{match.oid}"
    revision = f"@{match.commit}" if match.commit else ""
    return f"/{match.repository}{revision}/-/blob/{match.path}"


def _absolute(base_url: str, path: str) -> str:
    if not path or "://" in path:
        return path
    return f"{base_url.rstrip('/')}/{path.lstrip('/')}"
