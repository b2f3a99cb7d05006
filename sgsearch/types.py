"""Core dataclasses and typing helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class PatternType(str, Enum):
    """Search pattern syntax understood by the backend."""

    LITERAL = "literal"
    REGEXP = "regexp"
    STRUCTURAL = "structural"


@dataclass(frozen=True, slots=True)
class LineMatch:
    line: str
    line_number: int


@dataclass(frozen=True, slots=True)
class SymbolInfo:
    name: str
    container_name: str
    kind: str
    url: str


@dataclass(frozen=True, slots=True)
class RepoMatch:
    """A repository hit."""

    repository: str
    description: str | None = None
    stars: int | None = None
    is_fork: bool = False
    is_archived: bool = False
    is_private: bool = False
    branches: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CommitMatch:
    """A commit hit. ``author_date`` is kept as the raw ISO string."""

    repository: str
    message: str
    author_name: str
    author_date: str
    oid: str
    url: str = ""


@dataclass(frozen=True, slots=True)
class PathMatch:
    """A file path hit."""

    repository: str
    path: str
    commit: str | None = None


@dataclass(frozen=True, slots=True)
class ContentMatch:
    """A file content hit with its matching lines in file order."""

    repository: str
    path: str
    line_matches: Tuple[LineMatch, ...] = ()
    commit: str | None = None


@dataclass(frozen=True, slots=True)
class SymbolMatch:
    """A symbol hit with the matching symbols of one file."""

    repository: str
    path: str
    symbols: Tuple[SymbolInfo, ...] = ()
    commit: str | None = None


Match = Union[RepoMatch, CommitMatch, PathMatch, ContentMatch, SymbolMatch]


def match_type(match: Match) -> str:
    """Return the backend's short name for the match variant."""
    return _MATCH_TYPE_NAMES[type(match)]


_MATCH_TYPE_NAMES = {
    RepoMatch: "repo",
    CommitMatch: "commit",
    PathMatch: "path",
    ContentMatch: "content",
    SymbolMatch: "symbol",
}


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One streamed search hit and the URL to view it on the instance."""

    url: str
    match: Match


@dataclass(frozen=True, slots=True)
class Suggestion:
    """A query suggestion.

    Suggestions with a ``query`` are actionable: applying one appends the
    query to the current search text. The rest are informational.
    """

    title: str
    description: str | None = None
    query: str | None = None

    @property
    def is_actionable(self) -> bool:
        return bool(self.query)


@dataclass(frozen=True, slots=True)
class Progress:
    """Latest known totals for the running search."""

    match_count: int
    duration_ms: float


@dataclass(frozen=True, slots=True)
class Alert:
    """Non-fatal backend warning about the query."""

    title: str
    description: str | None = None


@dataclass(frozen=True, slots=True)
class SessionState:
    """Immutable snapshot of one search session."""

    results: Tuple[SearchResult, ...] = ()
    suggestions: Tuple[Suggestion, ...] = ()
    summary: str | None = None
    is_loading: bool = False


@dataclass(frozen=True, slots=True)
class Blob:
    """File contents returned by the instance."""

    path: str
    content: str | None
    byte_size: int = 0
    binary: bool = False


@dataclass(slots=True)
class QuerySpec:
    """The caller-owned query: free text plus its pattern syntax."""

    text: str
    pattern_type: PatternType = PatternType.LITERAL

    def build(self) -> str:
        return " ".join(self.text.split())
