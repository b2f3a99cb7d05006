"""Map match variants to display summaries, drilldowns and detail views."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, assert_never
from urllib.parse import urlsplit, urlunsplit

from .queries import drilldown_query
from .types import (
    CommitMatch,
    ContentMatch,
    Match,
    PathMatch,
    RepoMatch,
    SearchResult,
    SymbolMatch,
)

LINE_SEPARATOR = " ... "


class Glyph(Enum):
    DOT = "dot"
    CIRCLE = "circle"
    XMARK_CIRCLE = "xmark-circle"
    MEMORY_CHIP = "memory-chip"
    TEXT_DOCUMENT = "text-document"
    TEXT = "text"
    LINK = "link"


class DetailViewKind(Enum):
    """Shape of the view opened for a single result."""

    MULTI = "multi"
    MARKDOWN = "markdown"


@dataclass(frozen=True, slots=True)
class IconHint:
    glyph: Glyph
    private: bool = False


@dataclass(frozen=True, slots=True)
class Summary:
    """List-row presentation of one result."""

    title: str
    subtitle: str
    icon: IconHint
    accessory: str


@dataclass(frozen=True, slots=True)
class Drilldown:
    label: str
    query: str


@dataclass(frozen=True, slots=True)
class DetailItem:
    """One independently actionable row of a multi-result view."""

    title: str
    subtitle: str
    accessory: str
    url: str


def summarize(match: Match) -> Summary:
    """Return the list-row summary for ``match``."""
    if isinstance(match, RepoMatch):
        glyph = Glyph.DOT
        if match.is_fork:
            glyph = Glyph.CIRCLE
        if match.is_archived:
            glyph = Glyph.XMARK_CIRCLE
        return Summary(
            title=match.repository,
            subtitle=match.description or "",
            icon=IconHint(glyph, private=match.is_private),
            accessory=str(match.stars) if match.stars else "",
        )
    if isinstance(match, CommitMatch):
        return Summary(
            title=match.message,
            subtitle=match.author_date,
            icon=IconHint(Glyph.MEMORY_CHIP),
            accessory=match.repository,
        )
    if isinstance(match, PathMatch):
        return Summary(
            title=match.path,
            subtitle="",
            icon=IconHint(Glyph.TEXT_DOCUMENT),
            accessory=match.repository,
        )
    if isinstance(match, ContentMatch):
        return Summary(
            title=LINE_SEPARATOR.join(lm.line.strip() for lm in match.line_matches),
            subtitle=match.path,
            icon=IconHint(Glyph.TEXT),
            accessory=match.repository,
        )
    if isinstance(match, SymbolMatch):
        return Summary(
            title=", ".join(symbol.name for symbol in match.symbols),
            subtitle=match.path,
            icon=IconHint(Glyph.LINK),
            accessory=match.repository,
        )
    assert_never(match)


def detail_view_kind(match: Match) -> DetailViewKind:
    """Content and symbol matches list sub-hits; the rest render one document."""
    if isinstance(match, (ContentMatch, SymbolMatch)):
        return DetailViewKind.MULTI
    if isinstance(match, (RepoMatch, CommitMatch, PathMatch)):
        return DetailViewKind.MARKDOWN
    assert_never(match)


def drilldown(match: Match) -> Drilldown:
    """Return the action that narrows the next search to this match."""
    if isinstance(match, RepoMatch):
        return Drilldown("Search Repository", drilldown_query(repo=match.repository))
    if isinstance(match, CommitMatch):
        return Drilldown(
            "Search Revision",
            drilldown_query(repo=match.repository, revision=match.oid),
        )
    if isinstance(match, (PathMatch, ContentMatch, SymbolMatch)):
        return Drilldown(
            "Search File",
            drilldown_query(repo=match.repository, file=match.path),
        )
    assert_never(match)


def url_with_line_number(url: str, line: int) -> str:
    """Add an ``L<line>`` anchor parameter to ``url``.

    The instance's file viewer only highlights the line when the anchor is
    the first query parameter.
    """
    parts = urlsplit(url)
    anchor = f"L{line}"
    kept = [
        segment
        for segment in parts.query.split("&")
        if segment and segment.partition("=")[0] != anchor
    ]
    query = "&".join([f"{anchor}="] + kept)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def detail_items(result: SearchResult) -> List[DetailItem]:
    """Rows of the multi-result view for a content or symbol result."""
    match = result.match
    if isinstance(match, ContentMatch):
        return [
            DetailItem(
                title=lm.line,
                subtitle="",
                accessory=f"L{lm.line_number}",
                url=url_with_line_number(result.url, lm.line_number),
            )
            for lm in match.line_matches
        ]
    if isinstance(match, SymbolMatch):
        return [
            DetailItem(
                title=symbol.name,
                subtitle=symbol.container_name,
                accessory=symbol.kind.lower(),
                url=symbol.url,
            )
            for symbol in match.symbols
        ]
    raise ValueError(f"{type(match).__name__} has no multi-result view")
