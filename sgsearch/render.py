"""Markdown and terminal rendering helpers."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from typing import Iterable, Optional, TextIO

from .dispatch import DetailItem, summarize
from .types import Blob, SearchResult, SessionState, Suggestion, match_type

MAX_RENDER_KB = 50
SUGGESTION_LIMIT = 3
MARKDOWN_SUFFIXES = (".md", ".markdown")

_TIME_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
)


def bold(text: str) -> str:
    return f"**{text}**"


def code_block(text: str) -> str:
    return f"```\n{text}\n```"


def quote_block(text: str) -> str:
    return "\n".join(f"> {line}" for line in text.splitlines() or [""])


def render_blob(blob: Optional[Blob]) -> str:
    """Render fetched file contents as Markdown, refusing what can't be shown."""
    if blob is None:
        return quote_block("Blob not found")
    if blob.binary:
        return quote_block("File preview is not yet supported for binary files.")
    if blob.content:
        size_kb = blob.byte_size / 1024
        if size_kb > MAX_RENDER_KB:
            return quote_block(f"File too large to render ({size_kb:.1f}KB)")
        if blob.path.lower().endswith(MARKDOWN_SUFFIXES):
            return blob.content
        return code_block(blob.content)
    return quote_block("No content found")


def render_fetch_error(error: BaseException) -> str:
    return quote_block(f"Failed to fetch file: {error}")


def suggestion_markdown(suggestion: Suggestion) -> str:
    """Explanatory document opened for an informational suggestion."""
    if suggestion.description:
        return f"{suggestion.title}\n\n{suggestion.description}"
    return suggestion.title


def relative_time(iso_date: str, *, now: Optional[datetime] = None) -> str:
    """Describe an ISO timestamp relative to ``now``, e.g. ``3 days ago``."""
    try:
        moment = datetime.fromisoformat(iso_date)
    except (TypeError, ValueError):
        return "Unknown"
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    seconds = (now - moment).total_seconds()
    suffix = "ago" if seconds >= 0 else "from now"
    seconds = abs(seconds)
    for unit, size in _TIME_UNITS:
        count = int(seconds // size)
        if count:
            return f"{count} {unit}{'s' if count != 1 else ''} {suffix}"
    return "just now"


def render_results(
    results: Iterable[SearchResult],
    *,
    mode: str = "table",
    stream: TextIO = sys.stdout,
) -> None:
    results = list(results)
    if mode == "json":
        json.dump(serialize_results(results), stream, indent=2)
        stream.write("\n")
        return

    if not results:
        stream.write("No matches found.\n")
        return

    for index, item in enumerate(results, start=1):
        summary = summarize(item.match)
        line = f"[{index}] {summary.title}"
        if summary.accessory:
            line += f"  ({summary.accessory})"
        stream.write(f"{line}\n")
        if summary.subtitle:
            stream.write(f"    {summary.subtitle}\n")
        stream.write(f"    {item.url}\n")


def render_state(
    state: SessionState,
    *,
    query_url: str,
    syntax_url: Optional[str] = None,
    mode: str = "table",
    stream: TextIO = sys.stdout,
) -> None:
    """Print a finished session: results, or suggestions when there are none."""
    if mode == "json":
        json.dump(
            {
                "summary": state.summary,
                "results": serialize_results(state.results),
                "suggestions": [_suggestion_to_dict(s) for s in state.suggestions],
            },
            stream,
            indent=2,
        )
        stream.write("\n")
        return

    if state.results:
        render_results(state.results, stream=stream)
    else:
        stream.write("No matches found.\n")
        for suggestion in state.suggestions[:SUGGESTION_LIMIT]:
            hint = f" -> {suggestion.query}" if suggestion.query else ""
            stream.write(f"  * {suggestion.title}{hint}\n")
            if suggestion.description:
                stream.write(f"    {suggestion.description}\n")
        stream.write(f"Continue query in browser: {query_url}\n")
        if syntax_url:
            stream.write(f"View search query syntax reference: {syntax_url}\n")
    if state.summary:
        stream.write(f"{state.summary}\n")


def render_items(
    title: str,
    subtitle: str,
    items: Iterable[DetailItem],
    *,
    stream: TextIO = sys.stdout,
) -> None:
    stream.write(f"{title}  {subtitle}\n")
    for item in items:
        line = f"  {item.accessory:>6}  {item.title}"
        if item.subtitle:
            line += f"  ({item.subtitle})"
        stream.write(f"{line}\n")
        stream.write(f"          {item.url}\n")


def _result_to_dict(result: SearchResult) -> dict:
    summary = summarize(result.match)
    return {
        "type": match_type(result.match),
        "repository": result.match.repository,
        "title": summary.title,
        "subtitle": summary.subtitle,
        "url": result.url,
    }


def _suggestion_to_dict(suggestion: Suggestion) -> dict:
    return {
        "title": suggestion.title,
        "description": suggestion.description,
        "query": suggestion.query,
    }


def serialize_results(results: Iterable[SearchResult]) -> list[dict]:
    return [_result_to_dict(item) for item in results]
