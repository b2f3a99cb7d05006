"""Query escaping and construction helpers."""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urlencode

from .types import Suggestion

QUERY_SYNTAX_PATH = "/help/code_search/reference/queries"

# Regexp metacharacters of the query grammar. '/' is a literal there and is
# left alone so repository and file paths stay readable.
_METACHARACTERS = re.compile(r"[-\\^$*+?.()|\[\]{}]")


def escape(fragment: str) -> str:
    """Backslash-escape query metacharacters in ``fragment``."""
    return _METACHARACTERS.sub(lambda m: "\\" + m.group(0), fragment)


def build_drilldown_clauses(
    *,
    repo: Optional[str] = None,
    revision: Optional[str] = None,
    file: Optional[str] = None,
) -> str:
    """Return the repo/file clauses that narrow a search to one location.

    The revision is appended verbatim: revision specifiers are already
    constrained by the backend and must not be escaped.
    """
    clauses: List[str] = []
    if repo:
        repo_clause = f"r:^{escape(repo)}$"
        if revision:
            repo_clause += f"@{revision}"
        clauses.append(repo_clause)
    if file:
        clauses.append(f"f:{escape(file)}")
    return " ".join(clauses)


def drilldown_query(
    *,
    repo: Optional[str] = None,
    revision: Optional[str] = None,
    file: Optional[str] = None,
) -> str:
    """Search text to start from after drilling down, ready for more terms."""
    return f"{build_drilldown_clauses(repo=repo, revision=revision, file=file)} "


def build_query_url(base_url: str, query_text: str) -> str:
    """Return the browser URL that opens ``query_text`` on the instance."""
    return f"{base_url.rstrip('/')}/search?{urlencode({'q': query_text})}"


def build_syntax_reference_url(base_url: str) -> str:
    return f"{base_url.rstrip('/')}{QUERY_SYNTAX_PATH}"


def apply_suggestion(search_text: str, suggestion: Suggestion) -> str:
    """Append an actionable suggestion's query to the current search text."""
    if not suggestion.is_actionable:
        raise ValueError(f"Suggestion '{suggestion.title}' has no query to apply")
    return f"{search_text} {suggestion.query}"


def initial_search_text(default_context: Optional[str]) -> str:
    """Search text a new session starts with."""
    context = (default_context or "").strip()
    if not context:
        return ""
    return f"context:{context} "
