"""Detail views for individual results, with on-demand file content."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional, Tuple, assert_never

import requests

from .dispatch import DetailItem, DetailViewKind, detail_items, detail_view_kind
from .render import bold, code_block, relative_time, render_blob, render_fetch_error
from .sourcegraph import SourcegraphAPIError, SourcegraphClient
from .types import (
    Blob,
    CommitMatch,
    ContentMatch,
    Match,
    PathMatch,
    RepoMatch,
    SearchResult,
    SymbolMatch,
    match_type,
)

logger = logging.getLogger(__name__)

README_PATH = "README.md"
SEPARATOR = "\n\n---\n\n"

GET_FILE_CONTENTS = """
query GetFileContents($repo: String!, $rev: String!, $path: String!) {
  repository(name: $repo) {
    commit(rev: $rev) {
      blob(path: $path) {
        path
        content
        binary
        byteSize
      }
    }
  }
}
"""

FileFetcher = Callable[[str, str, str], Optional[Blob]]


class ContentFetchError(RuntimeError):
    """Fetching file contents for a detail view failed."""


def fetch_file_contents(
    client: SourcegraphClient, repo: str, revision: str, path: str
) -> Optional[Blob]:
    """Fetch one file. Returns None when the repo, revision or file is missing."""
    try:
        data = client.graphql(
            GET_FILE_CONTENTS, {"repo": repo, "rev": revision, "path": path}
        )
    except (SourcegraphAPIError, requests.RequestException) as exc:
        raise ContentFetchError(str(exc)) from exc
    blob = ((data.get("repository") or {}).get("commit") or {}).get("blob")
    if not blob:
        return None
    return Blob(
        path=blob.get("path") or path,
        content=blob.get("content"),
        byte_size=int(blob.get("byteSize") or 0),
        binary=bool(blob.get("binary")),
    )


@dataclass(frozen=True, slots=True)
class BlobOutcome:
    """Result of one fetch: the blob (None means not found) or the failure."""

    blob: Optional[Blob] = None
    error: Optional[Exception] = None


class BlobLoader:
    """Fetches one file at most once, on a background thread."""

    def __init__(self, fetch: FileFetcher, repo: str, revision: str, path: str) -> None:
        self.repo = repo
        self.revision = revision
        self.path = path
        self._fetch = fetch
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._outcome: BlobOutcome | None = None

    @property
    def started(self) -> bool:
        with self._lock:
            return self._thread is not None

    @property
    def outcome(self) -> Optional[BlobOutcome]:
        """None while the fetch is pending or not started."""
        with self._lock:
            return self._outcome

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name=f"sgsearch-blob-{self.path}", daemon=True
            )
            self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        with self._lock:
            thread = self._thread
        if thread is None:
            return False
        thread.join(timeout)
        return not thread.is_alive()

    def load(self, timeout: Optional[float] = None) -> Optional[BlobOutcome]:
        self.start()
        self.wait(timeout)
        return self.outcome

    def _run(self) -> None:
        try:
            outcome = BlobOutcome(blob=self._fetch(self.repo, self.revision, self.path))
        except Exception as exc:
            logger.debug("Fetching %s@%s:%s failed", self.repo, self.revision, self.path, exc_info=True)
            outcome = BlobOutcome(error=exc)
        with self._lock:
            self._outcome = outcome


def _loader_for(match: Match, fetch: FileFetcher) -> Optional[BlobLoader]:
    if isinstance(match, RepoMatch):
        revision = match.branches[0] if match.branches else ""
        return BlobLoader(fetch, match.repository, revision, README_PATH)
    if isinstance(match, PathMatch):
        return BlobLoader(fetch, match.repository, match.commit or "", match.path)
    return None


class ResultDetail:
    """Detail view of one displayed result.

    Content is fetched lazily the first time the view is opened or rendered
    and kept for as long as this object lives.
    """

    def __init__(self, result: SearchResult, fetch: FileFetcher) -> None:
        self.result = result
        self.kind = detail_view_kind(result.match)
        self.loader = _loader_for(result.match, fetch)

    @property
    def navigation_title(self) -> str:
        suffix = "results" if self.kind is DetailViewKind.MULTI else "result"
        return f"View {match_type(self.result.match)} {suffix}"

    def open(self) -> None:
        if self.loader is not None:
            self.loader.start()

    def items(self) -> List[DetailItem]:
        return detail_items(self.result)

    def markdown(self) -> str:
        """Markdown document for single-entity results.

        Renders whatever content has arrived so far; call again once the
        loader finishes to include it.
        """
        self.open()
        match = self.result.match
        if isinstance(match, RepoMatch):
            body = match.description or ""
            readme = self._content()
            if readme:
                body += SEPARATOR + readme
        elif isinstance(match, PathMatch):
            body = code_block(match.path) + SEPARATOR + self._content()
        elif isinstance(match, CommitMatch):
            body = match.message
        elif isinstance(match, (ContentMatch, SymbolMatch)):
            raise ValueError(f"{type(match).__name__} uses the multi-result view")
        else:
            assert_never(match)
        return f"{bold(match.repository)}\n\n{body}"

    def metadata(self, *, now: Optional[datetime] = None) -> List[Tuple[str, str]]:
        match = self.result.match
        rows = [("Match type", match_type(match)), ("Repository", match.repository)]
        if isinstance(match, RepoMatch):
            rows.append(("Visibility", "Private" if match.is_private else "Public"))
            if match.stars:
                rows.append(("Stars", str(match.stars)))
        elif isinstance(match, CommitMatch):
            rows.append(("Author", match.author_name))
            rows.append(("Commit", match.oid))
            rows.append(("Committed", relative_time(match.author_date, now=now)))
        return rows

    def _content(self) -> str:
        outcome = self.loader.outcome if self.loader is not None else None
        if outcome is None:
            return ""
        if outcome.error is not None:
            return render_fetch_error(outcome.error)
        return render_blob(outcome.blob)
