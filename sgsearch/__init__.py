"""sgsearch: streaming code search sessions and result presentation."""

__version__ = "0.1.0"

from sgsearch.config import ConnectionConfig, resolve_connection
from sgsearch.detail import BlobLoader, ResultDetail, fetch_file_contents
from sgsearch.dispatch import (
    DetailViewKind,
    Summary,
    detail_items,
    detail_view_kind,
    drilldown,
    summarize,
    url_with_line_number,
)
from sgsearch.queries import (
    apply_suggestion,
    build_drilldown_clauses,
    build_query_url,
    build_syntax_reference_url,
    escape,
)
from sgsearch.session import (
    CancellationToken,
    Notification,
    SearchHandlers,
    SearchSession,
    SearchTransport,
)
from sgsearch.stream import StreamSearchTransport
from sgsearch.types import (
    Alert,
    Blob,
    CommitMatch,
    ContentMatch,
    LineMatch,
    Match,
    PathMatch,
    PatternType,
    Progress,
    RepoMatch,
    SearchResult,
    SessionState,
    Suggestion,
    SymbolInfo,
    SymbolMatch,
)

__all__ = [
    "Alert",
    "Blob",
    "BlobLoader",
    "CancellationToken",
    "CommitMatch",
    "ConnectionConfig",
    "ContentMatch",
    "DetailViewKind",
    "LineMatch",
    "Match",
    "Notification",
    "PathMatch",
    "PatternType",
    "Progress",
    "RepoMatch",
    "ResultDetail",
    "SearchHandlers",
    "SearchResult",
    "SearchSession",
    "SearchTransport",
    "SessionState",
    "StreamSearchTransport",
    "Suggestion",
    "Summary",
    "SymbolInfo",
    "SymbolMatch",
    "__version__",
    "apply_suggestion",
    "build_drilldown_clauses",
    "build_query_url",
    "build_syntax_reference_url",
    "detail_items",
    "detail_view_kind",
    "drilldown",
    "escape",
    "fetch_file_contents",
    "resolve_connection",
    "summarize",
    "url_with_line_number",
]
