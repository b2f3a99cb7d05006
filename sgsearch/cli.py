"""Command-line interface for sgsearch."""

from __future__ import annotations

import argparse
import functools
import logging
import sys
from getpass import getpass
from typing import List, Sequence, Tuple

from .config import (
    SETTING_KEYS,
    ConnectionConfig,
    delete_token,
    resolve_connection,
    store_setting,
    store_token,
    token_status,
)
from .detail import ResultDetail, fetch_file_contents
from .dispatch import DetailViewKind, drilldown
from .queries import build_query_url, build_syntax_reference_url
from .render import render_items, render_state
from .session import Notification, NotificationKind, SearchSession
from .sourcegraph import SourcegraphAPIError, SourcegraphClient
from .stream import StreamSearchTransport
from .types import PatternType, QuerySpec, SearchResult, SessionState

PATTERN_CHOICES = [pt.value for pt in PatternType]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sgsearch", description="Streaming code search CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_search_parser(subparsers)
    _add_show_parser(subparsers)
    _add_drilldown_parser(subparsers)
    _add_url_parser(subparsers)
    _add_config_parser(subparsers)

    return parser


def _add_query_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-q", "--query", required=True, help="Search query string")
    parser.add_argument(
        "-p",
        "--pattern-type",
        choices=PATTERN_CHOICES,
        default=PatternType.LITERAL.value,
        help="Pattern syntax (default: literal)",
    )
    parser.add_argument(
        "--no-context",
        action="store_true",
        help="Do not prefix the configured default search context",
    )
    parser.add_argument("--instance", help="Instance URL (default: config or sourcegraph.com)")
    parser.add_argument("--token", help="Explicit access token")


def _add_search_parser(subparsers: argparse._SubParsersAction) -> None:
    search = subparsers.add_parser("search", help="Run a streaming search")
    _add_query_arguments(search)
    search.add_argument("--output", choices=["table", "json"], default="table")
    search.set_defaults(func=_handle_search)


def _add_show_parser(subparsers: argparse._SubParsersAction) -> None:
    show = subparsers.add_parser("show", help="Show the detail view of one result")
    _add_query_arguments(show)
    show.add_argument("-n", "--index", type=int, required=True, help="1-based result number")
    show.set_defaults(func=_handle_show)


def _add_drilldown_parser(subparsers: argparse._SubParsersAction) -> None:
    drill = subparsers.add_parser("drilldown", help="Print the query narrowing to one result")
    _add_query_arguments(drill)
    drill.add_argument("-n", "--index", type=int, required=True, help="1-based result number")
    drill.set_defaults(func=_handle_drilldown)


def _add_url_parser(subparsers: argparse._SubParsersAction) -> None:
    url = subparsers.add_parser("url", help="Print the browser URL for a query")
    url.add_argument("-q", "--query", required=True, help="Search query string")
    url.add_argument("--instance", help="Instance URL")
    url.set_defaults(func=_handle_url)


def _add_config_parser(subparsers: argparse._SubParsersAction) -> None:
    config = subparsers.add_parser("config", help="Manage stored settings")
    config_sub = config.add_subparsers(dest="subcommand", required=True)

    token = config_sub.add_parser("token", help="Manage the access token")
    token_sub = token.add_subparsers(dest="action", required=True)

    set_cmd = token_sub.add_parser("set", help="Store an access token in the config file")
    set_cmd.add_argument("--token", help="Token value (omit to be prompted securely)")
    set_cmd.set_defaults(func=_handle_token_set)

    clear_cmd = token_sub.add_parser("clear", help="Remove stored token")
    clear_cmd.set_defaults(func=_handle_token_clear)

    info_cmd = token_sub.add_parser("info", help="Show token sourcing details")
    info_cmd.set_defaults(func=_handle_token_info)

    setting = config_sub.add_parser("set", help="Store a connection setting")
    setting.add_argument("key", choices=SETTING_KEYS)
    setting.add_argument("value", help="New value (empty string removes it)")
    setting.set_defaults(func=_handle_setting_set)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except SourcegraphAPIError as exc:
        print(f"API error: {exc}", file=sys.stderr)
        return 2
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def _run_search(
    args: argparse.Namespace,
) -> Tuple[ConnectionConfig, str, SessionState, List[Notification]]:
    connection = resolve_connection(instance_url=args.instance, token=args.token)
    notifications: List[Notification] = []

    def notify(notification: Notification) -> None:
        notifications.append(notification)
        label = "Error" if notification.kind is NotificationKind.ERROR else "Alert"
        message = f"{label}: {notification.title}"
        if notification.message:
            message += f": {notification.message}"
        print(message, file=sys.stderr)

    session = SearchSession(StreamSearchTransport(), connection, notify=notify)
    spec = QuerySpec(
        args.query if args.no_context else session.initial_text + args.query,
        PatternType(args.pattern_type),
    )
    text = spec.build()
    session.search(text, spec.pattern_type)
    session.wait()
    return connection, text, session.state, notifications


def _failed(notifications: Sequence[Notification]) -> bool:
    return any(n.kind is NotificationKind.ERROR for n in notifications)


def _select_result(state: SessionState, index: int) -> SearchResult:
    if index < 1 or index > len(state.results):
        raise RuntimeError(f"Result {index} not found ({len(state.results)} results)")
    return state.results[index - 1]


def _handle_search(args: argparse.Namespace) -> int:
    connection, text, state, notifications = _run_search(args)
    render_state(
        state,
        query_url=build_query_url(connection.base_url, text),
        syntax_url=build_syntax_reference_url(connection.base_url),
        mode=args.output,
    )
    return 1 if _failed(notifications) else 0


def _handle_show(args: argparse.Namespace) -> int:
    connection, _, state, notifications = _run_search(args)
    if _failed(notifications) and not state.results:
        return 1
    result = _select_result(state, args.index)
    client = SourcegraphClient(connection)
    detail = ResultDetail(result, functools.partial(fetch_file_contents, client))
    print(detail.navigation_title)
    if detail.kind is DetailViewKind.MULTI:
        render_items(result.match.path, result.match.repository, detail.items())
        return 0
    if detail.loader is not None:
        detail.loader.load()
    print(detail.markdown())
    print()
    for label, value in detail.metadata():
        print(f"{label}: {value}")
    return 0


def _handle_drilldown(args: argparse.Namespace) -> int:
    _, _, state, notifications = _run_search(args)
    if _failed(notifications) and not state.results:
        return 1
    action = drilldown(_select_result(state, args.index).match)
    print(f"{action.label}: {action.query}")
    return 0


def _handle_url(args: argparse.Namespace) -> int:
    connection = resolve_connection(instance_url=args.instance)
    print(build_query_url(connection.base_url, args.query))
    return 0


def _handle_token_set(args: argparse.Namespace) -> int:
    token = args.token or getpass("Access token: ")
    path = store_token(token)
    print(f"Token stored at {path}")
    return 0


def _handle_token_clear(_: argparse.Namespace) -> int:
    delete_token()
    print("Stored token cleared.")
    return 0


def _handle_token_info(_: argparse.Namespace) -> int:
    status = token_status()
    if status["env"]:
        print("Token available via SRC_ACCESS_TOKEN environment variable.")
    if status["config_path"]:
        print(f"Token stored at {status['config_path']}")
    if not status["env"] and not status["config_path"]:
        print("No token sources found.")
    return 0


def _handle_setting_set(args: argparse.Namespace) -> int:
    path = store_setting(args.key, args.value)
    print(f"Stored {args.key} at {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
