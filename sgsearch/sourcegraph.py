"""Sourcegraph HTTP API utilities."""

from __future__ import annotations

import time
from typing import Any, Optional

import requests

from .config import ConnectionConfig
from .types import PatternType

STREAM_ENDPOINT = "/.api/search/stream"
GRAPHQL_ENDPOINT = "/.api/graphql"
STREAM_API_VERSION = "V3"
DISPLAY_LIMIT = 1500
DEFAULT_TIMEOUT = 15
MAX_RETRIES = 3


class SourcegraphAPIError(RuntimeError):
    """Represents a non-success response from the instance."""


class SourcegraphClient:
    """Thin client around the streaming search and GraphQL endpoints."""

    def __init__(
        self,
        connection: ConnectionConfig,
        *,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = connection.base_url
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": connection.user_agent})
        if connection.token:
            self.session.headers["Authorization"] = f"token {connection.token}"

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def open_stream(self, query: str, pattern_type: PatternType) -> requests.Response:
        """Start a streaming search and return the open event-stream response.

        The caller owns the response and must close it.
        """
        params = {
            "q": query,
            "v": STREAM_API_VERSION,
            "t": PatternType(pattern_type).value,
            "display": DISPLAY_LIMIT,
        }
        response = self.session.get(
            self.url(STREAM_ENDPOINT),
            params=params,
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=DEFAULT_TIMEOUT,
        )
        if response.status_code != 200:
            message = _extract_error_message(response)
            response.close()
            if response.status_code == 401:
                raise SourcegraphAPIError("Instance rejected the token (401 Unauthorized)")
            raise SourcegraphAPIError(f"Search API error {response.status_code}: {message}")
        return response

    def graphql(self, query: str, variables: Optional[dict[str, Any]] = None) -> dict:
        """Run a GraphQL request and return its ``data`` payload."""
        payload = self._request_with_retry({"query": query, "variables": variables or {}})
        errors = payload.get("errors")
        if errors:
            messages = "; ".join(str(err.get("message", err)) for err in errors)
            raise SourcegraphAPIError(f"GraphQL error: {messages}")
        return payload.get("data") or {}

    def _request_with_retry(self, body: dict) -> dict:
        for attempt in range(1, MAX_RETRIES + 1):
            response = self.session.post(
                self.url(GRAPHQL_ENDPOINT),
                json=body,
                timeout=DEFAULT_TIMEOUT,
            )
            if response.status_code == 200:
                return response.json()
            if response.status_code == 429:
                time.sleep(_retry_after(response, attempt))
                continue
            if response.status_code == 401:
                raise SourcegraphAPIError("Instance rejected the token (401 Unauthorized)")
            message = _extract_error_message(response)
            raise SourcegraphAPIError(f"GraphQL API error {response.status_code}: {message}")
        raise SourcegraphAPIError("Retry limit exceeded while calling the GraphQL API")


def _retry_after(response: requests.Response, attempt: int) -> float:
    header = response.headers.get("Retry-After")
    if header:
        try:
            return max(float(header), 1.0)
        except ValueError:
            pass
    return min(2 ** attempt, 60.0)


def _extract_error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
        return payload.get("message", response.text)
    except ValueError:
        return response.text
