"""Streaming search session.

A session belongs to one caller (a UI list, the CLI) and lives as long as it
does. Every ``search()`` call starts a new generation: the previous
generation's token is cancelled, the state is reset, and the transport runs
on a worker thread, delivering typed events through ``SearchHandlers``.

All folds into the session state go through one lock, and each fold first
checks that its generation is still the active one. Transports are only
asked to stop cooperatively, so that check is what keeps late events from a
superseded search out of the current state.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Callable, List, Optional, Protocol, Sequence

from .config import ConnectionConfig
from .queries import initial_search_text
from .types import Alert, PatternType, Progress, SearchResult, SessionState, Suggestion

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class CancellationToken:
    """Cooperative cancellation signal shared with the transport."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True, slots=True)
class SearchHandlers:
    """Callbacks a transport invokes while streaming one search."""

    on_results: Callable[[Sequence[SearchResult]], None]
    on_suggestions: Callable[[Sequence[Suggestion], bool], None]
    on_alert: Callable[[Alert], None]
    on_progress: Callable[[Progress], None]


class SearchTransport(Protocol):
    def perform_search(
        self,
        token: CancellationToken,
        connection: ConnectionConfig,
        query: str,
        pattern_type: PatternType,
        handlers: SearchHandlers,
    ) -> None:
        """Stream one search, blocking until it completes.

        Raises on failure. Should return early once ``token`` is cancelled.
        """
        ...


class NotificationKind(Enum):
    ALERT = "alert"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class Notification:
    """User-visible, dismissible notice raised by a session."""

    kind: NotificationKind
    title: str
    message: str


def log_notification(notification: Notification) -> None:
    if notification.kind is NotificationKind.ERROR:
        logger.error("%s: %s", notification.title, notification.message)
    else:
        logger.warning("%s: %s", notification.title, notification.message)


def format_summary(progress: Progress) -> str:
    return f"{progress.match_count} results in {round(progress.duration_ms)}ms"


class SearchSession:
    """Owns the search state of one caller and supersedes stale searches."""

    def __init__(
        self,
        transport: SearchTransport,
        connection: ConnectionConfig,
        *,
        notify: Optional[Callable[[Notification], None]] = None,
    ) -> None:
        self._transport = transport
        self._connection = connection
        self._notify = notify or log_notification
        self._lock = threading.RLock()
        self._state = SessionState()
        self._generation = 0
        self._token: CancellationToken | None = None
        self._worker: threading.Thread | None = None
        self._listeners: List[StateListener] = []
        self.initial_text = initial_search_text(connection.default_context)

    @property
    def state(self) -> SessionState:
        """Latest snapshot. Snapshots are immutable and safe to keep."""
        with self._lock:
            return self._state

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def search(self, text: str, pattern_type: PatternType | str) -> None:
        """Start a new generation for ``text``, superseding any running one."""
        pattern_type = PatternType(pattern_type)
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            self._generation += 1
            generation = self._generation
            token = CancellationToken()
            self._token = token
            self._set_state(SessionState(is_loading=True))
            worker = threading.Thread(
                target=self._run,
                args=(generation, token, text, pattern_type),
                name=f"sgsearch-generation-{generation}",
                daemon=True,
            )
            self._worker = worker
            worker.start()
        logger.debug("Started generation %d for %r (%s)", generation, text, pattern_type.value)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the latest generation's worker finishes.

        Returns False if it is still running after ``timeout`` seconds.
        """
        with self._lock:
            worker = self._worker
        if worker is None:
            return True
        worker.join(timeout)
        return not worker.is_alive()

    def close(self) -> None:
        """Cancel the active generation. Events still in flight are dropped."""
        with self._lock:
            if self._token is not None:
                self._token.cancel()
                self._token = None
            self._generation += 1
            if self._state.is_loading:
                self._set_state(replace(self._state, is_loading=False))

    # ------------------------------------------------------------------
    # Worker side
    # ------------------------------------------------------------------

    def _run(
        self,
        generation: int,
        token: CancellationToken,
        text: str,
        pattern_type: PatternType,
    ) -> None:
        handlers = SearchHandlers(
            on_results=lambda batch: self._on_results(generation, batch),
            on_suggestions=lambda batch, push_to_top: self._on_suggestions(
                generation, batch, push_to_top
            ),
            on_alert=lambda alert: self._on_alert(generation, alert),
            on_progress=lambda progress: self._on_progress(generation, progress),
        )
        try:
            self._transport.perform_search(token, self._connection, text, pattern_type, handlers)
        except Exception as exc:
            if token.cancelled:
                logger.debug("Generation %d cancelled (%s)", generation, exc)
                return
            logger.debug("Generation %d failed", generation, exc_info=True)
            if self._fold(generation, lambda state: replace(state, is_loading=False)):
                self._emit(Notification(NotificationKind.ERROR, "Search failed", str(exc)))
            return
        if token.cancelled:
            logger.debug("Generation %d cancelled", generation)
            return
        self._fold(generation, lambda state: replace(state, is_loading=False))

    def _on_results(self, generation: int, batch: Sequence[SearchResult]) -> None:
        batch = tuple(batch)
        self._fold(generation, lambda state: replace(state, results=state.results + batch))

    def _on_suggestions(
        self, generation: int, batch: Sequence[Suggestion], push_to_top: bool
    ) -> None:
        batch = tuple(batch)

        def update(state: SessionState) -> SessionState:
            if push_to_top:
                return replace(state, suggestions=batch + state.suggestions)
            return replace(state, suggestions=state.suggestions + batch)

        self._fold(generation, update)

    def _on_alert(self, generation: int, alert: Alert) -> None:
        with self._lock:
            current = generation == self._generation
        if current:
            self._emit(Notification(NotificationKind.ALERT, alert.title, alert.description or ""))

    def _on_progress(self, generation: int, progress: Progress) -> None:
        summary = format_summary(progress)
        self._fold(generation, lambda state: replace(state, summary=summary))

    def _fold(self, generation: int, update: Callable[[SessionState], SessionState]) -> bool:
        with self._lock:
            if generation != self._generation:
                logger.debug(
                    "Dropping event from stale generation %d (active %d)",
                    generation,
                    self._generation,
                )
                return False
            self._set_state(update(self._state))
            return True

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.warning("State listener %r failed", listener, exc_info=True)

    def _emit(self, notification: Notification) -> None:
        try:
            self._notify(notification)
        except Exception:
            logger.warning("Notifier %r failed for %r", self._notify, notification.title, exc_info=True)
