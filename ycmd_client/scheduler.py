"""
Debounced synchronization of editor buffers with the server.

Per document: Clean -> Dirty on every edit; when the editor has been quiet
for `idle_delay` seconds the active document, if dirty, is sent as a
FileReadyToParse event. The dirty flag is cleared only when that exchange
succeeds and no edit happened while it was in flight, so bursts of edits
collapse into one notification. At most one notification per document is
in flight. A failed notification is retried while the session is running,
with the delay doubling per consecutive failure up to MAX_RETRY_DELAY.
Focusing a dirty document with set_active() arms the idle timer for it.

A separate keepalive timer pings the server while a session is running so
ycmd's idle-suicide timer never fires during quiet periods.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Callable

from .dispatcher import ResultDispatcher
from .document import DocumentContext, DocumentState, FiletypeTable
from .errors import YcmdClientError
from .results import ParseResultItem

logger = logging.getLogger(__name__)

# Upper bound on the delay before retrying a failed notification, in seconds.
MAX_RETRY_DELAY = 30.0

NotifyFn = Callable[[DocumentContext], "asyncio.Future[list[ParseResultItem]]"]
ContextProvider = Callable[[str], "DocumentContext | None"]


class NotificationScheduler:
    """Owns per-document dirty state and the idle and keepalive timers."""

    def __init__(
        self,
        *,
        notify: NotifyFn,
        dispatcher: ResultDispatcher,
        context_provider: ContextProvider,
        filetypes: FiletypeTable | None = None,
        idle_delay: float = 0.2,
        keepalive_interval: float = 30.0,
        ping: Callable[[], "asyncio.Future[Any]"] | None = None,
        is_running: Callable[[], bool] = lambda: False,
        unload: Callable[[DocumentState], None] | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self._notify = notify
        self._dispatcher = dispatcher
        self._context_provider = context_provider
        self.filetypes = filetypes or FiletypeTable()
        self.idle_delay = idle_delay
        self.keepalive_interval = keepalive_interval
        self._ping = ping
        self._is_running = is_running
        self._unload = unload
        self._loop = loop

        self._documents: dict[str, DocumentState] = {}
        self._active: str | None = None
        self._idle_handle: asyncio.TimerHandle | None = None
        self._keepalive_handle: asyncio.TimerHandle | None = None
        self._in_flight: dict[str, asyncio.Future] = {}

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    # -- document events ----------------------------------------------------

    @property
    def active(self) -> str | None:
        return self._active

    def set_active(self, path: str | None) -> None:
        """Focus `path`; a dirty supported document is flushed after the idle delay."""
        self._active = path
        state = self._documents.get(path) if path is not None else None
        if state is not None and state.supported and state.dirty and not state.in_flight:
            self._schedule_idle()

    def document(self, path: str) -> DocumentState | None:
        return self._documents.get(path)

    def open_documents(self) -> list[str]:
        return list(self._documents)

    def document_opened(self, path: str, mode: str | None) -> DocumentState:
        state = DocumentState(path=path, mode=mode, filetype=self.filetypes.classify(mode))
        self._documents[path] = state
        self._active = path
        if state.supported:
            self._schedule_idle()
        else:
            logger.debug("not tracking %s: no filetype for mode %r", path, mode)
        return state

    def document_edited(self, path: str, mode: str | None = None) -> None:
        state = self._documents.get(path)
        if state is None:
            self.document_opened(path, mode)
            return
        state.touch()
        self._active = path
        if state.supported:
            self._schedule_idle()

    def document_closed(self, path: str) -> None:
        state = self._documents.pop(path, None)
        if self._active == path:
            self._active = None
        if state is not None and state.supported and self._unload is not None:
            self._unload(state)

    def mark_clean(self, path: str) -> None:
        state = self._documents.get(path)
        if state is not None:
            state.dirty = False

    def is_dirty(self, path: str) -> bool:
        state = self._documents.get(path)
        return state is not None and state.dirty

    # -- idle timer ---------------------------------------------------------

    def _schedule_idle(self, delay: float | None = None) -> None:
        self.cancel_idle()
        self._idle_handle = self._get_loop().call_later(
            self.idle_delay if delay is None else delay, self._on_idle
        )

    def cancel_idle(self) -> None:
        if self._idle_handle is not None:
            self._idle_handle.cancel()
            self._idle_handle = None

    def _on_idle(self) -> None:
        self._idle_handle = None
        if self._active is not None:
            self.flush(self._active)

    def flush(self, path: str) -> "asyncio.Future[list[ParseResultItem]] | None":
        """
        Send a parse notification for `path` if it needs one.

        Returns the in-flight future, or None when nothing was sent.
        """
        state = self._documents.get(path)
        if state is None or not state.supported or not state.dirty or state.in_flight:
            return None

        try:
            ctx = self._context_provider(path)
        except (OSError, LookupError) as e:
            logger.warning("no buffer contents for %s: %s", path, e)
            return None
        if ctx is None:
            return None

        generation = state.generation
        try:
            future = self._notify(ctx)
        except YcmdClientError as e:
            logger.error("cannot notify ycmd about %s: %s", path, e)
            self._dispatcher.display(str(e))
            return None

        state.in_flight = True
        self._in_flight[path] = future
        future.add_done_callback(partial(self._on_notified, state, generation))
        return future

    def _on_notified(self, state: DocumentState, generation: int, future: asyncio.Future) -> None:
        state.in_flight = False
        if self._in_flight.get(state.path) is future:
            del self._in_flight[state.path]
        if future.cancelled():
            return
        exc = future.exception()
        current = self._documents.get(state.path) is state
        if exc is not None:
            logger.warning("parse notification for %s failed: %s", state.path, exc)
            state.failures += 1
            retry = current and state.dirty and self._active == state.path and self._idle_handle is None
            if retry and self._is_running():
                # Doubling retry delay, capped.
                self._schedule_idle(min(self.idle_delay * 2**state.failures, MAX_RETRY_DELAY))
            return
        if not current:
            return

        state.failures = 0
        if state.generation == generation:
            state.dirty = False
        elif state.dirty and self._active == state.path and self._idle_handle is None:
            self._schedule_idle()

        self._dispatcher.dispatch(future.result(), self._documents, source=state.path)

    def in_flight(self) -> list[asyncio.Future]:
        return list(self._in_flight.values())

    # -- keepalive timer ----------------------------------------------------

    def start_keepalive(self) -> None:
        self.stop_keepalive()
        if self._ping is None:
            return
        try:
            loop = self._get_loop()
        except RuntimeError:
            logger.debug("no running event loop; keepalive disabled")
            return
        self._keepalive_handle = loop.call_later(self.keepalive_interval, self._on_keepalive)

    def stop_keepalive(self) -> None:
        if self._keepalive_handle is not None:
            self._keepalive_handle.cancel()
            self._keepalive_handle = None

    def _on_keepalive(self) -> None:
        self._keepalive_handle = None
        if not self._is_running() or self._ping is None:
            return
        self._ping().add_done_callback(_log_ping_failure)
        self.start_keepalive()

    def cancel(self) -> None:
        """Cancel every timer."""
        self.cancel_idle()
        self.stop_keepalive()


def _log_ping_failure(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is not None:
        logger.warning("ycmd health check failed: %s", future.exception())
