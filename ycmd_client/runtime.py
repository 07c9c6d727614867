"""
The client runtime: one object holding the session and the timers.

Editors talk to this class only. It exposes the session lifecycle, the
direct user commands (completions, go to definition, extra conf loading)
and the document event hooks that feed the scheduler.
"""

from __future__ import annotations

import asyncio
import logging
import subprocess
import time
from pathlib import Path
from typing import Any, Callable
from urllib.request import urlopen

from .channel import RequestChannel, parse_text, then
from .config import ClientConfig
from .dispatcher import ResultDispatcher
from .document import (
    DocumentContext,
    DocumentState,
    FiletypeTable,
    build_command_data,
    build_event_data,
    build_request_data,
)
from .results import (
    CompletionList,
    Location,
    ParseResultItem,
    parse_goto_response,
    parse_result_items,
)
from .scheduler import ContextProvider, NotificationScheduler
from .secrets import provision
from .supervisor import ServerSession, ServerSupervisor

logger = logging.getLogger(__name__)


class ClientRuntime:
    """
    Owns the supervisor, request channel, scheduler and dispatcher.

    Args:
        config: Client configuration (defaults apply when omitted)
        context_provider: Returns the current DocumentContext for a path,
            or None when the buffer is gone. Defaults to reading the file
            from disk with the cursor at the start.
        process_factory, opener, provisioner, clock, sleep: seams for tests
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        context_provider: ContextProvider | None = None,
        process_factory: Callable[..., Any] = subprocess.Popen,
        opener: Callable[..., Any] = urlopen,
        provisioner: Callable[[dict[str, Any]], tuple[bytes, Path]] = provision,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.config = config or ClientConfig()
        self.filetypes = FiletypeTable(self.config.filetypes)
        self.dispatcher = ResultDispatcher()
        self.supervisor = ServerSupervisor(
            self.config.server,
            self.config.options,
            process_factory=process_factory,
            provisioner=provisioner,
            clock=clock,
            sleep=sleep,
        )
        self.channel = RequestChannel(
            self.supervisor,
            hmac_header=self.config.server.hmac_header,
            timeout=self.config.server.request_timeout,
            opener=opener,
        )
        self.scheduler = NotificationScheduler(
            notify=self.notify_document_changed,
            dispatcher=self.dispatcher,
            context_provider=context_provider or self._context_from_disk,
            filetypes=self.filetypes,
            idle_delay=self.config.scheduler.idle_delay,
            keepalive_interval=self.config.scheduler.keepalive_interval,
            ping=self.ping,
            is_running=self.is_running,
            unload=self._unload,
            loop=loop,
        )
        self.supervisor.on_started.append(self._session_started)
        self.supervisor.on_stopped.append(self.scheduler.stop_keepalive)

    # -- session ------------------------------------------------------------

    def open_session(self) -> ServerSession:
        """Start (or restart) the server. Raises ServerStartupError on failure."""
        return self.supervisor.start()

    def close_session(self) -> None:
        self.scheduler.cancel()
        self.supervisor.stop()

    def is_running(self) -> bool:
        return self.supervisor.is_running()

    def _session_started(self, session: ServerSession) -> None:
        self.scheduler.start_keepalive()

    # -- direct requests ----------------------------------------------------

    def request_completions(self, ctx: DocumentContext) -> "asyncio.Future[CompletionList]":
        future = self.channel.send("/completions", build_request_data(ctx))
        return then(future, CompletionList.from_response)

    def request_goto(self, ctx: DocumentContext) -> "asyncio.Future[Location | None]":
        future = self.channel.send("/run_completer_command", build_command_data(ctx, ["GoTo"]))
        return then(future, parse_goto_response)

    def goto(self, ctx: DocumentContext) -> "asyncio.Future[bool]":
        """Resolve the definition under the cursor and hand it to the navigators."""
        return then(self.request_goto(ctx), self.dispatcher.navigate)

    def notify_document_changed(self, ctx: DocumentContext) -> "asyncio.Future[list[ParseResultItem]]":
        future = self.channel.send("/event_notification", build_event_data(ctx, "FileReadyToParse"))
        return then(future, parse_result_items)

    def load_extra_config(self, path: str | Path) -> "asyncio.Future[Any]":
        return self.channel.send("/load_extra_conf_file", {"filepath": str(Path(path).expanduser())})

    def ping(self) -> "asyncio.Future[str]":
        return self.channel.send("/healthy", method="GET", parser=parse_text)

    # -- document events ----------------------------------------------------

    def on_document_opened(self, path: str, mode: str | None) -> DocumentState:
        return self.scheduler.document_opened(path, mode)

    def on_document_edited(self, path: str, mode: str | None = None) -> None:
        self.scheduler.document_edited(path, mode)

    def on_document_activated(self, path: str) -> None:
        self.scheduler.set_active(path)

    def on_document_closed(self, path: str) -> None:
        self.scheduler.document_closed(path)

    def _unload(self, state: DocumentState) -> None:
        # Closing a buffer never starts a server.
        if not self.is_running() or state.filetype is None:
            return
        ctx = DocumentContext(filepath=state.path, contents="", filetypes=(state.filetype,))
        future = self.channel.send("/event_notification", build_event_data(ctx, "BufferUnload"))
        future.add_done_callback(_log_failure("BufferUnload", state.path))

    def _context_from_disk(self, path: str) -> DocumentContext | None:
        state = self.scheduler.document(path)
        if state is None or state.filetype is None:
            return None
        contents = Path(path).read_text(encoding="utf-8", errors="replace")
        return DocumentContext(filepath=path, contents=contents, filetypes=(state.filetype,))


def _log_failure(what: str, path: str) -> Callable[[asyncio.Future], None]:
    def _done(future: asyncio.Future) -> None:
        if not future.cancelled() and future.exception() is not None:
            logger.warning("%s for %s failed: %s", what, path, future.exception())

    return _done
