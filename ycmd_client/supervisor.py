"""
Supervision of the ycmd child process.

ycmd picks its own listening port and announces it on stdout, so readiness
is detected by scraping the child's combined output for the
"serving on http://host:port" line. The scrape is a bounded polling loop;
the reader, clock and sleep are injectable so it can be exercised without a
real process.
"""

from __future__ import annotations

import codecs
import logging
import os
import re
import select
import subprocess
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable

from .config import ServerConfig
from .errors import ServerStartupError, ServerTimeout
from .secrets import provision

logger = logging.getLogger(__name__)

READY_PATTERN = re.compile(r"serving on http://([^\s:/]+):(\d+)", re.IGNORECASE)
POLL_INTERVAL = 0.05
TERMINATE_GRACE = 2.0


class ServerState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    FAILED = "failed"


@dataclass
class ServerSession:
    """One running server and the parameters needed to talk to it."""

    process: Any
    secret: bytes
    host: str
    port: int
    descriptor_path: Path | None = None
    drain_thread: threading.Thread | None = None

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"


class OutputReader:
    """
    Incremental reader over a child's output stream.

    Streams with a file descriptor are polled with select() and read with a
    single non-blocking-sized read. Streams without one (in-memory fakes)
    are read directly.
    """

    def __init__(self, stream: Any):
        self._stream = stream
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._chunks: list[str] = []
        self.eof = False

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def _fileno(self) -> int | None:
        fileno = getattr(self._stream, "fileno", None)
        if fileno is None:
            return None
        try:
            return fileno()
        except (OSError, ValueError):
            return None

    def poll(self) -> str:
        """Read whatever is available right now without waiting."""
        if self.eof or self._stream is None:
            return ""
        fd = self._fileno()
        if fd is None:
            data = self._stream.read()
        else:
            ready, _, _ = select.select([fd], [], [], 0)
            if not ready:
                return ""
            data = os.read(fd, 4096)
            if not data:
                self.eof = True
                return ""
        if not data:
            return ""
        chunk = self._decoder.decode(data) if isinstance(data, bytes) else data
        self._chunks.append(chunk)
        return chunk


def find_listening_address(output: str) -> tuple[str, int] | None:
    """Return (host, port) from the first complete readiness line, if any."""
    complete = output[: output.rfind("\n") + 1]
    match = READY_PATTERN.search(complete)
    if match is None:
        return None
    return match.group(1), int(match.group(2))


def wait_for_listening_address(
    reader: OutputReader,
    process: Any,
    timeout: float,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[str, int]:
    """
    Poll `reader` until the readiness line appears.

    Raises:
        ServerTimeout: no readiness line within `timeout` seconds
        ServerStartupError: the process exited before announcing its port
    """
    deadline = clock() + timeout
    while True:
        reader.poll()
        address = find_listening_address(reader.text)
        if address is not None:
            return address

        returncode = process.poll()
        if returncode is not None and (reader.eof or not reader.poll()):
            raise ServerStartupError(
                f"ycmd exited with code {returncode} before reporting a port:\n{reader.text[-2000:]}"
            )

        if clock() >= deadline:
            raise ServerTimeout(timeout, reader.text)
        sleep(POLL_INTERVAL)


def _drain_output(stream: Any, pid: Any) -> None:
    """Forward the rest of the child's output to the log until EOF."""
    try:
        for line in stream:
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            logger.debug("ycmd[%s]: %s", pid, line.rstrip())
    except (OSError, ValueError):
        return


def _close_output(process: Any, drain_thread: threading.Thread | None = None) -> None:
    """Close a reaped child's output pipe once nothing is reading it."""
    if drain_thread is not None:
        drain_thread.join(timeout=TERMINATE_GRACE)
        if drain_thread.is_alive():
            logger.warning(
                "ycmd (pid %s) output still open; leaving it to the drain thread",
                getattr(process, "pid", "?"),
            )
            return
    stream = getattr(process, "stdout", None)
    if stream is not None:
        stream.close()


class ServerSupervisor:
    """
    Owns the single ycmd child process of a client runtime.

    Lifecycle: STOPPED -> STARTING -> RUNNING -> STOPPED, or
    STARTING -> FAILED when readiness is not observed. A RUNNING server
    whose process dies also moves to FAILED. Only an explicit start()
    leaves FAILED.
    """

    def __init__(
        self,
        config: ServerConfig,
        options: dict[str, Any] | None = None,
        *,
        process_factory: Callable[..., Any] = subprocess.Popen,
        provisioner: Callable[[dict[str, Any]], tuple[bytes, Path]] = provision,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.options = dict(options or {})
        self._process_factory = process_factory
        self._provisioner = provisioner
        self._clock = clock
        self._sleep = sleep
        self._session: ServerSession | None = None
        self.state = ServerState.STOPPED
        self.on_started: list[Callable[[ServerSession], None]] = []
        self.on_stopped: list[Callable[[], None]] = []

    @property
    def session(self) -> ServerSession | None:
        return self._session

    def build_args(self, descriptor_path: Path) -> list[str]:
        return [
            *self.config.launch_command(),
            f"--options_file={descriptor_path}",
            *self.config.extra_args,
        ]

    def start(self) -> ServerSession:
        """Stop any running server, then spawn a new one and wait for its port."""
        self.stop()
        self.state = ServerState.STARTING

        secret, descriptor_path = self._provisioner(self.options)
        args = self.build_args(descriptor_path)
        logger.info("starting ycmd: %s", " ".join(args))

        try:
            process = self._process_factory(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError as e:
            self.state = ServerState.FAILED
            descriptor_path.unlink(missing_ok=True)
            raise ServerStartupError(f"cannot launch ycmd ({args[0]}): {e}") from e

        reader = OutputReader(process.stdout)
        try:
            host, port = wait_for_listening_address(
                reader,
                process,
                self.config.startup_timeout,
                clock=self._clock,
                sleep=self._sleep,
            )
        except ServerStartupError:
            self._terminate(process)
            _close_output(process)
            descriptor_path.unlink(missing_ok=True)
            self.state = ServerState.FAILED
            raise

        session = ServerSession(
            process=process,
            secret=secret,
            host=host,
            port=port,
            descriptor_path=descriptor_path,
        )
        self._session = session
        self.state = ServerState.RUNNING
        logger.info("ycmd (pid %s) serving on %s", getattr(process, "pid", "?"), session.base_url)

        if process.stdout is not None:
            session.drain_thread = threading.Thread(
                target=_drain_output,
                args=(process.stdout, getattr(process, "pid", "?")),
                name="ycmd-output",
                daemon=True,
            )
            session.drain_thread.start()

        for callback in list(self.on_started):
            callback(session)
        return session

    def _terminate(self, process: Any) -> None:
        if process.poll() is not None:
            return
        process.terminate()
        try:
            process.wait(timeout=TERMINATE_GRACE)
        except subprocess.TimeoutExpired:
            logger.warning("ycmd (pid %s) ignored SIGTERM; killing", getattr(process, "pid", "?"))
            process.kill()
            process.wait()

    def stop(self) -> None:
        """Terminate the running server, if any. Safe to call repeatedly."""
        session = self._session
        self._session = None
        if session is None:
            self.state = ServerState.STOPPED
            return

        logger.info("stopping ycmd (pid %s)", getattr(session.process, "pid", "?"))
        self._terminate(session.process)
        _close_output(session.process, session.drain_thread)
        self.state = ServerState.STOPPED
        for callback in list(self.on_stopped):
            callback()

    def is_running(self) -> bool:
        session = self._session
        if session is None:
            return False
        returncode = session.process.poll()
        if returncode is None:
            return True

        logger.error("ycmd (pid %s) exited with code %s", getattr(session.process, "pid", "?"), returncode)
        self._session = None
        _close_output(session.process, session.drain_thread)
        self.state = ServerState.FAILED
        for callback in list(self.on_stopped):
            callback()
        return False

    def ensure_running(self) -> ServerSession:
        """Return the live session, starting one if the server is stopped."""
        session = self._session
        if session is not None and self.is_running():
            return session
        if self.state == ServerState.FAILED:
            raise ServerStartupError("ycmd is not running after a failure; restart it explicitly")
        return self.start()
