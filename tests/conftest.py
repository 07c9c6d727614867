"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import io
import itertools
import json
from pathlib import Path
from typing import Any, Callable
from urllib.parse import urlparse

import pytest

from ycmd_client.config import ClientConfig, ServerConfig
from ycmd_client.document import DocumentContext
from ycmd_client.runtime import ClientRuntime
from ycmd_client.secrets import provision
from ycmd_client.supervisor import ServerSupervisor

READY_OUTPUT = "noise\nserving on http://127.0.0.1:6000\nmore noise\n"

_pids = itertools.count(1000)


class FakeProcess:
    """Stands in for subprocess.Popen."""

    def __init__(self, args: list[str], output: str = READY_OUTPUT, returncode: int | None = None):
        self.args = args
        self.stdout = io.StringIO(output)
        self.returncode = returncode
        self.pid = next(_pids)
        self.terminated = False

    def poll(self) -> int | None:
        return self.returncode

    def terminate(self) -> None:
        self.terminated = True
        self.returncode = -15

    def kill(self) -> None:
        self.returncode = -9

    def wait(self, timeout: float | None = None) -> int | None:
        return self.returncode


class FakeProcessFactory:
    """Records every spawned process and what was alive at spawn time."""

    def __init__(self, output: str = READY_OUTPUT, returncode: int | None = None):
        self.output = output
        self.returncode = returncode
        self.spawned: list[FakeProcess] = []
        self.alive_at_spawn: list[int] = []

    def __call__(self, args: list[str], **kwargs: Any) -> FakeProcess:
        self.alive_at_spawn.append(sum(1 for p in self.spawned if p.poll() is None))
        process = FakeProcess(args, self.output, self.returncode)
        self.spawned.append(process)
        return process


class FakeResponse:
    def __init__(self, body: str):
        self._body = body.encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> "FakeResponse":
        return self

    def __exit__(self, *exc: Any) -> bool:
        return False


class FakeOpener:
    """
    Stands in for urllib.request.urlopen.

    `responses` maps a URL path to a JSON-able value, a raw string, an
    exception to raise, or a callable taking the request.
    """

    def __init__(self) -> None:
        self.requests: list[Any] = []
        self.responses: dict[str, Any] = {}

    def __call__(self, request: Any, timeout: float | None = None) -> FakeResponse:
        self.requests.append(request)
        result = self.responses.get(urlparse(request.full_url).path)
        if callable(result) and not isinstance(result, type):
            result = result(request)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, str):
            return FakeResponse(result)
        return FakeResponse(json.dumps(result))

    def paths(self) -> list[str]:
        return [urlparse(r.full_url).path for r in self.requests]

    def payloads(self, path: str) -> list[dict[str, Any]]:
        return [
            json.loads(r.data.decode("utf-8"))
            for r in self.requests
            if urlparse(r.full_url).path == path and r.data
        ]


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def process_factory() -> FakeProcessFactory:
    return FakeProcessFactory()


@pytest.fixture
def opener() -> FakeOpener:
    return FakeOpener()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def provisioner(tmp_path: Path) -> Callable[[dict[str, Any]], tuple[bytes, Path]]:
    """Provision descriptors into the test's temp directory."""
    return lambda options: provision(options, directory=tmp_path)


@pytest.fixture
def supervisor(process_factory, provisioner, clock) -> ServerSupervisor:
    return ServerSupervisor(
        ServerConfig(command=["ycmd"], extra_args=["--log=debug"]),
        process_factory=process_factory,
        provisioner=provisioner,
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def buffers() -> dict[str, str]:
    """Editor buffer contents keyed by path."""
    return {}


@pytest.fixture
def make_runtime(process_factory, opener, provisioner, clock, buffers):
    """Build a ClientRuntime wired to fakes, with short timers."""

    def context_provider(path: str) -> DocumentContext | None:
        if path not in buffers:
            return None
        return DocumentContext(filepath=path, contents=buffers[path], filetypes=("cpp",))

    def _make(idle_delay: float = 0.01, keepalive_interval: float = 30.0) -> ClientRuntime:
        config = ClientConfig()
        config.server.command = ["ycmd"]
        config.scheduler.idle_delay = idle_delay
        config.scheduler.keepalive_interval = keepalive_interval
        return ClientRuntime(
            config,
            context_provider=context_provider,
            process_factory=process_factory,
            opener=opener,
            provisioner=provisioner,
            clock=clock,
            sleep=clock.sleep,
        )

    return _make


@pytest.fixture
def settle():
    """Wait past the idle delay, then for every in-flight notification."""

    async def _settle(runtime: ClientRuntime, delay: float = 0.1) -> None:
        await asyncio.sleep(delay)
        while runtime.scheduler.in_flight():
            await asyncio.gather(*runtime.scheduler.in_flight(), return_exceptions=True)

    return _settle
