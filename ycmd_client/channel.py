"""Signed asynchronous HTTP exchanges with the running ycmd server."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from concurrent.futures import Executor
from typing import Any, Callable, TypeVar
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from .errors import TransportFailure
from .supervisor import ServerSession, ServerSupervisor

logger = logging.getLogger(__name__)

T = TypeVar("T")
U = TypeVar("U")


def encode_json(payload: Any) -> bytes:
    """Canonical request body: sorted keys, no insignificant whitespace, UTF-8."""
    return json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def request_hmac(secret: bytes, body: bytes) -> str:
    """
    The value of the HMAC header for `body`.

    ycmd compares against the base64 of the *hex digest*, not of the raw
    digest, so both encodings are applied.
    """
    digest = hmac.new(secret, body, hashlib.sha256).hexdigest()
    return base64.b64encode(digest.encode("ascii")).decode("ascii")


def parse_json(text: str) -> Any:
    return json.loads(text) if text.strip() else None


def parse_text(text: str) -> str:
    return text


def _error_message(body: str) -> str | None:
    """Pull the message out of ycmd's {"exception": ..., "message": ...} error body."""
    try:
        data = json.loads(body)
    except ValueError:
        return None
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return None


def then(future: "asyncio.Future[T]", transform: Callable[[T], U]) -> "asyncio.Future[U]":
    """Chain `transform` onto `future`, propagating failure and cancellation."""
    result: asyncio.Future[U] = future.get_loop().create_future()

    def _done(source: "asyncio.Future[T]") -> None:
        if result.cancelled():
            return
        if source.cancelled():
            result.cancel()
            return
        exc = source.exception()
        if exc is not None:
            result.set_exception(exc)
            return
        try:
            result.set_result(transform(source.result()))
        except Exception as e:
            result.set_exception(e)

    future.add_done_callback(_done)
    return result


class RequestChannel:
    """
    Builds, signs and sends requests to the supervisor's current session.

    Each send() captures the session at call time, so a request started
    before a restart keeps the old secret and address and simply fails.
    Responses are not authenticated.
    """

    def __init__(
        self,
        supervisor: ServerSupervisor,
        *,
        hmac_header: str = "X-Ycm-Hmac",
        timeout: float = 30.0,
        opener: Callable[..., Any] = urlopen,
        executor: Executor | None = None,
    ):
        self._supervisor = supervisor
        self.hmac_header = hmac_header
        self.timeout = timeout
        self._opener = opener
        self._executor = executor

    def build_request(
        self,
        session: ServerSession,
        path: str,
        payload: Any = None,
        method: str = "POST",
    ) -> Request:
        body = encode_json(payload) if payload is not None else b""
        return Request(
            f"{session.base_url}{path}",
            data=body if method != "GET" else None,
            method=method,
            headers={
                "Content-Type": "application/json",
                self.hmac_header: request_hmac(session.secret, body),
            },
        )

    def send(
        self,
        path: str,
        payload: Any = None,
        *,
        method: str = "POST",
        parser: Callable[[str], Any] = parse_json,
    ) -> "asyncio.Future[Any]":
        """
        Send one request and return a future for its parsed response.

        Starts the server first if it is not running; a startup failure is
        raised here, synchronously. Transport failures reject the future.
        Must be called from the running event loop.
        """
        session = self._supervisor.ensure_running()
        request = self.build_request(session, path, payload, method)
        logger.debug("%s %s", method, request.full_url)
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, self._exchange, request, parser)

    def _exchange(self, request: Request, parser: Callable[[str], Any]) -> Any:
        try:
            with self._opener(request, timeout=self.timeout) as resp:
                text = resp.read().decode("utf-8")
        except HTTPError as e:
            body = e.read().decode("utf-8", errors="replace") if e.fp is not None else ""
            message = _error_message(body) or e.reason
            raise TransportFailure(f"ycmd HTTP error {e.code}: {message}", status=e.code, body=body) from e
        except URLError as e:
            raise TransportFailure(f"ycmd connection error: {e.reason}") from e
        except OSError as e:
            raise TransportFailure(f"ycmd connection error: {e}") from e

        try:
            return parser(text)
        except ValueError as e:
            raise TransportFailure(f"invalid response from {request.full_url}: {e}", body=text) from e
