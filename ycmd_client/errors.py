"""
Error taxonomy for the ycmd client runtime.

Session-level failures (startup timeout, early exit) end the session and
require an explicit restart. Request-level failures reject only the future
of the request that caused them.
"""

from __future__ import annotations


class YcmdClientError(RuntimeError):
    """Base class for all client runtime errors."""


class ConfigError(ValueError):
    """Raised when the client configuration is unusable."""


class ServerStartupError(YcmdClientError):
    """The server process could not be brought to a running state."""


class ServerTimeout(ServerStartupError):
    """The server did not report its listening port within the startup budget."""

    def __init__(self, timeout: float, output: str = ""):
        super().__init__(f"ycmd did not report a listening port within {timeout:g}s")
        self.timeout = timeout
        self.output = output


class TransportFailure(YcmdClientError):
    """
    A single exchange with the server failed.

    `status` is the HTTP status when the server answered, None when the
    connection itself failed. An HMAC mismatch on the server side shows up
    here as an ordinary 4xx status.
    """

    def __init__(self, message: str, *, status: int | None = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body
