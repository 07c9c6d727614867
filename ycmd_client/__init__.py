"""
ycmd-client: editor-side runtime for the ycmd code-completion server.

Supervises a local ycmd process, signs every request with the session's
shared secret, and debounces buffer synchronization.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .channel import RequestChannel, request_hmac
from .config import ClientConfig, load_config
from .dispatcher import Annotation, ResultDispatcher
from .document import DocumentContext, FiletypeTable
from .errors import (
    ConfigError,
    ServerStartupError,
    ServerTimeout,
    TransportFailure,
    YcmdClientError,
)
from .results import CompletionList, Location, ParseResultItem
from .runtime import ClientRuntime
from .scheduler import NotificationScheduler
from .supervisor import ServerSession, ServerState, ServerSupervisor

__all__ = [
    "__version__",
    # Runtime
    "ClientRuntime",
    "ClientConfig",
    "load_config",
    # Components
    "NotificationScheduler",
    "RequestChannel",
    "ResultDispatcher",
    "ServerSupervisor",
    "ServerSession",
    "ServerState",
    "request_hmac",
    # Values
    "Annotation",
    "CompletionList",
    "DocumentContext",
    "FiletypeTable",
    "Location",
    "ParseResultItem",
    # Errors
    "ConfigError",
    "ServerStartupError",
    "ServerTimeout",
    "TransportFailure",
    "YcmdClientError",
]
