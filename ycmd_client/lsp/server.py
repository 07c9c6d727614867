"""
LSP front end for the ycmd client runtime.

The language server plays the editor: document events from the LSP client
feed the runtime's scheduler, completion and definition requests go to
ycmd directly, and parse results come back as published diagnostics.
"""

from __future__ import annotations

import logging
from pathlib import Path
from urllib.parse import unquote, urlparse

from lsprotocol import types as lsp
from pygls.lsp.server import LanguageServer

from .. import __version__
from ..config import ClientConfig
from ..document import DocumentContext
from ..errors import YcmdClientError
from ..runtime import ClientRuntime
from .diagnostics import DiagnosticPublisher, to_lsp_completions, to_lsp_location

logger = logging.getLogger(__name__)

COMPLETION_TRIGGERS = [".", ">", ":"]


def uri_to_path(uri: str) -> Path:
    """Convert a file URI to a Path."""
    parsed = urlparse(uri)
    path = unquote(parsed.path)
    if path.startswith("/") and len(path) > 2 and path[2] == ":":
        path = path[1:]  # Remove leading slash for Windows paths
    return Path(path)


class YcmdLanguageServer(LanguageServer):
    """Language server backed by a supervised ycmd process."""

    def __init__(self, config: ClientConfig | None = None):
        super().__init__(name="ycmd-client", version=__version__)
        self.client_runtime = ClientRuntime(config, context_provider=self.document_context)
        self.publisher = DiagnosticPublisher(self)
        self.client_runtime.dispatcher.register_decorator(self.publisher)
        self.client_runtime.dispatcher.register_display(self.show_error)

    def show_error(self, message: str) -> None:
        self.window_show_message(lsp.ShowMessageParams(type=lsp.MessageType.Error, message=message))

    def filetype_for(self, uri: str) -> str | None:
        document = self.workspace.get_text_document(uri)
        mode = document.language_id or self.client_runtime.filetypes.mode_for_path(uri_to_path(uri))
        return self.client_runtime.filetypes.classify(mode)

    def document_context(self, filepath: str, position: lsp.Position | None = None) -> DocumentContext | None:
        """Snapshot of an open document, cursor at `position` or the start."""
        uri = Path(filepath).as_uri()
        filetype = self.filetype_for(uri)
        if filetype is None:
            return None
        source = self.workspace.get_text_document(uri).source
        line = position.line if position else 0
        character = position.character if position else 0
        return DocumentContext.at_position(filepath, source, filetype, line, character)


def create_server(config: ClientConfig | None = None) -> YcmdLanguageServer:
    """Create and configure the LSP server."""
    server = YcmdLanguageServer(config)
    runtime = server.client_runtime

    @server.feature(lsp.TEXT_DOCUMENT_DID_OPEN)
    def did_open(params: lsp.DidOpenTextDocumentParams) -> None:
        path = str(uri_to_path(params.text_document.uri))
        runtime.on_document_opened(path, params.text_document.language_id)

    @server.feature(lsp.TEXT_DOCUMENT_DID_CHANGE)
    def did_change(params: lsp.DidChangeTextDocumentParams) -> None:
        runtime.on_document_edited(str(uri_to_path(params.text_document.uri)))

    @server.feature(lsp.TEXT_DOCUMENT_DID_CLOSE)
    def did_close(params: lsp.DidCloseTextDocumentParams) -> None:
        runtime.on_document_closed(str(uri_to_path(params.text_document.uri)))
        server.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(uri=params.text_document.uri, diagnostics=[])
        )

    @server.feature(lsp.TEXT_DOCUMENT_COMPLETION, lsp.CompletionOptions(trigger_characters=COMPLETION_TRIGGERS))
    async def completion(params: lsp.CompletionParams) -> lsp.CompletionList | None:
        ctx = server.document_context(str(uri_to_path(params.text_document.uri)), params.position)
        if ctx is None:
            return None
        try:
            completions = await runtime.request_completions(ctx)
        except YcmdClientError as e:
            logger.warning("completion request failed: %s", e)
            return lsp.CompletionList(is_incomplete=False, items=[])
        return to_lsp_completions(completions)

    @server.feature(lsp.TEXT_DOCUMENT_DEFINITION)
    async def definition(params: lsp.DefinitionParams) -> lsp.Location | None:
        ctx = server.document_context(str(uri_to_path(params.text_document.uri)), params.position)
        if ctx is None:
            return None
        try:
            location = await runtime.request_goto(ctx)
        except YcmdClientError as e:
            logger.warning("GoTo request failed: %s", e)
            return None
        return to_lsp_location(location) if location else None

    @server.feature(lsp.SHUTDOWN)
    def shutdown(params: None) -> None:
        runtime.close_session()

    return server


def start_server(config: ClientConfig | None = None, transport: str = "stdio", port: int = 2087) -> None:
    """Start the LSP server.

    Args:
        config: Client configuration
        transport: Transport method ("stdio" or "tcp")
        port: TCP port when transport is "tcp"
    """
    server = create_server(config)

    if transport == "stdio":
        server.start_io()
    else:
        # TCP transport for debugging
        server.start_tcp("localhost", port)
