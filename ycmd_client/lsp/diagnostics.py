"""
Conversion of ycmd results to LSP types.

Annotations become line-spanning diagnostics; completion candidates and
navigation targets become their LSP counterparts.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from lsprotocol import types as lsp

from ..dispatcher import Annotation
from ..results import CompletionList, Location

logger = logging.getLogger(__name__)

SEVERITY_MAP = {
    "error": lsp.DiagnosticSeverity.Error,
    "warning": lsp.DiagnosticSeverity.Warning,
}


def to_lsp_diagnostic(annotation: Annotation, line_text: str = "") -> lsp.Diagnostic:
    """A diagnostic covering the whole reported line."""
    line = max(annotation.line - 1, 0)
    return lsp.Diagnostic(
        range=lsp.Range(
            start=lsp.Position(line=line, character=0),
            end=lsp.Position(line=line, character=len(line_text)),
        ),
        message=annotation.message,
        severity=SEVERITY_MAP.get(annotation.severity, lsp.DiagnosticSeverity.Warning),
        source="ycmd",
    )


def to_lsp_location(location: Location) -> lsp.Location:
    position = lsp.Position(line=max(location.line - 1, 0), character=max(location.column - 1, 0))
    return lsp.Location(
        uri=Path(location.filepath).as_uri(),
        range=lsp.Range(start=position, end=position),
    )


def to_lsp_completions(completions: CompletionList) -> lsp.CompletionList:
    items = []
    for candidate in completions.candidates:
        items.append(
            lsp.CompletionItem(
                label=candidate.menu_text or candidate.insertion_text,
                insert_text=candidate.insertion_text,
                detail=candidate.extra_menu_info,
                documentation=candidate.detailed_info,
            )
        )
    return lsp.CompletionList(is_incomplete=False, items=items)


class DiagnosticPublisher:
    """
    Decoration handler that publishes annotations as LSP diagnostics.

    The dispatcher clears and annotates document by document; publishing is
    deferred to the next loop iteration so each document is published once
    per dispatch.
    """

    def __init__(self, server: Any):
        self._server = server
        self._pending: dict[str, list[Annotation]] = {}
        self._scheduled: set[str] = set()

    def clear(self, filepath: str) -> None:
        self._pending[filepath] = []
        self._schedule(filepath)

    def annotate(self, annotation: Annotation) -> None:
        self._pending.setdefault(annotation.filepath, []).append(annotation)
        self._schedule(annotation.filepath)

    def _schedule(self, filepath: str) -> None:
        if filepath in self._scheduled:
            return
        self._scheduled.add(filepath)
        asyncio.get_running_loop().call_soon(self.publish, filepath)

    def _line_text(self, uri: str, line: int) -> str:
        try:
            lines = self._server.workspace.get_text_document(uri).lines
        except Exception as e:
            logger.debug("cannot read %s from workspace: %s", uri, e)
            return ""
        if 0 < line <= len(lines):
            return lines[line - 1].rstrip("\r\n")
        return ""

    def publish(self, filepath: str) -> None:
        self._scheduled.discard(filepath)
        annotations = self._pending.pop(filepath, [])
        uri = Path(filepath).as_uri()
        diagnostics = [to_lsp_diagnostic(a, self._line_text(uri, a.line)) for a in annotations]
        self._server.text_document_publish_diagnostics(
            lsp.PublishDiagnosticsParams(uri=uri, diagnostics=diagnostics)
        )
