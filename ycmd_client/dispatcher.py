"""
Fan-out of server results to the editor's presentation layer.

The dispatcher decides *what* to show (which items, on which line, with
which severity); handlers registered by the host decide *how*.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Protocol

from .results import Location, ParseResultItem

logger = logging.getLogger(__name__)

# Server kind -> visual category. Kinds not listed are not displayed.
SEVERITIES: dict[str, str] = {
    "ERROR": "error",
    "WARNING": "warning",
}


@dataclass(frozen=True)
class Annotation:
    """A line-spanning region annotation for one diagnostic."""

    filepath: str
    line: int  # 1-based
    severity: str  # "error" or "warning"
    message: str
    column: int = 1  # 1-based byte column of the reported location


class DecorationHandler(Protocol):
    def clear(self, filepath: str) -> None: ...

    def annotate(self, annotation: Annotation) -> None: ...


def to_annotation(item: ParseResultItem) -> Annotation | None:
    severity = SEVERITIES.get(item.kind.upper())
    if severity is None:
        return None
    return Annotation(
        filepath=item.location.filepath,
        line=item.location.line,
        severity=severity,
        message=item.text,
        column=item.location.column,
    )


class ResultDispatcher:
    """Routes parse results, navigation targets and messages to handlers."""

    def __init__(self) -> None:
        self._decorators: list[DecorationHandler] = []
        self._navigators: list[Callable[[Location], None]] = []
        self._displays: list[Callable[[str], None]] = []

    def register_decorator(self, handler: DecorationHandler) -> None:
        self._decorators.append(handler)

    def register_navigator(self, handler: Callable[[Location], None]) -> None:
        self._navigators.append(handler)

    def register_display(self, handler: Callable[[str], None]) -> None:
        self._displays.append(handler)

    def dispatch(
        self,
        items: Iterable[ParseResultItem],
        open_documents: Iterable[str],
        source: str | None = None,
    ) -> list[Annotation]:
        """
        Replace the decorations of every affected open document.

        Args:
            items: Decoded parse results
            open_documents: Paths currently open in the editor
            source: The document the parse was requested for; it is cleared
                even when the server reports no items for it

        Returns:
            The annotations emitted, in item order
        """
        items = list(items)
        open_set = set(open_documents)

        affected = {item.location.filepath for item in items}
        if source is not None:
            affected.add(source)
        for filepath in sorted(affected & open_set):
            for handler in self._decorators:
                handler.clear(filepath)

        emitted: list[Annotation] = []
        for item in items:
            annotation = to_annotation(item)
            if annotation is None:
                logger.debug("ignoring result of kind %r", item.kind)
                continue
            if annotation.filepath not in open_set:
                continue
            for handler in self._decorators:
                handler.annotate(annotation)
            emitted.append(annotation)
        return emitted

    def navigate(self, location: Location | None) -> bool:
        """Hand a navigation target to the navigators. Returns False for no target."""
        if location is None:
            return False
        for handler in self._navigators:
            handler(location)
        return True

    def display(self, message: str) -> None:
        for handler in self._displays:
            handler(message)
