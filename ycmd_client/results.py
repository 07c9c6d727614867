"""
Value types decoded from ycmd responses.

All types are immutable; the client never edits what the server produced.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Location:
    filepath: str
    line: int  # 1-based
    column: int  # 1-based byte column

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Location":
        return cls(
            filepath=str(data.get("filepath", "")),
            line=int(data.get("line_num", 1)),
            column=int(data.get("column_num", 1)),
        )


@dataclass(frozen=True)
class Range:
    start: Location
    end: Location

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Range":
        return cls(
            start=Location.from_dict(data.get("start") or {}),
            end=Location.from_dict(data.get("end") or {}),
        )


@dataclass(frozen=True)
class ParseResultItem:
    """A diagnostic reported by the server after a parse."""

    kind: str  # "ERROR", "WARNING", or anything else the server emits
    text: str
    location: Location
    location_extent: Range | None = None
    ranges: tuple[Range, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParseResultItem":
        extent = data.get("location_extent")
        return cls(
            kind=str(data.get("kind", "")),
            text=str(data.get("text", "")),
            location=Location.from_dict(data.get("location") or {}),
            location_extent=Range.from_dict(extent) if isinstance(extent, dict) else None,
            ranges=tuple(Range.from_dict(r) for r in data.get("ranges") or [] if isinstance(r, dict)),
        )


def parse_result_items(payload: Any) -> list[ParseResultItem]:
    """Decode the body of a FileReadyToParse response. Non-lists yield nothing."""
    if not isinstance(payload, list):
        return []
    return [ParseResultItem.from_dict(item) for item in payload if isinstance(item, dict)]


@dataclass(frozen=True)
class CompletionCandidate:
    insertion_text: str
    menu_text: str | None = None
    extra_menu_info: str | None = None
    detailed_info: str | None = None
    kind: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CompletionCandidate":
        return cls(
            insertion_text=str(data.get("insertion_text", "")),
            menu_text=data.get("menu_text"),
            extra_menu_info=data.get("extra_menu_info"),
            detailed_info=data.get("detailed_info"),
            kind=data.get("kind"),
        )


@dataclass(frozen=True)
class CompletionList:
    candidates: tuple[CompletionCandidate, ...]
    start_column: int  # 1-based byte column where the completed text begins

    @classmethod
    def from_response(cls, payload: Any) -> "CompletionList":
        if not isinstance(payload, dict):
            return cls(candidates=(), start_column=1)
        return cls(
            candidates=tuple(
                CompletionCandidate.from_dict(c) for c in payload.get("completions") or [] if isinstance(c, dict)
            ),
            start_column=int(payload.get("completion_start_column", 1)),
        )


def parse_goto_response(payload: Any) -> Location | None:
    """
    Decode a GoTo command result.

    ycmd answers with one location, or a list when the target is ambiguous;
    the first entry is used.
    """
    if isinstance(payload, list):
        payload = next((p for p in payload if isinstance(p, dict)), None)
    if not isinstance(payload, dict) or "filepath" not in payload:
        return None
    return Location.from_dict(payload)
