"""
Documents as the server sees them.

Provides:
- File-type classification (editor mode or file extension -> ycmd filetype)
- DocumentContext: the snapshot of a buffer sent with a request
- DocumentState: per-document dirty tracking owned by the scheduler
- Builders for the standard request payloads
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# Editor mode -> ycmd filetype tag. Modes are matched case-insensitively and
# cover both Emacs-style major modes and LSP language identifiers.
MODE_FILETYPES: dict[str, str] = {
    "c-mode": "c",
    "c": "c",
    "c++-mode": "cpp",
    "cpp": "cpp",
    "objc-mode": "objc",
    "objective-c": "objc",
    "objective-cpp": "objcpp",
    "python-mode": "python",
    "python": "python",
    "csharp-mode": "cs",
    "csharp": "cs",
    "go-mode": "go",
    "go": "go",
    "js-mode": "javascript",
    "js2-mode": "javascript",
    "javascript": "javascript",
    "typescript-mode": "typescript",
    "typescript": "typescript",
    "rust-mode": "rust",
    "rust": "rust",
}

EXTENSION_MODES: dict[str, str] = {
    ".c": "c",
    ".h": "cpp",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hpp": "cpp",
    ".hh": "cpp",
    ".m": "objective-c",
    ".mm": "objective-cpp",
    ".py": "python",
    ".cs": "csharp",
    ".go": "go",
    ".js": "javascript",
    ".ts": "typescript",
    ".rs": "rust",
}


class FiletypeTable:
    """Static classification table with optional user additions."""

    def __init__(self, extra: dict[str, str] | None = None):
        self._table = dict(MODE_FILETYPES)
        for mode, filetype in (extra or {}).items():
            self._table[mode.lower()] = filetype

    def classify(self, mode: str | None) -> str | None:
        if not mode:
            return None
        return self._table.get(mode.lower())

    def mode_for_path(self, path: Path) -> str | None:
        return EXTENSION_MODES.get(path.suffix.lower())

    def __contains__(self, mode: str) -> bool:
        return self.classify(mode) is not None


@dataclass(frozen=True)
class DocumentContext:
    """
    A buffer snapshot plus cursor.

    `line_num` is 1-based. `column_num` is the 0-based byte offset of the
    cursor within its line plus one, which is what ycmd expects.
    """

    filepath: str
    contents: str
    filetypes: tuple[str, ...]
    line_num: int = 1
    column_num: int = 1

    @classmethod
    def at_position(
        cls,
        filepath: str,
        contents: str,
        filetype: str,
        line: int,
        character: int,
    ) -> "DocumentContext":
        """Build a context from a 0-based line and 0-based character offset."""
        lines = contents.split("\n")
        text = lines[line] if 0 <= line < len(lines) else ""
        byte_offset = len(text[:character].encode("utf-8"))
        return cls(
            filepath=filepath,
            contents=contents,
            filetypes=(filetype,),
            line_num=line + 1,
            column_num=byte_offset + 1,
        )


@dataclass
class DocumentState:
    """Synchronization state of one open document."""

    path: str
    mode: str | None
    filetype: str | None
    dirty: bool = True
    generation: int = 0
    in_flight: bool = False
    failures: int = 0  # consecutive failed notifications
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def supported(self) -> bool:
        return self.filetype is not None

    def touch(self) -> None:
        self.dirty = True
        self.generation += 1


def build_request_data(ctx: DocumentContext) -> dict[str, Any]:
    """The fields every buffer-scoped request carries."""
    return {
        "file_data": {
            ctx.filepath: {
                "contents": ctx.contents,
                "filetypes": list(ctx.filetypes),
            }
        },
        "filepath": ctx.filepath,
        "line_num": ctx.line_num,
        "column_num": ctx.column_num,
    }


def build_event_data(ctx: DocumentContext, event_name: str) -> dict[str, Any]:
    data = build_request_data(ctx)
    data["event_name"] = event_name
    return data


def build_command_data(
    ctx: DocumentContext,
    arguments: list[str],
    completer_target: str = "filetype_default",
) -> dict[str, Any]:
    data = build_request_data(ctx)
    data["command_arguments"] = list(arguments)
    data["completer_target"] = completer_target
    return data
