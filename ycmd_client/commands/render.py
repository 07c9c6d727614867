"""Console presentation of ycmd results."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..dispatcher import Annotation
from ..results import CompletionList, Location

SEVERITY_STYLES = {
    "error": "bold red",
    "warning": "yellow",
}


def _short(path: str) -> str:
    try:
        return str(Path(path).relative_to(Path.cwd()))
    except ValueError:
        return path


class ConsoleDecorations:
    """Decoration handler that prints annotations as they arrive."""

    def __init__(self, console: Console, timestamps: bool = False, echo: bool = True):
        self.console = console
        self.timestamps = timestamps
        self.echo = echo
        self.annotations: list[Annotation] = []

    def clear(self, filepath: str) -> None:
        self.annotations = [a for a in self.annotations if a.filepath != filepath]
        if self.timestamps:
            stamp = datetime.now().strftime("%H:%M:%S")
            self.console.print(f"[dim]{stamp}[/dim] parsed {_short(filepath)}", highlight=False)

    def annotate(self, annotation: Annotation) -> None:
        self.annotations.append(annotation)
        if not self.echo:
            return
        style = SEVERITY_STYLES.get(annotation.severity, "")
        self.console.print(
            f"  {_short(annotation.filepath)}:{annotation.line}:{annotation.column} "
            f"[{style}]{annotation.severity}[/{style}] {annotation.message}",
            highlight=False,
        )


def completions_table(completions: CompletionList) -> Table:
    table = Table(title=f"Completions (start column {completions.start_column})")
    table.add_column("Insert", style="bold")
    table.add_column("Kind", style="cyan")
    table.add_column("Info", style="dim")
    for candidate in completions.candidates:
        table.add_row(
            candidate.insertion_text,
            candidate.kind or "",
            candidate.extra_menu_info or "",
        )
    return table


def format_location(location: Location) -> str:
    return f"{_short(location.filepath)}:{location.line}:{location.column}"
