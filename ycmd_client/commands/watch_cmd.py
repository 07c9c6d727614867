"""Watch command - re-parse source files as they are saved."""

from __future__ import annotations

import asyncio
from pathlib import Path

from rich.console import Console

from ..config import ClientConfig
from ..runtime import ClientRuntime
from ..watcher import run_watch_loop
from .render import ConsoleDecorations


def run_watch(config: ClientConfig, root: Path) -> None:
    """
    Watch `root` and print ycmd diagnostics for every saved source file.

    This is a blocking command that runs until interrupted (Ctrl+C). The
    server is started lazily by the first save of a supported file.
    """
    console = Console(stderr=True)
    runtime = ClientRuntime(config)
    decorations = ConsoleDecorations(console, timestamps=True)
    runtime.dispatcher.register_decorator(decorations)
    runtime.dispatcher.register_display(lambda message: console.print(f"[red]{message}[/red]"))

    console.print(f"[bold]Watching[/bold] {root}")
    console.print(f"  Idle delay: {config.scheduler.idle_delay:g}s")
    console.print(f"  Server: {' '.join(config.server.launch_command())}")
    console.print()
    console.print("[dim]Press Ctrl+C to stop watching[/dim]")
    console.print()

    try:
        asyncio.run(run_watch_loop(root.resolve(), runtime))
    except KeyboardInterrupt:
        console.print()
        console.print(f"[bold]Stopped.[/bold] {len(decorations.annotations)} diagnostics outstanding.")
