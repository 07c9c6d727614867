"""One-shot commands: parse a file, complete, go to definition, load extra conf."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

from rich.console import Console

from ..config import ClientConfig
from ..document import DocumentContext
from ..errors import YcmdClientError
from ..runtime import ClientRuntime
from ..secrets import build_descriptor, encode_descriptor, generate_secret, redacted
from .render import ConsoleDecorations, completions_table, format_location


def _file_context(runtime: ClientRuntime, path: Path, line: int = 1, column: int = 1) -> DocumentContext:
    filetype = runtime.filetypes.classify(runtime.filetypes.mode_for_path(path))
    if filetype is None:
        raise YcmdClientError(f"no ycmd filetype for {path.name}")
    contents = path.read_text(encoding="utf-8", errors="replace")
    return DocumentContext.at_position(str(path), contents, filetype, line - 1, column - 1)


def run_check(
    config: ClientConfig,
    path: Path,
    output_json: bool = False,
    runtime: ClientRuntime | None = None,
) -> int:
    """
    Parse one file and print its diagnostics.

    Returns 1 if any error was reported, 0 otherwise.
    """
    console = Console()
    runtime = runtime or ClientRuntime(config)
    decorations = ConsoleDecorations(console, echo=not output_json)
    runtime.dispatcher.register_decorator(decorations)
    ctx = _file_context(runtime, path.resolve())

    async def _run() -> None:
        runtime.open_session()
        try:
            items = await runtime.notify_document_changed(ctx)
            runtime.dispatcher.dispatch(items, [ctx.filepath], source=ctx.filepath)
        finally:
            runtime.close_session()

    asyncio.run(_run())

    errors = sum(1 for a in decorations.annotations if a.severity == "error")
    warnings = len(decorations.annotations) - errors
    if output_json:
        print(dumps_annotations(decorations))
    elif not decorations.annotations:
        console.print("[green]No diagnostics.[/green]")
    else:
        console.print(f"[bold]{errors}[/bold] error(s), [bold]{warnings}[/bold] warning(s)")
    return 1 if errors else 0


def run_complete(
    config: ClientConfig,
    path: Path,
    line: int,
    column: int,
    runtime: ClientRuntime | None = None,
) -> int:
    """Print completion candidates at LINE:COLUMN (both 1-based)."""
    console = Console()
    runtime = runtime or ClientRuntime(config)
    ctx = _file_context(runtime, path.resolve(), line, column)

    async def _run():
        runtime.open_session()
        try:
            # The first parse loads the file's semantic state.
            await runtime.notify_document_changed(ctx)
            return await runtime.request_completions(ctx)
        finally:
            runtime.close_session()

    completions = asyncio.run(_run())
    if not completions.candidates:
        console.print("[dim]No completions.[/dim]")
        return 1
    console.print(completions_table(completions))
    return 0


def run_goto(
    config: ClientConfig,
    path: Path,
    line: int,
    column: int,
    runtime: ClientRuntime | None = None,
) -> int:
    """Print the definition location of the symbol at LINE:COLUMN."""
    console = Console()
    runtime = runtime or ClientRuntime(config)
    runtime.dispatcher.register_navigator(lambda loc: console.print(format_location(loc), highlight=False))
    ctx = _file_context(runtime, path.resolve(), line, column)

    async def _run() -> bool:
        runtime.open_session()
        try:
            await runtime.notify_document_changed(ctx)
            return await runtime.goto(ctx)
        finally:
            runtime.close_session()

    if not asyncio.run(_run()):
        console.print("[dim]No definition found.[/dim]")
        return 1
    return 0


def run_load_conf(config: ClientConfig, path: Path, runtime: ClientRuntime | None = None) -> int:
    """Ask ycmd to load an extra conf file and report the outcome."""
    console = Console()
    runtime = runtime or ClientRuntime(config)

    async def _run() -> None:
        runtime.open_session()
        try:
            await runtime.load_extra_config(path.resolve())
        finally:
            runtime.close_session()

    asyncio.run(_run())
    console.print(f"[green]Loaded[/green] {path}")
    return 0


def run_options(config: ClientConfig) -> int:
    """Print the startup descriptor a server would receive, secret redacted."""
    descriptor = build_descriptor(
        generate_secret(),
        config.options,
        global_ycm_extra_conf=config.options.get("global_ycm_extra_conf"),
        extra_conf_globlist=config.options.get("extra_conf_globlist"),
    )
    print(encode_descriptor(redacted(descriptor)))
    return 0


def dumps_annotations(decorations: ConsoleDecorations) -> str:
    return json.dumps(
        [
            {
                "filepath": a.filepath,
                "line": a.line,
                "column": a.column,
                "severity": a.severity,
                "message": a.message,
            }
            for a in decorations.annotations
        ],
        indent=2,
    )
