"""CLI entrypoint for ycmd-client."""

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from . import __version__
from .config import ClientConfig, find_config, load_config
from .errors import ConfigError, YcmdClientError


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


@click.group()
@click.version_option(__version__, prog_name="ycmd-client")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Path to a .ycmd-client.toml (defaults to the nearest one above the cwd)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default="warning",
    show_default=True,
    help="Logging verbosity (stderr)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, log_level: str) -> None:
    """ycmd-client - editor-side runtime for the ycmd completion server.

    Starts ycmd on demand, signs every request with a per-session secret,
    and re-parses buffers after a short idle delay.
    """
    _setup_logging(log_level)
    ctx.ensure_object(dict)

    if config_path is None:
        config_path = find_config(Path.cwd())
    try:
        config = load_config(config_path) if config_path else ClientConfig()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e
    ctx.obj["config"] = config


def _run(fn, *args, **kwargs) -> int:
    """Run a command implementation, turning client errors into CLI errors."""
    try:
        return fn(*args, **kwargs)
    except YcmdClientError as e:
        raise click.ClickException(str(e)) from e


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "output_json", is_flag=True, help="Output diagnostics as JSON")
@click.pass_context
def check(ctx: click.Context, file: Path, output_json: bool) -> None:
    """Parse FILE with ycmd and print its diagnostics.

    Exits with status 1 when any error is reported.

    Examples:

        ycmd-client check src/main.cpp

        ycmd-client check src/main.cpp --json
    """
    from .commands.query_cmd import run_check

    sys.exit(_run(run_check, ctx.obj["config"], file, output_json))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("line", type=click.IntRange(min=1))
@click.argument("column", type=click.IntRange(min=1))
@click.pass_context
def complete(ctx: click.Context, file: Path, line: int, column: int) -> None:
    """List completions at LINE:COLUMN of FILE (both 1-based)."""
    from .commands.query_cmd import run_complete

    sys.exit(_run(run_complete, ctx.obj["config"], file, line, column))


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("line", type=click.IntRange(min=1))
@click.argument("column", type=click.IntRange(min=1))
@click.pass_context
def goto(ctx: click.Context, file: Path, line: int, column: int) -> None:
    """Print where the symbol at LINE:COLUMN of FILE is defined."""
    from .commands.query_cmd import run_goto

    sys.exit(_run(run_goto, ctx.obj["config"], file, line, column))


@cli.command("load-conf")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.pass_context
def load_conf(ctx: click.Context, path: Path) -> None:
    """Load a .ycm_extra_conf.py into a fresh server."""
    from .commands.query_cmd import run_load_conf

    sys.exit(_run(run_load_conf, ctx.obj["config"], path))


@cli.command()
@click.pass_context
def options(ctx: click.Context) -> None:
    """Print the startup options ycmd would receive (secret redacted)."""
    from .commands.query_cmd import run_options

    sys.exit(run_options(ctx.obj["config"]))


@cli.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)
@click.pass_context
def watch(ctx: click.Context, root: Path) -> None:
    """Watch ROOT and print diagnostics each time a source file is saved.

    Runs until interrupted (Ctrl+C).
    """
    from .commands.watch_cmd import run_watch

    _run(run_watch, ctx.obj["config"], root)


@cli.command("lsp")
@click.option(
    "--transport",
    type=click.Choice(["stdio", "tcp"]),
    default="stdio",
    show_default=True,
    help="Transport method (stdio for editors, tcp for debugging)",
)
@click.option("--port", type=int, default=2087, show_default=True, help="TCP port for --transport tcp")
@click.pass_context
def lsp(ctx: click.Context, transport: str, port: int) -> None:
    """Start a language server backed by ycmd.

    The server publishes ycmd diagnostics, and answers completion and
    go-to-definition requests.

    Examples:

        ycmd-client lsp

        ycmd-client -c ~/.ycmd-client.toml lsp --transport tcp
    """
    from .lsp import start_server

    start_server(config=ctx.obj["config"], transport=transport, port=port)


def main() -> None:
    """Main entrypoint."""
    cli()


if __name__ == "__main__":
    main()
