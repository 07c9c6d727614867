"""
File system host for the client runtime.

Lets the runtime run without an editor: saved files are treated as edited
documents, so ycmd re-parses them after the idle delay and the results flow
to whatever display handlers are registered.

This module provides:
- Watchdog-based monitoring of a source tree
- Filtering to files with a known filetype
- Thread-safe hand-off of events to the runtime's event loop
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from watchdog.events import (
    FileCreatedEvent,
    FileDeletedEvent,
    FileModifiedEvent,
    FileMovedEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .runtime import ClientRuntime

logger = logging.getLogger(__name__)


class SourceEventHandler(FileSystemEventHandler):
    """
    Forwards file system events for source files to a ClientRuntime.

    Watchdog calls handlers on its own thread; every runtime call is
    marshalled onto the runtime's event loop.
    """

    def __init__(self, runtime: ClientRuntime, loop: asyncio.AbstractEventLoop, root: Path | None = None):
        super().__init__()
        self.runtime = runtime
        self.loop = loop
        self.root = root

    def _mode_for(self, path: str) -> str | None:
        p = Path(path)
        rel = p
        if self.root is not None:
            try:
                rel = p.relative_to(self.root)
            except ValueError:
                pass

        # Skip hidden files and directories
        if any(part.startswith(".") for part in rel.parts):
            return None

        return self.runtime.filetypes.mode_for_path(p)

    def _edited(self, path: str) -> None:
        mode = self._mode_for(path)
        if mode is None:
            return
        self.loop.call_soon_threadsafe(self.runtime.on_document_edited, path, mode)

    def _closed(self, path: str) -> None:
        if self._mode_for(path) is None:
            return
        self.loop.call_soon_threadsafe(self.runtime.on_document_closed, path)

    def on_created(self, event: FileCreatedEvent) -> None:
        if not event.is_directory:
            self._edited(event.src_path)

    def on_modified(self, event: FileModifiedEvent) -> None:
        if not event.is_directory:
            self._edited(event.src_path)

    def on_deleted(self, event: FileDeletedEvent) -> None:
        if not event.is_directory:
            self._closed(event.src_path)

    def on_moved(self, event: FileMovedEvent) -> None:
        if event.is_directory:
            return
        self._closed(event.src_path)
        self._edited(event.dest_path)


def watch_tree(
    root: Path,
    runtime: ClientRuntime,
    loop: asyncio.AbstractEventLoop,
    recursive: bool = True,
) -> Observer:
    """
    Start watching `root` and feeding events to `runtime`.

    Returns:
        The started observer; the caller stops and joins it
    """
    handler = SourceEventHandler(runtime, loop, root)
    observer = Observer()
    observer.schedule(handler, str(root), recursive=recursive)
    observer.start()
    return observer


async def run_watch_loop(root: Path, runtime: ClientRuntime) -> None:
    """Watch `root` until cancelled, then stop the observer and the session."""
    observer = watch_tree(root, runtime, asyncio.get_running_loop())
    try:
        while True:
            await asyncio.sleep(0.5)
    finally:
        observer.stop()
        observer.join()
        runtime.close_session()
