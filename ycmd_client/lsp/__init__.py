"""
LSP front end for the ycmd client.

This module provides:
- A pygls language server that hosts the client runtime
- Parse results published as diagnostics
- Completion and go-to-definition backed by ycmd
"""

from .server import create_server, start_server

__all__ = ["create_server", "start_server"]
