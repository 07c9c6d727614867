"""
Client configuration loaded from TOML.

The file is small and optional; every field has a default. Layout:

    [server]
    command = ["python3", "/opt/ycmd/ycmd"]
    host = "127.0.0.1"
    extra_args = ["--log=debug"]
    startup_timeout = 3.0

    [scheduler]
    idle_delay = 0.2
    keepalive_interval = 30

    [options]
    global_ycm_extra_conf = "~/.ycm_extra_conf.py"
    extra_conf_globlist = ["~/src/*"]

    [filetypes]
    "my-c-mode" = "c"
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigError

CONFIG_FILENAME = ".ycmd-client.toml"

DEFAULT_EXTRA_ARGS = ["--log=debug", "--keep_logfile", "--idle_suicide_seconds=10800"]


def _coerce_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _coerce_str_list(value: Any, field_name: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{field_name} must be a list of strings")
    return list(value)


def _positive_float(value: Any, default: float, field_name: str) -> float:
    if value is None:
        return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{field_name} must be a number") from None
    if result <= 0:
        raise ConfigError(f"{field_name} must be positive")
    return result


@dataclass
class ServerConfig:
    """How to launch and reach the ycmd process."""

    command: list[str] = field(default_factory=list)
    path: str | None = None  # ycmd checkout; run as `python <path>`
    host: str = "127.0.0.1"
    extra_args: list[str] = field(default_factory=lambda: list(DEFAULT_EXTRA_ARGS))
    startup_timeout: float = 3.0
    request_timeout: float = 30.0
    hmac_header: str = "X-Ycm-Hmac"

    def launch_command(self) -> list[str]:
        """The command prefix the supervisor spawns, before any arguments."""
        if self.command:
            return list(self.command)
        if self.path:
            return [sys.executable, str(Path(self.path).expanduser())]
        return [sys.executable, "-m", "ycmd"]


@dataclass
class SchedulerConfig:
    idle_delay: float = 0.2
    keepalive_interval: float = 30.0


@dataclass
class ClientConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    options: dict[str, Any] = field(default_factory=dict)
    filetypes: dict[str, str] = field(default_factory=dict)
    source: Path | None = None


def parse_config(data: dict[str, Any], source: Path | None = None) -> ClientConfig:
    """Build a ClientConfig from already-decoded TOML data."""
    server_raw = _coerce_dict(data.get("server"))
    scheduler_raw = _coerce_dict(data.get("scheduler"))

    server = ServerConfig(
        command=_coerce_str_list(server_raw.get("command"), "server.command"),
        path=str(server_raw["path"]) if isinstance(server_raw.get("path"), str) else None,
        host=str(server_raw.get("host", "127.0.0.1")).strip() or "127.0.0.1",
        extra_args=(
            _coerce_str_list(server_raw["extra_args"], "server.extra_args")
            if "extra_args" in server_raw
            else list(DEFAULT_EXTRA_ARGS)
        ),
        startup_timeout=_positive_float(server_raw.get("startup_timeout"), 3.0, "server.startup_timeout"),
        request_timeout=_positive_float(server_raw.get("request_timeout"), 30.0, "server.request_timeout"),
        hmac_header=str(server_raw.get("hmac_header", "X-Ycm-Hmac")).strip() or "X-Ycm-Hmac",
    )

    scheduler = SchedulerConfig(
        idle_delay=_positive_float(scheduler_raw.get("idle_delay"), 0.2, "scheduler.idle_delay"),
        keepalive_interval=_positive_float(
            scheduler_raw.get("keepalive_interval"), 30.0, "scheduler.keepalive_interval"
        ),
    )

    filetypes: dict[str, str] = {}
    for mode, filetype in _coerce_dict(data.get("filetypes")).items():
        if not isinstance(filetype, str) or not filetype.strip():
            raise ConfigError(f"filetypes.{mode} must be a non-empty string")
        filetypes[str(mode)] = filetype.strip()

    return ClientConfig(
        server=server,
        scheduler=scheduler,
        options=dict(_coerce_dict(data.get("options"))),
        filetypes=filetypes,
        source=source,
    )


def load_config(path: Path) -> ClientConfig:
    """Load configuration from a TOML file."""
    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"cannot read {path}: {e}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"invalid TOML in {path}: {e}") from e
    return parse_config(data, source=path)


def find_config(start: Path) -> Path | None:
    """Find the nearest .ycmd-client.toml by walking up from `start`."""
    cur = start.resolve()
    for p in (cur, *cur.parents):
        candidate = p / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None
