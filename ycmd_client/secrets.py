"""
Shared-secret provisioning for a ycmd session.

Every server start gets a fresh random secret. The secret travels to the
server inside a one-shot options file (the startup descriptor) which ycmd
reads once and deletes. The descriptor is never reused across restarts.

In logs only the descriptor path is recorded, never the secret.
"""

from __future__ import annotations

import base64
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

SECRET_LENGTH = 16

# ycmd's default_settings.json. The server refuses to start when a field it
# expects is missing, so the whole template is always written.
DEFAULT_OPTIONS: dict[str, Any] = {
    "filepath_completion_use_working_dir": 0,
    "auto_trigger": 1,
    "min_num_of_chars_for_completion": 2,
    "min_num_identifier_candidate_chars": 0,
    "semantic_triggers": {},
    "filetype_specific_completion_to_disable": {"gitcommit": 1},
    "seed_identifiers_with_syntax": 0,
    "collect_identifiers_from_comments_and_strings": 0,
    "collect_identifiers_from_tags_files": 0,
    "extra_conf_globlist": [],
    "global_ycm_extra_conf": "",
    "confirm_extra_conf": 1,
    "complete_in_comments": 0,
    "complete_in_strings": 1,
    "max_diagnostics_to_display": 30,
    "filetype_whitelist": {"*": 1},
    "filetype_blacklist": {
        "tagbar": 1,
        "qf": 1,
        "notes": 1,
        "markdown": 1,
        "unite": 1,
        "text": 1,
        "vimwiki": 1,
        "pandoc": 1,
    },
    "auto_start_csharp_server": 1,
    "auto_stop_csharp_server": 1,
    "use_ultisnips_completer": 1,
    "csharp_server_port": 2000,
    "hmac_secret": "",
    "server_keep_logfiles": 0,
}

# ycmd parses these as objects; `null` breaks its option handling.
MAP_OPTIONS = (
    "semantic_triggers",
    "filetype_specific_completion_to_disable",
    "filetype_whitelist",
    "filetype_blacklist",
)


def generate_secret() -> bytes:
    """Return SECRET_LENGTH random bytes."""
    return os.urandom(SECRET_LENGTH)


def build_descriptor(
    secret: bytes,
    options: dict[str, Any] | None = None,
    *,
    global_ycm_extra_conf: str | None = None,
    extra_conf_globlist: list[str] | None = None,
) -> dict[str, Any]:
    """
    Merge the static template, user overrides and per-session fields.

    Args:
        secret: Raw session secret
        options: Overrides for template fields (from the [options] config table)
        global_ycm_extra_conf: Path to the global extra conf file
        extra_conf_globlist: Patterns of extra conf files loaded without confirmation

    Returns:
        The descriptor as a plain dict, ready for encode_descriptor()
    """
    descriptor = copy.deepcopy(DEFAULT_OPTIONS)
    overrides = dict(options or {})
    overrides.pop("hmac_secret", None)
    descriptor.update(overrides)

    if global_ycm_extra_conf is not None:
        descriptor["global_ycm_extra_conf"] = global_ycm_extra_conf
    if extra_conf_globlist is not None:
        descriptor["extra_conf_globlist"] = list(extra_conf_globlist)

    conf = descriptor.get("global_ycm_extra_conf") or ""
    descriptor["global_ycm_extra_conf"] = os.path.expanduser(conf) if conf else ""
    descriptor["extra_conf_globlist"] = list(descriptor.get("extra_conf_globlist") or [])

    descriptor["hmac_secret"] = base64.b64encode(secret).decode("ascii")
    return descriptor


def encode_descriptor(descriptor: dict[str, Any]) -> str:
    """Serialize a descriptor, rendering empty or missing maps as `{}`."""
    data = dict(descriptor)
    for key in MAP_OPTIONS:
        value = data.get(key)
        data[key] = dict(value) if isinstance(value, dict) else {}
    return json.dumps(data, indent=2, sort_keys=True)


def write_descriptor(descriptor: dict[str, Any], directory: Path | None = None) -> Path:
    """
    Write the descriptor to a new private temp file and return its path.

    mkstemp creates the file with mode 0600, so only the current user can
    read the secret before ycmd consumes and deletes the file. When the
    server fails to start, the supervisor removes it.
    """
    fd, name = tempfile.mkstemp(prefix="ycmd-options-", suffix=".json", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        f.write(encode_descriptor(descriptor))
    return Path(name)


def provision(
    options: dict[str, Any] | None = None,
    directory: Path | None = None,
) -> tuple[bytes, Path]:
    """Generate a secret and write its startup descriptor."""
    opts = dict(options or {})
    secret = generate_secret()
    descriptor = build_descriptor(
        secret,
        opts,
        global_ycm_extra_conf=opts.get("global_ycm_extra_conf"),
        extra_conf_globlist=opts.get("extra_conf_globlist"),
    )
    path = write_descriptor(descriptor, directory)
    logger.debug("wrote startup descriptor %s", path)
    return secret, path


def redacted(descriptor: dict[str, Any]) -> dict[str, Any]:
    """Copy of a descriptor safe to print."""
    data = dict(descriptor)
    if data.get("hmac_secret"):
        data["hmac_secret"] = "<redacted>"
    return data
