"""Shared display helpers for pui.

These functions produce the short texts shown in the task table. The filter
matches against exactly these texts, so any change here changes what a
filter string finds.
"""

from __future__ import annotations

import os
from pathlib import PurePosixPath


def format_duration(seconds: float | None) -> str:
    """Format a duration for the Duration column.

    Args:
        seconds: Duration in seconds, or None if the job never started.

    Returns:
        "Ns" below a minute, "Mm Ss" below an hour, "Hh Mm" otherwise,
        and "-" for None.
    """
    if seconds is None:
        return "-"
    total = max(0, int(seconds))
    if total < 60:
        return f"{total}s"
    if total < 3600:
        return f"{total // 60}m {total % 60}s"
    return f"{total // 3600}h {(total % 3600) // 60}m"


def command_basename(command: str) -> str:
    """Return the last path component of a command line.

    The whole command line is treated as a path, so ``/usr/bin/sleep 60``
    becomes ``sleep 60``. Commands without a usable final component are
    returned unchanged.
    """
    name = PurePosixPath(command).name
    return name or command


def shorten_path(path: str, home: str | None = None) -> str:
    """Abbreviate a directory path for display.

    The home directory is replaced by ``~`` and every component except the
    last is cut to its first character (two for dot-directories).

    Args:
        path: Absolute or relative path.
        home: Home directory to collapse. Defaults to ``$HOME``.

    Returns:
        The shortened path, e.g. ``~/W/P/pui`` for
        ``/home/user/Workspace/Projects/pui``.
    """
    if home is None:
        home = os.environ.get("HOME", "")
    home = home.rstrip("/")

    prefix = ""
    rest = path
    if home and (path == home or path.startswith(home + "/")):
        prefix = "~"
        rest = path[len(home) :]
    elif path.startswith("/"):
        prefix = "/"

    parts = [p for p in rest.split("/") if p]
    if not parts:
        return prefix or path

    short = [p[:2] if p.startswith(".") else p[:1] for p in parts[:-1]]
    short.append(parts[-1])
    joined = "/".join(short)
    if prefix == "~":
        return f"~/{joined}"
    return f"{prefix}{joined}"
