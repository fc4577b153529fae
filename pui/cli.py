"""Command-line entry point for pui."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from pui.connection import ConnectionManager
from pui.constants import DEFAULT_TICK_RATE
from pui.exceptions import ConfigurationError
from pui.exceptions import ConnectionFailedError
from pui.pueue import PueueClient
from pui.tui import PuiTUI

logger = logging.getLogger(__name__)

#: Exit status for invalid command-line options
EXIT_USAGE = 2

#: Exit status when the daemon cannot be reached at startup
EXIT_FAILURE = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pui",
        description="Terminal UI for the Pueue task queue",
    )
    parser.add_argument(
        "--tick-rate",
        type=float,
        default=DEFAULT_TICK_RATE,
        metavar="SECONDS",
        help=f"Refresh period in seconds (default: {DEFAULT_TICK_RATE})",
    )
    parser.add_argument(
        "--log-lines",
        type=int,
        default=None,
        metavar="N",
        help="Only load the last N lines when opening a task log",
    )
    parser.add_argument("--pueue", default="pueue", metavar="PATH", help="pueue executable")
    parser.add_argument(
        "--pueue-config",
        type=Path,
        default=None,
        metavar="PATH",
        help="pueue config file, passed on as 'pueue --config PATH'",
    )
    parser.add_argument("--log-file", type=Path, default=None, metavar="PATH", help="Write diagnostics here")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug diagnostics")
    return parser


def validate_args(args: argparse.Namespace) -> None:
    """
    Check option values argparse cannot check on its own.

    Raises:
        ConfigurationError: If an option value is out of range.
    """
    if args.tick_rate <= 0:
        raise ConfigurationError("tick-rate", f"--tick-rate must be positive, got {args.tick_rate}")
    if args.log_lines is not None and args.log_lines < 0:
        raise ConfigurationError("log-lines", f"--log-lines must not be negative, got {args.log_lines}")


def configure_logging(log_file: Path | None, verbose: bool) -> None:
    """
    Route pui's log records.

    The UI owns the terminal, so records only go to ``log_file``; without
    one they are discarded.
    """
    package_logger = logging.getLogger("pui")
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if log_file is None:
        package_logger.addHandler(logging.NullHandler())
        return
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    package_logger.addHandler(handler)


def main(argv: Sequence[str] | None = None) -> int:
    """
    Run pui.

    Args:
        argv: Command-line arguments (defaults to ``sys.argv[1:]``).

    Returns:
        Process exit status.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    console = Console(stderr=True)

    try:
        validate_args(args)
    except ConfigurationError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        return EXIT_USAGE

    configure_logging(args.log_file, args.verbose)

    try:
        client = PueueClient.connect(args.pueue, args.pueue_config)
    except ConnectionFailedError as e:
        logger.debug("Startup failed: %s", e)
        console.print(f"[red]Error:[/red] {e.message}")
        return EXIT_FAILURE

    tui = PuiTUI(
        ConnectionManager(client),
        tick_rate=args.tick_rate,
        log_lines=args.log_lines,
    )
    tui.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
