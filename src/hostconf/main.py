#!/usr/bin/env python3

# ruff: noqa: T201

from __future__ import annotations

import argparse
import logging
import sys
import threading
from dataclasses import replace
from signal import SIGINT, SIGTERM, signal
from typing import TYPE_CHECKING

from dotenv import find_dotenv, load_dotenv

from hostconf.app import create_daemon
from hostconf.common.logging import configure_logging
from hostconf.config import ConfigurationError, get_daemon_config, parse_enabled

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from hostconf.config import DaemonConfig

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Keep host configuration in line with the master")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run every reconciler once and exit instead of following the change feed",
    )
    parser.add_argument(
        "--reconcilers",
        type=str,
        help="Comma-separated reconcilers to run (overrides HOSTCONF_RECONCILERS)",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=_LOG_LEVELS,
        default="INFO",
        help="Logging verbosity (default: %(default)s)",
    )
    return parser.parse_args(list(argv))


def _build_config(args: argparse.Namespace) -> DaemonConfig:
    config = get_daemon_config()
    if args.reconcilers is not None:
        config = replace(config, enabled=parse_enabled(args.reconcilers))
    return config


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    load_dotenv(find_dotenv(usecwd=True))
    parsed_args: argparse.Namespace
    try:
        parsed_args = _parse_args(sys.argv[1:] if argv is None else argv)
        config = _build_config(parsed_args)
    except (ValueError, ConfigurationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)

    configure_logging(level=getattr(logging, parsed_args.log_level), force=True)

    try:
        daemon = create_daemon(config)
    except Exception as e:  # noqa: BLE001
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if parsed_args.once:
        passes = daemon.run_once()
        failed = [rebuild_pass.reconciler for rebuild_pass in passes if not rebuild_pass.succeeded]
        if failed:
            print(f"Error: rebuild failed for {', '.join(failed)}", file=sys.stderr)
            sys.exit(1)
        return

    stop = threading.Event()

    def _request_stop(_signal_received: int, _frame: FrameType | None) -> None:
        stop.set()

    signal(SIGINT, _request_stop)
    signal(SIGTERM, _request_stop)
    daemon.run_until(stop)


if __name__ == "__main__":
    main()
