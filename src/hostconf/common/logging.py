"""Shared logging helpers for hostconf."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Set up the root logger for the daemon.

    Reconcilers run on worker threads, so the thread name goes into every line.
    ``force=True`` replaces handlers installed earlier (tests, ``--log-level``).
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(threadName)s] [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=force,
    )
