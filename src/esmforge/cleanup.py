"""Interrupt handling for build runs with background processes."""

from __future__ import annotations

import logging
import signal
import sys
from typing import Protocol


class Abortable(Protocol):
    def abort(self) -> None:
        ...


def register_cleanup_handlers(pipeline: Abortable) -> None:
    """Register signal handlers that stop background workers on interruption."""
    def signal_handler(signum: int, frame) -> None:
        logging.info(f"Received signal {signum}, stopping background workers...")
        try:
            pipeline.abort()
        except OSError as e:
            logging.warning(f"Cleanup after signal {signum} was incomplete: {e}")
        sys.exit(1)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)
