"""
Progress Channel - Pipeline Event Stream

Append-only event stream shared by every stage. Subscribers are called
synchronously, in subscription order, for each emitted event. Emission is
serialised so events from background reader threads never interleave with a
subscriber call in progress.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from ..domain.enums import MessageLevel
from ..types import (
    MissingWebModule,
    PipelineEvent,
    WorkerComplete,
    WorkerMsg,
    WorkerReset,
    WorkerUpdate,
)

Subscriber = Callable[[PipelineEvent], None]


class ProgressChannel:
    """Fan-out of pipeline events to registered subscribers."""

    def __init__(self):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.RLock()

    def subscribe(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(subscriber)

    def emit(self, event: PipelineEvent) -> None:
        with self._lock:
            for subscriber in self._subscribers:
                subscriber(event)

    def message(self, worker_id: str, text: str, level: MessageLevel = MessageLevel.LOG) -> None:
        """Shorthand for emitting a WorkerMsg."""
        self.emit(WorkerMsg(id=worker_id, level=level, text=text))


class LoggingRenderer:
    """
    Render pipeline events as log records.

    Stands in for the interactive terminal renderer; also tracks the set of
    missing web modules so a summary can be printed once the run ends.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger("esmforge.progress")
        self.missing_web_modules: list[str] = []
        self.failed_workers: dict[str, str] = {}

    def attach(self, channel: ProgressChannel) -> "LoggingRenderer":
        channel.subscribe(self)
        return self

    def __call__(self, event: PipelineEvent) -> None:
        if isinstance(event, WorkerUpdate):
            self.logger.debug(f"[{event.id}] {event.state.value}")
        elif isinstance(event, WorkerMsg):
            text = event.text.rstrip()
            if not text:
                return
            if event.level == MessageLevel.ERROR:
                self.logger.error(f"[{event.id}] {text}")
            else:
                self.logger.info(f"[{event.id}] {text}")
        elif isinstance(event, WorkerComplete):
            if event.error is None:
                self.logger.info(f"[{event.id}] done")
            else:
                self.failed_workers[event.id] = str(event.error)
                self.logger.error(f"[{event.id}] failed: {event.error}")
        elif isinstance(event, WorkerReset):
            self.logger.debug(f"[{event.id}] output reset")
        elif isinstance(event, MissingWebModule):
            if event.specifier not in self.missing_web_modules:
                self.missing_web_modules.append(event.specifier)
            self.logger.warning(f"Missing web module: {event.specifier}")

    def summary(self) -> None:
        """Log the missing web modules collected during the run."""
        if self.missing_web_modules:
            self.logger.warning(
                f"{len(self.missing_web_modules)} bare import(s) not found in the import map: "
                f"{', '.join(self.missing_web_modules)}"
            )
