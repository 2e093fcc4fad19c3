"""
Background lint workers.

`lintall:` workers are started once at the beginning of a build and run
alongside the mount and transform stages. Their output is pumped into the
Progress Channel by reader threads. The orchestrator holds every handle in a
WorkerGroup and joins it once, before bundling.
"""

from __future__ import annotations

import os
import re
import signal
import subprocess
import threading
from collections.abc import Iterable
from pathlib import Path
from typing import IO, Optional

from ..config.settings import PipelineLogger
from ..domain.enums import MessageLevel, WorkerCategory, WorkerState
from ..domain.models import WorkerSpec
from ..types import LintError, WorkerComplete, WorkerMsg, WorkerReset, WorkerUpdate
from ..utils import command_env
from .progress import ProgressChannel

CLEAR_SCREEN = "\x1bc"
TYPE_CHECKER_SUFFIX = ":tsc"
WATCHING_PATTERN = re.compile(r"Watching for file changes\.", re.MULTILINE)
ERROR_COUNT_PATTERN = re.compile(r"Found (\d+) error")
POSIX = os.name == "posix"


class BackgroundWorker:
    """One running lint process and the threads forwarding its output."""

    def __init__(self, spec: WorkerSpec, channel: ProgressChannel, cwd: Path, log: PipelineLogger):
        self.spec = spec
        self.channel = channel
        self.log = log
        self.error: Optional[LintError] = None
        self._settled = threading.Event()

        channel.emit(WorkerUpdate(id=spec.id, state=WorkerState.RUNNING))
        self.process = subprocess.Popen(
            spec.command,
            shell=True,
            cwd=cwd,
            env=command_env(cwd),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            start_new_session=POSIX
        )
        self._readers = [
            threading.Thread(target=self._pump_stdout, args=(self.process.stdout,), daemon=True),
            threading.Thread(target=self._pump_stderr, args=(self.process.stderr,), daemon=True),
        ]
        for reader in self._readers:
            reader.start()
        self._waiter = threading.Thread(target=self._wait, daemon=True)
        self._waiter.start()

    @property
    def id(self) -> str:
        return self.spec.id

    def handle_stdout(self, text: str) -> None:
        """Forward a chunk of stdout, translating screen clears and type-checker status."""
        cleared = CLEAR_SCREEN in text
        if cleared:
            self.channel.emit(WorkerReset(id=self.id))
            text = text.replace(CLEAR_SCREEN, "")

        if self.id.endswith(TYPE_CHECKER_SUFFIX):
            if cleared:
                self.channel.emit(WorkerUpdate(id=self.id, state=WorkerState.RUNNING))
            if WATCHING_PATTERN.search(text):
                self.channel.emit(WorkerUpdate(id=self.id, state=WorkerState.WATCHING))
            match = ERROR_COUNT_PATTERN.search(text)
            if match and match.group(1) != "0":
                self.channel.emit(WorkerUpdate(id=self.id, state=WorkerState.ERROR))

        self.channel.emit(WorkerMsg(id=self.id, level=MessageLevel.LOG, text=text))

    def _pump_stdout(self, stream: IO[str]) -> None:
        for line in stream:
            self.handle_stdout(line)
        stream.close()

    def _pump_stderr(self, stream: IO[str]) -> None:
        for line in stream:
            self.channel.emit(WorkerMsg(id=self.id, level=MessageLevel.ERROR, text=line))
        stream.close()

    def _wait(self) -> None:
        returncode = self.process.wait()
        for reader in self._readers:
            reader.join()
        if returncode != 0:
            self.error = LintError(self.id, returncode)
        self.channel.emit(WorkerComplete(id=self.id, error=self.error))
        self._settled.set()

    def join(self, timeout: Optional[float] = None) -> Optional[LintError]:
        """Wait for the process to exit and its output to drain."""
        self._settled.wait(timeout)
        return self.error

    def terminate(self) -> None:
        """Stop the shell and every process it started."""
        if self.process.poll() is not None:
            return
        self.log.debug(f"Terminating {self.id}")
        if POSIX:
            try:
                os.killpg(self.process.pid, signal.SIGTERM)
            except ProcessLookupError:
                pass  # exited since poll()
        else:
            self.process.terminate()


class WorkerGroup:
    """
    Handles for every background worker started during a run.

    join() waits for every handle to settle, success or failure, and returns
    the collected errors without raising.
    """

    def __init__(self, channel: ProgressChannel, log: PipelineLogger, cwd: Path):
        self.channel = channel
        self.log = log
        self.cwd = cwd
        self.workers: list[BackgroundWorker] = []

    def start(self, specs: Iterable[WorkerSpec]) -> list[BackgroundWorker]:
        """Start every lintall worker in specs; other categories are ignored."""
        started = []
        for spec in specs:
            if spec.category != WorkerCategory.LINT_ALL:
                continue
            self.log.debug(f"Starting background worker {spec.id}: {spec.command}")
            worker = BackgroundWorker(spec, self.channel, self.cwd, self.log)
            self.workers.append(worker)
            started.append(worker)
        return started

    def join(self) -> list[LintError]:
        errors = []
        for worker in self.workers:
            error = worker.join()
            if error is not None:
                errors.append(error)
        return errors

    def terminate(self) -> None:
        """Stop outstanding processes after a fatal error."""
        for worker in self.workers:
            worker.terminate()
