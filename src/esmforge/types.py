"""
Type definitions for the esmforge build pipeline.

This module provides the Progress Channel event records and the pipeline
exception hierarchy. Events are produced, delivered to subscribers and
discarded; nothing in the pipeline keeps them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .domain.enums import STATE_COLORS, MessageLevel, WorkerState


@dataclass(frozen=True)
class WorkerUpdate:
    """A worker changed state."""
    id: str
    state: WorkerState

    @property
    def color(self) -> Optional[str]:
        return STATE_COLORS.get(self.state)


@dataclass(frozen=True)
class WorkerMsg:
    """Output or diagnostic text attributed to a worker."""
    id: str
    level: MessageLevel
    text: str


@dataclass(frozen=True)
class WorkerComplete:
    """A worker (or one of its files) finished; error is None on success."""
    id: str
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class WorkerReset:
    """A worker cleared its screen; the renderer should drop its buffered output."""
    id: str


@dataclass(frozen=True)
class MissingWebModule:
    """A bare import was not found in the dependency import map."""
    specifier: str


PipelineEvent = Union[WorkerUpdate, WorkerMsg, WorkerComplete, WorkerReset, MissingWebModule]


# Pipeline exception hierarchy
class PipelineError(Exception):
    """Base exception for pipeline operations."""
    pass


class TransformError(PipelineError):
    """A build command or plugin failed for one file. Isolated, never fatal."""
    def __init__(self, worker_id: str, message: str, path: Optional[str] = None):
        self.worker_id = worker_id
        self.path = path
        super().__init__(f"[{worker_id}] {message}")


class LintError(PipelineError):
    """A background lint worker exited unsuccessfully."""
    def __init__(self, worker_id: str, returncode: int):
        self.worker_id = worker_id
        self.returncode = returncode
        super().__init__(f"[{worker_id}] exited with code {returncode}")


class MountError(PipelineError):
    """Copying a mounted directory failed. Fatal."""
    pass


class BundleError(PipelineError):
    """Preparing or running the external bundler failed. Fatal."""
    pass
