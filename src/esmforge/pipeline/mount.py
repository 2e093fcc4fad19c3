"""
Mount Stage - Verbatim Directory Copies

Copies a directory into the build output at a URL path, bypassing every
transform. Mount failures are fatal for the whole run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from ..config.settings import ConfigurationError, PipelineLogger
from ..domain.enums import WorkerCategory
from ..domain.models import WorkerSpec
from ..types import MountError, WorkerComplete
from ..utils import copy_tree
from .progress import ProgressChannel


@dataclass(frozen=True)
class MountCommand:
    """Parsed `mount <dir> [--to <urlPath>]` command."""
    source: Path
    url_path: str

    def destination(self, build_dir: Path) -> Path:
        if self.url_path == "/":
            return build_dir
        return build_dir / self.url_path.lstrip("/")


def parse_mount_command(worker_id: str, command: str, cwd: Path) -> MountCommand:
    """
    Parse a mount worker command.

    Args:
        worker_id: Worker id, for error messages
        command: Command string, e.g. "mount public --to /static"
        cwd: Working root the source directory resolves against

    Raises:
        ConfigurationError: If the command is not a well-formed mount command
    """
    tokens = command.split()
    if not tokens or tokens[0] != "mount":
        raise ConfigurationError(f"script[{worker_id}] must use the mount command")
    args = tokens[1:]
    if not args:
        raise ConfigurationError(f"script[{worker_id}] mount command needs a source directory")

    source_token, rest = args[0], args[1:]
    url_path = None
    i = 0
    while i < len(rest):
        token = rest[i]
        if token == "--to":
            if i + 1 >= len(rest):
                raise ConfigurationError(f"script[{worker_id}] --to needs a URL path")
            url_path = rest[i + 1]
            i += 2
        elif token.startswith("--to="):
            url_path = token.split("=", 1)[1]
            i += 1
        else:
            raise ConfigurationError(f"script[{worker_id}] unexpected mount argument: {token}")

    source = (cwd / source_token).resolve()
    if url_path is None:
        url_path = "/" + source.name
    elif not url_path.startswith("/"):
        url_path = "/" + url_path
    return MountCommand(source=source, url_path=url_path)


class MountStage:
    """Run every mount worker in declaration order."""

    def __init__(self, build_dir: Path, cwd: Path, channel: ProgressChannel, log: PipelineLogger):
        self.build_dir = build_dir
        self.cwd = cwd
        self.channel = channel
        self.log = log

    def run(self, workers: list[WorkerSpec]) -> list[Path]:
        """
        Copy each mounted directory into the build directory.

        Returns:
            Destination directories, in order

        Raises:
            ConfigurationError: On a malformed mount command
            MountError: If a copy fails
        """
        destinations = []
        for worker in workers:
            if worker.category != WorkerCategory.MOUNT:
                continue
            mount = parse_mount_command(worker.id, worker.command, self.cwd)
            destination = mount.destination(self.build_dir)
            self.log.debug(f"[{worker.id}] {mount.source} -> {mount.url_path}")

            try:
                copy_tree(mount.source, destination)
            except OSError as e:
                error = MountError(f"[{worker.id}] could not copy {mount.source}: {e}")
                self.channel.emit(WorkerComplete(id=worker.id, error=error))
                raise error from e

            self.channel.emit(WorkerComplete(id=worker.id, error=None))
            destinations.append(destination)
        return destinations

    def validate(self, workers: list[WorkerSpec]) -> None:
        """Parse every mount command up front so a malformed one aborts before anything is written."""
        for worker in workers:
            if worker.category == WorkerCategory.MOUNT:
                parse_mount_command(worker.id, worker.command, self.cwd)
