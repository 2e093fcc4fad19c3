"""
Transform Dispatcher - Per-file Build and Plugin Workers

Applies every build/plugin worker to the source files whose extension it
declares, remaps the output extension, resolves import specifiers in script
output, and writes the result under the distribution root.

A failure for one file is reported and recorded against that file only; the
worker carries on with the next file and sibling workers are unaffected.
"""

from __future__ import annotations

import subprocess
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..config.settings import PipelineLogger
from ..domain.enums import MessageLevel, WorkerCategory, WorkerState
from ..domain.models import DependencyImportMap, SourceFile, TransformResult, WorkerSpec
from ..types import TransformError, WorkerComplete, WorkerUpdate
from ..utils import command_env
from .extensions import CANONICAL_SCRIPT_EXTENSION, remap
from .progress import ProgressChannel
from .registry import ExtensionIndex, PluginRegistry
from .rewrite import ImportResolver, rewrite_imports


@dataclass
class DispatchReport:
    """What the dispatcher wrote and which files failed."""
    written: list[Path] = field(default_factory=list)
    skipped: list[tuple[str, Path]] = field(default_factory=list)
    failures: list[TransformError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class TransformDispatcher:
    """
    Run build and plugin workers over enumerated source files.

    The extension index and plugin registry are built before dispatch and are
    only read here.
    """

    def __init__(
        self,
        include_dir: Path,
        dist_dir: Path,
        extension_index: ExtensionIndex,
        plugins: PluginRegistry,
        import_map: DependencyImportMap,
        channel: ProgressChannel,
        log: PipelineLogger,
        cwd: Path
    ):
        """
        Initialize dispatcher.

        Args:
            include_dir: Root the source files were enumerated from
            dist_dir: Distribution root every output is written under
            extension_index: Extension -> workers, in declaration order
            plugins: Pre-resolved plugin modules keyed by worker id
            import_map: Dependency import map for bare specifiers
            channel: Progress Channel
            log: Injected pipeline logger
            cwd: Working root, used for worker process environment
        """
        self.include_dir = include_dir.resolve()
        self.dist_dir = dist_dir.resolve()
        self.extension_index = extension_index
        self.plugins = plugins
        self.import_map = import_map
        self.channel = channel
        self.log = log
        self.cwd = cwd
        self._env = command_env(cwd)

    def run(self, workers: Sequence[WorkerSpec], files: Sequence[Path]) -> DispatchReport:
        """
        Dispatch every build/plugin worker over the files it matches.

        Args:
            workers: Relevant workers in declaration order (others are ignored)
            files: Enumerated source files

        Returns:
            DispatchReport for the whole stage
        """
        report = DispatchReport()
        sources = [SourceFile.from_path(Path(f).resolve()) for f in files]

        for worker in workers:
            if not worker.is_transform:
                continue
            self.channel.emit(WorkerUpdate(id=worker.id, state=WorkerState.RUNNING))
            worker_failures = 0

            for source in sources:
                if worker not in self.extension_index.get(source.extension, ()):
                    continue
                try:
                    result = self.transform_file(worker, source)
                except TransformError as e:
                    worker_failures += 1
                    report.failures.append(e)
                    self.channel.emit(WorkerComplete(id=worker.id, error=e))
                    continue

                if result is None:
                    report.skipped.append((worker.id, source.path))
                    continue
                self.write(result)
                report.written.append(result.out_path)

            error = None
            if worker_failures:
                error = TransformError(worker.id, f"{worker_failures} file(s) failed")
            self.channel.emit(WorkerComplete(id=worker.id, error=error))

        return report

    def transform_file(self, worker: WorkerSpec, source: SourceFile) -> Optional[TransformResult]:
        """
        Apply one worker to one file.

        Returns:
            TransformResult, or None when the worker produced no output

        Raises:
            TransformError: If the command or plugin failed for this file
        """
        if worker.category == WorkerCategory.BUILD:
            code = self._run_build_command(worker, source)
        elif worker.category == WorkerCategory.PLUGIN:
            code = self._run_plugin(worker, source)
        else:
            raise TransformError(worker.id, f"cannot transform files with a {worker.category.value} worker")

        if not code:
            self.log.debug(f"[{worker.id}] no output for {source.path}, skipping")
            return None

        out_path = self.output_path(source)
        if out_path.suffix == f".{CANONICAL_SCRIPT_EXTENSION}":
            resolver = ImportResolver(self.import_map, self.channel, source.path, worker.id, self.log)
            code = rewrite_imports(code, resolver)
        return TransformResult(code=code, out_path=out_path)

    def output_path(self, source: SourceFile) -> Path:
        """
        Map a source file into the distribution root with its extension remapped.

        Raises:
            TransformError: If the file is outside the include root
        """
        try:
            rel = source.path.relative_to(self.include_dir)
        except ValueError as e:
            raise TransformError("dispatch", f"{source.path} is outside {self.include_dir}") from e

        out_path = self.dist_dir / rel
        if source.extension:
            out_path = out_path.with_suffix(f".{remap(source.extension)}")
        return out_path

    def write(self, result: TransformResult) -> None:
        result.out_path.parent.mkdir(parents=True, exist_ok=True)
        result.out_path.write_text(result.code, encoding="utf-8")
        self.log.debug(f"Wrote {result.out_path}")

    def _run_build_command(self, worker: WorkerSpec, source: SourceFile) -> str:
        try:
            proc = subprocess.run(
                worker.command,
                shell=True,
                cwd=self.cwd,
                env=self._env,
                input=source.path.read_bytes(),
                capture_output=True
            )
        except OSError as e:
            raise TransformError(worker.id, f"{source.path}: {e}", str(source.path)) from e

        stderr = proc.stderr.decode("utf-8", errors="replace")
        if stderr:
            self.channel.message(worker.id, stderr, MessageLevel.ERROR)

        if proc.returncode != 0:
            raise TransformError(
                worker.id,
                f"{source.path}: command exited with code {proc.returncode}",
                str(source.path)
            )
        return proc.stdout.decode("utf-8", errors="replace")

    def _run_plugin(self, worker: WorkerSpec, source: SourceFile) -> str:
        plugin = self.plugins.get(worker.id)
        if plugin is None:
            raise TransformError(worker.id, f"plugin {worker.command!r} was not loaded", str(source.path))

        try:
            output = plugin.build(str(source.path))
        except Exception as e:
            raise TransformError(worker.id, str(e), str(source.path)) from e

        if not isinstance(output, Mapping) or "result" not in output:
            raise TransformError(
                worker.id,
                f"{source.path}: plugin build() must return a mapping with a 'result' key",
                str(source.path)
            )
        result = output["result"]
        if result is None:
            return ""
        if not isinstance(result, str):
            raise TransformError(worker.id, f"{source.path}: plugin result must be a string", str(source.path))
        return result

