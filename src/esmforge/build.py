"""
Build orchestration.

Runs the pipeline stages in order:

    classify workers -> start lint workers -> mount -> transform
        -> join background workers -> bundle (optional)

Fatal errors (configuration, mount, bundle) propagate and stop every later
stage; per-file transform failures and lint failures are collected in the
BuildResult.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config.settings import BuildConfig, PipelineLogger
from .config_loader import load_import_map
from .domain.models import DependencyImportMap
from .pipeline.bundle import BundleStage
from .pipeline.lint import WorkerGroup
from .pipeline.mount import MountStage
from .pipeline.progress import ProgressChannel
from .pipeline.registry import classify, count_build_workers, load_plugins
from .pipeline.transform import TransformDispatcher
from .types import LintError, TransformError
from .utils import (
    enumerate_source_files,
    format_duration,
    relative_display_path,
    remove_tree,
    reset_directory,
)


@dataclass
class BuildResult:
    """Outcome of a build run that was not aborted."""
    skipped: bool = False
    written: list[Path] = field(default_factory=list)
    transform_failures: list[TransformError] = field(default_factory=list)
    lint_errors: list[LintError] = field(default_factory=list)
    phase_times: dict[str, float] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.transform_failures and not self.lint_errors


class BuildPipeline:
    """
    One build run over a project configuration.

    Example:
        channel = ProgressChannel()
        LoggingRenderer().attach(channel)
        result = BuildPipeline(config, channel).run()
    """

    def __init__(
        self,
        config: BuildConfig,
        channel: Optional[ProgressChannel] = None,
        log: Optional[PipelineLogger] = None,
        import_map: Optional[DependencyImportMap] = None
    ):
        self.config = config
        self.channel = channel or ProgressChannel()
        self.log = log or PipelineLogger(logging.getLogger(__name__))
        self._import_map = import_map
        self.group = WorkerGroup(self.channel, self.log, config.cwd)

    def run(self) -> BuildResult:
        """
        Execute the build.

        Returns:
            BuildResult (skipped=True when no build workers are configured)

        Raises:
            ConfigurationError: Malformed mount command, bad plugin or import map
            MountError: A mounted directory could not be copied
            BundleError: Bundling failed
        """
        config = self.config
        run_start = time.time()
        result = BuildResult()

        if count_build_workers(config.scripts) == 0:
            self.log.error("No build scripts found, so nothing to build.")
            self.log.error("Declare at least one 'build:<ext>' script in the project configuration.")
            result.skipped = True
            return result

        # Everything that can reject the configuration runs before output is touched
        relevant, extension_index = classify(config.scripts, bundle=config.build_options.bundle)
        mount_stage = MountStage(config.build_dir, config.cwd, self.channel, self.log)
        mount_stage.validate(relevant)
        plugins = load_plugins(relevant, config.cwd)
        import_map = self._import_map or load_import_map(config.import_map_path)

        reset_directory(config.final_dir)
        if config.final_dir != config.build_dir:
            reset_directory(config.build_dir)

        self.log.info(f"Building to {relative_display_path(config.cwd, config.final_dir)}")
        self.log.debug(f"Workers: {', '.join(w.id for w in relevant)}")

        try:
            self.group.start(relevant)

            phase_start = time.time()
            self.log.phase("MOUNT")
            mount_stage.run(relevant)
            result.phase_times['mount'] = time.time() - phase_start

            include_dir = config.include_dir
            if include_dir is not None:
                phase_start = time.time()
                self.log.phase("TRANSFORM")
                files = enumerate_source_files(include_dir, self.log)
                self.log.info(f"Found {len(files)} source files in {config.include}")
                dispatcher = TransformDispatcher(
                    include_dir=include_dir,
                    dist_dir=config.dist_dir,
                    extension_index=extension_index,
                    plugins=plugins,
                    import_map=import_map,
                    channel=self.channel,
                    log=self.log,
                    cwd=config.cwd
                )
                report = dispatcher.run(relevant, files)
                result.written = report.written
                result.transform_failures = report.failures
                result.phase_times['transform'] = time.time() - phase_start
        except BaseException:
            self.group.terminate()
            raise

        phase_start = time.time()
        result.lint_errors = self.group.join()
        result.phase_times['join'] = time.time() - phase_start

        if config.build_options.bundle:
            phase_start = time.time()
            self.log.phase("BUNDLE")
            BundleStage(config, self.channel, self.log).run()
            result.phase_times['bundle'] = time.time() - phase_start

        total = time.time() - run_start
        self.log.info(f"Wrote {len(result.written)} files in {format_duration(total)}")
        for phase, seconds in result.phase_times.items():
            self.log.debug(f"  {phase}: {format_duration(seconds)}")
        if result.transform_failures:
            self.log.warning(f"{len(result.transform_failures)} file(s) failed to transform")
        return result

    def abort(self) -> None:
        """Stop background workers and drop the intermediate directory."""
        self.group.terminate()
        if self.config.final_dir != self.config.build_dir:
            remove_tree(self.config.build_dir)
