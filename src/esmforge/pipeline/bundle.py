"""
Bundle Stage - Production Packaging

Hands the assembled build output to an external bundler. The intermediate
build directory is copied into the final directory (minus installed web
modules and the distribution tree, which the bundler reads directly), given a
trimmed package manifest and a transpiler plugin config, and then bundled.
Any failure here aborts the run.
"""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Optional

from ..config.settings import BuildConfig, PipelineLogger
from ..domain.enums import WorkerState
from ..types import BundleError, WorkerComplete, WorkerUpdate
from ..utils import command_env, copy_tree, remove_tree
from .progress import ProgressChannel
from .registry import BUNDLE_MARKER_ID

MANIFEST_NAME = "package.json"
PLUGIN_CONFIG_NAME = ".babelrc"
TRANSPILER_PACKAGE = "@babel/core"
TRANSPILER_DEFAULT_VERSION = "^7.9.0"
IMPORT_META_PLUGIN = "@babel/plugin-syntax-import-meta"
WEB_MODULES_DIR = "web_modules"


def prepare_manifest(manifest: dict) -> dict:
    """
    Copy of the project manifest suitable for the bundler's working directory.

    The name is removed and the transpiler is added as a development
    dependency unless the project already pins it.
    """
    prepared = dict(manifest)
    prepared.pop("name", None)
    dev_dependencies = dict(prepared.get("devDependencies") or {})
    dev_dependencies.setdefault(TRANSPILER_PACKAGE, TRANSPILER_DEFAULT_VERSION)
    prepared["devDependencies"] = dev_dependencies
    return prepared


def resolve_node_package(name: str, cwd: Path) -> Optional[Path]:
    """Directory of an installed node package, searching node_modules upward from cwd."""
    for parent in (cwd, *cwd.parents):
        candidate = parent / "node_modules" / name
        if candidate.is_dir():
            return candidate
    return None


class BundleStage:
    """Assemble the final output directory and run the bundler."""

    def __init__(self, config: BuildConfig, channel: ProgressChannel, log: PipelineLogger):
        self.config = config
        self.cwd = config.cwd
        self.build_dir = config.build_dir
        self.final_dir = config.final_dir
        self.channel = channel
        self.log = log

    def run(self) -> None:
        """
        Prepare the build directory and invoke the bundler.

        Raises:
            BundleError: If any step fails
        """
        self.channel.emit(WorkerUpdate(id=BUNDLE_MARKER_ID, state=WorkerState.RUNNING))
        try:
            self.prepare()
            self.invoke_bundler()
        except (OSError, ValueError, BundleError) as e:
            error = e if isinstance(e, BundleError) else BundleError(str(e))
            self.channel.emit(WorkerComplete(id=BUNDLE_MARKER_ID, error=error))
            if error is e:
                raise
            raise error from e

        self.channel.emit(WorkerComplete(id=BUNDLE_MARKER_ID, error=None))
        if self.final_dir != self.build_dir:
            remove_tree(self.build_dir)

    def prepare(self) -> None:
        """Copy static output to the final directory and write bundler config files."""
        # The bundler can miss static assets it does not import, so copy them over first
        excluded = [
            self.build_dir / WEB_MODULES_DIR,
            self.config.dist_dir,
        ]
        copy_tree(self.build_dir, self.final_dir, exclude=excluded)

        manifest_path = self.cwd / MANIFEST_NAME
        if not manifest_path.exists():
            raise BundleError(f"Project manifest not found: {manifest_path}")
        with open(manifest_path, encoding="utf-8") as f:
            manifest = json.load(f)
        if not isinstance(manifest, dict):
            raise BundleError(f"Project manifest must be a JSON object: {manifest_path}")

        with open(self.build_dir / MANIFEST_NAME, "w", encoding="utf-8") as f:
            json.dump(prepare_manifest(manifest), f, indent=2)

        plugin_dir = resolve_node_package(IMPORT_META_PLUGIN, self.cwd)
        if plugin_dir is None:
            self.log.warning(f"{IMPORT_META_PLUGIN} is not installed; the bundler will resolve it by name")
            plugin_ref = IMPORT_META_PLUGIN
        else:
            plugin_ref = str(plugin_dir)
        with open(self.build_dir / PLUGIN_CONFIG_NAME, "w", encoding="utf-8") as f:
            json.dump({"plugins": [[plugin_ref]]}, f)

    def bundler_command(self) -> list[str]:
        options = self.config.build_options
        return [*options.bundler, options.fallback, "--out-dir", str(self.final_dir)]

    def invoke_bundler(self) -> None:
        """Run the bundler in the build directory, streaming its output."""
        cmd = self.bundler_command()
        self.log.info(f"Running: {' '.join(cmd)}")
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=self.build_dir,
                env=command_env(self.cwd),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1
            )
        except OSError as e:
            raise BundleError(f"Could not start bundler {cmd[0]!r}: {e}") from e

        if proc.stdout:
            for line in proc.stdout:
                self.channel.message(BUNDLE_MARKER_ID, line)
        returncode = proc.wait()
        if returncode != 0:
            raise BundleError(f"Bundler exited with code {returncode}")
