"""
Worker Registry - Declaration Classification and Plugin Resolution

Turns configured script declarations into WorkerSpecs, builds the
extension -> workers index used by the Transform Dispatcher, and resolves
plugin modules once, before any file is processed.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
import sys
from importlib.machinery import PathFinder
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from ..config.settings import ConfigurationError
from ..domain.enums import WorkerCategory
from ..domain.models import WorkerSpec

logger = logging.getLogger(__name__)

BUNDLE_MARKER_ID = "bundle:*"

# Recognised id prefixes, in classification order
CATEGORY_PREFIXES = {
    "build:": WorkerCategory.BUILD,
    "plugin:": WorkerCategory.PLUGIN,
    "lintall:": WorkerCategory.LINT_ALL,
    "mount:": WorkerCategory.MOUNT,
}

ExtensionIndex = dict[str, tuple[WorkerSpec, ...]]


def category_for(worker_id: str) -> WorkerCategory | None:
    """Category of a worker id by prefix, or None if it is not a pipeline worker."""
    for prefix, category in CATEGORY_PREFIXES.items():
        if worker_id.startswith(prefix):
            return category
    return None


def classify(
    declarations: Mapping[str, str] | Iterable[tuple[str, str]],
    bundle: bool = False
) -> tuple[list[WorkerSpec], ExtensionIndex]:
    """
    Classify worker declarations and index build/plugin workers by extension.

    Args:
        declarations: Worker id -> command, in declaration order
        bundle: Append the synthetic bundle marker worker

    Returns:
        Tuple of (relevant_workers, extension_index). Workers with
        unrecognised ids appear in neither.

    Raises:
        ConfigurationError: If a worker id is declared twice
    """
    pairs = declarations.items() if isinstance(declarations, Mapping) else declarations

    relevant: list[WorkerSpec] = []
    index: dict[str, list[WorkerSpec]] = {}
    seen: set[str] = set()

    for worker_id, command in pairs:
        if worker_id in seen:
            raise ConfigurationError(f"Duplicate worker id: {worker_id}")
        seen.add(worker_id)

        category = category_for(worker_id)
        if category is None:
            logger.debug(f"Ignoring script {worker_id!r}: not a build pipeline worker")
            continue

        extensions: tuple[str, ...] = ()
        if category in (WorkerCategory.BUILD, WorkerCategory.PLUGIN):
            ext_list = worker_id.split(":", 1)[1]
            extensions = tuple(ext for ext in ext_list.split(",") if ext)

        spec = WorkerSpec(id=worker_id, command=command, category=category, extensions=extensions)
        relevant.append(spec)
        for ext in extensions:
            index.setdefault(ext, []).append(spec)

    if bundle:
        relevant.append(
            WorkerSpec(id=BUNDLE_MARKER_ID, command="NA", category=WorkerCategory.BUNDLE_MARKER)
        )

    return relevant, {ext: tuple(specs) for ext, specs in index.items()}


def count_build_workers(declarations: Iterable[str]) -> int:
    """Number of declared ids in the build category."""
    return sum(1 for worker_id in declarations if worker_id.startswith("build:"))


# =============================================================================
# Plugin resolution
# =============================================================================

class Plugin(Protocol):
    """In-process transform: build(path) returns {'result': code}."""

    def build(self, path: str) -> Mapping[str, Any]:
        ...


PluginRegistry = dict[str, Plugin]


def _is_path_specifier(command: str) -> bool:
    return "/" in command or "\\" in command or command.endswith(".py")


def _import_from_root(name: str, cwd: Path):
    """Import a dotted module name, searching the working root before sys.path."""
    root = str(cwd.resolve())
    top_level = name.split(".", 1)[0]
    if top_level in sys.modules or PathFinder.find_spec(top_level, [root]) is None:
        return importlib.import_module(name)

    sys.path.insert(0, root)
    try:
        importlib.invalidate_caches()
        return importlib.import_module(name)
    finally:
        sys.path.remove(root)


def resolve_plugin(command: str, cwd: Path) -> Plugin:
    """
    Import a plugin module named by a worker command.

    Args:
        command: Path to a .py file or a dotted module name, both resolved from cwd first
        cwd: Working root

    Returns:
        The loaded module, which must expose a callable build(path)

    Raises:
        ConfigurationError: If the module cannot be loaded or has no build()
    """
    command = command.strip()
    try:
        if _is_path_specifier(command):
            module_path = (cwd / command).resolve()
            if module_path.is_dir():
                module_path = module_path / "__init__.py"
            if not module_path.exists():
                raise FileNotFoundError(f"No such plugin file: {module_path}")
            module_name = f"esmforge_plugin_{abs(hash(str(module_path)))}"
            spec = importlib.util.spec_from_file_location(module_name, module_path)
            if spec is None or spec.loader is None:
                raise ImportError(f"Cannot load plugin from {module_path}")
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
        else:
            module = _import_from_root(command, cwd)
    except Exception as e:
        raise ConfigurationError(f"Could not load plugin {command!r}: {e}") from e

    if not callable(getattr(module, "build", None)):
        raise ConfigurationError(f"Plugin {command!r} does not export a build(path) function")
    return module


def load_plugins(workers: Iterable[WorkerSpec], cwd: Path) -> PluginRegistry:
    """Resolve every plugin worker once, keyed by worker id."""
    registry: PluginRegistry = {}
    for spec in workers:
        if spec.category == WorkerCategory.PLUGIN:
            registry[spec.id] = resolve_plugin(spec.command, cwd)
            logger.debug(f"Loaded plugin {spec.command} for {spec.id}")
    return registry
