"""
Consolidated Utilities

Helper functions shared across the pipeline stages.

Sections:
- Logging and timing utilities
- Filesystem and path operations
- Source file enumeration
- External process environment
"""

import fnmatch
import logging
import os
import shutil
import sys
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Optional

# =============================================================================
# Logging and Timing Utilities
# =============================================================================

def setup_logging(
    verbose: bool,
    log_to_file: bool = False,
    level: Optional[str] = None
) -> Optional[Path]:
    """
    Configure logging with optional timestamped file output.

    Args:
        verbose: Enable debug-level logging if True
        log_to_file: Create a timestamped log file under logs/ when True
        level: Explicit level name used when not verbose (defaults to INFO)

    Returns:
        Path of the log file, if one was created
    """
    if verbose:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, (level or "INFO").upper(), logging.INFO)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file = None
    if log_to_file:
        logs_dir = Path("logs")
        logs_dir.mkdir(exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = logs_dir / f"build_{timestamp}.log"
        handlers.append(logging.FileHandler(log_file, encoding='utf-8'))

    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
        handlers=handlers,
        force=True
    )
    return log_file


def format_duration(seconds: float) -> str:
    """Format duration in human-readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    secs = seconds % 60
    return f"{minutes}m {secs:.1f}s"


# =============================================================================
# Filesystem and Path Operations
# =============================================================================

def ensure_directory(path: Path) -> Path:
    """
    Ensure directory exists, creating it if necessary.

    Args:
        path: Directory path to ensure

    Returns:
        Path object for the directory
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def remove_tree(path: Path) -> None:
    """Remove a directory tree if it exists."""
    if path.exists():
        shutil.rmtree(path)


def reset_directory(path: Path) -> Path:
    """Remove a directory and recreate it empty."""
    remove_tree(path)
    return ensure_directory(path)


def copy_tree(src: Path, dest: Path, exclude: Iterable[Path] = ()) -> None:
    """
    Recursively copy src into dest, merging with existing content.

    Args:
        src: Source directory
        dest: Destination directory (created if missing)
        exclude: Absolute paths under src that are skipped along with their contents
    """
    excluded = {Path(p).resolve() for p in exclude}

    def _ignore(directory: str, names: list[str]) -> set[str]:
        base = Path(directory).resolve()
        return {name for name in names if base / name in excluded}

    shutil.copytree(src, dest, ignore=_ignore if excluded else None, dirs_exist_ok=True)


def relative_display_path(cwd: Path, target: Path) -> str:
    """Path of target relative to cwd, prefixed with ./ when inside it."""
    rel = os.path.relpath(target, cwd)
    if not rel.startswith(f"..{os.sep}") and rel != "..":
        rel = f".{os.sep}{rel}"
    return rel


# =============================================================================
# Source File Enumeration
# =============================================================================

TEST_DIRECTORY_NAMES = {"__tests__"}
TEST_FILE_PATTERNS = ("*.spec.*", "*.test.*")


def is_test_file(path: Path, root: Path) -> bool:
    """Whether a file is a test file or lives in a test directory under root."""
    rel_parts = path.relative_to(root).parts
    if any(part in TEST_DIRECTORY_NAMES for part in rel_parts[:-1]):
        return True
    return any(fnmatch.fnmatch(path.name, pattern) for pattern in TEST_FILE_PATTERNS)


def enumerate_source_files(root: Path, log=None) -> list[Path]:
    """
    List every file under root, excluding tests, in a stable sorted order.

    Args:
        root: Include root directory
        log: Pipeline logger for the missing-directory warning

    Returns:
        Absolute file paths
    """
    if not root.is_dir():
        (log or logging.getLogger(__name__)).warning(f"Include directory not found: {root}")
        return []
    return sorted(
        p for p in root.rglob("*")
        if p.is_file() and not is_test_file(p, root)
    )


# =============================================================================
# External Process Environment
# =============================================================================

def command_env(cwd: Path) -> dict[str, str]:
    """
    Environment for worker processes: node_modules/.bin first on PATH, production mode.

    Built per call from os.environ; the current process environment is not modified.
    """
    env = dict(os.environ)
    bin_dirs = [str(parent / "node_modules" / ".bin") for parent in (cwd, *cwd.parents)]
    env["PATH"] = os.pathsep.join([*bin_dirs, env.get("PATH", "")])
    env["NODE_ENV"] = "production"
    return env
