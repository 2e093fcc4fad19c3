"""
Pipeline Enumerations

Core enums for type safety and clear interface definitions across the pipeline.
"""

from enum import Enum


class WorkerCategory(str, Enum):
    """Worker categories, derived from the id prefix."""
    BUILD = "build"             # External command, file on stdin, code on stdout
    PLUGIN = "plugin"           # In-process transform module
    LINT_ALL = "lintall"        # Background command, not matched against files
    MOUNT = "mount"             # Verbatim directory copy
    BUNDLE_MARKER = "bundle"    # Synthetic, progress reporting only


class WorkerState(str, Enum):
    """States reported through WorkerUpdate events."""
    RUNNING = "RUNNING"
    WATCHING = "WATCHING"
    ERROR = "ERROR"


class MessageLevel(str, Enum):
    """Levels carried by WorkerMsg events."""
    LOG = "log"
    ERROR = "error"


# Color tags paired with states for the terminal renderer
STATE_COLORS = {
    WorkerState.RUNNING: "yellow",
    WorkerState.WATCHING: None,
    WorkerState.ERROR: "red",
}
