"""
esmforge Pipeline Components

This module provides the build stages, run in order by esmforge.build:
classify workers -> start lint workers -> mount -> transform -> join -> bundle.

Components:
- registry: worker classification, extension index and plugin resolution
- extensions: source extension -> browser extension table
- rewrite: import specifier scanner and resolution policy
- transform: TransformDispatcher for build and plugin workers
- lint: background lintall workers and their WorkerGroup
- mount: MountStage for verbatim directory copies
- bundle: BundleStage for the external bundler
- progress: ProgressChannel and LoggingRenderer
"""

from .bundle import BundleStage
from .extensions import remap
from .lint import BackgroundWorker, WorkerGroup
from .mount import MountStage, parse_mount_command
from .progress import LoggingRenderer, ProgressChannel
from .registry import classify, load_plugins
from .rewrite import ImportResolver, rewrite_imports
from .transform import DispatchReport, TransformDispatcher

__all__ = [
    "BundleStage", "remap", "BackgroundWorker", "WorkerGroup", "MountStage",
    "parse_mount_command", "LoggingRenderer", "ProgressChannel", "classify",
    "load_plugins", "ImportResolver", "rewrite_imports", "DispatchReport",
    "TransformDispatcher"
]
