"""
Domain Models and Types

This module contains the core domain models and enumerations used throughout the pipeline.

Models:
- WorkerSpec: One classified worker declaration
- DependencyImportMap: Bare specifier lookup table for web_modules
- SourceFile: Enumerated source file with its extension
- TransformResult: Output code and derived output path

Enums:
- WorkerCategory: build, plugin, lintall, mount, bundle marker
- WorkerState: RUNNING, WATCHING, ERROR
- MessageLevel: log, error
"""

from .enums import STATE_COLORS, MessageLevel, WorkerCategory, WorkerState
from .models import DependencyImportMap, SourceFile, TransformResult, WorkerSpec

__all__ = [
    "WorkerSpec", "DependencyImportMap", "SourceFile", "TransformResult",
    "WorkerCategory", "WorkerState", "MessageLevel", "STATE_COLORS"
]
