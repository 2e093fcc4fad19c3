"""
Configuration module for the esmforge build pipeline.
"""

from .settings import (
    BuildConfig,
    BuildOptions,
    ConfigurationError,
    InstallOptions,
    PipelineLogger,
    Settings,
)

__all__ = [
    'BuildConfig',
    'BuildOptions',
    'ConfigurationError',
    'InstallOptions',
    'PipelineLogger',
    'Settings'
]
