"""
Unified configuration loading interface for the esmforge pipeline.

This module loads and merges configuration from:
- the project YAML file (scripts, include root, build and install options)
- environment overrides via Settings (.env files and ESMFORGE_* variables)
- the dependency import map written by the web module installer

Returns validated configuration objects for use in CLI commands.
"""

import json
import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .config.settings import (
    BuildConfig,
    BuildOptions,
    ConfigurationError,
    InstallOptions,
    Settings,
)
from .domain.models import DependencyImportMap

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_NAME = "esmforge.yml"


def load_config(
    config_path: Optional[str | Path] = None,
    cwd: Optional[Path] = None,
    settings: Optional[Settings] = None
) -> BuildConfig:
    """
    Load the project configuration file and apply environment overrides.

    Args:
        config_path: Path to YAML configuration file (defaults to <cwd>/esmforge.yml)
        cwd: Working root all relative paths resolve against (defaults to the config file's directory)
        settings: Environment settings (created from cwd if not provided)

    Returns:
        Validated BuildConfig

    Raises:
        ConfigurationError: If the file is missing, not valid YAML, or has invalid values
    """
    if config_path is None:
        base = Path(cwd or Path.cwd())
        config_path = base / DEFAULT_CONFIG_NAME
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, encoding='utf-8') as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

    root = Path(cwd or config_path.parent).resolve()
    settings = settings or Settings(project_root=root)
    return build_config_from_dict(raw, root, settings.get_build_overrides())


def build_config_from_dict(
    raw: dict[str, Any],
    cwd: Path,
    overrides: Optional[dict[str, Any]] = None
) -> BuildConfig:
    """
    Create a BuildConfig from already-parsed configuration data.

    Args:
        raw: Parsed configuration mapping
        cwd: Working root
        overrides: build_options values that win over the file

    Returns:
        Validated BuildConfig
    """
    scripts = raw.get('scripts') or {}
    if not isinstance(scripts, dict):
        raise ConfigurationError("'scripts' must be a mapping of worker id to command")

    build_raw = dict(raw.get('build_options') or {})
    build_raw.update(overrides or {})
    install_raw = dict(raw.get('install_options') or {})

    try:
        build_options = BuildOptions(**build_raw)
        install_options = InstallOptions(**install_raw)
        config = BuildConfig(
            cwd=Path(cwd).resolve(),
            scripts={str(k): v for k, v in scripts.items()},
            include=raw.get('include'),
            build_options=build_options,
            install_options=install_options
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e

    logger.debug(f"Loaded configuration with {len(config.scripts)} scripts from {cwd}")
    return config


def load_import_map(path: Path) -> DependencyImportMap:
    """
    Load the dependency import map written by the web module installer.

    A missing file yields an empty map so every bare import falls back to
    /web_modules/<name>.js and is reported as missing.

    Raises:
        ConfigurationError: If the file exists but is not a valid import map
    """
    if not path.exists():
        logger.warning(f"No import map found at {path}; bare imports will not be resolved")
        return DependencyImportMap()

    try:
        with open(path, encoding='utf-8') as f:
            data = json.load(f)
        return DependencyImportMap(imports=(data or {}).get('imports') or {})
    except (json.JSONDecodeError, AttributeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid import map {path}: {e}") from e
