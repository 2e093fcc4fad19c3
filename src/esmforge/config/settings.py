"""
Configuration management for the esmforge build pipeline.

Usage:
    from esmforge.config.settings import Settings
    settings = Settings(project_root=Path.cwd())
    overrides = settings.get_build_overrides()

Environment Variables:
    ESMFORGE_OUT: Override build_options.out
    ESMFORGE_BUNDLE: Override build_options.bundle (true|false)
    ESMFORGE_LOG_LEVEL: Default log level (DEBUG, INFO, ...)
    ENVIRONMENT: Selects .env.{ENVIRONMENT} (defaults to development)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

from ..types import PipelineError

logger = logging.getLogger(__name__)

DEFAULT_BUNDLER = ["parcel", "build"]
INTERMEDIATE_BUILD_DIR = ".build"


class ConfigurationError(PipelineError):
    """Raised when configuration is invalid or incomplete."""
    pass


@dataclass
class BuildOptions:
    """Output layout and bundling configuration."""
    out: str = "build"
    dist: str = "/_dist_"
    bundle: bool = False
    fallback: str = "index.html"
    bundler: list[str] = field(default_factory=lambda: list(DEFAULT_BUNDLER))

    def __post_init__(self):
        """Validate build options."""
        if not self.out:
            raise ValueError("Output directory cannot be empty")
        if not self.dist or self.dist.strip("/") == "":
            raise ValueError("Distribution directory must name a subdirectory (e.g. /_dist_)")
        if not self.dist.startswith("/"):
            self.dist = "/" + self.dist
        if isinstance(self.bundler, str):
            self.bundler = self.bundler.split()
        if not self.bundler:
            raise ValueError("Bundler command cannot be empty")


@dataclass
class InstallOptions:
    """Location of installed web modules."""
    dest: str = "web_modules"

    def __post_init__(self):
        if not self.dest:
            raise ValueError("Install destination cannot be empty")


@dataclass
class BuildConfig:
    """Complete project configuration for one build run."""
    cwd: Path
    scripts: dict[str, str] = field(default_factory=dict)
    include: Optional[str] = None
    build_options: BuildOptions = field(default_factory=BuildOptions)
    install_options: InstallOptions = field(default_factory=InstallOptions)

    def __post_init__(self):
        """Validate script declarations."""
        for worker_id, command in self.scripts.items():
            if not isinstance(command, str):
                raise ValueError(f"Script {worker_id!r} must map to a command string")

    @property
    def final_dir(self) -> Path:
        return (self.cwd / self.build_options.out).resolve()

    @property
    def build_dir(self) -> Path:
        """Intermediate directory; the final directory itself unless bundling."""
        if self.build_options.bundle:
            return (self.cwd / INTERMEDIATE_BUILD_DIR).resolve()
        return self.final_dir

    @property
    def dist_dir(self) -> Path:
        return self.build_dir / self.build_options.dist.strip("/")

    @property
    def include_dir(self) -> Optional[Path]:
        if not self.include:
            return None
        return (self.cwd / self.include).resolve()

    @property
    def import_map_path(self) -> Path:
        return (self.cwd / self.install_options.dest / "import-map.json").resolve()


class PipelineLogger:
    """
    Thin wrapper over a standard logger that adds phase banners.

    Passed explicitly to every pipeline component instead of redirecting
    process-wide output.
    """

    def __init__(self, base_logger: logging.Logger):
        self._logger = base_logger

    @property
    def logger(self) -> logging.Logger:
        return self._logger

    def phase(self, title: str) -> None:
        self._logger.info(f"=== {title} ===")

    def debug(self, msg: str) -> None:
        self._logger.debug(msg)

    def info(self, msg: str) -> None:
        self._logger.info(msg)

    def warning(self, msg: str) -> None:
        self._logger.warning(msg)

    def error(self, msg: str) -> None:
        self._logger.error(msg)


class Settings:
    """
    Environment-driven settings for the pipeline.

    Environment variables loaded (in order of preference):
    1. Explicit environment file passed to constructor
    2. .env.{ENVIRONMENT} (where ENVIRONMENT=development|production|staging)
    3. .env file in project root
    4. System environment variables

    Example:
        settings = Settings(project_root=Path("site"))
        settings.get_build_overrides()  # {'out': 'dist'} when ESMFORGE_OUT=dist
    """

    def __init__(self,
                 project_root: Optional[Path] = None,
                 environment: Optional[str] = None,
                 env_file: Optional[Path] = None):
        """
        Initialize settings and load environment files.

        Args:
            project_root: Directory searched for .env files (defaults to cwd)
            environment: Target environment (development|staging|production)
            env_file: Explicit path to environment file
        """
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.project_root = Path(project_root or Path.cwd())

        self._load_environment_variables(env_file)
        self.log_level = os.getenv("ESMFORGE_LOG_LEVEL", "INFO").upper()

    def _load_environment_variables(self, env_file: Optional[Path]) -> None:
        """Load environment variables from appropriate source."""
        loaded_files = []

        if env_file:
            if not env_file.exists():
                raise ConfigurationError(f"Specified env file not found: {env_file}")
            load_dotenv(env_file)
            loaded_files.append(str(env_file))
        else:
            env_specific_file = self.project_root / f".env.{self.environment}"
            if env_specific_file.exists():
                load_dotenv(env_specific_file)
                loaded_files.append(str(env_specific_file))

            generic_env_file = self.project_root / ".env"
            if generic_env_file.exists():
                load_dotenv(generic_env_file)
                loaded_files.append(str(generic_env_file))

        self._loaded_env_files = loaded_files
        logger.debug(f"Loaded env files: {loaded_files}")
        logger.debug(f"Environment: {self.environment}")

    def get_build_overrides(self) -> dict[str, Any]:
        """
        Get build option overrides from the environment.

        Returns:
            Dictionary of build_options keys to override

        Raises:
            ConfigurationError: If ESMFORGE_BUNDLE is not a boolean value
        """
        overrides: dict[str, Any] = {}
        out = os.getenv("ESMFORGE_OUT")
        if out:
            overrides["out"] = out

        bundle = os.getenv("ESMFORGE_BUNDLE")
        if bundle is not None and bundle != "":
            value = bundle.strip().lower()
            if value in ("1", "true", "yes", "on"):
                overrides["bundle"] = True
            elif value in ("0", "false", "no", "off"):
                overrides["bundle"] = False
            else:
                raise ConfigurationError(f"ESMFORGE_BUNDLE must be true or false, got {bundle!r}")

        return overrides

    def __repr__(self) -> str:
        return f"Settings(environment={self.environment}, root={self.project_root})"
