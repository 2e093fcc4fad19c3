import logging
from pathlib import Path
from typing import Annotated, Optional

import typer
from dotenv import load_dotenv

# Load environment variables BEFORE importing local modules that use them
load_dotenv()

from .build import BuildPipeline
from .cleanup import register_cleanup_handlers
from .config.settings import ConfigurationError, PipelineLogger, Settings
from .config_loader import DEFAULT_CONFIG_NAME, load_config
from .pipeline.progress import LoggingRenderer, ProgressChannel
from .pipeline.registry import classify
from .types import PipelineError
from .utils import setup_logging

app = typer.Typer(help="esmforge: build source files into browser-ready ES modules")


@app.command("build")
def build(
    config: Annotated[Optional[str], typer.Option("--config", "-c", help="Path to YAML configuration file")] = None,
    cwd: Annotated[Optional[str], typer.Option("--cwd", help="Working root (defaults to the configuration file's directory)")] = None,
    bundle: Annotated[Optional[bool], typer.Option("--bundle/--no-bundle", help="Override build_options.bundle")] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable detailed logging output")] = False,
    log_to_file: Annotated[bool, typer.Option("--log-to-file", help="Create timestamped log files")] = False,
):
    """Run the build pipeline: mount, transform, and optionally bundle."""
    root = Path(cwd).resolve() if cwd else None
    settings = Settings(project_root=root or Path.cwd())
    log_file = setup_logging(verbose, log_to_file, settings.log_level)
    if log_file:
        typer.echo(f"Logging to: {log_file}")

    try:
        build_config = load_config(config, cwd=root, settings=settings)
    except ConfigurationError as e:
        typer.echo(f"ERROR loading configuration: {e}", err=True)
        raise typer.Exit(1)

    if bundle is not None:
        build_config.build_options.bundle = bundle

    channel = ProgressChannel()
    renderer = LoggingRenderer().attach(channel)
    pipeline = BuildPipeline(build_config, channel, PipelineLogger(logging.getLogger("esmforge")))
    register_cleanup_handlers(pipeline)

    try:
        result = pipeline.run()
    except PipelineError as e:
        logging.error(f"Build failed: {e}")
        raise typer.Exit(1) from e
    finally:
        renderer.summary()

    if result.skipped:
        return
    if not result.ok:
        logging.warning("Build finished with errors")


@app.command("list-workers")
def list_workers(
    config: Annotated[str, typer.Option("--config", "-c", help="Path to YAML configuration file")] = DEFAULT_CONFIG_NAME,
):
    """List the pipeline workers declared in the configuration."""
    try:
        build_config = load_config(config)
    except ConfigurationError as e:
        typer.echo(f"ERROR loading configuration: {e}", err=True)
        raise typer.Exit(1)

    relevant, _ = classify(build_config.scripts, bundle=build_config.build_options.bundle)
    if not relevant:
        typer.echo("WARNING: No pipeline workers found")
        raise typer.Exit(1)

    typer.echo("Pipeline Workers")
    typer.echo("=" * 50)
    for worker in relevant:
        typer.echo(f"\n* {worker.id}")
        typer.echo(f"   Category: {worker.category.value}")
        typer.echo(f"   Command: {worker.command}")
        if worker.extensions:
            typer.echo(f"   Extensions: {', '.join(worker.extensions)}")

    ignored = [worker_id for worker_id in build_config.scripts if worker_id not in {w.id for w in relevant}]
    if ignored:
        typer.echo(f"\nIgnored scripts: {', '.join(ignored)}")


@app.command("version")
def version():
    """Display version information."""
    from . import __version__
    typer.echo(f"esmforge version: {__version__}")


if __name__ == "__main__":
    app()
