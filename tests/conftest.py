"""Shared fixtures for pipeline tests."""

from __future__ import annotations

import logging
import shlex
import sys
from pathlib import Path

import pytest

from esmforge.config.settings import PipelineLogger
from esmforge.pipeline.progress import ProgressChannel


def python_command(code: str) -> str:
    """Shell command running a Python snippet with the current interpreter."""
    return f"{shlex.quote(sys.executable)} -c {shlex.quote(code)}"


ECHO_COMMAND = python_command("import sys; sys.stdout.write(sys.stdin.read())")


@pytest.fixture
def channel():
    return ProgressChannel()


@pytest.fixture
def events(channel):
    recorded = []
    channel.subscribe(recorded.append)
    return recorded


@pytest.fixture
def log():
    return PipelineLogger(logging.getLogger("esmforge.tests"))


@pytest.fixture
def write_file():
    def _write(path: Path, content: str = "") -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path
    return _write
