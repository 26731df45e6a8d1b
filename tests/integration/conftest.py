"""Fixtures for integration tests."""

import sys
import textwrap
from pathlib import Path
from typing import Protocol

import pytest


class WriteScriptFn(Protocol):
    """Protocol for script creation function."""

    def __call__(self, name: str, source: str) -> Path:
        """Write a Python script and return its path."""


@pytest.fixture
def python() -> str:
    """Interpreter used to run helper scripts."""
    return sys.executable


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create an empty workspace directory."""
    root = tmp_path / "workspace"
    root.mkdir()
    return root


@pytest.fixture
def write_script(workspace: Path) -> WriteScriptFn:
    """Return a function to create Python scripts in the workspace."""

    def _write(name: str, source: str) -> Path:
        path = workspace / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip())
        return path

    return _write
