"""Adapter configuration and variable substitution."""

import asyncio
import os
import re
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

import yaml
from pydantic import Field, ValidationError, field_validator

from cmdline_test_adapter.models.base import Model

CONFIG_FILE_NAME = ".cmdline-tests.yaml"

_VARIABLE = re.compile(r"\$\{(workspaceFolder|env:[^}]+)\}")


class ConfigError(ValueError):
    """Raised when a configuration file cannot be used."""


class AdapterConfig(Model):
    """Settings for discovering and running command line tests."""

    test_folder: str = Field(
        default="", description="Discovery working directory (default: workspace root)"
    )
    discovery_command: str = Field(
        default="", description="Command printing the JSON test tree"
    )
    discovery_args: Sequence[str] = Field(
        default=(), description="Arguments for the discovery command"
    )
    translate_newlines: bool = Field(
        default=False, description="Convert LF to CRLF in captured output"
    )
    cpu_count: int | str = Field(
        default=1, description="Worker count, or a command printing it"
    )
    debug_config: str | None = Field(
        default=None, description="Default debug launch profile"
    )

    @field_validator("discovery_args", mode="before")
    @classmethod
    def single_arg_as_list(cls, v: object) -> object:
        if isinstance(v, str):
            return [v]
        return v

    def substituted(self, workspace_root: Path) -> "AdapterConfig":
        """Return a copy with variables expanded in all string settings."""

        def sub(value: str) -> str:
            return substitute_variables(value, workspace_root)

        return self.model_copy(
            update={
                "test_folder": sub(self.test_folder),
                "discovery_command": sub(self.discovery_command),
                "discovery_args": tuple(sub(arg) for arg in self.discovery_args),
                "cpu_count": (
                    sub(self.cpu_count)
                    if isinstance(self.cpu_count, str)
                    else self.cpu_count
                ),
            }
        )


def substitute_variables(
    value: str,
    workspace_root: Path,
    environ: Mapping[str, str] | None = None,
) -> str:
    """Expand ``${workspaceFolder}`` and ``${env:NAME}`` in ``value``.

    Unknown variables are left untouched. On Windows environment variable
    names are matched case-insensitively.
    """
    if environ is None:
        environ = os.environ
    if sys.platform == "win32":
        environ = {name.upper(): val for name, val in environ.items()}

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == "workspaceFolder":
            return str(workspace_root)
        var = name.removeprefix("env:")
        if sys.platform == "win32":
            var = var.upper()
        return environ.get(var, match.group(0))

    return _VARIABLE.sub(replace, value)


async def load_config(path: Path) -> AdapterConfig:
    """Load adapter configuration from a YAML file.

    Args:
        path: Path to the configuration file

    Returns:
        Parsed configuration

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is empty, not valid YAML or fails validation

    """
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    content = await asyncio.to_thread(path.read_text)

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        raise ConfigError(f"Empty config file: {path}")

    try:
        return AdapterConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration schema in {path}: {e}") from e


async def find_config(workspace_root: Path) -> AdapterConfig | None:
    """Load ``.cmdline-tests.yaml`` from the workspace root, if present."""
    path = workspace_root / CONFIG_FILE_NAME
    if not path.is_file():
        return None
    return await load_config(path)
