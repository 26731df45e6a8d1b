"""Models for entries of a discovery snapshot."""

from typing import Any

from pydantic import Field, field_validator

from cmdline_test_adapter.models.base import Model


class DiscoveryEntry(Model):
    """A single entry printed by the discovery command.

    ``args`` and ``children`` are kept raw so that a bad shape in one of them
    only affects that field, not the whole entry.
    """

    label: str | None = Field(default=None, description="Display name of the test")
    file: str | None = Field(default=None, description="Source file of the test")
    line: int | None = Field(default=None, description="1-based source line")
    command: str | None = Field(default=None, description="Executable to run")
    args: Any = Field(default=None, description="Argument list or single argument")
    test_folder: str | None = Field(
        default=None,
        alias="testFolder",
        description="Working directory for this test and its children",
    )
    debug_config: str | None = Field(
        default=None,
        alias="debugConfig",
        description="Named debug launch profile",
    )
    children: Any = Field(default=None, description="Nested entries")

    @field_validator(
        "label", "file", "line", "command", "test_folder", "debug_config", mode="before"
    )
    @classmethod
    def empty_as_missing(cls, v: Any) -> Any:
        if v == "":
            return None
        return v
