"""Tests for discovery snapshot entries."""

import pytest
from pydantic import ValidationError

from cmdline_test_adapter.models.snapshot import DiscoveryEntry


def test_parses_all_fields() -> None:
    """Reads every recognized field, including camelCase aliases."""
    entry = DiscoveryEntry.model_validate(
        {
            "label": "test",
            "file": "a.py",
            "line": 12,
            "command": "python",
            "args": ["-m", "pytest"],
            "testFolder": "sub",
            "debugConfig": "Debug",
            "children": [],
        }
    )

    assert entry.label == "test"
    assert entry.file == "a.py"
    assert entry.line == 12
    assert entry.command == "python"
    assert entry.args == ["-m", "pytest"]
    assert entry.test_folder == "sub"
    assert entry.debug_config == "Debug"
    assert entry.children == []


def test_line_as_string() -> None:
    """Accepts line numbers given as strings."""
    assert DiscoveryEntry.model_validate({"label": "t", "line": "7"}).line == 7


@pytest.mark.parametrize("field", ["label", "file", "line", "command", "testFolder"])
def test_empty_string_is_missing(field: str) -> None:
    """Treats empty strings like absent fields."""
    data = {"label": "t"}
    data[field] = ""

    entry = DiscoveryEntry.model_validate(data)

    assert entry.model_dump(by_alias=True)[field] is None


def test_ignores_unknown_fields() -> None:
    """Unrecognized fields are dropped."""
    entry = DiscoveryEntry.model_validate({"label": "t", "color": "red"})

    assert not hasattr(entry, "color")


def test_rejects_non_numeric_line() -> None:
    """Line numbers must be integers."""
    with pytest.raises(ValidationError):
        DiscoveryEntry.model_validate({"label": "t", "line": "twelve"})


def test_rejects_non_object() -> None:
    """Entries must be objects."""
    with pytest.raises(ValidationError):
        DiscoveryEntry.model_validate("just a string")
