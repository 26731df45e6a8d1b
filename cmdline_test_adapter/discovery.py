"""Discover tests by running an external command."""

import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from cmdline_test_adapter.models.tree import TestCollection
from cmdline_test_adapter.process import (
    LaunchError,
    OutputDecodeError,
    ProcessExecutor,
    run_process,
)
from cmdline_test_adapter.reconciler import TreeReconciler

log = logging.getLogger(__name__)


def parse_discovery_output(text: str) -> list[Any] | None:
    """Parse the JSON printed by a discovery command.

    Returns:
        The top-level list of entries, or None if the payload is unusable

    """
    try:
        data = json.loads(text)
    except ValueError as e:
        log.error(
            "Error parsing json data from discover command: %s\nReceived data:\n%s",
            e,
            text,
        )
        return None

    if not isinstance(data, list):
        log.error(
            "Got unexpected json data from discover command, expected a list."
            "\nReceived data:\n%s",
            text,
        )
        return None

    return data


async def discover(
    collection: TestCollection,
    reconciler: TreeReconciler,
    command: str,
    args: Sequence[str],
    working_directory: Path,
    *,
    translate_newlines: bool = False,
    executor: ProcessExecutor = run_process,
) -> bool:
    """Run the discovery command and merge its output into ``collection``.

    The collection is left untouched unless the command succeeds and prints
    a JSON list encoded as UTF-8.

    Returns:
        True if the collection was reconciled with new discovery data

    """
    log.info("Discovering tests: %s %s", command, " ".join(args))
    try:
        result = await executor(
            command,
            args,
            working_directory,
            translate_newlines=translate_newlines,
            strict_decoding=True,
        )
    except LaunchError as e:
        log.error("Discovery command failed to start: %s", e)
        return False
    except OutputDecodeError as e:
        log.error(
            "Error decoding data from discover command: %s\nReceived data:\n%r",
            e,
            e.data,
        )
        return False

    if result.stderr:
        log.warning("Discovery stderr:\n%s", result.stderr)

    if result.exit_code != 0:
        log.error("Discovery of tests returned err code %d.", result.exit_code)
        if result.stdout:
            log.error("Stdout:\n%s", result.stdout)
        return False

    entries = parse_discovery_output(result.stdout)
    if entries is None:
        return False

    reconciler.reconcile(collection, entries, working_directory)
    log.info("Discovered %d top-level test(s)", len(collection))
    return True
