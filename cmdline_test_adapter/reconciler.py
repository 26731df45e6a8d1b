"""Merge discovery snapshots into the persistent test tree."""

import itertools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cmdline_test_adapter.models.snapshot import DiscoveryEntry
from cmdline_test_adapter.models.tree import (
    ExecutionData,
    ExecutionDataStore,
    Location,
    TestCollection,
    TestNode,
    natural_key,
)

log = logging.getLogger(__name__)

ID_PREFIX = "cmdline-test-"


def _counter_ids() -> Callable[[], str]:
    counter = itertools.count()
    return lambda: f"{ID_PREFIX}{next(counter)}"


def _unchanged(value: str) -> str:
    return value


@dataclass(kw_only=True)
class TreeReconciler:
    """Updates a test collection in place to match a discovery snapshot.

    Nodes whose natural key (label and file path) appears in the new snapshot
    keep their identity; nodes whose key is gone are detached and their
    execution data is released.
    """

    store: ExecutionDataStore
    workspace_root: Path
    substitute: Callable[[str], str] = _unchanged
    new_id: Callable[[], str] = field(default_factory=_counter_ids)
    debug_config: str | None = None

    def reconcile(
        self,
        collection: TestCollection,
        entries: Sequence[Any],
        working_directory: Path | None = None,
    ) -> None:
        """Reconcile ``collection`` with the snapshot ``entries``.

        Args:
            collection: Existing siblings, updated in place
            entries: Raw snapshot entries for this level of the tree
            working_directory: Working directory inherited from the parent

        """
        if working_directory is None:
            working_directory = self.workspace_root

        stale = collection.keys()
        seen: set[tuple[str, str | None]] = set()

        for raw in entries:
            entry = self._parse_entry(raw)
            if entry is None:
                continue

            cwd = self._resolve_working_directory(entry, working_directory)
            location = self._resolve_location(entry, cwd)
            key = natural_key(entry.label, location)

            if key in seen:
                log.warning(
                    "Duplicate test %r in discovery data, merging entries", entry.label
                )
            seen.add(key)

            node = collection.find(key)
            if node is None:
                node = TestNode(id=self.new_id(), label=entry.label, location=location)
                collection.add(node)
                log.debug("Added test %s (%s)", node.label, node.id)
            else:
                node.location = location

            self.store.set(node, self._execution_data(entry, cwd))

            children = entry.children
            if children is not None and not isinstance(children, list):
                log.warning(
                    "Ignoring children of test %r: expected a list, got %s",
                    entry.label,
                    type(children).__name__,
                )
                children = None
            self.reconcile(node.children, children or [], cwd)

            stale.discard(key)

        for node in collection:
            if node.natural_key in stale:
                log.debug("Removed test %s (%s)", node.label, node.id)
                collection.remove(node)
                self.store.release(node)

    def _parse_entry(self, raw: Any) -> DiscoveryEntry | None:
        try:
            entry = DiscoveryEntry.model_validate(raw)
        except ValidationError as e:
            log.warning("Ignoring malformed test entry %r: %s", raw, e)
            return None

        if entry.label is None:
            log.warning("Empty label. Ignoring test entry %r", raw)
            return None

        return entry

    def _resolve_working_directory(self, entry: DiscoveryEntry, inherited: Path) -> Path:
        if entry.test_folder is None:
            return inherited
        folder = self.substitute(entry.test_folder)
        if not folder:
            return inherited
        return self.workspace_root / folder

    def _resolve_location(self, entry: DiscoveryEntry, cwd: Path) -> Location | None:
        if entry.file is None:
            return None
        line = max(entry.line - 1, 0) if entry.line is not None else None
        return Location(path=cwd / entry.file, line=line)

    def _execution_data(self, entry: DiscoveryEntry, cwd: Path) -> ExecutionData:
        debug_config = entry.debug_config or self.debug_config
        if entry.command is None:
            return ExecutionData(working_directory=cwd, debug_config=debug_config)

        return ExecutionData(
            command=entry.command,
            args=self._args(entry),
            working_directory=cwd,
            debug_config=debug_config,
        )

    def _args(self, entry: DiscoveryEntry) -> tuple[str, ...]:
        args = entry.args
        if args is None:
            return ()
        if isinstance(args, str):
            return (args,)
        if isinstance(args, list):
            return tuple(str(arg) for arg in args)
        log.warning(
            "Ignoring args of test %r: expected a list or a string, got %s",
            entry.label,
            type(args).__name__,
        )
        return ()
