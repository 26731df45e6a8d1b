"""Persistent tree of discovered test nodes and their execution data."""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TypeAlias

from cmdline_test_adapter.models.result import TestStatus

NaturalKey: TypeAlias = tuple[str, str | None]


@dataclass(frozen=True, kw_only=True)
class Location:
    """Source location of a test. Lines are 0-based."""

    path: Path
    line: int | None = None


@dataclass(kw_only=True, eq=False)
class TestNode:
    """A discovered test unit.

    Nodes compare by identity: two nodes with equal fields are still different
    tests unless they are the same object.
    """

    __test__ = False

    id: str
    label: str
    location: Location | None = None
    children: "TestCollection" = field(default_factory=lambda: TestCollection())
    status: TestStatus = "not_run"
    busy: bool = False

    @property
    def natural_key(self) -> NaturalKey:
        """Key used to match this node against later discovery snapshots."""
        return natural_key(self.label, self.location)

    def walk(self) -> Iterator["TestNode"]:
        """Yield this node and all of its descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()


def natural_key(label: str, location: Location | None) -> NaturalKey:
    """Build the natural key for a label and optional location."""
    return (label, str(location.path) if location is not None else None)


class TestCollection:
    """Ordered set of sibling nodes with unique natural keys.

    Nodes are indexed by natural key when added, so a member's label and
    location path must not change while it is in the collection.
    """

    __test__ = False

    def __init__(self, nodes: Sequence[TestNode] = ()) -> None:
        self._nodes: dict[str, TestNode] = {}
        self._by_key: dict[NaturalKey, TestNode] = {}
        for node in nodes:
            self.add(node)

    def __iter__(self) -> Iterator[TestNode]:
        return iter(list(self._nodes.values()))

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, TestNode) and self._nodes.get(node.id) is node

    def __repr__(self) -> str:
        return f"TestCollection({[node.label for node in self._nodes.values()]!r})"

    def get(self, node_id: str) -> TestNode | None:
        """Return the child with the given id, if any."""
        return self._nodes.get(node_id)

    def find(self, key: NaturalKey) -> TestNode | None:
        """Return the child whose natural key equals ``key``, if any."""
        return self._by_key.get(key)

    def keys(self) -> set[NaturalKey]:
        """Natural keys of all children."""
        return set(self._by_key)

    def add(self, node: TestNode) -> None:
        """Append a node.

        Raises:
            ValueError: If a sibling with the same id or natural key exists

        """
        if node.id in self._nodes:
            raise ValueError(f"Duplicate test id '{node.id}'")
        key = node.natural_key
        if key in self._by_key:
            raise ValueError(f"Duplicate test {key!r} in collection")
        self._nodes[node.id] = node
        self._by_key[key] = node

    def remove(self, node: TestNode) -> None:
        """Detach a node from this collection."""
        del self._nodes[node.id]
        del self._by_key[node.natural_key]


@dataclass(kw_only=True)
class TestTree:
    """Forest of discovered test nodes."""

    __test__ = False

    roots: TestCollection = field(default_factory=TestCollection)

    def walk(self) -> Iterator[TestNode]:
        """Yield every node in the tree, depth first."""
        for root in self.roots:
            yield from root.walk()

    def find(self, node_id: str) -> TestNode | None:
        """Find a node anywhere in the tree by id."""
        for node in self.walk():
            if node.id == node_id:
                return node
        return None

    def find_by_label(self, label: str) -> list[TestNode]:
        """All nodes carrying the given label."""
        return [node for node in self.walk() if node.label == label]


@dataclass(frozen=True, kw_only=True)
class ExecutionData:
    """How to launch a node. An empty command marks a grouping node."""

    command: str = ""
    args: Sequence[str] = ()
    working_directory: Path | None = None
    debug_config: str | None = None

    @property
    def is_runnable(self) -> bool:
        return bool(self.command)


class ExecutionDataStore:
    """Execution data for test nodes, keyed by node id.

    Entries are released explicitly when their node leaves the tree. Looking
    up a node that has no entry returns ``None``.
    """

    def __init__(self) -> None:
        self._data: dict[str, ExecutionData] = {}

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, node: object) -> bool:
        return isinstance(node, TestNode) and node.id in self._data

    def get(self, node: TestNode) -> ExecutionData | None:
        return self._data.get(node.id)

    def set(self, node: TestNode, data: ExecutionData) -> None:
        self._data[node.id] = data

    def release(self, node: TestNode) -> None:
        """Drop the data of ``node`` and all of its descendants."""
        for each in node.walk():
            self._data.pop(each.id, None)
