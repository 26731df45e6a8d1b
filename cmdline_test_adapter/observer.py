"""Observers receiving progress of a test run."""

import logging
from collections.abc import Sequence
from typing import Protocol

from cmdline_test_adapter.models.result import NodeResult, TerminalStatus
from cmdline_test_adapter.models.tree import TestNode

log = logging.getLogger(__name__)


class RunObserver(Protocol):
    """Callbacks made by the scheduler during a run.

    Every node that enters a run gets exactly one ``on_result``; ``on_run_end``
    is called once, after the last result.
    """

    def on_start(self, node: TestNode) -> None:
        """A node's process is about to be launched."""

    def on_output(self, node: TestNode, text: str) -> None:
        """Output attributed to a node."""

    def on_result(
        self,
        node: TestNode,
        status: TerminalStatus,
        duration_ms: int | None,
        message: str | None = None,
    ) -> None:
        """A node reached a terminal status."""

    def on_run_end(self) -> None:
        """The run is complete."""


class RunRecorder:
    """Observer that logs a run and keeps its results and output."""

    def __init__(self) -> None:
        self._results: list[NodeResult] = []
        self._output: dict[str, list[str]] = {}
        self.started: list[str] = []
        self.finished = False

    @property
    def results(self) -> Sequence[NodeResult]:
        """Terminal results in completion order."""
        return self._results

    def output(self, node: TestNode) -> str:
        """All output attributed to ``node``."""
        return "\n".join(self._output.get(node.id, []))

    def on_start(self, node: TestNode) -> None:
        log.info("Running %s", node.label)
        self.started.append(node.id)

    def on_output(self, node: TestNode, text: str) -> None:
        log.debug("[%s] %s", node.label, text)
        self._output.setdefault(node.id, []).append(text)

    def on_result(
        self,
        node: TestNode,
        status: TerminalStatus,
        duration_ms: int | None,
        message: str | None = None,
    ) -> None:
        if status in ("failed", "errored"):
            log.warning("%s %s: %s", node.label, status, message)
        else:
            log.info("%s %s", node.label, status)
        self._results.append(
            NodeResult(
                node_id=node.id,
                label=node.label,
                status=status,
                duration_ms=duration_ms,
                message=message,
            )
        )

    def on_run_end(self) -> None:
        log.info("Test run finished: %d result(s)", len(self._results))
        self.finished = True
