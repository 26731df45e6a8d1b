"""Adapter tying discovery, the test tree and the scheduler together."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from cmdline_test_adapter.config import AdapterConfig, substitute_variables
from cmdline_test_adapter.discovery import discover
from cmdline_test_adapter.models.tree import ExecutionDataStore, TestNode, TestTree
from cmdline_test_adapter.observer import RunObserver
from cmdline_test_adapter.process import LaunchError, ProcessExecutor, run_process
from cmdline_test_adapter.reconciler import TreeReconciler
from cmdline_test_adapter.scheduler import ExecutionScheduler

log = logging.getLogger(__name__)


def select_tests(
    tree: TestTree,
    include: Sequence[TestNode] | None = None,
    exclude: Sequence[TestNode] = (),
) -> list[TestNode]:
    """Pick the nodes a run starts from.

    Without ``include`` every root is selected. Nodes in ``exclude`` are
    always dropped.
    """
    excluded = {node.id for node in exclude}
    candidates = tree.roots if include is None else include
    return [node for node in candidates if node.id not in excluded]


@dataclass(kw_only=True)
class CommandLineTestAdapter:
    """Discovers and runs tests described by an external command."""

    config: AdapterConfig
    workspace_root: Path
    executor: ProcessExecutor = run_process
    tree: TestTree = field(default_factory=TestTree)
    store: ExecutionDataStore = field(default_factory=ExecutionDataStore)
    reconciler: TreeReconciler = field(init=False)
    _scheduler: ExecutionScheduler | None = field(default=None, init=False, repr=False)
    _disposed: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.config = self.config.substituted(self.workspace_root)
        self.reconciler = TreeReconciler(
            store=self.store,
            workspace_root=self.workspace_root,
            substitute=lambda value: substitute_variables(value, self.workspace_root),
            debug_config=self.config.debug_config,
        )

    @property
    def test_folder(self) -> Path:
        """Working directory of the discovery command."""
        if self.config.test_folder:
            return self.workspace_root / self.config.test_folder
        return self.workspace_root

    async def discover_tests(self) -> bool:
        """Run discovery and update the tree.

        Returns:
            True if the tree was updated

        """
        if not self.config.discovery_command:
            log.error(
                "Missing discovery command. Please set discovery_command in the configuration."
            )
            return False

        return await discover(
            self.tree.roots,
            self.reconciler,
            self.config.discovery_command,
            self.config.discovery_args,
            self.test_folder,
            translate_newlines=self.config.translate_newlines,
            executor=self.executor,
        )

    async def resolve_worker_count(self) -> int:
        """Number of tests to run in parallel.

        ``cpu_count`` is either a number or a command printing one. Any
        problem running the command falls back to a single worker.
        """
        cpu_count = self.config.cpu_count
        if isinstance(cpu_count, int):
            return max(cpu_count, 1)

        try:
            return max(int(cpu_count), 1)
        except ValueError:
            pass

        try:
            result = await self.executor(
                cpu_count, (), None, translate_newlines=False
            )
        except LaunchError as e:
            log.error("Detecting number of CPUs via %s failed: %s", cpu_count, e)
            return 1

        if result.stderr:
            log.warning("Detecting number of CPUs via %s: %s", cpu_count, result.stderr)

        if result.exit_code != 0:
            log.error(
                "Detecting number of CPUs via %s returned err code %d.",
                cpu_count,
                result.exit_code,
            )
            if result.stdout:
                log.error("Stdout:\n%s", result.stdout)
            return 1

        if not result.stdout.strip():
            log.error("Detecting number of CPUs via %s returned no output.", cpu_count)
            return 1

        try:
            return max(int(result.stdout.strip()), 1)
        except ValueError:
            log.error(
                "Detecting number of CPUs via %s: Not an int: %s",
                cpu_count,
                result.stdout,
            )
            return 1

    async def run_tests(
        self,
        observer: RunObserver,
        include: Sequence[TestNode] | None = None,
        exclude: Sequence[TestNode] = (),
        cancel_event: asyncio.Event | None = None,
    ) -> None:
        """Run the selected tests and report progress to ``observer``."""
        tests = select_tests(self.tree, include, exclude)
        self._scheduler = ExecutionScheduler(
            store=self.store,
            observer=observer,
            workers=await self.resolve_worker_count(),
            translate_newlines=self.config.translate_newlines,
            cancel_event=cancel_event,
            executor=self.executor,
        )
        if self._disposed:
            self._scheduler.dispose()
        await self._scheduler.run(tests)

    def dispose(self) -> None:
        """Stop the active run from launching further tests."""
        self._disposed = True
        if self._scheduler is not None:
            self._scheduler.dispose()
