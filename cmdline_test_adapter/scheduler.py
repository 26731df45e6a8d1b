"""Bounded-parallelism execution of a test run."""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Iterable, Sequence

from cmdline_test_adapter.models.result import TERMINAL_STATUSES, TerminalStatus
from cmdline_test_adapter.models.tree import ExecutionDataStore, TestNode
from cmdline_test_adapter.observer import RunObserver
from cmdline_test_adapter.process import LaunchError, ProcessExecutor, run_process

log = logging.getLogger(__name__)


class ExecutionScheduler:
    """Runs test nodes with at most ``workers`` processes at a time.

    Nodes are taken from a FIFO work list. When a node's process exits with
    code 0 its children are appended to the work list, so a parent gates the
    execution of its children. Cancellation stops new launches: nodes that
    have not started yet are reported as skipped, running ones finish
    normally.
    """

    def __init__(
        self,
        *,
        store: ExecutionDataStore,
        observer: RunObserver,
        workers: int = 1,
        translate_newlines: bool = False,
        cancel_event: asyncio.Event | None = None,
        executor: ProcessExecutor = run_process,
    ) -> None:
        self.store = store
        self.observer = observer
        self.workers = max(workers, 1)
        self.translate_newlines = translate_newlines
        self.cancel_event = cancel_event
        self.executor = executor
        self._cancel_requested = False

    @property
    def cancelled(self) -> bool:
        if self._cancel_requested:
            return True
        return self.cancel_event is not None and self.cancel_event.is_set()

    def cancel(self) -> None:
        """Stop launching new processes."""
        self._cancel_requested = True

    def dispose(self) -> None:
        """Cancel permanently; a run in progress still drains and ends."""
        self.cancel()

    async def run(self, nodes: Iterable[TestNode]) -> None:
        """Run ``nodes`` and every child that becomes eligible.

        Returns once all nodes have a terminal status. The observer's
        ``on_run_end`` is called exactly once, after the last result.
        """
        queue: deque[TestNode] = deque(nodes)
        for node in queue:
            for each in node.walk():
                each.status = "not_run"

        started: set[str] = set()
        in_flight: set[asyncio.Task[Sequence[TestNode]]] = set()
        task_nodes: dict[asyncio.Task[Sequence[TestNode]], TestNode] = {}

        log.info("Starting test run: %d test(s), %d worker(s)", len(queue), self.workers)
        try:
            while queue or in_flight:
                while len(in_flight) < self.workers and queue:
                    node = queue.popleft()
                    if node.id in started:
                        continue
                    started.add(node.id)
                    task = asyncio.create_task(self._run_one(node), name=f"test:{node.id}")
                    task_nodes[task] = node
                    in_flight.add(task)

                if not in_flight:
                    continue

                done, in_flight = await asyncio.wait(
                    in_flight, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    del task_nodes[task]
                    queue.extend(task.result())
        except asyncio.CancelledError:
            for task in in_flight:
                task.cancel()
            await asyncio.gather(*in_flight, return_exceptions=True)
            self._skip_unfinished([task_nodes[task] for task in in_flight], queue, started)
            raise
        finally:
            log.info("Test run finished: %d test(s) processed", len(started))
            self.observer.on_run_end()

    async def _run_one(self, node: TestNode) -> Sequence[TestNode]:
        """Run a single node and return the children to schedule next."""
        start = time.monotonic()
        try:
            return await self._execute(node, start)
        except Exception as e:
            log.error("Unexpected error running %s", node.label, exc_info=e)
            node.busy = False
            if node.status not in TERMINAL_STATUSES:
                self._finish(node, "errored", _elapsed_ms(start), str(e))
            return ()

    async def _execute(self, node: TestNode, start: float) -> Sequence[TestNode]:
        if self.cancelled:
            self._finish(node, "skipped")
            return ()

        data = self.store.get(node)
        if data is None:
            message = f"Error: Could not find internal data for test {node.label}."
            log.error(message)
            self._finish(node, "errored", None, message)
            return ()

        if not data.is_runnable:
            self._finish(node, "passed", _elapsed_ms(start))
            return ()

        node.status = "running"
        node.busy = True
        self.observer.on_start(node)
        args = " ".join(f'"{arg}"' for arg in data.args)
        self.observer.on_output(
            node, f"Running test {node.label}, command: {data.command} {args}"
        )
        try:
            result = await self.executor(
                data.command,
                data.args,
                data.working_directory,
                translate_newlines=self.translate_newlines,
            )
        except LaunchError as e:
            node.busy = False
            self.observer.on_output(node, str(e))
            self._finish(node, "errored", _elapsed_ms(start), str(e))
            return ()
        node.busy = False

        duration_ms = _elapsed_ms(start)
        if result.stdout:
            self.observer.on_output(node, result.stdout)
        if result.stderr:
            self.observer.on_output(node, result.stderr)

        if result.exit_code == 0:
            self._finish(node, "passed", duration_ms)
            return tuple(node.children)

        message = result.stderr or f"Process exited with code {result.exit_code}"
        self._finish(node, "failed", duration_ms, message)
        return ()

    def _skip_unfinished(
        self, in_flight: Sequence[TestNode], queue: Iterable[TestNode], started: set[str]
    ) -> None:
        """Report nodes cut off by task cancellation as skipped."""
        for node in in_flight:
            node.busy = False
            if node.status not in TERMINAL_STATUSES:
                self._finish(node, "skipped", message="Test run was cancelled.")
        for node in queue:
            if node.id not in started:
                started.add(node.id)
                self._finish(node, "skipped")

    def _finish(
        self,
        node: TestNode,
        status: TerminalStatus,
        duration_ms: int | None = None,
        message: str | None = None,
    ) -> None:
        node.status = status
        self.observer.on_result(node, status, duration_ms, message)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
