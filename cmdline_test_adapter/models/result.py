"""Models for process and test execution results."""

from dataclasses import dataclass
from typing import Literal

TestStatus = Literal["not_run", "running", "passed", "failed", "errored", "skipped"]

TerminalStatus = Literal["passed", "failed", "errored", "skipped"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"passed", "failed", "errored", "skipped"})

# Exit code reported when the process had no exit status of its own.
ABNORMAL_EXIT_CODE = 255


@dataclass(frozen=True, kw_only=True)
class ProcessResult:
    """Captured outcome of a single external process."""

    exit_code: int
    stdout: str
    stderr: str


@dataclass(frozen=True, kw_only=True)
class NodeResult:
    """Terminal outcome of one test node within a run.

    Contains only the execution outcome - the output text is kept separately
    by whoever observes the run.
    """

    __test__ = False

    node_id: str
    label: str
    status: TerminalStatus
    duration_ms: int | None = None
    message: str | None = None
