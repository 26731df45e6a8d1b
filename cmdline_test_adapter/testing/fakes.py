"""In-memory stand-ins for running external processes."""

import asyncio
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from cmdline_test_adapter.models.result import ProcessResult
from cmdline_test_adapter.process import OutputDecodeError, SpawnFailedError


@dataclass(kw_only=True)
class FakeProcess:
    """Scripted outcome for one command."""

    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""
    raw_stdout: bytes | None = None
    delay: float = 0.0
    launch_error: bool = False


@dataclass(kw_only=True)
class FakeExecutor:
    """Process executor that returns scripted results per command.

    Tracks how many processes run at the same time, and the order in which
    commands were launched.
    """

    processes: Mapping[str, FakeProcess] = field(default_factory=dict)
    default: FakeProcess = field(default_factory=FakeProcess)
    calls: list[tuple[str, tuple[str, ...], Path | str | None]] = field(default_factory=list)
    running: int = 0
    max_running: int = 0

    async def __call__(
        self,
        command: str,
        args: Sequence[str] = (),
        working_directory: Path | str | None = None,
        *,
        translate_newlines: bool = False,
        strict_decoding: bool = False,
    ) -> ProcessResult:
        self.calls.append((command, tuple(args), working_directory))
        process = self.processes.get(command, self.default)
        if process.launch_error:
            raise SpawnFailedError(f"Cannot launch command '{command}'")

        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(process.delay)
        finally:
            self.running -= 1

        stdout = process.stdout
        if process.raw_stdout is not None:
            try:
                stdout = process.raw_stdout.decode("utf-8")
            except UnicodeDecodeError as e:
                if strict_decoding:
                    raise OutputDecodeError("stdout", process.raw_stdout, e) from e
                stdout = process.raw_stdout.decode("utf-8", errors="replace")

        return ProcessResult(
            exit_code=process.exit_code,
            stdout=stdout,
            stderr=process.stderr,
        )

    @property
    def commands(self) -> list[str]:
        return [command for command, _, _ in self.calls]
