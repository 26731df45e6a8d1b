"""Run external processes and capture their output."""

import asyncio
import codecs
import logging
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TypeAlias

from cmdline_test_adapter.models.result import ABNORMAL_EXIT_CODE, ProcessResult

log = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024

ProcessExecutor: TypeAlias = Callable[..., Awaitable[ProcessResult]]


class LaunchError(Exception):
    """Raised when an external process cannot be started."""


class InvalidWorkingDirectoryError(LaunchError):
    """Raised when the requested working directory is not a directory."""


class SpawnFailedError(LaunchError):
    """Raised when the executable could not be started."""


class OutputDecodeError(Exception):
    """Raised when output captured with strict decoding is not valid UTF-8."""

    def __init__(self, stream_name: str, data: bytes, error: UnicodeDecodeError) -> None:
        super().__init__(
            f"Invalid UTF-8 in {stream_name} at byte {error.start}: {error.reason}"
        )
        self.stream_name = stream_name
        self.data = data


async def run_process(
    command: str,
    args: Sequence[str] = (),
    working_directory: Path | str | None = None,
    *,
    translate_newlines: bool = False,
    merge_stderr: bool = False,
    strict_decoding: bool = False,
) -> ProcessResult:
    """Run ``command`` with ``args`` and wait for it to exit.

    The arguments are passed as-is, without a shell. Both output streams are
    drained concurrently while the process runs.

    Args:
        command: Executable to run
        args: Argument vector
        working_directory: Directory to run in; empty means the current one
        translate_newlines: Replace ``\\n`` with ``\\r\\n`` in captured output
        merge_stderr: Capture stderr into the stdout text
        strict_decoding: Fail on invalid UTF-8 in stdout instead of replacing it

    Returns:
        Exit code and captured output. A process terminated by a signal
        reports exit code 255.

    Raises:
        InvalidWorkingDirectoryError: If ``working_directory`` is not a directory
        SpawnFailedError: If the process could not be started
        OutputDecodeError: If ``strict_decoding`` is set and stdout is not UTF-8

    """
    cwd = str(working_directory) if working_directory else None
    if cwd is not None and not Path(cwd).is_dir():
        raise InvalidWorkingDirectoryError(f"Directory '{cwd}' does not exist")

    try:
        process = await asyncio.create_subprocess_exec(
            command,
            *args,
            cwd=cwd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except (OSError, ValueError) as e:
        raise SpawnFailedError(f"Cannot launch command '{command}': {e}") from e

    if process.pid is None:
        raise SpawnFailedError(f"Cannot launch command '{command}'")

    log.debug("Started %s (pid %d)", command, process.pid)

    if process.stdout is None or process.stderr is None:
        raise SpawnFailedError(f"Cannot capture output of command '{command}'")

    if strict_decoding:
        raw_stdout, raw_stderr = await asyncio.gather(
            process.stdout.read(), process.stderr.read()
        )
        returncode = await process.wait()
        stdout = _decode_strict("stdout", raw_stdout, translate_newlines)
        stderr = raw_stderr.decode("utf-8", errors="replace")
        if translate_newlines:
            stderr = translate(stderr)
    else:
        stdout_chunks: list[str] = []
        stderr_chunks: list[str] = stdout_chunks if merge_stderr else []
        await asyncio.gather(
            _drain(process.stdout, stdout_chunks, translate_newlines),
            _drain(process.stderr, stderr_chunks, translate_newlines),
        )
        returncode = await process.wait()
        stdout = "".join(stdout_chunks)
        stderr = "" if merge_stderr else "".join(stderr_chunks)

    log.debug("Process %d exited with %d", process.pid, returncode)

    if strict_decoding and merge_stderr:
        stdout, stderr = stdout + stderr, ""

    return ProcessResult(
        exit_code=returncode if returncode >= 0 else ABNORMAL_EXIT_CODE,
        stdout=stdout,
        stderr=stderr,
    )


async def _drain(
    stream: asyncio.StreamReader, chunks: list[str], translate_newlines: bool
) -> None:
    """Append decoded chunks of ``stream`` to ``chunks`` until EOF."""
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(READ_CHUNK_SIZE)
        text = decoder.decode(data, final=not data)
        if text:
            chunks.append(translate(text) if translate_newlines else text)
        if not data:
            return


def _decode_strict(stream_name: str, data: bytes, translate_newlines: bool) -> str:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise OutputDecodeError(stream_name, data, e) from e
    return translate(text) if translate_newlines else text


def translate(text: str) -> str:
    """Convert line feeds to CRLF."""
    return text.replace("\n", "\r\n")
