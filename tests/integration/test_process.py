"""Integration tests for running real processes."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, Mock, patch

import pytest

from cmdline_test_adapter.process import (
    InvalidWorkingDirectoryError,
    LaunchError,
    OutputDecodeError,
    SpawnFailedError,
    run_process,
)

from .conftest import WriteScriptFn


async def test_captures_stdout_and_stderr(python: str) -> None:
    """Both streams are captured separately."""
    result = await run_process(
        python,
        ["-c", "import sys; sys.stdout.write('out'); sys.stderr.write('err')"],
    )

    assert result.exit_code == 0
    assert result.stdout == "out"
    assert result.stderr == "err"


@pytest.mark.parametrize("code", [0, 1, 3, 127])
async def test_reports_exit_code(python: str, code: int) -> None:
    """The process exit code is reported as-is."""
    result = await run_process(python, ["-c", f"raise SystemExit({code})"])

    assert result.exit_code == code


async def test_arguments_are_not_shell_expanded(python: str) -> None:
    """Arguments reach the process verbatim."""
    result = await run_process(
        python,
        ["-c", "import sys; print(repr(sys.argv[1:]))", "a b", "$HOME", "*"],
    )

    assert result.stdout.strip() == repr(["a b", "$HOME", "*"])


async def test_runs_in_working_directory(python: str, workspace: Path) -> None:
    """The process starts in the given directory."""
    result = await run_process(
        python, ["-c", "import os; print(os.getcwd(), end='')"], workspace
    )

    assert Path(result.stdout).resolve() == workspace.resolve()


async def test_newlines_preserved_by_default(python: str) -> None:
    """Output bytes are kept when translation is disabled."""
    result = await run_process(
        python, ["-c", "import sys; sys.stdout.buffer.write(b'a\\nb\\n')"]
    )

    assert result.stdout == "a\nb\n"


async def test_translates_newlines(python: str) -> None:
    """Line feeds become CRLF on both streams when enabled."""
    result = await run_process(
        python,
        [
            "-c",
            "import sys; sys.stdout.buffer.write(b'a\\nb\\n'); sys.stderr.buffer.write(b'e\\n')",
        ],
        translate_newlines=True,
    )

    assert result.stdout == "a\r\nb\r\n"
    assert result.stderr == "e\r\n"


async def test_large_output_on_both_streams(python: str) -> None:
    """Filling both pipes does not deadlock."""
    script = (
        "import sys\n"
        "for _ in range(2000):\n"
        "    sys.stdout.write('o' * 100 + '\\n')\n"
        "    sys.stderr.write('e' * 100 + '\\n')\n"
    )

    result = await run_process(python, ["-c", script])

    assert result.exit_code == 0
    assert len(result.stdout) == 2000 * 101
    assert len(result.stderr) == 2000 * 101


async def test_invalid_utf8_is_replaced(python: str) -> None:
    """Undecodable bytes do not abort capture."""
    result = await run_process(
        python, ["-c", "import sys; sys.stdout.buffer.write(b'ok\\xff!')"]
    )

    assert result.stdout == "ok\ufffd!"


async def test_merge_stderr(write_script: WriteScriptFn, python: str) -> None:
    """Stderr lands in stdout when merged."""
    script = write_script(
        "both.py",
        """
        import sys
        sys.stderr.write("err")
        sys.stderr.flush()
        """,
    )

    result = await run_process(python, [str(script)], merge_stderr=True)

    assert result.stdout == "err"
    assert result.stderr == ""


async def test_invalid_working_directory(python: str, tmp_path: Path) -> None:
    """A missing directory fails before anything is spawned."""
    missing = tmp_path / "missing"

    with pytest.raises(InvalidWorkingDirectoryError, match="does not exist") as exc_info:
        await run_process(python, ["-c", "pass"], missing)

    assert str(missing) in str(exc_info.value)
    assert isinstance(exc_info.value, LaunchError)


async def test_missing_executable(tmp_path: Path) -> None:
    """An executable that does not exist is a launch error."""
    with pytest.raises(SpawnFailedError, match="Cannot launch command"):
        await run_process(str(tmp_path / "no-such-binary"))


async def test_missing_pipe_is_launch_error() -> None:
    """A process spawned without output pipes cannot be captured."""
    process = Mock(pid=1234, stdout=None, stderr=Mock())

    with (
        patch(
            "cmdline_test_adapter.process.asyncio.create_subprocess_exec",
            AsyncMock(return_value=process),
        ),
        pytest.raises(SpawnFailedError, match="Cannot capture output"),
    ):
        await run_process("list-tests")


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")
async def test_killed_by_signal_reports_abnormal_exit(python: str) -> None:
    """A process without an exit status reports 255."""
    result = await run_process(
        python, ["-c", "import os, signal; os.kill(os.getpid(), signal.SIGKILL)"]
    )

    assert result.exit_code == 255


async def test_strict_decoding_rejects_invalid_stdout(python: str) -> None:
    """Strict decoding raises with the raw stdout bytes."""
    with pytest.raises(OutputDecodeError, match="Invalid UTF-8 in stdout") as exc_info:
        await run_process(
            python,
            ["-c", "import sys; sys.stdout.buffer.write(b'[\"bad\\xff\\xfe\"]')"],
            strict_decoding=True,
        )

    assert exc_info.value.data == b'["bad\xff\xfe"]'


async def test_strict_decoding_tolerates_invalid_stderr(python: str) -> None:
    """Strict decoding only applies to stdout."""
    result = await run_process(
        python,
        [
            "-c",
            "import sys; sys.stdout.write('[]\\n'); sys.stderr.buffer.write(b'e\\xff')",
        ],
        translate_newlines=True,
        strict_decoding=True,
    )

    assert result.stdout == "[]\r\n"
    assert result.stderr == "e\ufffd"
