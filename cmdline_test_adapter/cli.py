"""CLI entry point for discovering and running command line tests."""

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from cmdline_test_adapter.adapter import CommandLineTestAdapter
from cmdline_test_adapter.config import (
    AdapterConfig,
    ConfigError,
    find_config,
    load_config,
)
from cmdline_test_adapter.models.result import NodeResult
from cmdline_test_adapter.models.tree import TestNode, TestTree
from cmdline_test_adapter.observer import RunRecorder

STATUS_SYMBOLS = {
    "passed": "✓",
    "failed": "✗",
    "errored": "!",
    "skipped": "-",
}


def log_results_summary(log: logging.Logger, results: Sequence[NodeResult]) -> None:
    """Log a formatted summary of test results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in results:
        symbol = STATUS_SYMBOLS.get(result.status, "?")
        if result.duration_ms is None:
            log.info("%s %s: %s", symbol, result.label, result.status)
        else:
            log.info(
                "%s %s: %s (%dms)",
                symbol,
                result.label,
                result.status,
                result.duration_ms,
            )
        if result.message:
            log.info("  Message: %s", result.message.strip())


def format_output(results: Sequence[NodeResult]) -> dict[str, Any]:
    """Format node results for JSON output."""
    all_results = [
        {
            "id": result.node_id,
            "label": result.label,
            "status": result.status,
            "duration_ms": result.duration_ms,
            "message": result.message,
        }
        for result in results
    ]

    return {
        "total": len(all_results),
        "passed": sum(1 for r in all_results if r["status"] == "passed"),
        "failed": sum(1 for r in all_results if r["status"] == "failed"),
        "errored": sum(1 for r in all_results if r["status"] == "errored"),
        "skipped": sum(1 for r in all_results if r["status"] == "skipped"),
        "results": all_results,
    }


def format_tree(tree: TestTree) -> list[dict[str, Any]]:
    """Describe the discovered tree as nested dictionaries."""

    def describe(node: TestNode) -> dict[str, Any]:
        return {
            "id": node.id,
            "label": node.label,
            "file": str(node.location.path) if node.location else None,
            "line": (
                node.location.line + 1
                if node.location and node.location.line is not None
                else None
            ),
            "children": [describe(child) for child in node.children],
        }

    return [describe(root) for root in tree.roots]


async def build_config(
    workspace: Path,
    config_path: Path | None,
    discovery_command: str | None,
    discovery_args: Sequence[str],
    workers: int | None,
    translate_newlines: bool,
) -> AdapterConfig:
    """Load the configuration file and apply command line overrides."""
    if config_path is not None:
        config = await load_config(config_path)
    else:
        config = await find_config(workspace) or AdapterConfig()

    overrides: dict[str, Any] = {}
    if discovery_command:
        overrides["discovery_command"] = discovery_command
    if discovery_args:
        overrides["discovery_args"] = tuple(discovery_args)
    if workers is not None:
        overrides["cpu_count"] = workers
    if translate_newlines:
        overrides["translate_newlines"] = True

    return config.model_copy(update=overrides)


async def run(
    workspace: Path,
    config: AdapterConfig,
    include: Sequence[str] = (),
    list_only: bool = False,
) -> int:
    """Discover and run tests and return exit code."""
    log = logging.getLogger("cmdline_test_adapter")

    adapter = CommandLineTestAdapter(config=config, workspace_root=workspace)

    if not await adapter.discover_tests():
        log.error("Test discovery failed")
        return 1

    if list_only:
        print(json.dumps(format_tree(adapter.tree), indent=2))
        return 0

    selected: list[TestNode] | None = None
    if include:
        selected = [node for label in include for node in adapter.tree.find_by_label(label)]
        if not selected:
            log.error("No tests match: %s", ", ".join(include))
            return 1

    recorder = RunRecorder()
    await adapter.run_tests(recorder, include=selected)

    log_results_summary(log, recorder.results)
    print(json.dumps(format_output(recorder.results), indent=2))

    has_failures = any(
        result.status in {"failed", "errored"} for result in recorder.results
    )
    return 1 if has_failures else 0


async def _main(args: argparse.Namespace) -> int:
    workspace = args.workspace.resolve()
    try:
        config = await build_config(
            workspace,
            args.config,
            args.discovery_command,
            args.discovery_arg,
            args.workers,
            args.translate_newlines,
        )
    except (FileNotFoundError, ConfigError) as e:
        logging.getLogger("cmdline_test_adapter").error("%s", e)
        return 1
    return await run(workspace, config, include=args.include, list_only=args.list)


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Discover and run tests defined by an external command"
    )
    parser.add_argument(
        "--workspace",
        type=Path,
        default=Path.cwd(),
        help="Workspace root (default: current directory)",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (default: <workspace>/.cmdline-tests.yaml)",
    )
    parser.add_argument(
        "--discovery-command",
        default=None,
        help="Command printing the JSON test tree",
    )
    parser.add_argument(
        "--discovery-arg",
        action="append",
        default=[],
        help="Argument for the discovery command (repeatable)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of tests to run in parallel",
    )
    parser.add_argument(
        "--translate-newlines",
        action="store_true",
        help="Convert LF to CRLF in captured output",
    )
    parser.add_argument(
        "--include",
        action="append",
        default=[],
        help="Run only tests with this label (repeatable)",
    )
    parser.add_argument(
        "--list",
        action="store_true",
        help="Print the discovered tests and exit",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    exit_code = asyncio.run(_main(args))
    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
