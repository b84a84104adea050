"""Shared batch execution for CLI commands."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer

from ..core.scheduler import Scheduler
from ..exceptions import ConfigError
from ..models.config import AppConfig
from ..models.task import Stage, TaskBatch, Workflow
from ..utils.progress import (
    ConsoleEventSink,
    print_error,
    print_info,
    print_success,
    print_task_summary,
)


def collect_files(paths: List[Path], extensions: set, recursive: bool = False) -> List[Path]:
    """Expand files and directories into a sorted list of matching files."""
    found = []

    for path in paths:
        if path.is_file():
            if path.suffix.lower() in extensions:
                found.append(path)
        elif path.is_dir():
            pattern = "**/*" if recursive else "*"
            found.extend(p for p in path.glob(pattern) if p.suffix.lower() in extensions)

    return sorted(set(found))


def run_batch(
    ctx: typer.Context,
    files: List[Path],
    workflow: Workflow,
    output_dir: Path,
    target_language: Optional[str],
    workers: Optional[int],
) -> None:
    """Run a batch with a live progress display, then print the summary."""
    config: AppConfig = ctx.obj["config"]
    no_progress: bool = ctx.obj.get("no_progress", False)

    if not files:
        print_error("No input files found")
        raise typer.Exit(1)

    try:
        batch_config = config.to_batch_config(output_dir, concurrency_limit=workers)
        batch = TaskBatch.from_paths(
            files, batch_config, workflow=workflow, target_language=target_language
        )
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(1)

    print_info(
        f"Processing {len(batch)} file(s) with up to {batch_config.concurrency_limit} in parallel"
    )

    with ConsoleEventSink(list(batch.tasks), disable=no_progress) as sink:
        scheduler = Scheduler(event_sink=sink)
        try:
            results = asyncio.run(scheduler.run(batch))
        except ConfigError as e:
            print_error(str(e))
            raise typer.Exit(1)

    print_task_summary(results)
    print_info(f"Task logs: {batch_config.log_dir}")

    completed = sum(1 for t in results if t.stage is Stage.COMPLETED)
    failed = sum(1 for t in results if t.stage is Stage.FAILED)

    if failed > 0:
        print_error(f"{failed} task(s) failed")
        raise typer.Exit(1)
    else:
        print_success(f"All {completed} task(s) completed successfully")
