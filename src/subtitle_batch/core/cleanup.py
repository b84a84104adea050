"""Temp artifact reconciliation at the end of a task."""

from pathlib import Path
from typing import List
import logging

from ..models.task import LogCategory, Stage, Task
from .task_log import TaskLogger

logger = logging.getLogger(__name__)


class CleanupManager:
    """Delete intermediate files after success, keep them after failure."""

    def __init__(self, task_logger: TaskLogger):
        self.task_logger = task_logger

    def reconcile(self, task: Task) -> List[Path]:
        """
        Apply the cleanup policy for a terminal task. Safe to call repeatedly.

        Returns:
            Paths that were actually removed.
        """
        if task.stage is Stage.FAILED:
            if task.temp_paths:
                kept = ", ".join(str(p) for p in task.temp_paths)
                self.task_logger.append(
                    task.id, LogCategory.METADATA, f"Keeping temp files for debugging: {kept}"
                )
            return []

        if task.stage is not Stage.COMPLETED:
            logger.debug(f"Cleanup skipped for non-terminal task {task.id}")
            return []

        removed = []
        for path in task.temp_paths:
            try:
                if path.exists():
                    path.unlink()
                    removed.append(path)
            except OSError as e:
                # Leftover scratch files never change a completed task's outcome
                self.task_logger.append(
                    task.id,
                    LogCategory.METADATA,
                    f"Warning: failed to remove temp file {path}: {e}",
                )

        for parent in {p.parent for p in task.temp_paths}:
            if parent.name == task.id:
                try:
                    parent.rmdir()
                except OSError:
                    pass  # not empty or already gone

        if removed:
            self.task_logger.append(
                task.id,
                LogCategory.METADATA,
                f"Temporary files cleaned up: {', '.join(p.name for p in removed)}",
            )

        return removed
