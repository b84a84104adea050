"""Durable per-task structured logs."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import json
import logging

from ..exceptions import FilesystemError
from ..models.task import LogCategory, LogEntry
from .events import TASK_LOG, Event, EventSink, NullEventSink, safe_emit

logger = logging.getLogger(__name__)

_LEVELS = {
    LogCategory.ERROR: logging.WARNING,
}


class TaskLogger:
    """
    Append-only JSON-lines log, one file per task id.

    Each entry is written and flushed before the matching ``task:log`` event is
    emitted, so a log file read after a restart holds everything an observer saw.
    """

    def __init__(self, log_dir: Path, event_sink: Optional[EventSink] = None):
        self.log_dir = Path(log_dir)
        self.event_sink = event_sink or NullEventSink()

    def get_log_path(self, task_id: str) -> Path:
        return self.log_dir / f"{task_id}.log"

    def append(self, task_id: str, category: LogCategory, message: str) -> LogEntry:
        """
        Append an entry to a task's log and emit it.

        Args:
            task_id: Owning task.
            category: Entry category.
            message: Free-form text.

        Returns:
            The written entry.
        """
        entry = LogEntry(
            timestamp=datetime.now(timezone.utc).isoformat(),
            category=category,
            message=message,
        )

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            with open(self.get_log_path(task_id), "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict(), ensure_ascii=False) + "\n")
                f.flush()
        except OSError as e:
            raise FilesystemError(f"Failed to write log for task {task_id}: {e}")

        logger.log(
            _LEVELS.get(category, logging.DEBUG),
            f"[{task_id[:8]}] {category.value}: {message}",
        )

        safe_emit(
            self.event_sink,
            Event(TASK_LOG, task_id, {
                "timestamp": entry.timestamp,
                "category": category.value,
                "message": message,
            }),
        )
        return entry

    def read(self, task_id: str) -> List[LogEntry]:
        """Read all entries for a task, in insertion order."""
        log_path = self.get_log_path(task_id)
        if not log_path.exists():
            return []

        entries = []
        with open(log_path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(LogEntry.from_dict(json.loads(line)))
                except (ValueError, KeyError) as e:
                    logger.warning(f"Skipping malformed log line in {log_path.name}: {e}")

        return entries

    def list_task_ids(self) -> List[str]:
        """List task ids that have a log, most recently written first."""
        if not self.log_dir.exists():
            return []
        paths = sorted(
            self.log_dir.glob("*.log"),
            key=lambda p: p.stat().st_mtime,
            reverse=True,
        )
        return [p.stem for p in paths]


class TaskReporter:
    """Log entries and lifecycle events for one task, bound to its id."""

    def __init__(self, task_id: str, task_logger: TaskLogger, event_sink: EventSink):
        self.task_id = task_id
        self.task_logger = task_logger
        self.event_sink = event_sink

    def log(self, category: LogCategory, message: str) -> LogEntry:
        return self.task_logger.append(self.task_id, category, message)

    def emit(self, name: str, **payload) -> None:
        safe_emit(self.event_sink, Event(name, self.task_id, payload))

    def retry_logger(self, category: LogCategory):
        """Callback for :class:`RetryingOperation` that logs under ``category``."""
        return lambda message: self.log(category, message)
