"""Task data model."""

from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, Tuple, Iterable, TYPE_CHECKING
from enum import Enum
from datetime import datetime
import uuid

from ..exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from .config import BatchConfig


class Stage(Enum):
    """Task stage enum. Declaration order is the allowed direction of travel."""

    PENDING = "pending"
    EXTRACTING = "extracting"
    TRANSCRIBING = "transcribing"
    TRANSLATING = "translating"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def order(self) -> int:
        return _STAGE_ORDER[self]

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETED, Stage.FAILED)

    @property
    def is_active(self) -> bool:
        return self in (Stage.EXTRACTING, Stage.TRANSCRIBING, Stage.TRANSLATING)


_STAGE_ORDER = {stage: i for i, stage in enumerate(Stage)}


class Workflow(Enum):
    """Which pipeline a task runs through."""

    TRANSCRIBE = "transcribe"  # video -> audio -> transcript -> translation
    TRANSLATE = "translate"  # subtitle file -> translation


class LogCategory(Enum):
    """Category of a per-task log entry."""

    METADATA = "metadata"
    PROCESS = "process"
    TRANSCRIPTION = "transcription"
    TRANSLATION = "translation"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """A single entry in a task's durable log."""

    timestamp: str
    category: LogCategory
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "timestamp": self.timestamp,
            "category": self.category.value,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogEntry":
        return cls(
            timestamp=data["timestamp"],
            category=LogCategory(data["category"]),
            message=data["message"],
        )


def new_task_id() -> str:
    """Generate an opaque task identifier."""
    return uuid.uuid4().hex


@dataclass
class Task:
    """One input file's journey through the pipeline."""

    input_path: Path
    workflow: Workflow = Workflow.TRANSCRIBE
    target_language: Optional[str] = None
    id: str = field(default_factory=new_task_id)

    stage: Stage = Stage.PENDING
    error: Optional[str] = None

    created_at: datetime = field(default_factory=datetime.now)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    # Artifacts, populated as stages complete
    temp_audio_path: Optional[Path] = None
    temp_transcript_path: Optional[Path] = None
    output_path: Optional[Path] = None

    def __post_init__(self):
        self.input_path = Path(self.input_path)

    @property
    def name(self) -> str:
        return self.input_path.name

    @property
    def is_terminal(self) -> bool:
        return self.stage.is_terminal

    @property
    def is_active(self) -> bool:
        return self.stage.is_active

    @property
    def elapsed_time(self) -> Optional[float]:
        """Get elapsed time in seconds."""
        if self.started_at and self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    def advance(self, stage: Stage) -> None:
        """
        Move the task forward to ``stage``.

        Stages may be skipped but never re-entered, and terminal stages are final.
        Completion goes through :meth:`complete` so that ``output_path`` and the
        stage are always set together.
        """
        if self.stage.is_terminal:
            raise InvalidTransitionError(
                f"Task {self.id} is already {self.stage.value}, cannot move to {stage.value}"
            )
        if stage.order <= self.stage.order:
            raise InvalidTransitionError(
                f"Task {self.id} cannot move from {self.stage.value} back to {stage.value}"
            )
        if stage is Stage.COMPLETED:
            raise InvalidTransitionError("Use Task.complete() to finish a task")

        if self.started_at is None and stage is not Stage.FAILED:
            self.started_at = datetime.now()
        self.stage = stage

        if stage is Stage.FAILED:
            self.ended_at = datetime.now()

    def complete(self, output_path: Path) -> None:
        """Mark the task completed with its final output file."""
        if self.stage.is_terminal:
            raise InvalidTransitionError(
                f"Task {self.id} is already {self.stage.value}, cannot complete"
            )
        self.output_path = Path(output_path)
        self.stage = Stage.COMPLETED
        self.ended_at = datetime.now()

    def fail(self, error: str) -> None:
        """Mark the task failed with its fatal error message."""
        self.advance(Stage.FAILED)
        self.error = error

    @property
    def temp_paths(self) -> List[Path]:
        return [p for p in (self.temp_audio_path, self.temp_transcript_path) if p is not None]

    def snapshot(self) -> Dict[str, Any]:
        """Read-only view of the task for observers."""
        return {
            "id": self.id,
            "input_path": str(self.input_path),
            "workflow": self.workflow.value,
            "stage": self.stage.value,
            "target_language": self.target_language,
            "temp_audio_path": str(self.temp_audio_path) if self.temp_audio_path else None,
            "temp_transcript_path": (
                str(self.temp_transcript_path) if self.temp_transcript_path else None
            ),
            "output_path": str(self.output_path) if self.output_path else None,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


@dataclass(frozen=True)
class TaskBatch:
    """A set of tasks submitted together, sharing one configuration."""

    tasks: Tuple[Task, ...]
    config: "BatchConfig"

    def __post_init__(self):
        ids = [task.id for task in self.tasks]
        if len(set(ids)) != len(ids):
            raise ValueError("Task ids within a batch must be unique")

    def __len__(self) -> int:
        return len(self.tasks)

    def __iter__(self):
        return iter(self.tasks)

    @classmethod
    def from_paths(
        cls,
        paths: Iterable[Path],
        config: "BatchConfig",
        workflow: Workflow = Workflow.TRANSCRIBE,
        target_language: Optional[str] = None,
    ) -> "TaskBatch":
        """
        Build a batch with one task per input path.

        Args:
            paths: Input files (videos or subtitles, depending on workflow).
            config: Shared batch configuration.
            workflow: Pipeline to run for every task.
            target_language: Output language, or None to skip translation.

        Returns:
            New batch.
        """
        tasks = tuple(
            Task(input_path=Path(p), workflow=workflow, target_language=target_language)
            for p in paths
        )
        return cls(tasks=tasks, config=config)
