"""Lifecycle events emitted to an external observer."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol
import logging

logger = logging.getLogger(__name__)

TASK_STARTED = "task:started"
TASK_LOG = "task:log"
TASK_PROGRESS = "task:progress"
TRANSCRIPTION_STARTED = "transcription:started"
TRANSCRIPTION_POLLING = "transcription:polling"
TRANSCRIPTION_COMPLETE = "transcription:complete"
TRANSLATION_STARTED = "translation:started"
TRANSLATION_COMPLETE = "translation:complete"
TASK_COMPLETED = "task:completed"
TASK_FAILED = "task:failed"
BATCH_COMPLETE = "batch:complete"


@dataclass(frozen=True)
class Event:
    """A single lifecycle event."""

    name: str
    task_id: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)


class EventSink(Protocol):
    """Port the pipeline writes events to. Implemented by UIs and loggers."""

    def emit(self, event: Event) -> None:
        ...


class NullEventSink:
    """Discard all events."""

    def emit(self, event: Event) -> None:
        pass


class CallbackEventSink:
    """Forward events to a plain callable."""

    def __init__(self, callback: Callable[[Event], None]):
        self.callback = callback

    def emit(self, event: Event) -> None:
        self.callback(event)


def safe_emit(sink: EventSink, event: Event) -> None:
    """
    Emit an event without letting a broken observer take down the pipeline.

    Observer errors are logged; they never change a task's outcome.
    """
    try:
        sink.emit(event)
    except Exception as e:
        logger.warning(f"Event sink failed on {event.name}: {e}")
