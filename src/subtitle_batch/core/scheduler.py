"""Bounded-concurrency scheduler for task batches."""

import asyncio
from contextlib import asynccontextmanager
import logging
from typing import AsyncIterator, Dict, List, Optional

import httpx

from ..models.config import BatchConfig
from ..models.task import Stage, Task, TaskBatch
from .audio import AudioExtractor
from .cancellation import CancellationToken, SleepFunc
from .events import BATCH_COMPLETE, TASK_FAILED, Event, EventSink, NullEventSink, safe_emit
from .pipeline import TaskPipeline
from .task_log import TaskLogger
from .transcription import TranscriptionClient
from .translation import TranslationClient

logger = logging.getLogger(__name__)


class Scheduler:
    """
    Run every task of a batch as an independent pipeline.

    At most ``concurrency_limit`` pipelines are active at once. A failing task
    never affects its siblings, and tasks are never retried at this level.
    """

    def __init__(
        self,
        event_sink: Optional[EventSink] = None,
        task_logger: Optional[TaskLogger] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        extractor: Optional[AudioExtractor] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize scheduler.

        Args:
            event_sink: Observer for lifecycle events.
            task_logger: Per-task log sink. Defaults to one under the batch's log_dir.
            http_client: Shared HTTP client. A client is created per batch if None.
            extractor: Audio extractor. Built from the batch config if None.
            sleep: Sleep function for backoff and polling waits.
        """
        self.event_sink = event_sink or NullEventSink()
        self.task_logger = task_logger
        self.http_client = http_client
        self.extractor = extractor
        self.sleep = sleep

        self._tasks: List[Task] = []
        self._tokens: Dict[str, CancellationToken] = {}
        self._active = 0
        self.max_active_observed = 0

    def _token_for(self, task_id: str) -> CancellationToken:
        if task_id not in self._tokens:
            self._tokens[task_id] = CancellationToken()
        return self._tokens[task_id]

    def cancel(self, task_id: str, reason: str = "Task cancelled by user") -> bool:
        """
        Request cancellation of a task.

        Returns:
            False if the task already finished or is not part of the
            running batch, True otherwise.
        """
        known = {task.id: task for task in self._tasks}
        if known and task_id not in known:
            return False
        if task_id in known and known[task_id].is_terminal:
            return False
        self._token_for(task_id).cancel(reason)
        logger.info(f"Cancellation requested for task {task_id}")
        return True

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http_client is not None:
            yield self.http_client
            return
        async with httpx.AsyncClient(follow_redirects=True) as client:
            yield client

    async def _run_pipeline(self, semaphore: asyncio.Semaphore, pipeline: TaskPipeline) -> None:
        async with semaphore:
            self._active += 1
            self.max_active_observed = max(self.max_active_observed, self._active)
            logger.info(f"Processing: {pipeline.task.name} ({self._active} active)")
            try:
                await pipeline.run()
            except Exception as e:
                # Pipelines handle their own failures; this only isolates siblings from bugs
                logger.exception(f"Pipeline crashed for {pipeline.task.name}")
                task = pipeline.task
                if not task.is_terminal:
                    task.fail(f"Unexpected error: {e}")
                    safe_emit(
                        self.event_sink,
                        Event(TASK_FAILED, task.id, {"error": task.error, "task": task.snapshot()}),
                    )
            finally:
                self._active -= 1

            if pipeline.task.stage is Stage.COMPLETED:
                logger.info(f"Completed: {pipeline.task.name}")
            else:
                logger.error(f"Failed: {pipeline.task.name} - {pipeline.task.error}")

    async def run(self, batch: TaskBatch) -> List[Task]:
        """
        Run all tasks in a batch.

        Args:
            batch: Tasks plus shared configuration.

        Returns:
            List of all tasks, each in a terminal stage.
        """
        config: BatchConfig = batch.config
        self._tasks = list(batch.tasks)
        self._active = 0
        self.max_active_observed = 0

        task_logger = self.task_logger or TaskLogger(config.log_dir, self.event_sink)
        extractor = self.extractor or AudioExtractor(config.extraction)
        semaphore = asyncio.Semaphore(config.concurrency_limit)

        logger.info(
            f"Starting batch: {len(batch)} task(s), concurrency limit {config.concurrency_limit}"
        )

        async with self._http_client() as client:
            transcription = TranscriptionClient(
                client, config.transcription, config.retry, sleep=self.sleep
            )
            translation = TranslationClient(client, config.translation, config.retry, sleep=self.sleep)

            pipelines = [
                TaskPipeline(
                    task,
                    config,
                    extractor,
                    transcription,
                    translation,
                    task_logger,
                    self.event_sink,
                    cancel_token=self._token_for(task.id),
                )
                for task in batch.tasks
            ]
            await asyncio.gather(*(self._run_pipeline(semaphore, p) for p in pipelines))

        safe_emit(
            self.event_sink,
            Event(BATCH_COMPLETE, payload={
                "total": len(self._tasks),
                "completed": self.completed_count,
                "failed": self.failed_count,
            }),
        )
        return self._tasks

    @property
    def active_count(self) -> int:
        """Number of pipelines currently holding a slot."""
        return self._active

    @property
    def pending_count(self) -> int:
        """Get number of pending tasks."""
        return sum(1 for t in self._tasks if t.stage is Stage.PENDING)

    @property
    def completed_count(self) -> int:
        """Get number of completed tasks."""
        return sum(1 for t in self._tasks if t.stage is Stage.COMPLETED)

    @property
    def failed_count(self) -> int:
        """Get number of failed tasks."""
        return sum(1 for t in self._tasks if t.stage is Stage.FAILED)


def run_batch_sync(
    batch: TaskBatch,
    event_sink: Optional[EventSink] = None,
    task_logger: Optional[TaskLogger] = None,
) -> List[Task]:
    """
    Run batch processing synchronously.

    Args:
        batch: Tasks plus shared configuration.
        event_sink: Observer for lifecycle events.
        task_logger: Per-task log sink.

    Returns:
        List of all tasks with results.
    """
    scheduler = Scheduler(event_sink=event_sink, task_logger=task_logger)
    return asyncio.run(scheduler.run(batch))
