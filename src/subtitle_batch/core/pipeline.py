"""Per-task state machine: extract -> transcribe -> translate."""

from pathlib import Path
from typing import Optional
import logging

from ..exceptions import (
    ApiError,
    ConfigError,
    ProcessExecutionError,
    SubtitleBatchError,
    TaskCancelledError,
)
from ..models.config import BatchConfig
from ..models.task import LogCategory, Stage, Task, Workflow
from .audio import AudioExtractor
from .cancellation import CancellationToken
from .cleanup import CleanupManager
from .events import (
    TASK_COMPLETED,
    TASK_FAILED,
    TASK_PROGRESS,
    TASK_STARTED,
    TRANSLATION_COMPLETE,
    TRANSLATION_STARTED,
    EventSink,
)
from .subtitle import SubtitleProcessor, output_file_name, transcript_file_name
from .task_log import TaskLogger, TaskReporter
from .transcription import TranscriptionClient
from .translation import TranslationClient, TranslationResult

logger = logging.getLogger(__name__)

_FAILURE_PREFIX = {
    Stage.PENDING: "Task failed",
    Stage.EXTRACTING: "Audio extraction failed",
    Stage.TRANSCRIBING: "Transcription failed",
    Stage.TRANSLATING: "Translation failed",
}


class TaskPipeline:
    """
    Drive one task through its stages.

    The pipeline owns its task for the whole run. Stage transitions, events and
    log entries for one task are strictly ordered; :meth:`run` always leaves the
    task in a terminal stage and never raises for task-level failures.
    """

    def __init__(
        self,
        task: Task,
        config: BatchConfig,
        extractor: AudioExtractor,
        transcription_client: TranscriptionClient,
        translation_client: TranslationClient,
        task_logger: TaskLogger,
        event_sink: EventSink,
        cancel_token: Optional[CancellationToken] = None,
    ):
        self.task = task
        self.config = config
        self.extractor = extractor
        self.transcription_client = transcription_client
        self.translation_client = translation_client
        self.reporter = TaskReporter(task.id, task_logger, event_sink)
        self.cleanup = CleanupManager(task_logger)
        self.cancel_token = cancel_token or CancellationToken()
        self.subtitles = SubtitleProcessor(encoding=config.output.encoding)
        self._last_progress = -1

    @property
    def scratch_dir(self) -> Path:
        return self.config.scratch_dir / self.task.id

    def _advance(self, stage: Stage) -> None:
        previous = self.task.stage
        self.task.advance(stage)
        self.reporter.log(
            LogCategory.METADATA, f"Stage changed: {previous.value} -> {stage.value}"
        )

    def _on_progress(self, progress: float) -> None:
        percent = int(progress)
        if percent != self._last_progress:
            self._last_progress = percent
            self.reporter.emit(TASK_PROGRESS, progress=percent)

    async def run(self) -> Task:
        """Run the task to a terminal stage and return it."""
        task = self.task
        self.reporter.emit(TASK_STARTED, input_path=str(task.input_path), workflow=task.workflow.value)

        try:
            output_path = await self._run_stages()
        except TaskCancelledError as e:
            self._fail(f"Task cancelled: {e}")
        except ProcessExecutionError as e:
            self._fail(f"Audio extraction failed (exit code {e.exit_code}): {e.stderr_tail}")
        except SubtitleBatchError as e:
            self._fail(f"{_FAILURE_PREFIX.get(task.stage, 'Task failed')}: {e}")
        except Exception as e:
            logger.exception(f"Unexpected error in task {task.id}")
            self._fail(f"Unexpected error: {type(e).__name__}: {e}")
        else:
            self._complete(output_path)

        return task

    async def _run_stages(self) -> Path:
        task = self.task
        self.reporter.log(
            LogCategory.METADATA,
            f"Task started: {task.name} (workflow: {task.workflow.value}, "
            f"target language: {task.target_language or 'none'})",
        )
        self.cancel_token.raise_if_cancelled()

        if task.workflow is Workflow.TRANSLATE:
            if not task.target_language:
                raise ConfigError("Direct translation requires a target language")
            self._advance(Stage.TRANSLATING)
            content, encoding = self.subtitles.read_text(task.input_path)
            self.reporter.log(
                LogCategory.METADATA, f"Loaded subtitle file {task.name} ({encoding})"
            )
            output_path = await self._translate(content, task.input_path)
        else:
            transcript_path = await self._extract_and_transcribe()
            content, _ = self.subtitles.read_text(transcript_path)
            if task.target_language:
                output_path = await self._translate(content, transcript_path)
            else:
                output_path = self.config.output_dir / output_file_name(task.input_path, None)
                self.subtitles.save_text(content, output_path)

        return output_path

    async def _extract_and_transcribe(self) -> Path:
        task = self.task

        self._advance(Stage.EXTRACTING)
        self.reporter.log(LogCategory.PROCESS, f"Extracting audio from {task.input_path}")
        audio_path = await self.extractor.extract(
            task.input_path,
            self.scratch_dir,
            on_progress=self._on_progress,
            cancel_token=self.cancel_token,
        )
        task.temp_audio_path = audio_path
        self.reporter.log(LogCategory.PROCESS, f"Audio extracted to {audio_path}")

        self._advance(Stage.TRANSCRIBING)
        transcript_path = await self.transcription_client.transcribe(
            audio_path,
            self.scratch_dir / transcript_file_name(task.input_path),
            self.reporter,
            cancel_token=self.cancel_token,
        )
        task.temp_transcript_path = transcript_path
        return transcript_path

    async def _translate(self, content: str, source_path: Path) -> Path:
        task = self.task
        language = task.target_language
        assert language is not None

        if task.stage is not Stage.TRANSLATING:
            self._advance(Stage.TRANSLATING)

        self.reporter.log(LogCategory.METADATA, f"Starting translation to {language}...")
        self.reporter.emit(TRANSLATION_STARTED, source_path=str(source_path))

        try:
            result = await self.translation_client.translate(
                content, language, self.reporter, cancel_token=self.cancel_token
            )
        except ApiError as e:
            # A rejected request still leaves the user with a subtitle file
            self.reporter.log(
                LogCategory.ERROR,
                f"Translation rejected by server: {e}. Falling back to original SRT.",
            )
            result = TranslationResult(
                content=content,
                entry_count=self.subtitles.count_entries(content),
                fell_back=True,
            )

        output_path = self.config.output_dir / output_file_name(task.input_path, language)
        self.subtitles.save_text(result.content, output_path)

        if result.fell_back:
            self.reporter.log(LogCategory.METADATA, f"Original SRT saved to: {output_path}")
        else:
            self.reporter.log(LogCategory.TRANSLATION, f"Translated SRT saved to: {output_path}")

        self.reporter.emit(
            TRANSLATION_COMPLETE, output_path=str(output_path), fell_back=result.fell_back
        )
        return output_path

    def _complete(self, output_path: Path) -> None:
        task = self.task
        task.complete(output_path)
        try:
            self.cleanup.reconcile(task)
            self.reporter.log(LogCategory.METADATA, f"Task completed: {output_path}")
        except SubtitleBatchError as e:
            # The output file exists; a log write failure cannot undo that
            logger.error(f"Could not record completion of task {task.id}: {e}")
        self.reporter.emit(TASK_COMPLETED, output_path=str(output_path), task=task.snapshot())

    def _fail(self, error: str) -> None:
        task = self.task
        task.fail(error)
        try:
            self.reporter.log(LogCategory.ERROR, error)
            self.cleanup.reconcile(task)
        except SubtitleBatchError as e:
            logger.error(f"Could not record failure of task {task.id}: {e}")
        self.reporter.emit(TASK_FAILED, error=error, task=task.snapshot())
