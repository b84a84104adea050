"""Remote speech transcription: upload, create job, poll, download."""

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Protocol
import logging

import httpx

from ..exceptions import (
    ApiError,
    ConfigError,
    FilesystemError,
    PollingTimeoutError,
    TranscriptionJobError,
)
from ..models.config import RetryPolicy, TranscriptionConfig
from ..models.task import LogCategory
from .cancellation import CancellationToken, SleepFunc
from .events import TRANSCRIPTION_COMPLETE, TRANSCRIPTION_POLLING, TRANSCRIPTION_STARTED
from .http import json_body, send
from .retry import RetryingOperation
from .task_log import TaskReporter

logger = logging.getLogger(__name__)


class RemoteStatus(Enum):
    """Job status reported by the transcription backend."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    UNKNOWN = "unknown"

    @classmethod
    def from_remote(cls, value: Optional[str]) -> "RemoteStatus":
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_terminal(self) -> bool:
        return self in (RemoteStatus.COMPLETED, RemoteStatus.ERROR)


@dataclass(frozen=True)
class JobStatus:
    """One status query result."""

    status: RemoteStatus
    raw: str
    error: Optional[str] = None
    progress: Optional[int] = None


class TranscriptionBackend(Protocol):
    """Wire protocol of a transcription service."""

    async def upload(self, client: httpx.AsyncClient, filename: str, data: bytes) -> str:
        """Send audio, return an asset reference."""
        ...

    async def create_job(self, client: httpx.AsyncClient, asset_ref: str) -> str:
        """Start transcription of an uploaded asset, return the job id."""
        ...

    async def get_status(self, client: httpx.AsyncClient, job_id: str) -> JobStatus:
        ...

    async def download_result(self, client: httpx.AsyncClient, job_id: str) -> str:
        """Fetch the finished transcript as SRT text."""
        ...


class RelayBackend:
    """
    The project's transcription relay service.

    Upload and job creation happen in a single multipart request, so
    :meth:`create_job` just hands back the job id returned by :meth:`upload`.
    """

    DEFAULT_BASE_URL = "http://localhost:3000/api"

    def __init__(self, config: TranscriptionConfig):
        self.config = config
        self.base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")

    async def upload(self, client: httpx.AsyncClient, filename: str, data: bytes) -> str:
        response = await send(
            client,
            "POST",
            f"{self.base_url}/transcriptions",
            "Upload failed",
            timeout=self.config.upload_timeout,
            files={"audio_file": (filename, data, "audio/wav")},
            data={
                "language_detection": str(self.config.language_detection).lower(),
                "speaker_labels": str(self.config.speaker_labels).lower(),
            },
        )
        body = json_body(response, "Upload failed")
        if not body.get("job_id"):
            raise ApiError("Upload failed: response has no job_id", response.status_code)
        return body["job_id"]

    async def create_job(self, client: httpx.AsyncClient, asset_ref: str) -> str:
        return asset_ref

    async def get_status(self, client: httpx.AsyncClient, job_id: str) -> JobStatus:
        response = await send(
            client,
            "GET",
            f"{self.base_url}/transcriptions/{job_id}",
            f"Status polling failed (Job ID: {job_id})",
            timeout=self.config.poll_timeout,
        )
        body = json_body(response, "Status polling failed")
        raw = str(body.get("status", ""))
        return JobStatus(
            status=RemoteStatus.from_remote(raw),
            raw=raw,
            error=body.get("error"),
            progress=body.get("progress"),
        )

    async def download_result(self, client: httpx.AsyncClient, job_id: str) -> str:
        response = await send(
            client,
            "GET",
            f"{self.base_url}/transcriptions/{job_id}/srt",
            f"SRT download failed (Job ID: {job_id})",
            timeout=self.config.download_timeout,
        )
        return response.text


class AssemblyAIBackend:
    """Direct AssemblyAI v2 API: separate upload and transcript creation."""

    DEFAULT_BASE_URL = "https://api.eu.assemblyai.com"

    def __init__(self, config: TranscriptionConfig):
        if not config.api_key:
            raise ConfigError("The assemblyai backend requires transcription.api_key")
        self.config = config
        self.base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")

    @property
    def headers(self) -> dict:
        return {"Authorization": self.config.api_key}

    async def upload(self, client: httpx.AsyncClient, filename: str, data: bytes) -> str:
        response = await send(
            client,
            "POST",
            f"{self.base_url}/v2/upload",
            "Upload failed",
            timeout=self.config.upload_timeout,
            headers={**self.headers, "Content-Type": "application/octet-stream"},
            content=data,
        )
        body = json_body(response, "Upload failed")
        if not body.get("upload_url"):
            raise ApiError("Upload failed: response has no upload_url", response.status_code)
        return body["upload_url"]

    async def create_job(self, client: httpx.AsyncClient, asset_ref: str) -> str:
        response = await send(
            client,
            "POST",
            f"{self.base_url}/v2/transcript",
            "Create transcript failed",
            timeout=self.config.poll_timeout,
            headers=self.headers,
            json={
                "audio_url": asset_ref,
                "language_detection": self.config.language_detection,
                "speaker_labels": self.config.speaker_labels,
            },
        )
        body = json_body(response, "Create transcript failed")
        if not body.get("id"):
            raise ApiError("Create transcript failed: response has no id", response.status_code)
        return body["id"]

    async def get_status(self, client: httpx.AsyncClient, job_id: str) -> JobStatus:
        response = await send(
            client,
            "GET",
            f"{self.base_url}/v2/transcript/{job_id}",
            f"Status polling failed (Transcript ID: {job_id})",
            timeout=self.config.poll_timeout,
            headers=self.headers,
        )
        body = json_body(response, "Status polling failed")
        raw = str(body.get("status", ""))
        return JobStatus(status=RemoteStatus.from_remote(raw), raw=raw, error=body.get("error"))

    async def download_result(self, client: httpx.AsyncClient, job_id: str) -> str:
        response = await send(
            client,
            "GET",
            f"{self.base_url}/v2/transcript/{job_id}/srt",
            f"SRT download failed (Transcript ID: {job_id})",
            timeout=self.config.download_timeout,
            headers=self.headers,
        )
        return response.text


def create_backend(config: TranscriptionConfig) -> TranscriptionBackend:
    """Pick the backend named in the config."""
    if config.backend == "assemblyai":
        return AssemblyAIBackend(config)
    return RelayBackend(config)


class TranscriptionClient:
    """Drive one audio file through a remote transcription job."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Optional[TranscriptionConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        backend: Optional[TranscriptionBackend] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.http_client = http_client
        self.config = config or TranscriptionConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.backend = backend or create_backend(self.config)
        self.sleep = sleep

    def _retrying(
        self,
        name: str,
        reporter: TaskReporter,
        cancel_token: Optional[CancellationToken],
    ) -> RetryingOperation:
        return RetryingOperation(
            self.retry_policy,
            name,
            on_attempt_failed=reporter.retry_logger(LogCategory.TRANSCRIPTION),
            sleep=self.sleep,
            cancel_token=cancel_token,
        )

    async def transcribe(
        self,
        audio_path: Path,
        transcript_path: Path,
        reporter: TaskReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Path:
        """
        Upload, create a job, poll until it finishes and download the transcript.

        Args:
            audio_path: Extracted audio file.
            transcript_path: Where to write the downloaded SRT.
            reporter: Log/event outlet for the owning task.
            cancel_token: Stops retries and polling when cancelled.

        Returns:
            ``transcript_path``, once written.

        Raises:
            RetryExhaustedError: A call kept failing with network errors.
            ApiError: The backend rejected a request or the job errored.
            PollingTimeoutError: Job not finished within the polling budget.
            FilesystemError: Audio unreadable or transcript not writable.
        """
        reporter.log(LogCategory.METADATA, f"Starting transcription for: {audio_path}")

        try:
            data = await asyncio.to_thread(Path(audio_path).read_bytes)
        except OSError as e:
            raise FilesystemError(f"Failed to read audio file {audio_path}: {e}")

        reporter.log(LogCategory.METADATA, "Uploading audio to transcription backend...")
        asset_ref = await self._retrying("Upload audio", reporter, cancel_token).run(
            lambda: self.backend.upload(self.http_client, Path(audio_path).name, data)
        )
        job_id = await self._retrying("Create transcription job", reporter, cancel_token).run(
            lambda: self.backend.create_job(self.http_client, asset_ref)
        )
        reporter.log(LogCategory.TRANSCRIPTION, f"Upload complete. Job ID: {job_id}")
        reporter.emit(TRANSCRIPTION_STARTED, job_id=job_id)

        await self.poll(job_id, reporter, cancel_token)

        reporter.log(LogCategory.METADATA, "Downloading original SRT subtitle file...")
        content = await self._retrying("Download SRT", reporter, cancel_token).run(
            lambda: self.backend.download_result(self.http_client, job_id)
        )

        try:
            transcript_path.parent.mkdir(parents=True, exist_ok=True)
            transcript_path.write_text(content, encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"Failed to write transcript {transcript_path}: {e}")

        reporter.log(
            LogCategory.TRANSCRIPTION,
            f"Original SRT saved to temp: {transcript_path} (Job ID: {job_id})",
        )
        reporter.emit(
            TRANSCRIPTION_COMPLETE,
            temp_audio_path=str(audio_path),
            temp_transcript_path=str(transcript_path),
        )
        return transcript_path

    async def poll(
        self,
        job_id: str,
        reporter: TaskReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> JobStatus:
        """
        Query job status every ``poll_interval`` seconds until it is terminal.

        A failed status call is retried by :class:`RetryingOperation`; it does
        not consume extra poll attempts. Unrecognized statuses keep polling.

        Raises:
            TranscriptionJobError: The job reported ``error``.
            PollingTimeoutError: ``max_poll_attempts`` queries without a terminal status.
        """
        max_attempts = self.config.max_poll_attempts
        retrying = self._retrying("Poll transcription status", reporter, cancel_token)

        for attempt in range(1, max_attempts + 1):
            if cancel_token:
                await cancel_token.sleep(self.config.poll_interval, self.sleep)
            else:
                await self.sleep(self.config.poll_interval)

            result = await retrying.run(
                lambda: self.backend.get_status(self.http_client, job_id)
            )

            progress = f" ({result.progress}%)" if result.progress is not None else ""
            reporter.log(
                LogCategory.TRANSCRIPTION,
                f"Poll attempt {attempt}: Status = {result.raw}{progress} (Job ID: {job_id})",
            )
            reporter.emit(TRANSCRIPTION_POLLING, status=result.raw, attempt=attempt)

            if result.status is RemoteStatus.COMPLETED:
                reporter.log(
                    LogCategory.TRANSCRIPTION,
                    f"Transcription completed successfully! (Job ID: {job_id})",
                )
                return result

            if result.status is RemoteStatus.ERROR:
                raise TranscriptionJobError(
                    f"Transcription failed (Job ID: {job_id}): {result.error or 'Unknown error'}"
                )

            if result.status is RemoteStatus.UNKNOWN:
                reporter.log(
                    LogCategory.TRANSCRIPTION,
                    f"Unknown status: {result.raw} (Job ID: {job_id}), continuing to poll",
                )

        raise PollingTimeoutError(
            f"Transcription timeout: exceeded {max_attempts} polling attempts "
            f"({max_attempts * self.config.poll_interval:.0f}s, Job ID: {job_id})"
        )
