"""Custom exceptions for subtitle-batch."""

from typing import Optional


class SubtitleBatchError(Exception):
    """Base exception class."""

    pass


class ConfigError(SubtitleBatchError):
    """Configuration error."""

    pass


class SubtitleError(SubtitleBatchError):
    """Subtitle processing error."""

    pass


class FilesystemError(SubtitleBatchError):
    """Temp, log or output file could not be read or written."""

    pass


class ProcessSpawnError(SubtitleBatchError):
    """External binary could not be launched (missing, not executable)."""

    pass


class ProcessExecutionError(SubtitleBatchError):
    """External process exited with a non-zero code."""

    def __init__(self, exit_code: int, stderr_tail: str):
        self.exit_code = exit_code
        self.stderr_tail = stderr_tail
        message = f"Process exited with code {exit_code}"
        if stderr_tail:
            message = f"{message}: {stderr_tail}"
        super().__init__(message)


class NetworkError(SubtitleBatchError):
    """Transient network failure. Retryable."""

    pass


class ApiError(SubtitleBatchError):
    """Permanent API failure (bad credentials, malformed request). Not retried."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class TranscriptionJobError(ApiError):
    """Remote transcription job finished with an error status."""

    pass


class RetryExhaustedError(SubtitleBatchError):
    """All retry attempts failed with retryable errors."""

    def __init__(self, operation: str, attempts: int, last_error: Exception):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"{operation} failed after {attempts} attempts: {last_error}")


class PollingTimeoutError(SubtitleBatchError, TimeoutError):
    """Polling budget exhausted before the remote job reached a terminal state."""

    pass


class TaskCancelledError(SubtitleBatchError):
    """Task was cancelled by the user."""

    pass


class InvalidTransitionError(SubtitleBatchError):
    """Attempted to move a task backwards or out of a terminal stage."""

    pass
