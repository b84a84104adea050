"""Subtitle translation through a remote translation service."""

import asyncio
from dataclasses import dataclass
from typing import Optional
import logging

import httpx

from ..exceptions import ApiError, RetryExhaustedError
from ..models.config import RetryPolicy, TranslationConfig
from ..models.task import LogCategory
from .cancellation import CancellationToken, SleepFunc
from .http import json_body, send
from .retry import RetryingOperation
from .subtitle import SubtitleProcessor
from .task_log import TaskReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationResult:
    """Translated subtitle content."""

    content: str
    entry_count: int
    fell_back: bool = False  # True when ``content`` is the untranslated source


class TranslationClient:
    """
    Translate SRT content, preferring availability over correctness.

    When every retry attempt fails with a network error, the original content
    is returned instead of failing, so the user always gets a subtitle file.
    Permanent API errors are not masked and propagate to the caller.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        config: Optional[TranslationConfig] = None,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        self.http_client = http_client
        self.config = config or TranslationConfig()
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep

    async def _request(self, srt_content: str, target_language: str) -> TranslationResult:
        payload = {
            "srt_content": srt_content,
            "target_language": target_language,
        }
        if self.config.source_language:
            payload["source_language"] = self.config.source_language
        if self.config.model:
            payload["model"] = self.config.model

        response = await send(
            self.http_client,
            "POST",
            f"{self.config.base_url.rstrip('/')}/translate",
            "Translation failed",
            timeout=self.config.timeout,
            json=payload,
        )
        body = json_body(response, "Translation failed")
        if "translated_srt" not in body:
            raise ApiError("Translation failed: response has no translated_srt", response.status_code)

        entry_count = body.get("entry_count")
        if not isinstance(entry_count, int):
            entry_count = SubtitleProcessor.count_entries(body["translated_srt"])

        return TranslationResult(content=body["translated_srt"], entry_count=entry_count)

    async def translate(
        self,
        srt_content: str,
        target_language: str,
        reporter: TaskReporter,
        cancel_token: Optional[CancellationToken] = None,
    ) -> TranslationResult:
        """
        Translate subtitle content.

        Args:
            srt_content: Source SRT text.
            target_language: Output language name or code.
            reporter: Log/event outlet for the owning task.
            cancel_token: Stops retries when cancelled.

        Returns:
            Translated content, or the original content with ``fell_back`` set
            when all attempts failed with network errors.

        Raises:
            ApiError: The service rejected the request.
            TaskCancelledError: Cancelled between attempts.
        """
        source_language = self.config.source_language
        if source_language and source_language.lower() == target_language.lower():
            reporter.log(
                LogCategory.TRANSLATION,
                "Source and target languages are the same, skipping translation",
            )
            return TranslationResult(
                content=srt_content,
                entry_count=SubtitleProcessor.count_entries(srt_content),
            )

        reporter.log(
            LogCategory.TRANSLATION,
            f"Sending SRT to translation server: {self.config.base_url} (target: {target_language})",
        )

        retrying = RetryingOperation(
            self.retry_policy,
            "Translation",
            on_attempt_failed=reporter.retry_logger(LogCategory.TRANSLATION),
            sleep=self.sleep,
            cancel_token=cancel_token,
        )

        try:
            result = await retrying.run(lambda: self._request(srt_content, target_language))
        except RetryExhaustedError as e:
            reporter.log(
                LogCategory.ERROR,
                f"Translation failed: {e.last_error}. Falling back to original SRT.",
            )
            return TranslationResult(
                content=srt_content,
                entry_count=SubtitleProcessor.count_entries(srt_content),
                fell_back=True,
            )

        reporter.log(
            LogCategory.TRANSLATION,
            f"Translation complete: {result.entry_count} entries translated",
        )
        return result
