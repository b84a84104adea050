"""Bounded retry with exponential backoff for network calls."""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar
import logging

from ..exceptions import NetworkError, RetryExhaustedError
from ..models.config import RetryPolicy
from .cancellation import CancellationToken, SleepFunc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryingOperation:
    """
    Run a fallible async operation with bounded retry and exponential backoff.

    Only :class:`NetworkError` is retried. Any other exception (notably
    :class:`ApiError`) propagates on the first occurrence. When every attempt
    fails, :class:`RetryExhaustedError` is raised with the last network error
    attached.
    """

    def __init__(
        self,
        policy: RetryPolicy,
        name: str,
        on_attempt_failed: Optional[Callable[[str], None]] = None,
        sleep: SleepFunc = asyncio.sleep,
        cancel_token: Optional[CancellationToken] = None,
    ):
        """
        Args:
            policy: Attempt count and delay sequence.
            name: Human readable operation name used in log messages.
            on_attempt_failed: Receives one message per failed attempt.
            sleep: Sleep function, replaced by a fake clock in tests.
            cancel_token: Optional token checked before each attempt.
        """
        self.policy = policy
        self.name = name
        self.on_attempt_failed = on_attempt_failed
        self.sleep = sleep
        self.cancel_token = cancel_token

    def _report(self, message: str) -> None:
        logger.debug(message)
        if self.on_attempt_failed:
            self.on_attempt_failed(message)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``operation`` until it succeeds or the policy is exhausted.

        Args:
            operation: Zero-argument coroutine function, called once per attempt.

        Returns:
            The operation's result.

        Raises:
            RetryExhaustedError: All attempts failed with retryable errors.
            TaskCancelledError: The cancel token fired between attempts.
        """
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            if self.cancel_token:
                self.cancel_token.raise_if_cancelled()

            try:
                return await operation()
            except NetworkError as e:
                if attempt == max_attempts:
                    self._report(
                        f"{self.name} failed (attempt {attempt}/{max_attempts}), giving up: {e}"
                    )
                    raise RetryExhaustedError(self.name, max_attempts, e) from e

                delay = self.policy.delay_for(attempt)
                self._report(
                    f"{self.name} failed (attempt {attempt}/{max_attempts}), "
                    f"retrying in {int(delay * 1000)}ms: {e}"
                )

                if self.cancel_token:
                    await self.cancel_token.sleep(delay, self.sleep)
                else:
                    await self.sleep(delay)

        # Unreachable: the loop either returns or raises
        raise AssertionError("retry loop exited without result")
