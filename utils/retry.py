"""Async retry with exponential backoff."""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from models.errors import should_retry as default_should_retry
from utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_s: float = 1.0
    max_delay_s: float = 10.0
    backoff_factor: float = 2.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before the attempt that follows ``attempt`` (1-based)."""
        delay = min(self.base_delay_s * self.backoff_factor ** (attempt - 1), self.max_delay_s)
        if self.jitter:
            delay *= 0.5 + random.random() / 2
        return delay


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    policy: RetryPolicy | None = None,
    should_retry: Callable[[BaseException], bool] = default_should_retry,
    before_attempt: Callable[[int], None] | None = None,
    label: str = "operation",
) -> T:
    """
    Run ``operation`` until it succeeds, the error is not retryable, or
    ``policy.max_attempts`` is reached. The last error is re-raised.

    ``before_attempt`` runs ahead of every attempt and may raise to abort
    (the orchestrator uses it to honour cancellation between attempts).
    """
    policy = policy or RetryPolicy()
    attempts = max(1, policy.max_attempts)

    for attempt in range(1, attempts + 1):
        if before_attempt is not None:
            before_attempt(attempt)
        try:
            return await operation()
        except Exception as e:
            if attempt == attempts or not should_retry(e):
                raise
            wait_time = policy.delay_for(attempt)
            logger.warning(
                f"{label} attempt {attempt} failed, retrying",
                extra={
                    "extra_fields": {
                        "attempt": attempt,
                        "max_attempts": attempts,
                        "wait_s": round(wait_time, 3),
                        "error_type": type(e).__name__,
                        "error": str(e),
                    }
                },
            )
            await asyncio.sleep(wait_time)

    raise RuntimeError("unreachable")
