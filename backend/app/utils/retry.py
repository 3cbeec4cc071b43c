"""Batch retry with exponential backoff and jitter.

Shared by the embedding generator and the vector indexer. Each batch is
retried independently:
- attempt n waits base * 2**(n-1) ms plus uniform jitter before the next try
- ValidationError is raised immediately, never retried
- exhausted rate-limit failures raise RateLimitError, anything else
  ProcessingError
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from backend.app.config import Settings
from backend.app.errors import ProcessingError, RateLimitError, ValidationError

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for one batch."""

    max_attempts: int = 3
    base_backoff_ms: int = 500
    jitter_max_ms: int = 200

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_backoff_ms=settings.retry_base_backoff_ms,
            jitter_max_ms=settings.retry_jitter_max_ms,
        )

    def backoff_ms(self, attempt: int) -> float:
        """Delay after the given 1-based failed attempt."""
        return self.base_backoff_ms * 2 ** (attempt - 1) + random.uniform(0, self.jitter_max_ms)


@dataclass(frozen=True)
class BatchContext:
    """Identifies a batch in logs and metrics."""

    operation: str
    batch_index: int
    batch_size: int


def is_rate_limit_error(error: BaseException) -> bool:
    """Check whether an upstream failure looks like rate limiting."""
    for attr in ("status_code", "status"):
        if getattr(error, attr, None) == 429:
            return True
    message = str(error).lower()
    return "rate limit" in message or "429" in message


# Metrics interface (implemented by utils.metrics)
class BatchMetrics:
    """Interface for batch metrics."""

    def record_batch_latency(self, operation: str, outcome: str, latency_ms: float) -> None:
        """Record batch attempt latency."""
        pass

    def inc_batch_error(self, operation: str, reason: str) -> None:
        """Increment batch error counter."""
        pass


# Logging interface (implemented by utils.logging)
class BatchLogger:
    """Interface for structured batch logging."""

    def log_attempt(
        self,
        ctx: BatchContext,
        attempt: int,
        outcome: str,
        latency_ms: float,
        error_reason: str | None = None,
    ) -> None:
        """Log batch attempt."""
        pass


class BatchRetrier:
    """Runs one batch operation under the retry policy."""

    def __init__(
        self,
        operation: str,
        config: RetryConfig | None = None,
        metrics: BatchMetrics | None = None,
        logger: BatchLogger | None = None,
        sleep_fn: Callable[[float], Awaitable[None]] | None = None,
    ) -> None:
        """Initialize retrier.

        Args:
            operation: Name used in logs, metrics and error messages
            config: Retry policy (default: 3 attempts, 500ms base, 200ms jitter)
            metrics: Metrics recorder (optional, defaults to no-op)
            logger: Structured logger (optional, defaults to no-op)
            sleep_fn: Injectable sleep function (default: asyncio.sleep)
        """
        self.operation = operation
        self.config = config or RetryConfig()
        self._metrics = metrics or BatchMetrics()
        self._logger = logger or BatchLogger()
        self._sleep = sleep_fn or asyncio.sleep

    async def run(
        self,
        fn: Callable[[], Awaitable[T]],
        *,
        batch_index: int = 0,
        batch_size: int = 0,
    ) -> T:
        """Execute ``fn`` with retries.

        Raises:
            ValidationError: Raised by ``fn``; propagated without retry
            RateLimitError: Rate limited on every attempt
            ProcessingError: Any other failure on every attempt
        """
        ctx = BatchContext(self.operation, batch_index, batch_size)
        last_error: Exception | None = None

        for attempt in range(1, self.config.max_attempts + 1):
            attempt_start = time.monotonic()
            try:
                result = await fn()
            except ValidationError:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                self._metrics.inc_batch_error(self.operation, "validation")
                self._logger.log_attempt(
                    ctx, attempt, "invalid", elapsed_ms, error_reason="validation"
                )
                raise
            except Exception as e:
                elapsed_ms = (time.monotonic() - attempt_start) * 1000
                last_error = e
                reason = "rate_limit" if is_rate_limit_error(e) else "error"

                self._metrics.record_batch_latency(self.operation, reason, elapsed_ms)
                self._metrics.inc_batch_error(self.operation, reason)
                self._logger.log_attempt(
                    ctx, attempt, reason, elapsed_ms, error_reason=type(e).__name__
                )

                if attempt < self.config.max_attempts:
                    await self._sleep(self.config.backoff_ms(attempt) / 1000)
                continue

            elapsed_ms = (time.monotonic() - attempt_start) * 1000
            self._metrics.record_batch_latency(self.operation, "success", elapsed_ms)
            self._logger.log_attempt(ctx, attempt, "success", elapsed_ms)
            return result

        assert last_error is not None
        details = {
            "operation": self.operation,
            "batch_index": batch_index,
            "attempts": self.config.max_attempts,
        }
        if is_rate_limit_error(last_error):
            raise RateLimitError(
                f"{self.operation} batch {batch_index} rate limited after "
                f"{self.config.max_attempts} attempts",
                details=details,
            ) from last_error
        raise ProcessingError(
            f"{self.operation} batch {batch_index} failed after "
            f"{self.config.max_attempts} attempts: {last_error}",
            details=details,
        ) from last_error
