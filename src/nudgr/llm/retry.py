"""Backoff for transient provider failures.

Nudge generation runs under the engine's own timeout, so the defaults here
stay short: three retries at 1s, 2s and 4s fit inside the 30s generation
budget.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_PATTERN = re.compile(
    r"overloaded|rate.?limit|too many requests|"
    r"429|500|502|503|504|"
    r"service.?unavailable|server error|internal error|"
    r"connection.?error|timeout",
    re.IGNORECASE,
)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Matched against the lowercased exception class name
_RETRYABLE_TYPE_MARKERS = (
    "timeout",
    "connection",
    "overloaded",
    "ratelimit",
    "rate_limit",
)


@dataclass(frozen=True)
class RetryConfig:
    enabled: bool = True
    max_retries: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 8000

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before retry number ``attempt`` (0-based)."""
        return min(self.base_delay_ms * 2**attempt, self.max_delay_ms) / 1000


def is_retryable_error(error: Exception) -> bool:
    """Rate limits, 5xx responses, overload and connection problems."""
    if getattr(error, "status_code", None) in RETRYABLE_STATUS_CODES:
        return True
    type_name = type(error).__name__.lower()
    if any(marker in type_name for marker in _RETRYABLE_TYPE_MARKERS):
        return True
    return RETRYABLE_PATTERN.search(str(error)) is not None


async def with_retry(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    operation_name: str = "API call",
) -> T:
    """Await ``func()``, retrying transient failures with exponential backoff.

    Raises:
        The error itself when it is not transient, otherwise the last error
        once ``max_retries`` retries are used up.
    """
    config = config or RetryConfig()
    attempts = config.max_retries + 1 if config.enabled else 1

    for attempt in range(attempts):
        try:
            return await func()
        except Exception as e:
            last_attempt = attempt == attempts - 1
            if not config.enabled or not is_retryable_error(e):
                raise
            extra = {
                "operation": operation_name,
                "attempt": attempt + 1,
                "error.type": type(e).__name__,
            }
            if last_attempt:
                logger.warning(
                    "retry_exhausted", extra={**extra, "error.message": str(e)}
                )
                raise
            delay_s = config.delay_for(attempt)
            logger.info(
                "retry_attempt", extra={**extra, "retry_delay_s": round(delay_s, 1)}
            )
            await asyncio.sleep(delay_s)

    raise AssertionError("unreachable")
