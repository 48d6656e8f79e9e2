"""Retry with linear backoff around a single async backend call."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(Exception):
    """Raised when every attempt failed or returned an invalid result."""

    def __init__(self, label: str, attempts: int, last_error: BaseException | None) -> None:
        self.label = label
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"[{label}] All {attempts} attempts failed: {last_error}")


def _preview(value: object, limit: int = 100) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text if len(text) <= limit else text[:limit] + "..."


class RetryExecutor:
    """Runs an operation up to ``max_attempts`` times.

    The delay before attempt ``n + 1`` is ``n * base_delay`` seconds, so
    waits grow strictly between attempts. ``sleep`` is injectable so tests
    can record the delays instead of waiting them out.
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        validate: Callable[[T], bool],
        label: str = "unknown",
        max_attempts: int | None = None,
    ) -> T:
        """Return the first result that passes ``validate``.

        Raises:
            RetryExhausted: after ``max_attempts`` failed or invalid attempts,
                carrying the last exception or validation error.
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        last_error: BaseException | None = None

        for attempt in range(1, attempts + 1):
            try:
                result = await operation()
                if validate(result):
                    logger.info("[%s] Success on attempt %d: %s", label, attempt, _preview(result))
                    return result
                message = f"Validation failed (attempt {attempt}/{attempts})"
                logger.warning("[%s] %s: %s", label, message, _preview(result))
                last_error = ValueError(f"{message}: {_preview(result)}")
            except Exception as exc:
                logger.warning(
                    "[%s] Error on attempt %d/%d: %s", label, attempt, attempts, exc,
                )
                last_error = exc

            if attempt < attempts:
                await self._sleep(attempt * self.base_delay)

        logger.error("[%s] All %d attempts failed: %s", label, attempts, last_error)
        raise RetryExhausted(label, attempts, last_error)
