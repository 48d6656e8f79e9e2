"""Generation counter and pause gate shared by the game loop and the control surface."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class GenerationCounter:
    """Monotonic epoch number. Advancing it invalidates every in-flight round.

    Rounds take a snapshot with ``current`` when they start and check
    ``is_current`` before committing anything.
    """

    def __init__(self) -> None:
        self._value = 0

    @property
    def current(self) -> int:
        return self._value

    def is_current(self, generation: int) -> bool:
        return generation == self._value

    def advance(self) -> int:
        self._value += 1
        logger.info("Generation advanced to %d", self._value)
        return self._value


class PauseGate:
    """Blocks new rounds from starting while paused. Never interrupts a round."""

    def __init__(
        self,
        poll_interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.poll_interval = poll_interval
        self._paused = False
        self._sleep = sleep

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    async def wait_until_resumed(self) -> None:
        """Poll until the gate is open; returns immediately if not paused."""
        if self._paused:
            logger.info("Paused, waiting for resume")
        while self._paused:
            await self._sleep(self.poll_interval)
