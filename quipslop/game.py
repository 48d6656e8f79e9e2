"""Top-level game loop: sequential rounds, standings, archive and the control surface."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from quipslop.controls import GenerationCounter, PauseGate
from quipslop.models import Participant, RoundRecord
from quipslop.observers import StateBroadcaster
from quipslop.orchestrator import RoundOrchestrator
from quipslop.roles import MIN_POOL_SIZE, InsufficientPoolError, assign_roles
from quipslop.scoring import ScoringRule, apply_award, standings_award
from quipslop.snapshot import state_snapshot
from quipslop.storage import RoundStore

logger = logging.getLogger(__name__)

# Rounds kept in memory for observers; the archive holds the rest.
_MAX_IN_MEMORY_HISTORY = 100


class GameLoop:
    """Owns the standings, the active-round slot and the round history.

    All mutations happen on the event loop thread, so ``pause``, ``resume``
    and ``reset`` are atomic with respect to the round-boundary checks in
    ``run``.
    """

    def __init__(
        self,
        pool: Sequence[Participant],
        orchestrator: RoundOrchestrator,
        store: RoundStore,
        generations: GenerationCounter,
        pause_gate: PauseGate,
        broadcaster: StateBroadcaster | None = None,
        *,
        scoring: ScoringRule = ScoringRule.WIN,
        round_delay: float = 5.0,
        history_limit: int = 10,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ) -> None:
        if len(pool) < MIN_POOL_SIZE:
            raise InsufficientPoolError(
                f"Need at least {MIN_POOL_SIZE} participants, got {len(pool)}"
            )
        self._pool = list(pool)
        self._orchestrator = orchestrator
        self._store = store
        self._generations = generations
        self._pause = pause_gate
        self.broadcaster = broadcaster or StateBroadcaster()
        self._scoring = scoring
        self._round_delay = round_delay
        self._history_limit = history_limit
        self._sleep = sleep
        self._rng = rng

        self.active: RoundRecord | None = None
        self.completed: list[RoundRecord] = []
        self.done = False
        self.total_rounds: int | None = None
        self._standings = self._empty_standings()
        self._last_number = 0

    def _empty_standings(self) -> dict[str, int]:
        return {p.name: 0 for p in self._pool}

    @property
    def standings(self) -> dict[str, int]:
        return dict(self._standings)

    @property
    def generation(self) -> int:
        return self._generations.current

    @property
    def paused(self) -> bool:
        return self._pause.paused

    # ── Observation ─────────────────────────────────────────────────────────

    def snapshot(self) -> dict[str, Any]:
        return state_snapshot(
            active=self.active,
            completed=self.completed,
            standings=self._standings,
            paused=self._pause.paused,
            done=self.done,
            generation=self._generations.current,
            total_rounds=self.total_rounds,
            history_limit=self._history_limit,
        )

    def publish(self) -> None:
        self.broadcaster.notify(self.snapshot())

    # ── Control surface ─────────────────────────────────────────────────────

    def pause(self) -> None:
        self._pause.pause()
        logger.info("Game paused")
        self.publish()

    def resume(self) -> None:
        self._pause.resume()
        logger.info("Game resumed")
        self.publish()

    def reset(self) -> None:
        """Invalidate in-flight work and wipe standings, history and archive."""
        generation = self._generations.advance()
        self.active = None
        self.completed = []
        self._standings = self._empty_standings()
        try:
            self._store.clear_all()
        except Exception:
            logger.exception("Failed to clear round archive during reset")
            # Rows survived, so numbering continues past them.
            self._last_number = self._store.latest_round_number() or 0
        else:
            self._last_number = 0
        logger.info("Game reset, now on generation %d", generation)
        self.publish()

    # ── Loop ────────────────────────────────────────────────────────────────

    def expected_round_number(self) -> int:
        return self._last_number + 1

    async def run(self, total_rounds: int | None = None) -> None:
        """Play ``total_rounds`` rounds, or forever when None.

        Numbering resumes from the archive. After a reset the loop resyncs to
        the archive-derived number and the round budget restarts from there.
        """
        self.total_rounds = total_rounds
        self.done = False
        self._last_number = self._store.latest_round_number() or 0

        number = self.expected_round_number()
        end = None if total_rounds is None else number + total_rounds - 1
        logger.info(
            "Starting game at round %d (%s rounds, %d participants)",
            number,
            "infinite" if total_rounds is None else total_rounds,
            len(self._pool),
        )
        self.publish()

        while end is None or number <= end:
            await self._pause.wait_until_resumed()
            generation = self._generations.current

            expected = self.expected_round_number()
            if number != expected:
                logger.info("Round %d out of sequence, resyncing to %d", number, expected)
                number = expected
                if total_rounds is not None:
                    end = number + total_rounds - 1

            crashed = False
            try:
                await self._play_round(number, generation)
            except Exception:
                logger.exception("Round %d crashed", number)
                crashed = True
                if self._generations.is_current(generation):
                    self.active = None
                    self.publish()

            if not self._generations.is_current(generation):
                # Reset during the round: restart numbering and the budget.
                number = self.expected_round_number()
                if total_rounds is not None:
                    end = number + total_rounds - 1
                continue

            # A crashed round still spends its number and its slot in the budget.
            self._last_number = number
            number += 1
            if crashed:
                await self._sleep(self._round_delay)

        self.done = True
        logger.info("Game complete")
        self.publish()

    async def _play_round(self, number: int, generation: int) -> None:
        roles = assign_roles(self._pool, self._rng)

        def on_update(rnd: RoundRecord) -> None:
            if self._generations.is_current(rnd.generation):
                self.active = rnd
                self.publish()

        rnd = await self._orchestrator.run_round(number, roles, generation, on_update)
        if rnd is None or not self._generations.is_current(generation):
            return

        if rnd.prompt is None:
            # Prompt phase failed: terminal round with no score.
            self._finish(rnd)
            return

        apply_award(self._standings, standings_award(rnd, self._scoring))
        self.publish()

        await self._sleep(self._round_delay)
        if not self._generations.is_current(generation):
            return
        self._finish(rnd)

    def _finish(self, rnd: RoundRecord) -> None:
        try:
            self._store.archive(rnd)
        except Exception:
            logger.exception("Failed to archive round %d", rnd.number)
        self._last_number = rnd.number
        self.completed = (self.completed + [rnd])[-_MAX_IN_MEMORY_HISTORY:]
        self.active = None
        self.publish()
