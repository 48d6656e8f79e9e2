"""Bulk evaluation: many independent rounds in parallel, no archive, no live updates."""

import asyncio
import logging
import random
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from quipslop.controls import GenerationCounter
from quipslop.models import Participant, RoundRecord
from quipslop.orchestrator import RoundOrchestrator
from quipslop.roles import assign_roles
from quipslop.scoring import ScoringRule, apply_award, standings_award

logger = logging.getLogger(__name__)


@dataclass
class BulkResult:
    total_rounds: int
    concurrency: int
    rounds: list[RoundRecord] = field(default_factory=list)
    standings: dict[str, int] = field(default_factory=dict)
    completed: int = 0
    failed: int = 0
    duration_sec: float = 0.0


async def run_bulk(
    pool: Sequence[Participant],
    orchestrator: RoundOrchestrator,
    generations: GenerationCounter,
    total_rounds: int,
    concurrency: int,
    scoring: ScoringRule = ScoringRule.WIN,
    on_progress: Callable[[BulkResult], None] | None = None,
    rng: random.Random | None = None,
) -> BulkResult:
    """Run ``total_rounds`` rounds with at most ``concurrency`` in flight.

    A round counts as failed when its prompt phase exhausted retries or it
    raised; failed rounds contribute nothing to the standings.
    """
    if total_rounds < 1 or concurrency < 1:
        raise ValueError("total_rounds and concurrency must be positive")

    result = BulkResult(
        total_rounds=total_rounds,
        concurrency=concurrency,
        standings={p.name: 0 for p in pool},
    )
    numbers = iter(range(1, total_rounds + 1))
    start = time.monotonic()

    async def worker() -> None:
        for number in numbers:
            roles = assign_roles(pool, rng)
            try:
                rnd = await orchestrator.run_round(number, roles, generations.current)
            except Exception:
                logger.exception("Bulk round %d raised", number)
                result.failed += 1
            else:
                if rnd is None or rnd.prompt is None:
                    result.failed += 1
                else:
                    result.completed += 1
                    apply_award(result.standings, standings_award(rnd, scoring))
                if rnd is not None:
                    result.rounds.append(rnd)
            if on_progress is not None:
                on_progress(result)

    await asyncio.gather(*(worker() for _ in range(min(concurrency, total_rounds))))

    result.rounds.sort(key=lambda r: r.number)
    result.duration_sec = time.monotonic() - start
    logger.info(
        "Bulk run complete: %d completed, %d failed in %.1fs",
        result.completed,
        result.failed,
        result.duration_sec,
    )
    return result
