"""Round state machine: prompting -> answering -> voting -> done."""

import logging
import time
from collections.abc import Callable

from quipslop.controls import GenerationCounter
from quipslop.models import Phase, RoundRecord, TaskRecord, VoteRecord
from quipslop.phases import PhaseRunner
from quipslop.roles import RoundRoles
from quipslop.scoring import score_round

logger = logging.getLogger(__name__)

RoundListener = Callable[[RoundRecord], None]


class RoundOrchestrator:
    """Runs one round at a time against a PhaseRunner.

    The orchestrator is the only writer of the round's phase and score fields;
    task records are written by their own phase tasks. Every phase boundary
    re-checks the generation taken at round start, and a stale round is
    abandoned (``run_round`` returns None) without further writes.
    """

    def __init__(
        self,
        phases: PhaseRunner,
        generations: GenerationCounter,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._phases = phases
        self._generations = generations
        self._clock = clock

    def _abandon(self, rnd: RoundRecord) -> None:
        logger.info(
            "Round %d abandoned in %s: generation %d is stale (now %d)",
            rnd.number, rnd.phase.value, rnd.generation, self._generations.current,
        )

    async def run_round(
        self,
        number: int,
        roles: RoundRoles,
        generation: int,
        on_update: RoundListener | None = None,
    ) -> RoundRecord | None:
        """Play a full round.

        Returns the finished record (phase DONE), or None if a reset made the
        round stale. A round whose prompt phase failed is returned DONE with
        the prompt task's error set and no score.
        """
        if not self._generations.is_current(generation):
            return None

        contestant_a, contestant_b = roles.contestant_a, roles.contestant_b
        rnd = RoundRecord(
            number=number,
            prompter=roles.prompter,
            prompt_task=TaskRecord(participant=roles.prompter, started_at=self._clock()),
            contestants=(contestant_a, contestant_b),
            answer_tasks=(
                TaskRecord(participant=contestant_a, started_at=0.0),
                TaskRecord(participant=contestant_b, started_at=0.0),
            ),
            generation=generation,
        )

        def notify() -> None:
            if on_update is not None:
                on_update(rnd)

        logger.info(
            "=== Round %d === prompter=%s contestants=%s vs %s voters=%s",
            number,
            roles.prompter.name,
            contestant_a.name,
            contestant_b.name,
            [v.name for v in roles.voters],
        )
        notify()

        # Prompting
        prompted = await self._phases.run_prompt_phase(rnd, notify)
        if not self._generations.is_current(generation):
            self._abandon(rnd)
            return None
        if not prompted:
            logger.warning("Round %d: prompt phase failed, no score", number)
            rnd.phase = Phase.DONE
            notify()
            return rnd

        # Answering
        rnd.phase = Phase.ANSWERING
        answer_start = self._clock()
        for task in rnd.answer_tasks:
            task.started_at = answer_start
        notify()
        await self._phases.run_answer_phase(rnd, notify)
        if not self._generations.is_current(generation):
            self._abandon(rnd)
            return None

        # Voting
        rnd.phase = Phase.VOTING
        vote_start = self._clock()
        rnd.votes = [VoteRecord(voter=v, started_at=vote_start) for v in roles.voters]
        notify()
        await self._phases.run_voting_phase(rnd, notify)
        if not self._generations.is_current(generation):
            self._abandon(rnd)
            return None

        score_round(rnd)
        rnd.phase = Phase.DONE
        logger.info(
            "Round %d done: %s %d - %d %s (%s)",
            number,
            contestant_a.name,
            rnd.score_a,
            rnd.score_b,
            contestant_b.name,
            "tie" if rnd.tied else f"winner {rnd.winner.name}",
        )
        notify()
        return rnd
