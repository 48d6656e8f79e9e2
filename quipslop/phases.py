"""Phase execution: prompt, answers and votes as bounded fan-outs over the backend.

Each task owns exactly one record (TaskRecord or VoteRecord) and is the only
writer to it. A task commits to its record and calls ``on_update`` only while
the round's generation is still current; stale settlements are dropped.
"""

import asyncio
import logging
import random
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar

from quipslop.backend import VOTE_LABELS, CompletionBackend, GenerationContext, Role, resolve_vote
from quipslop.controls import GenerationCounter
from quipslop.models import RoundRecord, TaskRecord, VoteRecord
from quipslop.retry import RetryExecutor, RetryExhausted

logger = logging.getLogger(__name__)

T = TypeVar("T")

UpdateCallback = Callable[[], None]

PLACEHOLDER_ANSWER = "[no answer]"
ANSWER_ERROR = "Failed to answer"


def has_min_length(text: object, min_length: int) -> bool:
    return isinstance(text, str) and len(text.strip()) >= min_length


class PhaseRunner:
    def __init__(
        self,
        backend: CompletionBackend,
        executor: RetryExecutor,
        generations: GenerationCounter,
        *,
        prompt_min_length: int = 10,
        answer_min_length: int = 3,
        max_concurrency: int = 8,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._executor = executor
        self._generations = generations
        self._prompt_min_length = prompt_min_length
        self._answer_min_length = answer_min_length
        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._rng = rng or random.Random()
        self._clock = clock

    def is_live(self, rnd: RoundRecord) -> bool:
        return self._generations.is_current(rnd.generation)

    async def _bounded(self, call: Callable[[], Awaitable[T]]) -> T:
        # Held per backend call, never across a retry backoff.
        async with self._semaphore:
            return await call()

    # ── Prompt ──────────────────────────────────────────────────────────────

    async def run_prompt_phase(self, rnd: RoundRecord, on_update: UpdateCallback) -> bool:
        """Generate the round prompt. Returns True only if a prompt was committed."""
        task = rnd.prompt_task
        label = f"R{rnd.number}:prompt:{rnd.prompter.name}"
        try:
            prompt = await self._executor.execute(
                lambda: self._bounded(
                    lambda: self._backend.generate(rnd.prompter, Role.PROMPTER, GenerationContext())
                ),
                lambda s: has_min_length(s, self._prompt_min_length),
                label,
            )
        except RetryExhausted as exc:
            if not self.is_live(rnd):
                return False
            task.finished_at = self._clock()
            task.error = f"Failed after {exc.attempts} attempts"
            on_update()
            return False

        if not self.is_live(rnd):
            logger.info("%s settled after reset, discarding", label)
            return False
        task.finished_at = self._clock()
        task.result = prompt
        rnd.prompt = prompt
        on_update()
        return True

    # ── Answers ─────────────────────────────────────────────────────────────

    async def _answer(self, rnd: RoundRecord, task: TaskRecord, on_update: UpdateCallback) -> None:
        if not self.is_live(rnd):
            return
        label = f"R{rnd.number}:answer:{task.participant.name}"
        context = GenerationContext(prompt=rnd.prompt)
        try:
            answer = await self._executor.execute(
                lambda: self._bounded(
                    lambda: self._backend.generate(task.participant, Role.CONTESTANT, context)
                ),
                lambda s: has_min_length(s, self._answer_min_length),
                label,
            )
        except RetryExhausted:
            if not self.is_live(rnd):
                return
            task.error = ANSWER_ERROR
            task.result = PLACEHOLDER_ANSWER
        else:
            if not self.is_live(rnd):
                return
            task.result = answer
        task.finished_at = self._clock()
        on_update()

    async def run_answer_phase(self, rnd: RoundRecord, on_update: UpdateCallback) -> None:
        """Both contestants answer concurrently; a failed answer becomes a placeholder."""
        await asyncio.gather(*(self._answer(rnd, task, on_update) for task in rnd.answer_tasks))

    # ── Votes ───────────────────────────────────────────────────────────────

    async def _vote(
        self,
        rnd: RoundRecord,
        vote: VoteRecord,
        answer_a: str,
        answer_b: str,
        on_update: UpdateCallback,
    ) -> None:
        if not self.is_live(rnd):
            return
        contestant_a, contestant_b = rnd.contestants
        show_a_first = self._rng.random() < 0.5
        first, second = (answer_a, answer_b) if show_a_first else (answer_b, answer_a)
        context = GenerationContext(prompt=rnd.prompt, answer_a=first, answer_b=second)
        label = f"R{rnd.number}:vote:{vote.voter.name}"

        async def cast() -> str | None:
            reply = await self._bounded(lambda: self._backend.generate(vote.voter, Role.VOTER, context))
            return resolve_vote(reply)

        try:
            choice = await self._executor.execute(cast, lambda v: v in VOTE_LABELS, label)
        except RetryExhausted:
            if not self.is_live(rnd):
                return
            vote.error = True
        else:
            if not self.is_live(rnd):
                return
            picked_first = choice == "A"
            vote.voted_for = contestant_a if picked_first == show_a_first else contestant_b
        vote.finished_at = self._clock()
        on_update()

    async def run_voting_phase(self, rnd: RoundRecord, on_update: UpdateCallback) -> None:
        """Every voter judges concurrently with its own random presentation order."""
        answer_a = rnd.answer_tasks[0].result or PLACEHOLDER_ANSWER
        answer_b = rnd.answer_tasks[1].result or PLACEHOLDER_ANSWER
        await asyncio.gather(
            *(self._vote(rnd, vote, answer_a, answer_b, on_update) for vote in rnd.votes)
        )
