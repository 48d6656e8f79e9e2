"""Random role assignment for a single round."""

import random
from collections.abc import Sequence
from dataclasses import dataclass

from quipslop.models import Participant

MIN_POOL_SIZE = 3


class InsufficientPoolError(ValueError):
    """Raised when the pool cannot fill prompter + two contestants."""


@dataclass(frozen=True)
class RoundRoles:
    prompter: Participant
    contestant_a: Participant
    contestant_b: Participant
    voters: tuple[Participant, ...]


def assign_roles(pool: Sequence[Participant], rng: random.Random | None = None) -> RoundRoles:
    """Shuffle a copy of the pool and split it into roles.

    First participant prompts, the next two compete, everyone else votes.
    """
    if len(pool) < MIN_POOL_SIZE:
        raise InsufficientPoolError(
            f"Need at least {MIN_POOL_SIZE} participants, got {len(pool)}"
        )
    shuffled = list(pool)
    (rng or random).shuffle(shuffled)
    return RoundRoles(
        prompter=shuffled[0],
        contestant_a=shuffled[1],
        contestant_b=shuffled[2],
        voters=tuple(shuffled[3:]),
    )
