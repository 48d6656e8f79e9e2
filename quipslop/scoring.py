"""Vote tally and standings rules."""

from enum import Enum

from quipslop.models import RoundRecord


class ScoringRule(str, Enum):
    WIN = "win"        # round winner gets one point
    VOTES = "votes"    # round winner gets one point per vote it received


def tally_votes(rnd: RoundRecord) -> tuple[int, int]:
    """Count resolved votes per side. Abstentions count for nobody."""
    contestant_a, contestant_b = rnd.contestants
    votes_a = sum(1 for v in rnd.votes if v.voted_for == contestant_a)
    votes_b = sum(1 for v in rnd.votes if v.voted_for == contestant_b)
    return votes_a, votes_b


def score_round(rnd: RoundRecord) -> None:
    """Fill score, winner and tie fields. A tie (including 0-0) has no winner."""
    votes_a, votes_b = tally_votes(rnd)
    rnd.score_a = votes_a
    rnd.score_b = votes_b
    if votes_a > votes_b:
        rnd.winner = rnd.contestants[0]
    elif votes_b > votes_a:
        rnd.winner = rnd.contestants[1]
    else:
        rnd.winner = None
        rnd.tied = True


def standings_award(rnd: RoundRecord, rule: ScoringRule = ScoringRule.WIN) -> dict[str, int]:
    """Points a scored round adds to the standings table, keyed by participant name."""
    if rnd.winner is None:
        return {}
    if rule is ScoringRule.WIN:
        return {rnd.winner.name: 1}
    points = rnd.score_a if rnd.winner == rnd.contestants[0] else rnd.score_b
    return {rnd.winner.name: points or 0}


def apply_award(standings: dict[str, int], award: dict[str, int]) -> None:
    for name, points in award.items():
        standings[name] = standings.get(name, 0) + points
