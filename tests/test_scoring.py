"""Tests for quipslop/scoring.py."""

from quipslop.models import Participant, Phase, RoundRecord, TaskRecord, VoteRecord
from quipslop.scoring import ScoringRule, apply_award, score_round, standings_award, tally_votes

ALPHA = Participant(id="test/alpha", name="Alpha")
BETA = Participant(id="test/beta", name="Beta")
PROMPTER = Participant(id="test/prompter", name="Prompter")


def _voted_round(*choices: Participant | None) -> RoundRecord:
    votes = [
        VoteRecord(
            voter=Participant(id=f"test/v{i}", name=f"Voter {i}"),
            started_at=1.0,
            finished_at=2.0,
            voted_for=choice,
            error=choice is None,
        )
        for i, choice in enumerate(choices)
    ]
    return RoundRecord(
        number=1,
        prompter=PROMPTER,
        prompt_task=TaskRecord(participant=PROMPTER, started_at=1.0, result="prompt"),
        contestants=(ALPHA, BETA),
        answer_tasks=(
            TaskRecord(participant=ALPHA, started_at=1.0, result="a"),
            TaskRecord(participant=BETA, started_at=1.0, result="b"),
        ),
        phase=Phase.VOTING,
        prompt="prompt",
        votes=votes,
    )


def test_tally_ignores_abstentions():
    rnd = _voted_round(ALPHA, None, BETA, ALPHA)
    assert tally_votes(rnd) == (2, 1)


def test_score_round_picks_majority():
    rnd = _voted_round(ALPHA, ALPHA, ALPHA, BETA, BETA)
    score_round(rnd)
    assert (rnd.score_a, rnd.score_b) == (3, 2)
    assert rnd.winner == ALPHA
    assert rnd.tied is False


def test_score_round_tie_has_no_winner():
    rnd = _voted_round(ALPHA, BETA)
    score_round(rnd)
    assert rnd.winner is None
    assert rnd.tied is True


def test_zero_zero_is_a_tie():
    rnd = _voted_round(None, None)
    score_round(rnd)
    assert (rnd.score_a, rnd.score_b) == (0, 0)
    assert rnd.tied is True


def test_win_rule_awards_one_point():
    rnd = _voted_round(BETA, BETA, ALPHA)
    score_round(rnd)
    assert standings_award(rnd, ScoringRule.WIN) == {"Beta": 1}


def test_votes_rule_awards_vote_count():
    rnd = _voted_round(BETA, BETA, ALPHA)
    score_round(rnd)
    assert standings_award(rnd, ScoringRule.VOTES) == {"Beta": 2}


def test_tie_awards_nothing():
    rnd = _voted_round(ALPHA, BETA)
    score_round(rnd)
    assert standings_award(rnd, ScoringRule.WIN) == {}
    assert standings_award(rnd, ScoringRule.VOTES) == {}


def test_apply_award_accumulates():
    standings = {"Alpha": 2, "Beta": 0}
    apply_award(standings, {"Beta": 1})
    apply_award(standings, {"Beta": 1})
    apply_award(standings, {"Gamma": 3})
    assert standings == {"Alpha": 2, "Beta": 2, "Gamma": 3}
