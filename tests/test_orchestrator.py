"""Tests for quipslop/orchestrator.py: full rounds against a scripted backend."""

import random

from quipslop.backend import Role
from quipslop.models import Participant, Phase
from quipslop.orchestrator import RoundOrchestrator
from quipslop.roles import RoundRoles
from tests.conftest import SAMPLE_PROMPT, MockBackend, make_runner

_PHASE_ORDER = [Phase.PROMPTING, Phase.ANSWERING, Phase.VOTING, Phase.DONE]


def _orchestrator(backend, generations, rng=None) -> RoundOrchestrator:
    return RoundOrchestrator(make_runner(backend, generations, rng=rng), generations)


def _script(answers: dict[str, str], vote_for: str | None):
    """Prompt, per-contestant answers, and votes for the answer whose text is ``vote_for``."""

    def reply(participant, role, context):
        if role is Role.PROMPTER:
            return SAMPLE_PROMPT
        if role is Role.CONTESTANT:
            return answers[participant.name]
        if vote_for is None:
            return "no idea"
        return "A" if context.answer_a == vote_for else "B"

    return reply


async def test_four_player_round(roles, generations, contestant_b, voter):
    backend = MockBackend(_script({"Alpha": "foo", "Beta": "bar"}, vote_for="bar"))
    orchestrator = _orchestrator(backend, generations, rng=random.Random(7))

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert rnd is not None
    assert rnd.phase is Phase.DONE
    assert rnd.prompt == SAMPLE_PROMPT
    assert [t.result for t in rnd.answer_tasks] == ["foo", "bar"]
    assert len(rnd.votes) == 1
    assert rnd.votes[0].voter == voter
    assert rnd.votes[0].voted_for == contestant_b
    assert (rnd.score_a, rnd.score_b) == (0, 1)
    assert rnd.winner == contestant_b
    assert rnd.tied is False


async def test_phases_advance_in_order(roles, generations, mock_backend):
    orchestrator = _orchestrator(mock_backend, generations)
    observed: list[Phase] = []

    rnd = await orchestrator.run_round(3, roles, generations.current, lambda r: observed.append(r.phase))

    assert rnd.number == 3
    indices = [_PHASE_ORDER.index(p) for p in observed]
    assert indices == sorted(indices)
    assert observed[0] is Phase.PROMPTING
    assert observed[-1] is Phase.DONE
    assert set(observed) == set(_PHASE_ORDER)


async def test_answer_tasks_start_when_answering_begins(roles, generations, mock_backend):
    orchestrator = _orchestrator(mock_backend, generations)
    first_answering = []

    def on_update(rnd):
        if rnd.phase is Phase.ANSWERING and not first_answering:
            first_answering.append([t.started_at for t in rnd.answer_tasks])

    await orchestrator.run_round(1, roles, generations.current, on_update)

    assert first_answering and all(started > 0 for started in first_answering[0])


async def test_prompt_failure_ends_round_without_score(roles, generations):
    backend = MockBackend(lambda p, role, ctx: "")
    orchestrator = _orchestrator(backend, generations)

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert rnd is not None
    assert rnd.phase is Phase.DONE
    assert rnd.prompt is None
    assert rnd.prompt_task.error == "Failed after 3 attempts"
    assert rnd.score_a is None and rnd.score_b is None
    assert rnd.winner is None
    assert rnd.votes == []
    assert backend.calls_for(Role.CONTESTANT) == []
    assert backend.calls_for(Role.VOTER) == []


async def test_all_votes_abstain_is_a_tie(roles, generations):
    backend = MockBackend(_script({"Alpha": "foo", "Beta": "bar"}, vote_for=None))
    orchestrator = _orchestrator(backend, generations)

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert rnd.votes[0].error is True
    assert (rnd.score_a, rnd.score_b) == (0, 0)
    assert rnd.tied is True
    assert rnd.winner is None


async def test_three_player_round_has_no_voters_and_ties(generations, prompter, contestant_a, contestant_b):
    roles = RoundRoles(prompter=prompter, contestant_a=contestant_a, contestant_b=contestant_b, voters=())
    orchestrator = _orchestrator(MockBackend(), generations)

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert rnd.phase is Phase.DONE
    assert rnd.votes == []
    assert rnd.tied is True


async def test_answer_failure_still_reaches_voting(roles, generations, contestant_a, contestant_b):
    def reply(participant, role, context):
        if role is Role.PROMPTER:
            return SAMPLE_PROMPT
        if role is Role.CONTESTANT:
            if participant == contestant_a:
                raise RuntimeError("model down")
            return "bar"
        return "A" if context.answer_a == "bar" else "B"

    orchestrator = _orchestrator(MockBackend(reply), generations)

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert rnd.answer_tasks[0].error is not None
    assert rnd.winner == contestant_b


async def test_reset_during_voting_abandons_round(roles, generations):
    updates = []

    def reply(participant, role, context):
        if role is Role.PROMPTER:
            return SAMPLE_PROMPT
        if role is Role.CONTESTANT:
            return f"{participant.name} answer"
        generations.advance()
        return "A"

    orchestrator = _orchestrator(MockBackend(reply), generations)

    rnd = await orchestrator.run_round(1, roles, 0, lambda r: updates.append(r.phase))

    assert rnd is None
    # The last update seen is the start of voting: no vote or score was published.
    assert updates[-1] is Phase.VOTING


async def test_stale_generation_never_starts(roles, generations, mock_backend):
    generations.advance()
    orchestrator = _orchestrator(mock_backend, generations)

    assert await orchestrator.run_round(1, roles, 0) is None
    mock_backend.generate.assert_not_awaited()


async def test_many_voters_split(generations, prompter, contestant_a, contestant_b):
    voters = tuple(Participant(id=f"test/v{i}", name=f"Voter {i}") for i in range(5))
    roles = RoundRoles(prompter=prompter, contestant_a=contestant_a, contestant_b=contestant_b, voters=voters)

    def reply(participant, role, context):
        if role is Role.PROMPTER:
            return SAMPLE_PROMPT
        if role is Role.CONTESTANT:
            return f"{participant.name} answer"
        favourite = "Alpha answer" if participant.name in ("Voter 0", "Voter 1", "Voter 2") else "Beta answer"
        return "A" if context.answer_a == favourite else "B"

    orchestrator = _orchestrator(MockBackend(reply), generations, rng=random.Random(3))

    rnd = await orchestrator.run_round(1, roles, generations.current)

    assert (rnd.score_a, rnd.score_b) == (3, 2)
    assert rnd.winner == contestant_a
