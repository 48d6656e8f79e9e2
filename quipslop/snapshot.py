"""JSON-friendly views of rounds and game state.

Every function builds fresh dicts, so a snapshot handed to observers or the
archive shares no mutable state with the live round.
"""

from typing import Any

from quipslop.models import Participant, Phase, RoundRecord, TaskRecord, VoteRecord


def participant_to_dict(p: Participant) -> dict[str, str]:
    return {"id": p.id, "name": p.name}


def participant_from_dict(data: dict[str, Any]) -> Participant:
    return Participant(id=data["id"], name=data["name"])


def _optional_participant(data: dict[str, Any] | None) -> Participant | None:
    return participant_from_dict(data) if data else None


def task_to_dict(task: TaskRecord) -> dict[str, Any]:
    return {
        "participant": participant_to_dict(task.participant),
        "startedAt": task.started_at,
        "finishedAt": task.finished_at,
        "result": task.result,
        "error": task.error,
    }


def task_from_dict(data: dict[str, Any]) -> TaskRecord:
    return TaskRecord(
        participant=participant_from_dict(data["participant"]),
        started_at=data["startedAt"],
        finished_at=data.get("finishedAt"),
        result=data.get("result"),
        error=data.get("error"),
    )


def vote_to_dict(vote: VoteRecord) -> dict[str, Any]:
    return {
        "voter": participant_to_dict(vote.voter),
        "startedAt": vote.started_at,
        "finishedAt": vote.finished_at,
        "votedFor": participant_to_dict(vote.voted_for) if vote.voted_for else None,
        "error": vote.error,
    }


def vote_from_dict(data: dict[str, Any]) -> VoteRecord:
    return VoteRecord(
        voter=participant_from_dict(data["voter"]),
        started_at=data["startedAt"],
        finished_at=data.get("finishedAt"),
        voted_for=_optional_participant(data.get("votedFor")),
        error=bool(data.get("error", False)),
    )


def round_to_dict(rnd: RoundRecord) -> dict[str, Any]:
    return {
        "num": rnd.number,
        "phase": rnd.phase.value,
        "generation": rnd.generation,
        "prompter": participant_to_dict(rnd.prompter),
        "promptTask": task_to_dict(rnd.prompt_task),
        "prompt": rnd.prompt,
        "contestants": [participant_to_dict(c) for c in rnd.contestants],
        "answerTasks": [task_to_dict(t) for t in rnd.answer_tasks],
        "votes": [vote_to_dict(v) for v in rnd.votes],
        "scoreA": rnd.score_a,
        "scoreB": rnd.score_b,
        "winner": participant_to_dict(rnd.winner) if rnd.winner else None,
        "tied": rnd.tied,
    }


def round_from_dict(data: dict[str, Any]) -> RoundRecord:
    contestant_a, contestant_b = (participant_from_dict(c) for c in data["contestants"])
    task_a, task_b = (task_from_dict(t) for t in data["answerTasks"])
    return RoundRecord(
        number=data["num"],
        prompter=participant_from_dict(data["prompter"]),
        prompt_task=task_from_dict(data["promptTask"]),
        contestants=(contestant_a, contestant_b),
        answer_tasks=(task_a, task_b),
        generation=data.get("generation", 0),
        phase=Phase(data["phase"]),
        prompt=data.get("prompt"),
        votes=[vote_from_dict(v) for v in data.get("votes", [])],
        score_a=data.get("scoreA"),
        score_b=data.get("scoreB"),
        winner=_optional_participant(data.get("winner")),
        tied=bool(data.get("tied", False)),
    )


def state_snapshot(
    *,
    active: RoundRecord | None,
    completed: list[RoundRecord],
    standings: dict[str, int],
    paused: bool,
    done: bool,
    generation: int,
    total_rounds: int | None,
    history_limit: int = 10,
) -> dict[str, Any]:
    """Observer view of the whole game. ``total_rounds`` None means unbounded."""
    recent = completed[-history_limit:] if history_limit > 0 else []
    return {
        "active": round_to_dict(active) if active else None,
        "lastCompleted": round_to_dict(completed[-1]) if completed else None,
        "completed": [round_to_dict(r) for r in recent],
        "standings": dict(standings),
        "paused": paused,
        "done": done,
        "generation": generation,
        "totalRounds": total_rounds,
    }
