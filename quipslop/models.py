"""Pure dataclasses for the quipslop round pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum


class Phase(str, Enum):
    PROMPTING = "prompting"
    ANSWERING = "answering"
    VOTING = "voting"
    DONE = "done"


@dataclass(frozen=True)
class Participant:
    id: str                # backend model id, e.g. "openai/gpt-5.2"
    name: str              # display name, also the standings key


@dataclass
class Completion:
    content: str
    model: str
    latency_sec: float
    token_count: int | None


@dataclass
class TaskRecord:
    participant: Participant
    started_at: float
    finished_at: float | None = None
    result: str | None = None
    error: str | None = None


@dataclass
class VoteRecord:
    voter: Participant
    started_at: float
    finished_at: float | None = None
    voted_for: Participant | None = None
    error: bool = False


@dataclass
class RoundRecord:
    number: int
    prompter: Participant
    prompt_task: TaskRecord
    contestants: tuple[Participant, Participant]
    answer_tasks: tuple[TaskRecord, TaskRecord]
    generation: int = 0
    phase: Phase = Phase.PROMPTING
    prompt: str | None = None
    votes: list[VoteRecord] = field(default_factory=list)
    score_a: int | None = None         # raw vote counts, unscaled
    score_b: int | None = None
    winner: Participant | None = None
    tied: bool = False
