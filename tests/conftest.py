"""Shared pytest fixtures."""

import inspect
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    GameConfig,
    ModelConfig,
    PromptsConfig,
    ServerConfig,
    StorageConfig,
)
from quipslop.backend import CompletionBackend, GenerationContext, Role
from quipslop.controls import GenerationCounter
from quipslop.models import Completion, Participant
from quipslop.phases import PhaseRunner
from quipslop.providers.base import AIProvider
from quipslop.retry import RetryExecutor
from quipslop.roles import RoundRoles

SAMPLE_PROMPT = "The worst thing to hear from your dentist"


@pytest.fixture
def prompter() -> Participant:
    return Participant(id="test/prompter", name="Prompter")


@pytest.fixture
def contestant_a() -> Participant:
    return Participant(id="test/alpha", name="Alpha")


@pytest.fixture
def contestant_b() -> Participant:
    return Participant(id="test/beta", name="Beta")


@pytest.fixture
def voter() -> Participant:
    return Participant(id="test/voter", name="Voter")


@pytest.fixture
def pool(prompter, contestant_a, contestant_b, voter) -> list[Participant]:
    return [prompter, contestant_a, contestant_b, voter]


@pytest.fixture
def roles(prompter, contestant_a, contestant_b, voter) -> RoundRoles:
    return RoundRoles(
        prompter=prompter,
        contestant_a=contestant_a,
        contestant_b=contestant_b,
        voters=(voter,),
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        prompt_system="Write one prompt. Examples:\n{examples}",
        prompt_user="Give me a prompt.",
        answer_system="Be funny.",
        answer_user="Prompt: {prompt}",
        vote_system="Judge the answers.",
        vote_user="Prompt: {prompt}\nA: {answer_a}\nB: {answer_b}",
        examples=["The worst pizza topping", "A bad name for a boat", "Never say this at a wedding"],
        example_count=2,
    )


@pytest.fixture
def sample_app_config(sample_prompts_config: PromptsConfig, tmp_path: Path) -> AppConfig:
    models = {
        f"test/m{i}": ModelConfig(
            id=f"test/m{i}",
            name=f"Model {i}",
            sdk="openrouter",
            api_key_env="TEST_OPENROUTER_KEY",
            timeout_sec=30,
            max_tokens=64,
            base_url="https://openrouter.example/api/v1",
        )
        for i in range(1, 5)
    }
    return AppConfig(
        game=GameConfig(rounds=2, round_delay_sec=0, retry_base_delay_sec=0, log_dir=tmp_path / "logs"),
        models=models,
        prompts=sample_prompts_config,
        storage=StorageConfig(database_url=f"sqlite:///{tmp_path / 'test.db'}"),
        server=ServerConfig(host="127.0.0.1", port=5109),
        available_participants=set(models),
    )


class MockProvider(AIProvider):
    """Test double AIProvider."""

    def __init__(self, provider_name: str = "mock", response_content: str = "Mock response") -> None:
        self._name = provider_name
        self._response_content = response_content
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(  # type: ignore[assignment]
            return_value=Completion(
                content=response_content,
                model="mock-model",
                latency_sec=0.1,
                token_count=10,
            )
        )

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def generate(self, system: str, prompt: str) -> Completion:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return Completion(content=self._response_content, model="mock-model", latency_sec=0.1, token_count=10)


async def default_reply(participant: Participant, role: Role, context: GenerationContext) -> str:
    """Valid output for every role: a prompt, a per-contestant answer, a vote for the first answer."""
    if role is Role.PROMPTER:
        return SAMPLE_PROMPT
    if role is Role.CONTESTANT:
        return f"{participant.name} says hi"
    return "A"


class MockBackend(CompletionBackend):
    """Test double CompletionBackend.

    ``reply`` receives (participant, role, context) and may be sync or async;
    it may also raise. Every call is recorded in ``generate`` (an AsyncMock).
    """

    def __init__(self, reply=default_reply) -> None:
        async def dispatch(participant, role, context):
            value = reply(participant, role, context)
            if inspect.isawaitable(value):
                value = await value
            return value

        self.generate = AsyncMock(side_effect=dispatch)  # type: ignore[assignment]

    async def generate(self, participant: Participant, role: Role, context: GenerationContext) -> str:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return await default_reply(participant, role, context)

    def calls_for(self, role: Role) -> list[tuple[Participant, GenerationContext]]:
        return [(c.args[0], c.args[2]) for c in self.generate.await_args_list if c.args[1] is role]


@pytest.fixture
def mock_backend() -> MockBackend:
    return MockBackend()


@pytest.fixture
def no_sleep() -> AsyncMock:
    return AsyncMock(return_value=None)


@pytest.fixture
def generations() -> GenerationCounter:
    return GenerationCounter()


def make_runner(
    backend: CompletionBackend,
    generations: GenerationCounter,
    *,
    max_attempts: int = 3,
    rng=None,
    max_concurrency: int = 8,
) -> PhaseRunner:
    """PhaseRunner with instant retries."""
    executor = RetryExecutor(max_attempts=max_attempts, base_delay=0, sleep=AsyncMock(return_value=None))
    return PhaseRunner(
        backend,
        executor,
        generations,
        max_concurrency=max_concurrency,
        rng=rng,
    )
