"""Completion backend: turns (participant, role, context) into generated text.

The round engine only sees ``CompletionBackend``. ``LLMBackend`` is the real
implementation: it renders the role's prompt templates from settings.yaml and
forwards to the participant's provider.
"""

import logging
import random
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from config.config_loader import PromptsConfig
from quipslop.models import Participant
from quipslop.providers.base import AIProvider, ProviderError

logger = logging.getLogger(__name__)

VOTE_LABELS = ("A", "B")
_VOTE_RE = re.compile(r"^(?:ANSWER\s+)?([AB])\b")


class Role(str, Enum):
    PROMPTER = "prompt"
    CONTESTANT = "answer"
    VOTER = "vote"


@dataclass(frozen=True)
class GenerationContext:
    prompt: str | None = None
    answer_a: str | None = None      # answer presented first, labelled "A"
    answer_b: str | None = None      # answer presented second, labelled "B"


class CompletionBackend(ABC):
    """Anything that can generate text for a participant acting in a role."""

    @abstractmethod
    async def generate(
        self,
        participant: Participant,
        role: Role,
        context: GenerationContext,
    ) -> str:
        """Return generated text.

        Raises:
            Exception: any failure; callers treat it as a retryable attempt.
        """
        ...


def clean_response(text: str) -> str:
    """Trim whitespace and one pair of surrounding quotes."""
    trimmed = text.strip()
    if len(trimmed) >= 2 and trimmed[0] == trimmed[-1] and trimmed[0] in ("'", '"'):
        return trimmed[1:-1]
    return trimmed


def resolve_vote(text: str) -> str | None:
    """Map a raw judge reply onto "A" or "B"; None if it is neither."""
    match = _VOTE_RE.match(text.strip().strip("\"'*").upper())
    return match.group(1) if match else None


class LLMBackend(CompletionBackend):
    """Routes each participant to its configured provider."""

    def __init__(
        self,
        providers: dict[str, AIProvider],
        prompts: PromptsConfig,
        rng: random.Random | None = None,
    ) -> None:
        self._providers = providers
        self._prompts = prompts
        self._rng = rng or random.Random()

    def _prompt_system(self) -> str:
        examples = list(self._prompts.examples)
        self._rng.shuffle(examples)
        sample = examples[: self._prompts.example_count]
        return self._prompts.prompt_system.format(
            examples="\n".join(f"- {e}" for e in sample),
        )

    def build_messages(self, role: Role, context: GenerationContext) -> tuple[str, str]:
        """Return (system, user) messages for a role."""
        if role is Role.PROMPTER:
            return self._prompt_system(), self._prompts.prompt_user
        if role is Role.CONTESTANT:
            if context.prompt is None:
                raise ValueError("Answer generation needs a prompt")
            return self._prompts.answer_system, self._prompts.answer_user.format(prompt=context.prompt)
        if context.prompt is None or context.answer_a is None or context.answer_b is None:
            raise ValueError("Voting needs a prompt and two answers")
        return self._prompts.vote_system, self._prompts.vote_user.format(
            prompt=context.prompt,
            answer_a=context.answer_a,
            answer_b=context.answer_b,
        )

    async def generate(
        self,
        participant: Participant,
        role: Role,
        context: GenerationContext,
    ) -> str:
        provider = self._providers.get(participant.id)
        if provider is None:
            raise ProviderError(participant.name, f"No provider configured for {participant.id}")

        system, user = self.build_messages(role, context)
        logger.debug("%s:%s calling %s", role.value, participant.name, provider.model_string())
        completion = await provider.generate(system, user)
        logger.debug(
            "%s:%s raw response (%.2fs, %s tokens): %r",
            role.value,
            participant.name,
            completion.latency_sec,
            completion.token_count,
            completion.content,
        )
        return clean_response(completion.content)
