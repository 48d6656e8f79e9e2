"""Abstract base for all AI model providers."""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod

from config.config_loader import ModelConfig
from quipslop.models import Completion

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the participant display name (e.g. 'Opus 4.6')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    async def generate(self, system: str, prompt: str) -> Completion:
        """Generate a completion for the given system and user prompt.

        Args:
            system: System instructions for the model.
            prompt: The user message.

        Returns:
            Completion dataclass with content and metadata.

        Raises:
            ProviderError: On API failure, timeout, or empty response.
        """
        ...


class ConfiguredProvider(AIProvider):
    """SDK-backed provider built from a ModelConfig.

    Subclasses implement ``_request`` with a single SDK call; timing, the
    per-model timeout and error wrapping happen here.
    """

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        self._api_key = os.environ.get(config.api_key_env, "").strip()
        if not self._api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.id

    @abstractmethod
    async def _request(self, system: str, prompt: str) -> tuple[str | None, int | None]:
        """Return (text, total token count) from one SDK call."""
        ...

    async def generate(self, system: str, prompt: str) -> Completion:
        start = time.monotonic()
        try:
            text, token_count = await asyncio.wait_for(
                self._request(system, prompt),
                timeout=self._config.timeout_sec,
            )
        except ProviderError:
            raise
        except TimeoutError as exc:
            raise ProviderError(self._config.name, f"Request timed out after {self._config.timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start
        if not text:
            raise ProviderError(self._config.name, "Empty response content")

        logger.debug("%s: %.2fs, %s tokens", self._config.name, latency, token_count)

        return Completion(
            content=text,
            model=self._config.id,
            latency_sec=latency,
            token_count=token_count,
        )
