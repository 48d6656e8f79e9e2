"""Pre-game health checks: every participant must answer a ping before it plays."""

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from quipslop.models import Participant
from quipslop.providers.base import AIProvider

logger = logging.getLogger(__name__)

_PING_SYSTEM = "You are a health check."
_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


@dataclass
class HealthResult:
    participant: Participant
    ok: bool
    error: str = ""
    latency_sec: float | None = None

    @property
    def short_error(self) -> str:
        return self.error.splitlines()[0][:120] if self.error else "unknown error"


async def _check_one(participant: Participant, provider: AIProvider | None) -> HealthResult:
    if provider is None:
        return HealthResult(participant, ok=False, error="No provider configured")
    try:
        completion = await asyncio.wait_for(
            provider.generate(_PING_SYSTEM, _PING_PROMPT),
            timeout=_TIMEOUT_SEC,
        )
    except Exception as exc:
        logger.debug("Health check failed for %s (%s): %s", participant.name, participant.id, exc)
        return HealthResult(participant, ok=False, error=str(exc) or type(exc).__name__)
    return HealthResult(participant, ok=True, latency_sec=completion.latency_sec)


async def run_health_checks(
    pool: Sequence[Participant],
    providers: Mapping[str, AIProvider],
) -> list[HealthResult]:
    """Ping every participant in parallel. Results come back in pool order."""
    return list(await asyncio.gather(*(_check_one(p, providers.get(p.id)) for p in pool)))


def split_by_health(results: Sequence[HealthResult]) -> tuple[list[Participant], list[Participant]]:
    """Return (working, failed) participants, each in pool order."""
    working = [r.participant for r in results if r.ok]
    failed = [r.participant for r in results if not r.ok]
    return working, failed
