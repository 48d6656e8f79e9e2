"""Load settings.yaml into typed dataclasses. Validates API keys at startup."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

_SCORING_RULES = {"win", "votes"}


@dataclass
class ModelConfig:
    id: str
    name: str
    sdk: str
    api_key_env: str
    timeout_sec: int
    max_tokens: int
    base_url: str | None = None


@dataclass
class PromptsConfig:
    prompt_system: str
    prompt_user: str
    answer_system: str
    answer_user: str
    vote_system: str
    vote_user: str
    examples: list[str] = field(default_factory=list)
    example_count: int = 80


@dataclass
class GameConfig:
    rounds: int | None                 # None = run forever
    round_delay_sec: float = 5.0
    pause_poll_sec: float = 1.0
    max_attempts: int = 3
    retry_base_delay_sec: float = 1.0
    prompt_min_length: int = 10
    answer_min_length: int = 3
    max_concurrency: int = 8
    scoring: str = "win"
    history_page_size: int = 10
    log_dir: Path = Path("logs")


@dataclass
class StorageConfig:
    database_url: str


@dataclass
class ServerConfig:
    host: str
    port: int
    admin_secret_env: str = "ADMIN_SECRET"


@dataclass
class AppConfig:
    game: GameConfig
    models: dict[str, ModelConfig]
    prompts: PromptsConfig
    storage: StorageConfig
    server: ServerConfig
    available_participants: set[str] = field(default_factory=set)


def parse_rounds(value: object) -> int | None:
    """Accept a positive int or 'infinite'."""
    if value is None or str(value).strip().lower() in ("infinite", "inf"):
        return None
    rounds = int(value)
    if rounds < 1:
        raise ValueError(f"rounds must be positive or 'infinite', got {value!r}")
    return rounds


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, ValueError on invalid
    game settings. Logs warnings for missing API keys but does not raise;
    callers check available_participants count.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    game_raw = raw["game"]
    game = GameConfig(
        rounds=parse_rounds(game_raw.get("rounds")),
        round_delay_sec=float(game_raw.get("round_delay_sec", 5.0)),
        pause_poll_sec=float(game_raw.get("pause_poll_sec", 1.0)),
        max_attempts=int(game_raw.get("max_attempts", 3)),
        retry_base_delay_sec=float(game_raw.get("retry_base_delay_sec", 1.0)),
        prompt_min_length=int(game_raw.get("prompt_min_length", 10)),
        answer_min_length=int(game_raw.get("answer_min_length", 3)),
        max_concurrency=int(game_raw.get("max_concurrency", 8)),
        scoring=str(game_raw.get("scoring", "win")),
        history_page_size=int(game_raw.get("history_page_size", 10)),
        log_dir=Path(game_raw.get("log_dir", "logs")),
    )
    if game.scoring not in _SCORING_RULES:
        raise ValueError(f"Unknown scoring rule: {game.scoring!r}")
    if game.max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        prompt_system=prompts_raw["prompt_system"],
        prompt_user=prompts_raw["prompt_user"],
        answer_system=prompts_raw["answer_system"],
        answer_user=prompts_raw["answer_user"],
        vote_system=prompts_raw["vote_system"],
        vote_user=prompts_raw["vote_user"],
        examples=[str(e) for e in raw.get("example_prompts", [])],
        example_count=int(prompts_raw.get("example_count", 80)),
    )

    storage_raw = raw.get("storage", {})
    storage = StorageConfig(
        database_url=os.environ.get("DATABASE_URL", "").strip()
        or str(storage_raw.get("database_url", "sqlite:///quipslop.db")),
    )

    server_raw = raw.get("server", {})
    server = ServerConfig(
        host=str(server_raw.get("host", "127.0.0.1")),
        port=int(os.environ.get("PORT", "").strip() or server_raw.get("port", 5109)),
        admin_secret_env=str(server_raw.get("admin_secret_env", "ADMIN_SECRET")),
    )

    models: dict[str, ModelConfig] = {}
    available_participants: set[str] = set()

    for model_raw in raw["models"]:
        model_cfg = ModelConfig(
            id=model_raw["id"],
            name=model_raw["name"],
            sdk=model_raw["sdk"],
            api_key_env=model_raw["api_key_env"],
            timeout_sec=int(model_raw["timeout_sec"]),
            max_tokens=int(model_raw["max_tokens"]),
            base_url=model_raw.get("base_url"),
        )
        if model_cfg.id in models:
            raise ValueError(f"Duplicate model id in settings: {model_cfg.id}")
        models[model_cfg.id] = model_cfg

        api_key = os.environ.get(model_raw["api_key_env"], "").strip()
        if api_key:
            available_participants.add(model_cfg.id)
            logger.info("Participant available: %s", model_cfg.name)
        else:
            logger.info(
                "Participant skipped (no API key): %s (set %s in .env)",
                model_cfg.name,
                model_raw["api_key_env"],
            )

    return AppConfig(
        game=game,
        models=models,
        prompts=prompts,
        storage=storage,
        server=server,
        available_participants=available_participants,
    )
