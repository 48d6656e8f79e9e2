"""Click CLI: config loading, participant selection, and the play/serve/history/bulk modes."""

import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.live import Live
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, TextColumn, TimeElapsedColumn

from config.config_loader import AppConfig, load_config, parse_rounds
from quipslop.backend import LLMBackend
from quipslop.bulk import BulkResult, run_bulk
from quipslop.controls import GenerationCounter, PauseGate
from quipslop.game import GameLoop
from quipslop.healthcheck import run_health_checks, split_by_health
from quipslop.models import Participant
from quipslop.orchestrator import RoundOrchestrator
from quipslop.output import (
    print_round_summary,
    print_standings,
    render_game,
    save_bulk_report,
)
from quipslop.phases import PhaseRunner
from quipslop.providers.anthropic import AnthropicProvider
from quipslop.providers.base import AIProvider
from quipslop.providers.gemini import GeminiProvider
from quipslop.providers.openai_compat import OpenAICompatProvider
from quipslop.retry import RetryExecutor
from quipslop.roles import MIN_POOL_SIZE
from quipslop.scoring import ScoringRule
from quipslop.storage import RoundStore

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

PROVIDER_CLASSES: dict[str, type[AIProvider]] = {
    "openrouter": OpenAICompatProvider,
    "openai": OpenAICompatProvider,
    "anthropic": AnthropicProvider,
    "gemini": GeminiProvider,
}


def _setup_logging(verbose: bool, log_dir: Path) -> Path:
    """Console logging through rich plus a per-run log file. Returns the log path."""
    level = logging.DEBUG if verbose else logging.INFO
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"game-{datetime.now().strftime('%Y-%m-%dT%H-%M-%S')}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s [%(name)s] %(message)s"))
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False), file_handler],
    )
    # SDK request logs drown out the game at INFO.
    for noisy in ("httpx", "openai", "anthropic", "google_genai"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
    return log_file


def _build_participants(config: AppConfig) -> tuple[list[Participant], dict[str, AIProvider]]:
    """Build providers for every participant with an API key, in settings order."""
    pool: list[Participant] = []
    providers: dict[str, AIProvider] = {}
    for model_id, model_cfg in config.models.items():
        if model_id not in config.available_participants:
            continue
        provider_cls = PROVIDER_CLASSES.get(model_cfg.sdk)
        if provider_cls is None:
            logger.warning("Participant '%s' uses unknown sdk '%s', skipping", model_cfg.name, model_cfg.sdk)
            continue
        try:
            providers[model_id] = provider_cls(model_cfg)
        except Exception as exc:
            logger.warning("Failed to instantiate provider for '%s': %s", model_cfg.name, exc)
            continue
        pool.append(Participant(id=model_id, name=model_cfg.name))
    return pool, providers


def _check_and_filter_providers(
    pool: list[Participant],
    providers: dict[str, AIProvider],
) -> tuple[list[Participant], dict[str, AIProvider]]:
    """Run health checks, print results, and ask the user what to do on failures.

    Exits if the user declines to continue or too few participants pass.
    """
    console.print("\n[bold]Checking participants...[/bold]")
    results = asyncio.run(run_health_checks(pool, providers))

    for result in results:
        name = result.participant.name
        if result.ok:
            console.print(f"  [green]OK  [/green] {name} [dim]({result.latency_sec:.1f}s)[/dim]")
        else:
            console.print(f"  [red]FAIL[/red] {name}: {result.short_error}")
    working, failed = split_by_health(results)

    if not failed:
        console.print()
        return pool, providers

    if len(working) < MIN_POOL_SIZE:
        console.print(
            f"\n[bold red]Error:[/bold red] Only {len(working)} participant(s) passed the health check, "
            f"need at least {MIN_POOL_SIZE}."
        )
        sys.exit(1)

    console.print(f"\n[yellow]{len(failed)} participant(s) failed:[/yellow] {', '.join(p.name for p in failed)}")
    if not click.confirm("Continue with working participants only?", default=True):
        sys.exit(0)

    console.print()
    return working, {p.id: providers[p.id] for p in working}


def _prepare_pool(config: AppConfig, skip_health_check: bool) -> tuple[list[Participant], dict[str, AIProvider]]:
    pool, providers = _build_participants(config)
    if len(pool) < MIN_POOL_SIZE:
        console.print(
            f"[bold red]Error:[/bold red] Need at least {MIN_POOL_SIZE} participants, got {len(pool)}. "
            "Check API keys in .env."
        )
        sys.exit(1)
    if not skip_health_check:
        pool, providers = _check_and_filter_providers(pool, providers)
    return pool, providers


def build_orchestrator(
    config: AppConfig,
    providers: dict[str, AIProvider],
    generations: GenerationCounter,
    max_concurrency: int | None = None,
) -> RoundOrchestrator:
    """Wire backend -> retry -> phase runner -> orchestrator from config."""
    backend = LLMBackend(providers, config.prompts)
    executor = RetryExecutor(
        max_attempts=config.game.max_attempts,
        base_delay=config.game.retry_base_delay_sec,
    )
    phases = PhaseRunner(
        backend,
        executor,
        generations,
        prompt_min_length=config.game.prompt_min_length,
        answer_min_length=config.game.answer_min_length,
        max_concurrency=max_concurrency or config.game.max_concurrency,
    )
    return RoundOrchestrator(phases, generations)


def build_game(
    config: AppConfig,
    pool: list[Participant],
    providers: dict[str, AIProvider],
    store: RoundStore,
) -> GameLoop:
    generations = GenerationCounter()
    return GameLoop(
        pool,
        build_orchestrator(config, providers, generations),
        store,
        generations,
        PauseGate(poll_interval=config.game.pause_poll_sec),
        scoring=ScoringRule(config.game.scoring),
        round_delay=config.game.round_delay_sec,
    )


def _load(verbose: bool) -> tuple[AppConfig, Path]:
    load_dotenv()
    try:
        config = load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)
    log_file = _setup_logging(verbose, config.game.log_dir)
    return config, log_file


def _rounds_option(value: str | None, default: int | None) -> int | None:
    if value is None:
        return default
    try:
        return parse_rounds(value)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--rounds") from exc


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """Quipslop -- language models play Quiplash against each other.

    \b
    Examples:
      python -m quipslop.cli play --rounds 5
      python -m quipslop.cli serve --rounds infinite
      python -m quipslop.cli history --page 2
      python -m quipslop.cli bulk --rounds 1000 --concurrency 100
    """
    # Model output often contains Unicode; keep the Windows console from crashing on it.
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.option("--rounds", default=None, help="Number of rounds or 'infinite' (default: from config)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.pass_context
def play(ctx: click.Context, rounds: str | None, skip_health_check: bool) -> None:
    """Run the game in the terminal with a live view."""
    config, log_file = _load(ctx.obj["verbose"])
    total_rounds = _rounds_option(rounds, config.game.rounds)
    pool, providers = _prepare_pool(config, skip_health_check)

    store = RoundStore(config.storage.database_url)
    game = build_game(config, pool, providers, store)

    console.print(
        f"\n[bold cyan]Quipslop[/bold cyan] {'infinite' if total_rounds is None else total_rounds} rounds "
        f"with {len(pool)} models"
    )
    console.print(f"[dim]Log: {log_file}[/dim]\n")

    def view():
        last = game.completed[-1] if game.completed else None
        return render_game(game.active, last, game.standings, game.paused)

    try:
        with Live(view(), console=console, refresh_per_second=4) as live:
            game.broadcaster.subscribe(lambda _snapshot: live.update(view()))
            asyncio.run(game.run(total_rounds))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
    finally:
        store.close()

    print_standings(game.standings)
    console.print(f"\n[dim]Log: {log_file}[/dim]")


@main.command()
@click.option("--rounds", default=None, help="Number of rounds or 'infinite' (default: from config)")
@click.option("--host", default=None, help="Bind address (default: from config)")
@click.option("--port", default=None, type=int, help="Port (default: from config / $PORT)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.pass_context
def serve(
    ctx: click.Context,
    rounds: str | None,
    host: str | None,
    port: int | None,
    skip_health_check: bool,
) -> None:
    """Run the game behind the live WebSocket server."""
    import uvicorn

    from quipslop.server import create_app

    config, log_file = _load(ctx.obj["verbose"])
    total_rounds = _rounds_option(rounds, config.game.rounds)
    pool, providers = _prepare_pool(config, skip_health_check)

    admin_secret = os.environ.get(config.server.admin_secret_env, "").strip() or None
    if admin_secret is None:
        logger.warning("%s not set: pause/resume/reset endpoints are disabled", config.server.admin_secret_env)

    store = RoundStore(config.storage.database_url)
    game = build_game(config, pool, providers, store)
    app = create_app(
        game,
        store,
        total_rounds=total_rounds,
        admin_secret=admin_secret,
        history_page_size=config.game.history_page_size,
    )

    bind_host = host or config.server.host
    bind_port = port or config.server.port
    console.print(f"\n[bold cyan]Quipslop Web[/bold cyan] http://{bind_host}:{bind_port}")
    console.print(f"WebSocket: ws://{bind_host}:{bind_port}/ws")
    console.print(f"{'infinite' if total_rounds is None else total_rounds} rounds with {len(pool)} models")
    console.print(f"[dim]Log: {log_file}[/dim]\n")
    uvicorn.run(app, host=bind_host, port=bind_port, log_config=None)


@main.command()
@click.option("--page", default=1, type=click.IntRange(min=1), help="Page number (newest first)")
@click.pass_context
def history(ctx: click.Context, page: int) -> None:
    """Print archived rounds."""
    config, _ = _load(ctx.obj["verbose"])
    store = RoundStore(config.storage.database_url)
    try:
        rounds, total = store.list_rounds(page, config.game.history_page_size)
    finally:
        store.close()

    if not rounds:
        click.echo("No archived rounds." if total == 0 else f"No rounds on page {page}.")
        return
    for rnd in rounds:
        print_round_summary(rnd)
    console.print(f"[dim]Page {page}, {total} rounds archived[/dim]")


@main.command()
@click.option("--rounds", "total_rounds", default=1000, type=click.IntRange(min=1), help="Rounds to play")
@click.option("--concurrency", default=100, type=click.IntRange(min=1), help="Rounds in flight at once")
@click.option("--output", "output_path", default=None, help="Report directory (default: log dir)")
@click.option("--skip-health-check", is_flag=True, default=False,
              help="Skip the API connectivity check at startup")
@click.pass_context
def bulk(
    ctx: click.Context,
    total_rounds: int,
    concurrency: int,
    output_path: str | None,
    skip_health_check: bool,
) -> None:
    """Play many independent rounds in parallel and report final ranks."""
    config, _ = _load(ctx.obj["verbose"])
    pool, providers = _prepare_pool(config, skip_health_check)

    generations = GenerationCounter()
    # Each round runs several calls at once; size the call limit to the round limit.
    orchestrator = build_orchestrator(
        config, providers, generations,
        max_concurrency=max(config.game.max_concurrency, concurrency * 2),
    )

    console.print(f"Starting bulk run of {total_rounds} rounds with concurrency {concurrency}...")
    with Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task("Rounds", total=total_rounds)

        def on_progress(result: BulkResult) -> None:
            progress.update(
                task_id,
                completed=result.completed + result.failed,
                description=f"Rounds (ok {result.completed}, failed {result.failed})",
            )

        result = asyncio.run(
            run_bulk(
                pool,
                orchestrator,
                generations,
                total_rounds,
                concurrency,
                scoring=ScoringRule(config.game.scoring),
                on_progress=on_progress,
            )
        )

    report = save_bulk_report(result, Path(output_path) if output_path else config.game.log_dir)
    print_standings(result.standings)
    console.print(
        f"\nCompleted {result.completed}, failed {result.failed} in {result.duration_sec:.1f}s"
    )
    console.print(f"[dim]Report saved to: {report}[/dim]")


if __name__ == "__main__":
    main()
