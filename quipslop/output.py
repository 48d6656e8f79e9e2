"""Rich console rendering of rounds and standings, and the bulk markdown report."""

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from quipslop.bulk import BulkResult
from quipslop.models import Participant, Phase, RoundRecord, TaskRecord

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Vote counts are shown as points, 100 per vote.
SCORE_SCALE = 100

PARTICIPANT_COLORS: dict[str, str] = {
    "Gemini 3.1 Pro": "cyan",
    "Kimi K2": "green",
    "DeepSeek 3.2": "bright_green",
    "GPT-5.2": "yellow",
    "Opus 4.6": "blue",
    "Sonnet 4.6": "red",
    "Grok 4.1": "white",
}


def _styled(p: Participant) -> Text:
    return Text(p.name, style=f"bold {PARTICIPANT_COLORS.get(p.name, 'magenta')}")


def _task_text(task: TaskRecord) -> Text:
    if task.error:
        return Text(task.error, style="red")
    if task.result is not None:
        return Text(task.result)
    if task.started_at:
        return Text("thinking...", style="dim")
    return Text("waiting", style="dim")


def render_round(rnd: RoundRecord) -> Panel:
    """One round as a panel: prompt, both answers, votes and score."""
    contestant_a, contestant_b = rnd.contestants
    lines: list[RenderableType] = []

    prompter_line = Text.assemble(_styled(rnd.prompter), " writes the prompt: ")
    if rnd.prompt_task.error:
        prompter_line.append(rnd.prompt_task.error, style="red")
    elif rnd.prompt:
        prompter_line.append(rnd.prompt, style="italic")
    else:
        prompter_line.append("thinking...", style="dim")
    lines.append(prompter_line)

    if rnd.phase is not Phase.PROMPTING and rnd.prompt:
        for label, contestant, task in (("A", contestant_a, rnd.answer_tasks[0]), ("B", contestant_b, rnd.answer_tasks[1])):
            lines.append(Text.assemble(f"  {label}  ", _styled(contestant), ": ", _task_text(task)))

    if rnd.votes:
        votes = Table.grid(padding=(0, 2))
        for vote in rnd.votes:
            if vote.error:
                choice = Text("abstained", style="red")
            elif vote.voted_for is not None:
                choice = _styled(vote.voted_for)
            else:
                choice = Text("voting...", style="dim")
            votes.add_row(_styled(vote.voter), Text("->"), choice)
        lines.append(votes)

    if rnd.phase is Phase.DONE and rnd.score_a is not None:
        if rnd.tied:
            verdict = Text("Tie - no point awarded", style="yellow")
        else:
            verdict = Text.assemble(_styled(rnd.winner), " wins the round")
        lines.append(
            Text.assemble(
                _styled(contestant_a), f" {rnd.score_a * SCORE_SCALE} - {rnd.score_b * SCORE_SCALE} ",
                _styled(contestant_b), "   ", verdict,
            )
        )

    return Panel(
        Group(*lines),
        title=f"[bold]Round {rnd.number}[/bold]",
        subtitle=rnd.phase.value,
        border_style="cyan" if rnd.phase is not Phase.DONE else "dim",
    )


def render_standings(standings: dict[str, int]) -> Table:
    table = Table(title="Standings", show_lines=False)
    table.add_column("#", justify="right")
    table.add_column("Model")
    table.add_column("Wins", justify="right")
    ranked = sorted(standings.items(), key=lambda item: (-item[1], item[0]))
    for rank, (name, wins) in enumerate(ranked, start=1):
        table.add_row(str(rank), Text(name, style=PARTICIPANT_COLORS.get(name, "magenta")), str(wins))
    return table


def render_game(
    active: RoundRecord | None,
    last_completed: RoundRecord | None,
    standings: dict[str, int],
    paused: bool = False,
) -> Group:
    parts: list[RenderableType] = []
    if paused:
        parts.append(Text("PAUSED", style="bold yellow"))
    shown = active or last_completed
    if shown is not None:
        parts.append(render_round(shown))
    parts.append(render_standings(standings))
    return Group(*parts)


def print_round_summary(rnd: RoundRecord) -> None:
    console.print(render_round(rnd))


def print_standings(standings: dict[str, int]) -> None:
    console.print(Rule("[bold green]Final Standings[/bold green]"))
    console.print(render_standings(standings))


def save_bulk_report(result: BulkResult, output_dir: Path) -> Path:
    """Write the bulk run transcript and final ranks as markdown.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"bulk-{timestamp}.md"

    lines: list[str] = [
        "# Quipslop Bulk Run",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Total Rounds:** {result.total_rounds}",
        f"**Concurrency:** {result.concurrency}",
        f"**Completed:** {result.completed}",
        f"**Failed:** {result.failed}",
        f"**Duration:** {result.duration_sec:.1f}s",
        "",
        "---",
        "",
    ]

    for rnd in result.rounds:
        contestant_a, contestant_b = rnd.contestants
        lines.append(f"## Round {rnd.number}")
        lines.append("")
        if rnd.prompt is None:
            lines.append(f"Prompt by {rnd.prompter.name} failed: {rnd.prompt_task.error}")
            lines.append("")
            continue
        lines.append(f"**Prompter ({rnd.prompter.name}):** {rnd.prompt}")
        lines.append("")
        lines.append(f"- **{contestant_a.name}:** {rnd.answer_tasks[0].result} [Votes: {rnd.score_a}]")
        lines.append(f"- **{contestant_b.name}:** {rnd.answer_tasks[1].result} [Votes: {rnd.score_b}]")
        lines.append("")
        lines.append("Votes:")
        for vote in rnd.votes:
            voted = vote.voted_for.name if vote.voted_for else "ABSTAINED"
            lines.append(f"  - {vote.voter.name} voted for: {voted}")
        lines.append("")
        lines.append(f"**Winner:** {rnd.winner.name if rnd.winner else 'TIE'}")
        lines.append("")

    lines += ["## Final Ranks", ""]
    ranked = sorted(result.standings.items(), key=lambda item: (-item[1], item[0]))
    for rank, (name, wins) in enumerate(ranked, start=1):
        lines.append(f"{rank}. {name}: {wins} wins")
    lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Bulk report saved to: %s", filepath)
    return filepath
