"""Rich console output and markdown export for discussions."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from expert_panel.context import speaker_label
from expert_panel.experts import ExpertRegistry, ExpertRole
from expert_panel.models import Credential, Discussion, Message
from expert_panel.service import TurnState

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _meta_line(message: Message) -> str:
    if message.is_user or message.metadata is None:
        return f"round {message.round} #{message.response_order}"
    m = message.metadata
    return (
        f"round {message.round} #{message.response_order} | {m.contribution_type} | "
        f"{m.confidence:.0%} confidence | {m.agreement_level:.0%} agreement"
    )


def print_experts(experts: list[ExpertRole]) -> None:
    table = Table(title="Experts")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Title")
    table.add_column("Expertise", style="dim")
    for e in experts:
        table.add_row(e.id, e.name, e.title, ", ".join(e.expertise))
    console.print(table)


def print_credentials(credentials: list[Credential]) -> None:
    table = Table(title="API keys")
    table.add_column("ID", style="dim")
    table.add_column("Provider")
    table.add_column("Name")
    table.add_column("Key")
    table.add_column("Active")
    table.add_column("Last used", style="dim")
    for c in credentials:
        table.add_row(
            c.id,
            c.provider,
            c.name,
            c.masked(),
            "yes" if c.is_active else "no",
            c.last_used.strftime("%Y-%m-%d %H:%M") if c.last_used else "-",
        )
    console.print(table)


def print_discussion_list(discussions: list[Discussion]) -> None:
    table = Table(title="Discussions")
    table.add_column("ID", style="dim")
    table.add_column("Topic", style="bold")
    table.add_column("Mode")
    table.add_column("Round", justify="right")
    table.add_column("Status")
    table.add_column("Experts")
    for d in discussions:
        status_style = "green" if d.status == "active" else "dim"
        table.add_row(
            d.id,
            d.topic,
            d.mode,
            str(d.current_round),
            f"[{status_style}]{d.status}[/{status_style}]",
            ", ".join(d.participant_ids),
        )
    console.print(table)


def print_message(message: Message, registry: ExpertRegistry) -> None:
    speaker = speaker_label(message.author, registry)
    border = "cyan" if message.is_user else "green"
    console.print(
        Panel(
            Markdown(message.content),
            title=f"[bold]{speaker}[/bold]",
            subtitle=_meta_line(message),
            border_style=border,
        )
    )
    for ref in message.refs:
        console.print(
            Text(f"  ↳ quotes {speaker_label(ref.expert_id, registry)}: \"{ref.quote}\"", style="dim")
        )


def print_turn_state(state: TurnState) -> None:
    eligible = ", ".join(state.eligible) if state.eligible else "none"
    console.print(
        Text(
            f"Round {state.current_round} [{state.mode}, {state.status}] | "
            f"Next: {eligible} | "
            f"Round complete: {'yes' if state.can_advance else 'no'}",
            style="dim",
        )
    )


def print_discussion(
    discussion: Discussion,
    messages: list[Message],
    registry: ExpertRegistry,
    state: TurnState,
) -> None:
    console.print(Rule(f"[bold cyan]{discussion.topic}[/bold cyan]"))
    if discussion.description:
        console.print(Text(discussion.description, style="italic"))
    current_round = None
    for msg in messages:
        if msg.round != current_round:
            current_round = msg.round
            console.print(Rule(f"Round {current_round}", style="dim"))
        print_message(msg, registry)
    print_turn_state(state)


def export_transcript(
    discussion: Discussion,
    messages: list[Message],
    registry: ExpertRegistry,
    output_dir: Path,
) -> Path:
    """Save the discussion transcript as a markdown file.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(discussion.topic)}.md"

    panel = ", ".join(speaker_label(e, registry) for e in discussion.participant_ids)
    lines: list[str] = [
        f"# Expert Discussion: {discussion.topic}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Panel:** {panel}",
        f"**Mode:** {discussion.mode}",
        f"**Status:** {discussion.status}",
        f"**Rounds:** {discussion.current_round}",
        "",
    ]
    if discussion.description:
        lines += [discussion.description, ""]
    lines += ["---", ""]

    current_round = None
    for msg in messages:
        if msg.round != current_round:
            current_round = msg.round
            lines += [f"## Round {current_round}", ""]
        lines += [f"### {speaker_label(msg.author, registry)}", "", msg.content, ""]
        if not msg.is_user:
            lines += [f"*{_meta_line(msg)}*", ""]
            for ref in msg.refs:
                lines.append(f"> {speaker_label(ref.expert_id, registry)}: \"{ref.quote}\"")
            if msg.refs:
                lines.append("")

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath
