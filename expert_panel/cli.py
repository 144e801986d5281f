"""Click CLI for creating discussions, taking expert turns and managing API keys."""

import asyncio
import logging
import sys
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler

from config.config_loader import AppConfig, load_config
from expert_panel.errors import PanelError
from expert_panel.keycheck import VALIDATABLE_PROVIDERS, check_credentials, validate_key
from expert_panel.keys import SUPPORTED_PROVIDERS
from expert_panel.output import (
    export_transcript,
    print_credentials,
    print_discussion,
    print_discussion_list,
    print_experts,
    print_message,
    print_turn_state,
)
from expert_panel.providers.base import ProviderError
from expert_panel.service import DiscussionService

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def _service(ctx: click.Context) -> DiscussionService:
    return ctx.obj["service"]


@click.group()
@click.option("--settings", "settings_path", type=click.Path(exists=True, dir_okay=False),
              default=None, help="Path to settings.yaml (default: bundled config)")
@click.option("--db", "db_path", default=None, help="Database file (default: from config or EXPERT_PANEL_DB)")
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.pass_context
def main(ctx: click.Context, settings_path: str | None, db_path: str | None, verbose: bool) -> None:
    """Expert Panel -- multi-expert discussions backed by LLM providers.

    \b
    Examples:
      expert-panel keys add openai sk-...
      expert-panel new "Event sourcing for billing?" -e architect -e security
      expert-panel ask <discussion-id> architect "Where do we start?"
      expert-panel advance <discussion-id>
    """
    load_dotenv()
    _setup_logging(verbose)

    try:
        config: AppConfig = load_config(Path(settings_path)) if settings_path else load_config()
    except (FileNotFoundError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    if db_path:
        config.defaults.database_path = Path(db_path)

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["service"] = DiscussionService.from_config(config)


@main.command("experts")
@click.option("--all", "show_all", is_flag=True, help="List experts even without an active API key")
@click.pass_context
def experts_cmd(ctx: click.Context, show_all: bool) -> None:
    """List the available expert personas."""
    service = _service(ctx)
    experts = service.registry.list_all() if show_all else service.available_experts()
    if not experts:
        console.print("[yellow]No experts available.[/yellow] Add an active API key with `keys add`.")
        return
    print_experts(experts)


@main.group("keys")
def keys_group() -> None:
    """Manage provider API keys."""


@keys_group.command("add")
@click.argument("provider", type=click.Choice(SUPPORTED_PROVIDERS))
@click.argument("key")
@click.option("--name", default="", help="Label for the key")
@click.option("--skip-validation", is_flag=True, help="Store without checking the key first")
@click.pass_context
def keys_add(ctx: click.Context, provider: str, key: str, name: str, skip_validation: bool) -> None:
    """Validate and store an API key."""
    if not skip_validation and provider in VALIDATABLE_PROVIDERS:
        result = asyncio.run(validate_key(provider, key))
        if not result.valid:
            _fail(f"Key rejected: {result.error}")
    credential = _service(ctx).keys.add(provider, key, name=name)
    console.print(f"[green]Stored[/green] {credential.provider} key {credential.masked()} ({credential.id})")


@keys_group.command("list")
@click.pass_context
def keys_list(ctx: click.Context) -> None:
    """List stored API keys (masked)."""
    print_credentials(_service(ctx).keys.list_credentials())


@keys_group.command("activate")
@click.argument("credential_id")
@click.pass_context
def keys_activate(ctx: click.Context, credential_id: str) -> None:
    """Mark a key as active."""
    try:
        _service(ctx).keys.set_active(credential_id, True)
    except PanelError as exc:
        _fail(str(exc))
    console.print(f"Key {credential_id} activated")


@keys_group.command("deactivate")
@click.argument("credential_id")
@click.pass_context
def keys_deactivate(ctx: click.Context, credential_id: str) -> None:
    """Mark a key as inactive."""
    try:
        _service(ctx).keys.set_active(credential_id, False)
    except PanelError as exc:
        _fail(str(exc))
    console.print(f"Key {credential_id} deactivated")


@keys_group.command("check")
@click.pass_context
def keys_check(ctx: click.Context) -> None:
    """Re-validate every stored key against its provider."""
    credentials = [
        c for c in _service(ctx).keys.list_credentials() if c.provider in VALIDATABLE_PROVIDERS
    ]
    if not credentials:
        console.print("No keys to check.")
        return
    results = asyncio.run(check_credentials(credentials))
    for c in credentials:
        r = results[c.id]
        if r.valid:
            console.print(f"  [green]OK  [/green] {c.provider} {c.masked()}")
        else:
            console.print(f"  [red]FAIL[/red] {c.provider} {c.masked()}: {r.error}")


@main.command("new")
@click.argument("topic")
@click.option("--description", "-d", default="", help="Longer description of the discussion")
@click.option("--expert", "-e", "expert_ids", multiple=True, required=True,
              help="Expert id to invite (repeat for up to 3 experts, order sets the turn order)")
@click.option("--mode", type=click.Choice(["sequential", "parallel"]), default="sequential",
              help="Turn order: round-robin (sequential) or free choice (parallel)")
@click.pass_context
def new_cmd(ctx: click.Context, topic: str, description: str, expert_ids: tuple[str, ...], mode: str) -> None:
    """Create a discussion."""
    try:
        discussion = _service(ctx).create_discussion(topic, description, list(expert_ids), mode)
    except (PanelError, ValueError) as exc:
        _fail(str(exc))
    console.print(f"[green]Created[/green] discussion {discussion.id}")
    console.print(f"Panel: {', '.join(discussion.participant_ids)} [{discussion.mode}]")


@main.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List discussions."""
    discussions = _service(ctx).list_discussions()
    if not discussions:
        console.print("No discussions yet.")
        return
    print_discussion_list(discussions)


@main.command("show")
@click.argument("discussion_id")
@click.pass_context
def show_cmd(ctx: click.Context, discussion_id: str) -> None:
    """Show a discussion with all messages."""
    service = _service(ctx)
    try:
        discussion = service.get_discussion(discussion_id)
    except PanelError as exc:
        _fail(str(exc))
    print_discussion(
        discussion,
        service.get_messages(discussion_id),
        service.registry,
        service.turn_state(discussion_id),
    )


@main.command("ask")
@click.argument("discussion_id")
@click.argument("expert_id")
@click.argument("message")
@click.pass_context
def ask_cmd(ctx: click.Context, discussion_id: str, expert_id: str, message: str) -> None:
    """Send MESSAGE and get EXPERT_ID's response."""
    service = _service(ctx)
    try:
        with console.status(f"Waiting for {expert_id}..."):
            reply = asyncio.run(service.take_turn(discussion_id, expert_id, message))
    except (PanelError, ProviderError) as exc:
        _fail(str(exc))
    print_message(reply, service.registry)
    print_turn_state(service.turn_state(discussion_id))


@main.command("advance")
@click.argument("discussion_id")
@click.pass_context
def advance_cmd(ctx: click.Context, discussion_id: str) -> None:
    """Advance to the next round once every expert has answered."""
    try:
        new_round = _service(ctx).advance_round(discussion_id)
    except PanelError as exc:
        _fail(str(exc))
    console.print(f"Discussion now in round {new_round}")


@main.command("status")
@click.argument("discussion_id")
@click.argument("status", required=False, type=click.Choice(["active", "completed"]))
@click.pass_context
def status_cmd(ctx: click.Context, discussion_id: str, status: str | None) -> None:
    """Set the discussion status, or toggle it when STATUS is omitted."""
    service = _service(ctx)
    try:
        if status:
            service.set_status(discussion_id, status)
        else:
            status = service.toggle_status(discussion_id)
    except PanelError as exc:
        _fail(str(exc))
    console.print(f"Discussion {discussion_id} is now {status}")


@main.command("delete")
@click.argument("discussion_id")
@click.confirmation_option(prompt="Delete this discussion and all its messages?")
@click.pass_context
def delete_cmd(ctx: click.Context, discussion_id: str) -> None:
    """Delete a completed discussion."""
    try:
        _service(ctx).delete_discussion(discussion_id)
    except PanelError as exc:
        _fail(str(exc))
    console.print(f"Deleted {discussion_id}")


@main.command("export")
@click.argument("discussion_id")
@click.option("--output", "output_path", default=None, help="Output directory (default: from config)")
@click.pass_context
def export_cmd(ctx: click.Context, discussion_id: str, output_path: str | None) -> None:
    """Export a discussion transcript to markdown."""
    service = _service(ctx)
    output_dir = Path(output_path) if output_path else ctx.obj["config"].defaults.export_dir
    try:
        discussion = service.get_discussion(discussion_id)
    except PanelError as exc:
        _fail(str(exc))
    saved = export_transcript(discussion, service.get_messages(discussion_id), service.registry, output_dir)
    console.print(f"[dim]Saved to: {saved}[/dim]")


@main.command("serve")
@click.option("--host", default="127.0.0.1")
@click.option("--port", default=8000, type=int)
@click.pass_context
def serve_cmd(ctx: click.Context, host: str, port: int) -> None:
    """Run the HTTP API."""
    import uvicorn

    from expert_panel.web import create_app

    uvicorn.run(create_app(_service(ctx)), host=host, port=port)


if __name__ == "__main__":
    main()
