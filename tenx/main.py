"""Command line entry point for tenx."""

import asyncio
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.table import Table

from tenx import __version__
from tenx.agents import AgentExecutor, format_context
from tenx.classifier import classify
from tenx.config import Config, get_config, set_config
from tenx.exceptions import AbortedError, SessionStateError, TenxError
from tenx.guidance import build_system_prompt, load_guidance
from tenx.llm import ChatTransport, Message
from tenx.llm.openrouter import OpenRouterTransport
from tenx.logging import configure_logging, get_logger
from tenx.multimodal import parse_message_with_images
from tenx.permissions import PermissionManager, load_settings
from tenx.router import StreamingRouter
from tenx.session import SessionManager
from tenx.tools import create_core_tool_registry, register_session_tools
from tenx.tools.task import TaskTool

log = get_logger(__name__)

app = typer.Typer(help="tenx - a terminal coding assistant with model routing")
console = Console()

BASE_SYSTEM_PROMPT = (
    "You are tenx, a coding assistant working in the user's repository. "
    "Use the available tools to inspect and change files."
)

SUMMARY_REQUEST = (
    "Summarize the conversation so far. Keep decisions, file paths, "
    "open tasks and any constraints the user stated."
)

EXIT_COMMANDS = {"/exit", "/quit"}


def _load_config(config_path: str, verbose: bool) -> Config:
    cfg = Config.load(config_path or None)
    if verbose:
        cfg.logging.level = "DEBUG"
    set_config(cfg)
    configure_logging(cfg)
    return cfg


async def _confirm_tool(tool: str, value: str, reason: str) -> bool:
    console.print(f"[yellow]{reason}[/yellow]")
    return await asyncio.to_thread(Confirm.ask, f"Allow [bold]{tool}[/bold]: {value}?", default=False)


async def _ask_questions(questions: list[dict[str, Any]]) -> dict[str, str]:
    answers: dict[str, str] = {}
    for question in questions:
        labels = [str(option.get("label", "")) for option in question.get("options", [])]
        console.print(f"[bold cyan]{question.get('header', 'Question')}[/bold cyan] {question['question']}")
        for index, label in enumerate(labels, 1):
            console.print(f"  {index}. {label}")
        raw = await asyncio.to_thread(Prompt.ask, "Answer (number or text)")
        if raw.isdigit() and 1 <= int(raw) <= len(labels):
            raw = labels[int(raw) - 1]
        answers[question["question"]] = raw
    return answers


def _make_summarizer(transport: ChatTransport, cfg: Config):
    summarizer_router = StreamingRouter(transport, config=cfg)

    async def summarize(messages: list[Message]) -> str:
        result = await summarizer_router.complete(
            [Message(role="user", content=f"{format_context(messages)}\n\n---\n\n{SUMMARY_REQUEST}")],
            tier="fast",
        )
        return result.content

    return summarize


async def _run_turn(
    router: StreamingRouter,
    sessions: SessionManager,
    text: str,
    working_directory: Path,
) -> None:
    content, has_images = parse_message_with_images(text, working_directory)
    session = await sessions.add_message(Message(role="user", content=content))

    turn = router.start_turn(list(session.messages), has_images=has_images)
    history_length = len(turn.messages)
    try:
        async for event in turn.run():
            if event.type == "text" and event.content:
                console.print(event.content, end="", markup=False, highlight=False)
            elif event.type == "tool_call" and event.tool_call:
                console.print(f"\n[dim]> {event.tool_call.name} {event.tool_call.input}[/dim]")
            elif event.type == "tool_result" and event.tool_result and not event.tool_result.success:
                console.print(f"[red]{event.tool_result.error}[/red]")
            elif event.type == "done":
                console.print()
    finally:
        # Tool exchanges recorded by the loop precede the final reply.
        for message in turn.messages[history_length:]:
            await sessions.add_message(message)
        if turn.reply:
            await sessions.add_message(Message(role="assistant", content=turn.reply))


async def _interactive(
    cfg: Config,
    prompt: str,
    session_name: str,
    resume: bool,
    tier: str,
) -> None:
    working_directory = Path.cwd()
    transport = OpenRouterTransport.from_config(cfg.transport)
    sessions = SessionManager(db_path=cfg.session.path, context=cfg.context)

    permissions = PermissionManager(
        load_settings(cfg.permissions.settings_path),
        prompt_fn=_confirm_tool,
        ask_fallback=cfg.permissions.ask_fallback,
    )
    tools = create_core_tool_registry(cfg.tools, working_directory)
    tools.set_permission_manager(permissions)
    register_session_tools(tools, ask_prompt=_ask_questions)
    executor = AgentExecutor(transport, tools, cfg)
    tools.register(TaskTool(executor))

    guidance = load_guidance(working_directory)
    router = StreamingRouter(
        transport,
        tools=tools,
        config=cfg,
        system_prompt=build_system_prompt(BASE_SYSTEM_PROMPT, guidance),
        default_tier=tier or None,
    )
    summarize = _make_summarizer(transport, cfg)

    try:
        session = None
        if resume:
            session = await sessions.resume_last()
        elif session_name:
            session = await sessions.load_by_name(session_name)
        if session is None:
            session = await sessions.create(name=session_name or None, working_directory=working_directory)
        console.print(f"[dim]Session {session.id} ({len(session.messages)} messages)[/dim]")

        pending = prompt
        while True:
            text = pending or await asyncio.to_thread(Prompt.ask, "[bold green]>[/bold green]")
            pending = ""
            text = text.strip()
            if not text:
                continue
            if text in EXIT_COMMANDS:
                break
            if text == "/compact":
                summary = await sessions.compact(summarize)
                console.print("[dim]Compacted.[/dim]" if summary else "[dim]Nothing to compact.[/dim]")
                continue
            if text == "/fork":
                forked = await sessions.fork()
                if forked:
                    console.print(f"[dim]Forked into {forked.id}[/dim]")
                continue

            executor.set_context(sessions.current.messages if sessions.current else [])
            try:
                await _run_turn(router, sessions, text, working_directory)
            except AbortedError:
                console.print("\n[yellow]Aborted.[/yellow]")
            except TenxError as e:
                console.print(f"\n[red]Error: {e}[/red]")

            if sessions.needs_compaction():
                try:
                    await sessions.compact(summarize)
                    console.print("[dim]Context compacted.[/dim]")
                except SessionStateError as e:
                    log.warning("Automatic compaction skipped", error=str(e))

            if prompt:
                break
    finally:
        await sessions.close()
        await transport.close()


@app.command()
def run(
    prompt: str = typer.Argument("", help="Run a single prompt and exit"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
    session: str = typer.Option("", "-s", "--session", help="Session name to open or create"),
    resume: bool = typer.Option(False, "-r", "--resume", help="Resume the most recent session"),
    tier: str = typer.Option("", "-t", "--tier", help="Default tier: superfast, fast or smart"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Debug logging"),
) -> None:
    """Start an interactive session, or run one prompt."""
    cfg = _load_config(config, verbose)
    if not cfg.transport.api_key:
        console.print("[red]No API key configured. Set TENX_TRANSPORT__API_KEY.[/red]")
        raise typer.Exit(code=1)
    try:
        asyncio.run(_interactive(cfg, prompt, session, resume, tier))
    except KeyboardInterrupt:
        console.print("\n[dim]Bye.[/dim]")


@app.command("classify")
def classify_command(text: str = typer.Argument(..., help="Prompt to classify")) -> None:
    """Print the tier a prompt would be routed to."""
    cfg = get_config()
    tier = classify(text, cfg.models.default_tier)
    console.print(f"{tier} {cfg.model_for_tier(tier)}")


@app.command()
def sessions(
    limit: int = typer.Option(20, "-n", "--limit", help="Number of sessions to show"),
    config: str = typer.Option("", "-c", "--config", help="Path to config file"),
) -> None:
    """List recent sessions."""
    cfg = _load_config(config, verbose=False)

    async def _list():
        manager = SessionManager(db_path=cfg.session.path, context=cfg.context)
        try:
            return await manager.list(limit)
        finally:
            await manager.close()

    summaries = asyncio.run(_list())
    if not summaries:
        console.print("[dim]No sessions yet.[/dim]")
        return

    table = Table(title="Sessions", show_header=True, header_style="bold cyan")
    table.add_column("ID")
    table.add_column("Name")
    table.add_column("Messages", justify="right")
    table.add_column("State")
    table.add_column("Updated")
    table.add_column("Last prompt")
    for summary in summaries:
        table.add_row(
            summary.id[:8],
            summary.name or "",
            str(summary.message_count),
            summary.state,
            summary.updated_at,
            summary.last_user_prompt or "",
        )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"tenx v{__version__}")


if __name__ == "__main__":
    app()
