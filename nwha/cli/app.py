"""
Main CLI application.

This module defines the main Typer application and entry point.
"""

from __future__ import annotations

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console

from nwha import __version__
from nwha.cli.commands import config, project, session
from nwha.cli.state import cli_state, load_config

# Create the main app
app = typer.Typer(
    name="nwha",
    help="Autonomous coding agent sessions",
    add_completion=True,
    rich_markup_mode="rich",
    no_args_is_help=True,
)

# Add sub-commands
app.add_typer(project.app, name="project", help="Project management")
app.add_typer(session.app, name="session", help="Session management")
app.add_typer(config.app, name="config", help="Configuration management")

console = Console()


def version_callback(value: bool):
    """Show version and exit."""
    if value:
        console.print(f"[bold blue]NWHA[/] v{__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show version and exit",
        callback=version_callback,
        is_eager=True,
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Suppress non-essential output",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        help="Enable debug output",
    ),
    config_file: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Configuration file path",
    ),
):
    """
    NWHA - Autonomous coding agent sessions

    Runs AI coding engines (Claude, Codex) in bounded sessions, each bound
    to a terminal inside its project directory.

    Global Options:
        --quiet, -q    Suppress non-essential output
        --debug        Enable debug logging
        --config, -c   Use a specific configuration file
    """
    cli_state.quiet = quiet
    cli_state.debug = debug
    cli_state.config_path = config_file


@app.command()
def run(
    project_slug: str = typer.Argument(..., help="Project to run the agent in"),
    prompt: str = typer.Option(
        ...,
        "--prompt",
        "-p",
        help="Prompt sent to the engine on every iteration",
    ),
    owner: int = typer.Option(1, "--owner", help="Owner id of the project"),
    max_iterations: Optional[int] = typer.Option(
        None,
        "--max-iterations",
        "-n",
        min=1,
        help="Iteration ceiling (defaults to configuration)",
    ),
):
    """
    Run an agent session until its iteration budget is used up.

    Terminal output is streamed as it arrives. Press Ctrl-C to stop the
    session early.

    Example:
        nwha run my-app --prompt "Continue with the next task"
        nwha run my-app -p "Fix the failing tests" -n 5
    """
    from nwha.errors import NwhaError

    try:
        asyncio.run(_run_session(project_slug, prompt, owner, max_iterations))
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted; session stopped[/]")
        raise typer.Exit(130)
    except NwhaError as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)


async def _run_session(
    project_slug: str,
    prompt: str,
    owner: int,
    max_iterations: int | None,
) -> None:
    from nwha.core.controller import SessionController
    from nwha.models.session import IterationResult
    from nwha.utils.helpers import format_duration

    config = load_config()
    controller = SessionController.from_config(config)

    def print_output(_session_id: int, data: bytes) -> None:
        if not cli_state.quiet:
            sys.stdout.write(data.decode("utf-8", errors="replace"))
            sys.stdout.flush()

    def print_result(result: IterationResult) -> None:
        if result.applied and result.outcome:
            console.print(
                f"\n[dim]Iteration {result.session.iterations}/{result.session.max_iterations} "
                f"via {result.outcome.engine} ({result.outcome.duration:.1f}s)[/]"
            )

    session = await controller.start_session(project_slug, owner, max_iterations)
    console.print(
        f"[green]Session {session.id} started[/] "
        f"(pid {session.pid}, up to {session.max_iterations} iterations)"
    )
    unsubscribe = controller.on_terminal_output(session.id, print_output)

    try:
        session = await controller.run_loop(session.id, prompt, on_result=print_result)
    finally:
        unsubscribe()
        await controller.shutdown()

    session = controller.get_session(session.id)
    duration = session.duration_seconds
    console.print(
        f"\n[bold]Session {session.id}[/] {session.status.value} after "
        f"{session.iterations} iteration(s)"
        + (f" in {format_duration(duration)}" if duration is not None else "")
    )


@app.command()
def ask(
    prompt: str = typer.Argument(..., help="Prompt to send"),
    cwd: Optional[str] = typer.Option(
        None,
        "--cwd",
        help="Working directory for the engine",
    ),
):
    """
    Send one prompt to the engines and print the response.

    The secondary engine answers if the primary fails and fallback is enabled.
    """
    from nwha.engines.fallback import FallbackCoordinator
    from nwha.errors import EngineUnavailable

    config = load_config()
    coordinator = FallbackCoordinator.from_config(config.engines)

    try:
        outcome = asyncio.run(coordinator.respond(prompt, cwd=cwd))
    except EngineUnavailable as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(2)

    console.print(outcome.text, markup=False, highlight=False)
    if not cli_state.quiet:
        console.print(outcome.get_summary(), style="dim", markup=False)


def main():
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
