"""
Configuration commands for NWHA CLI.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

app = typer.Typer(help="Configuration management")
console = Console()


@app.command("show")
def config_show():
    """Show current configuration."""
    from nwha.cli.state import load_config

    try:
        config = load_config()
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/]")
        raise typer.Exit(1)

    engines = config.engines
    sessions = config.sessions
    terminal = config.terminal
    idle = f"{sessions.paused_idle_timeout:g}s" if sessions.paused_idle_timeout else "never"

    console.print(
        Panel.fit(
            f"[bold]Engines:[/]\n"
            f"  Primary: {engines.primary.name} ({' '.join(engines.primary.get_command())})\n"
            f"  Secondary: {engines.secondary.name} ({' '.join(engines.secondary.get_command())})\n"
            f"  Fallback: {'enabled' if engines.fallback_enabled else '[yellow]disabled[/]'}\n"
            f"  Timeout: {engines.command_timeout:g}s\n"
            f"  Max Output: {engines.max_output_bytes} bytes\n"
            f"  Attempts: {engines.attempts}\n"
            f"\n[bold]Sessions:[/]\n"
            f"  Max Iterations: {sessions.max_iterations_default}\n"
            f"  Projects Root: {sessions.projects_root_directory}\n"
            f"  Paused Expiry: {idle}\n"
            f"\n[bold]Terminal:[/]\n"
            f"  Shell: {' '.join(terminal.shell)}\n"
            f"  Size: {terminal.cols}x{terminal.rows} ({terminal.term})\n"
            f"\n[bold]Storage:[/]\n"
            f"  Data Dir: {config.storage.data_dir}\n"
            f"\n[bold]Logging:[/]\n"
            f"  Level: {config.logging.level}\n"
            f"  File: {config.logging.file or '-'}",
            title="[bold blue]NWHA Configuration[/]",
        )
    )


@app.command("init")
def config_init(
    config_file: str = typer.Option(
        "nwha.yaml",
        "--output",
        "-o",
        help="Output file path",
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite without asking"),
):
    """Write a configuration file with the default settings."""
    from nwha.models.config import NwhaConfig

    config_path = Path(config_file)

    if config_path.exists() and not force:
        overwrite = typer.confirm(f"{config_file} already exists. Overwrite?")
        if not overwrite:
            console.print("[yellow]Cancelled[/]")
            return

    NwhaConfig().save(config_path)

    console.print(f"[green]Configuration saved to {config_file}[/]")
    console.print("\n[bold]Next steps:[/]")
    console.print("1. Make sure the engine CLIs are on your PATH:")
    console.print("   [dim]claude --version && codex --version[/]")
    console.print("\n2. Create a project and run a session:")
    console.print("   [dim]nwha project create my-app[/]")
    console.print('   [dim]nwha run my-app --prompt "Continue with the next task"[/]')
