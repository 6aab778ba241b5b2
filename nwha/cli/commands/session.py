"""
Session management commands for NWHA CLI.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

app = typer.Typer(help="Session management")
console = Console()

STATUS_COLORS = {
    "pending": "dim",
    "running": "green",
    "paused": "yellow",
    "stopped": "red",
}


@app.command("list")
def session_list(
    status: str = typer.Option(
        None,
        "--status",
        "-s",
        help="Only show sessions in this status (pending, running, paused, stopped)",
    ),
    project_slug: str = typer.Option(None, "--project", "-p", help="Only show this project"),
    owner: int = typer.Option(1, "--owner", help="Owner of --project"),
    limit: int = typer.Option(20, "--limit", "-n", help="Maximum sessions to show"),
):
    """List recorded sessions, newest first."""
    from nwha.cli.state import load_config
    from nwha.core.storage import SessionStorage
    from nwha.models.session import SessionStatus

    config = load_config()
    storage = SessionStorage(config.storage.get_data_dir())

    if status is not None:
        try:
            status = SessionStatus(status.lower())
        except ValueError:
            console.print(f"[red]Unknown status '{status}'[/]")
            raise typer.Exit(1)

    project_id = None
    if project_slug:
        project = storage.find_project(project_slug, owner)
        if project is None:
            console.print(f"[red]Project '{project_slug}' not found[/]")
            raise typer.Exit(1)
        project_id = project.id

    sessions = storage.list_sessions(project_id=project_id, status=status, limit=limit)
    if not sessions:
        console.print("[dim]No sessions found[/]")
        return

    table = Table(title="Sessions", show_header=True)
    table.add_column("ID", justify="right", style="bold")
    table.add_column("Project", justify="right")
    table.add_column("Engine")
    table.add_column("Status")
    table.add_column("Progress")
    table.add_column("Created")

    for session in sessions:
        color = STATUS_COLORS.get(session.status.value, "white")
        table.add_row(
            str(session.id),
            str(session.project_id),
            session.engine,
            f"[{color}]{session.status.value}[/]",
            f"{session.iterations}/{session.max_iterations}",
            session.created_at.isoformat()[:19],
        )

    console.print(table)


@app.command("show")
def session_show(
    session_id: int = typer.Argument(..., help="Session ID to show"),
):
    """Show details of a session."""
    from nwha.cli.state import load_config
    from nwha.core.storage import SessionStorage
    from nwha.utils.helpers import format_duration

    config = load_config()
    storage = SessionStorage(config.storage.get_data_dir())

    session = storage.get_session(session_id)
    if not session:
        console.print(f"[red]Session '{session_id}' not found[/]")
        raise typer.Exit(1)

    project = storage.get_project(session.project_id)
    duration = session.duration_seconds
    color = STATUS_COLORS.get(session.status.value, "white")

    content = f"""
[bold]Project:[/] {project.slug if project else session.project_id}
[bold]Status:[/] [{color}]{session.status.value}[/]
[bold]Engine:[/] {session.engine}
[bold]Iterations:[/] {session.iterations}/{session.max_iterations}
[bold]PID:[/] {session.pid if session.pid is not None else "-"}
[bold]Created:[/] {session.created_at}
[bold]Started:[/] {session.started_at or "-"}
[bold]Ended:[/] {session.ended_at or "-"}
[bold]Duration:[/] {format_duration(duration) if duration is not None else "-"}
"""

    console.print(Panel(content.strip(), title=f"[bold]Session {session.id}[/]"))
