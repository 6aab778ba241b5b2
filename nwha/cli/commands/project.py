"""
Project management commands for NWHA CLI.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(help="Project management")
console = Console()


@app.command("create")
def project_create(
    name: str = typer.Argument(..., help="Project name"),
    owner: int = typer.Option(1, "--owner", help="Owner id"),
):
    """Create a project and its working directory."""
    from nwha.cli.state import load_config
    from nwha.core.storage import SessionStorage
    from nwha.errors import ProjectExists

    config = load_config()
    storage = SessionStorage(config.storage.get_data_dir())

    try:
        project = storage.create_project(owner_id=owner, name=name)
    except ProjectExists as e:
        console.print(f"[red]{e.message}[/]")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    project_dir = config.sessions.get_project_dir(project.slug)
    console.print(f"[green]Created project[/] [bold]{project.slug}[/] (id {project.id})")
    console.print(f"[dim]Working directory: {project_dir}[/]")


@app.command("list")
def project_list(
    owner: int = typer.Option(None, "--owner", help="Only show projects of this owner"),
):
    """List projects."""
    from nwha.cli.state import load_config
    from nwha.core.storage import SessionStorage

    config = load_config()
    storage = SessionStorage(config.storage.get_data_dir())
    projects = storage.list_projects(owner_id=owner)

    if not projects:
        console.print("[dim]No projects found[/]")
        return

    table = Table(title="Projects", show_header=True)
    table.add_column("ID", justify="right")
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("Owner", justify="right")
    table.add_column("Created")

    for project in projects:
        table.add_row(
            str(project.id),
            project.slug,
            project.name,
            str(project.owner_id),
            project.created_at.isoformat()[:19],
        )

    console.print(table)
