"""Command line interface for CodeMentor."""

import asyncio
import sys
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from codementor.config import settings
from codementor.database import db_manager

app = typer.Typer(
    name="codementor",
    help="CodeMentor - gamified coding-education backend",
    add_completion=False,
)

console = Console()


@app.command("version")
def version():
    """Show version information."""
    version_info = f"""
CodeMentor v{settings.app_version}
Gamified coding-education backend with realtime collaboration

Environment: {settings.environment}
Python: {sys.version}
"""
    console.print(
        Panel(
            version_info.strip(),
            title="Version Information",
            border_style="green",
        )
    )


@app.command("server")
def start_server(
    host: Optional[str] = typer.Option(None, "--host", "-h", help="Server host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Server port"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload"),
    workers: Optional[int] = typer.Option(None, "--workers", "-w", help="Number of workers"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug mode"),
):
    """Start the CodeMentor server."""
    from codementor.server import main as server_main

    # Override settings if provided
    if host:
        settings.host = host
    if port:
        settings.port = port
    if reload:
        settings.reload = reload
    if workers:
        settings.workers = workers
    if debug:
        settings.debug = debug

    server_main()


async def _init_db(database_url: Optional[str]) -> None:
    await db_manager.initialize(database_url)
    try:
        await db_manager.create_all()
    finally:
        await db_manager.close()


async def _seed(database_url: Optional[str]) -> int:
    from codementor.gamification.service import GameService

    await db_manager.initialize(database_url)
    try:
        await db_manager.create_all()
        async with db_manager.get_session() as db:
            return await GameService(db).seed_achievements()
    finally:
        await db_manager.close()


@app.command("init-db")
def init_db(
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Override DATABASE_URL"),
):
    """Create all database tables."""
    asyncio.run(_init_db(database_url))
    console.print("[green]✅ Database schema created[/green]")


@app.command("seed")
def seed(
    database_url: Optional[str] = typer.Option(None, "--database-url", help="Override DATABASE_URL"),
):
    """Insert the default achievement catalogue."""
    added = asyncio.run(_seed(database_url))
    console.print(f"[green]✅ Seeded {added} achievement(s)[/green]")


@app.command("config")
def show_config():
    """Show current configuration."""
    config_table = Table(title="CodeMentor Configuration")

    config_table.add_column("Setting", style="cyan")
    config_table.add_column("Value", style="green")

    config_items = [
        ("App Name", settings.app_name),
        ("Version", settings.app_version),
        ("Environment", settings.environment),
        ("Debug", str(settings.debug)),
        ("Host", settings.host),
        ("Port", str(settings.port)),
        ("Database URL", settings.database_url[:50] + "..." if len(settings.database_url) > 50 else settings.database_url),
        ("Room Code Length", str(settings.room_code_length)),
        ("AI Model", settings.ai_model),
        ("AI Key Configured", str(bool(settings.google_api_key))),
        ("Metrics Enabled", str(settings.metrics_enabled)),
    ]

    for setting, value in config_items:
        config_table.add_row(setting, value)

    console.print(config_table)


def main():
    """Main CLI entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)
    except Exception as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
