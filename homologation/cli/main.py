"""
Homologation CLI: main entry point

Usage:
    homologation submission list --status "Pending Review"
    homologation submission submit <submission_id>
    homologation submission approve <submission_id> --by admin-1 --why "..."
    homologation init-db
"""

import typer
from rich.console import Console

from homologation import __version__
from homologation.cli.submission_cli import submission_app
from homologation.db.typedb_client import init_database
from homologation.utils.logging_setup import setup_logging

# Create main app
app = typer.Typer(
    name="homologation",
    help="Vehicle homologation workflow",
    no_args_is_help=True,
)

# Register subcommands
app.add_typer(submission_app, name="submission", help="Manage homologation submissions")

# Console for output
console = Console()


@app.callback()
def main_callback():
    """Homologation vehicle certification workflow."""
    setup_logging()


@app.command()
def version():
    """Show version information."""
    console.print(f"[bold]Homologation[/bold] v{__version__}")
    console.print("Vehicle homologation workflow")


@app.command("init-db")
def init_db():
    """Create the TypeDB database if needed and apply the bundled schema."""
    try:
        connection = init_database()
    except Exception as e:
        console.print(f"[red]Database initialization failed:[/red] {e}")
        raise typer.Exit(2)

    console.print(f"[green]✓ Database ready:[/green] {connection.database} at {connection.address}")
    connection.close()


if __name__ == "__main__":
    app()
