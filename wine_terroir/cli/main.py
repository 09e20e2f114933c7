"""Wine Terroir CLI using Typer."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from wine_terroir import __version__

# Load .env file from current directory or project root
_env_paths = [
    Path.cwd() / ".env",
    Path(__file__).parent.parent.parent / ".env",
]
for _env_path in _env_paths:
    if _env_path.exists():
        load_dotenv(_env_path)
        break

console = Console()

app = typer.Typer(
    name="wine-terroir",
    help="Wine Terroir - reconcile wine descriptions against a canonical taxonomy",
    add_completion=False,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command()
def init_db() -> None:
    """Initialize the database (create tables)."""
    from wine_terroir.db.engine import init_db as db_init

    typer.echo("Initializing database...")
    db_init()
    typer.echo("Database initialized successfully!")


@app.command()
def version() -> None:
    """Show the Wine Terroir version."""
    typer.echo(f"Wine Terroir v{__version__}")


@app.command()
def check_config() -> None:
    """Check the current configuration status."""
    from wine_terroir.db.engine import get_database_url
    from wine_terroir.resolution.config import default_config_path, get_default_config

    typer.echo("Wine Terroir Configuration")
    typer.echo("=" * 40)

    env_found = False
    for _env_path in _env_paths:
        if _env_path.exists():
            typer.echo(f"  .env file: {_env_path}")
            env_found = True
            break
    if not env_found:
        typer.echo("  .env file: Not found")

    config_path = default_config_path()
    if config_path.exists():
        typer.echo(f"  Resolution config: {config_path}")
    else:
        typer.echo("  Resolution config: Not found (using defaults)")

    try:
        config = get_default_config()
    except (ValueError, OSError) as e:
        rprint(f"[red]Error:[/red] Invalid resolution config: {e}")
        raise typer.Exit(1)

    typer.echo(f"  Place-name threshold: {config.place_match_threshold}")
    typer.echo(f"  Wine-name threshold: {config.wine_match_threshold}")
    typer.echo(f"  Candidate search threshold: {config.search_threshold}")
    typer.echo(f"  Preview context threshold: {config.preview_context_threshold}")
    typer.echo(f"  Candidate limit: {config.candidate_limit}")
    typer.echo(f"  Database: {get_database_url()}")


@app.command()
def intake(
    name: str = typer.Option(..., "--name", "-n", help="Wine name"),
    color: Optional[str] = typer.Option(None, "--color", "-c", help="Red, White or Rose"),
    country: Optional[str] = typer.Option(None, "--country", help="Country"),
    region: Optional[str] = typer.Option(None, "--region", help="Region"),
    appellation: Optional[str] = typer.Option(None, "--appellation", help="Appellation"),
    sub_appellation: Optional[str] = typer.Option(
        None, "--sub-appellation", help="Sub-appellation"
    ),
    grape_variety: Optional[str] = typer.Option(None, "--grape-variety", help="Grape variety"),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON"),
) -> None:
    """
    Resolve a single wine description, creating it if there is enough context.

    Examples:
        wine-terroir intake -n "Chablis Premier Cru" -c White --country France \\
            --region Burgundy --appellation Chablis
    """
    from wine_terroir.core.schema import IntakeRequest
    from wine_terroir.db.engine import get_session, init_db as db_init
    from wine_terroir.services.intake_service import WineIntakeService

    db_init()
    request = IntakeRequest(
        name=name,
        color=color,
        country=country,
        region=region,
        appellation=appellation,
        sub_appellation=sub_appellation,
        grape_variety=grape_variety,
    )
    with get_session() as session:
        result = WineIntakeService(session).intake(request)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        rprint(f"[green]✓[/green] {result.message}")
        table = Table(title="Resolution")
        table.add_column("Level", style="bold")
        table.add_column("Query")
        table.add_column("State")
        table.add_column("Record")
        for outcome in result.outcomes:
            table.add_row(
                outcome.level.value,
                outcome.query or "",
                outcome.state.value,
                outcome.entity_name or "",
            )
        console.print(table)
    else:
        _print_failure(result.message, result.errors, result.suggestions)

    if not result.success:
        raise typer.Exit(1)


@app.command("import")
def import_file(
    file: Path = typer.Argument(..., help="CSV or XLSX file to import"),
) -> None:
    """
    Import wines from a spreadsheet.

    Required columns: Name, Country, Region, Color, Appellation, SubAppellation.
    """
    from wine_terroir.db.engine import get_session, init_db as db_init
    from wine_terroir.services.import_service import WineImportService

    db_init()
    with get_session() as session:
        with console.status("[bold blue]Importing...[/bold blue]"):
            result = WineImportService(session).import_source(file)

    if not result.success and not result.cancelled:
        _print_failure(result.message, result.errors, result.suggestions)
        raise typer.Exit(1)

    rprint(f"\n[bold]{result.message}[/bold]")
    counters = result.counters
    table = Table(title="Import Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    table.add_row("Rows", str(result.total_rows))
    table.add_row("Imported rows", str(result.imported_rows))
    table.add_row("Created countries", str(counters.created_countries))
    table.add_row("Created regions", str(counters.created_regions))
    table.add_row("Created appellations", str(counters.created_appellations))
    table.add_row("Created sub-appellations", str(counters.created_sub_appellations))
    table.add_row("Created wines", str(counters.created_wines))
    table.add_row("Updated wines", str(counters.updated_wines))
    console.print(table)

    _print_row_errors(result.row_errors)
    if result.cancelled:
        raise typer.Exit(1)


@app.command()
def preview(
    file: Path = typer.Argument(..., help="CSV or XLSX file to preview"),
) -> None:
    """Show which wines and places in a spreadsheet already exist, without importing."""
    from wine_terroir.db.engine import get_session, init_db as db_init
    from wine_terroir.services.import_service import WineImportService

    db_init()
    with get_session() as session:
        result = WineImportService(session).preview(file)

    if not result.success:
        _print_failure(result.message, result.errors, None)
        raise typer.Exit(1)

    def mark(exists: bool) -> str:
        return "[green]yes[/green]" if exists else "[yellow]new[/yellow]"

    table = Table(title="Import Preview")
    table.add_column("Row", justify="right")
    table.add_column("Name", style="bold")
    table.add_column("Color")
    table.add_column("Wine")
    table.add_column("Country")
    table.add_column("Region")
    table.add_column("Appellation")
    for row in result.rows:
        table.add_row(
            str(row.row_number),
            row.name,
            row.color.value,
            mark(row.wine_exists),
            f"{row.country} ({mark(row.country_exists)})",
            f"{row.region} ({mark(row.region_exists)})",
            f"{row.appellation} ({mark(row.appellation_exists)})",
        )
    console.print(table)
    rprint(result.message)

    _print_row_errors(result.row_errors)


def _print_failure(message: str, errors: list[str], suggestions) -> None:
    rprint(f"[red]Error:[/red] {message}")
    for error in errors:
        if error != message:
            rprint(f"  • {error}")
    candidates = getattr(suggestions, "suggestions", None)
    if candidates:
        rprint(f"  Did you mean: {', '.join(candidates)}?")


def _print_row_errors(row_errors) -> None:
    if not row_errors:
        return
    table = Table(title="Row Errors")
    table.add_column("Row", justify="right")
    table.add_column("Message")
    for error in row_errors:
        table.add_row(str(error.row_number), error.message)
    console.print(table)


if __name__ == "__main__":
    app()
