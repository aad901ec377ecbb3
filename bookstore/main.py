import os
import subprocess
import sys
import threading
import webbrowser
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Tuple

import typer
import uvicorn
from rich import box
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from bookstore import prompts, schema
from bookstore.api import create_app
from bookstore.config import settings
from bookstore.crud import CrudEngine
from bookstore.database import open_database
from bookstore.errors import CrudError, StoreConnectionError, ValidationFailed
from bookstore.ui_helpers import print_field_errors, print_rows, print_tables, set_output_mode

APP_NAME = settings.app_name

console = Console()


# ------------------------- Menu actions ------------------------- #
def _report_error(error: CrudError) -> None:
    if isinstance(error, ValidationFailed):
        print_field_errors(error.field_errors)
    else:
        console.print(f"[bold red]Error:[/] {escape(str(error))}")


def show_data(engine: CrudEngine) -> None:
    """Print every row of a table the user picks."""
    table = prompts.ask_table(schema.table_names())
    result = engine.select_all(table)
    console.print(f"\n[bold]Rows in {table}:[/]")
    print_rows(table, result.columns, result.rows)


def add_record(engine: CrudEngine) -> None:
    console.print("\n[bold]Add a new record[/]")
    table = prompts.ask_table(schema.table_names(), "Record type")
    descriptor = schema.resolve(table)
    fields = {}
    for name in descriptor.writable_columns():
        value = prompts.ask_field(name, descriptor.fields[name])
        # Skipped optional fields stay out of the insert so store defaults apply.
        if value:
            fields[name] = value
    engine.insert(table, fields)
    console.print(f"[green]✅ Record added to {table}.[/]")


def update_record(engine: CrudEngine) -> None:
    table = prompts.ask_table(schema.table_names())
    descriptor = schema.resolve(table)
    if descriptor.key_column is None:
        console.print(f"[yellow]⚠️ Rows of {table} have no single id; delete and re-add the link instead.[/]")
        return
    record_id = prompts.ask_record_id(descriptor, "edit")

    columns = descriptor.writable_columns()
    console.print("Select the field to update:")
    for i, name in enumerate(columns, 1):
        console.print(f"  [bold cyan]{i}.[/] {name}")
    field_name = columns[prompts.ask_int("Field number", 1, len(columns)) - 1]
    value = prompts.ask_field(field_name, descriptor.fields[field_name])

    engine.update(table, record_id, {field_name: value})
    console.print("[green]✅ Record updated.[/]")


def delete_record(engine: CrudEngine) -> None:
    table = prompts.ask_table(schema.table_names())
    descriptor = schema.resolve(table)
    if descriptor.key_column is None:
        console.print(f"[yellow]⚠️ Rows of {table} have no single id and cannot be deleted by id.[/]")
        return
    record_id = prompts.ask_record_id(descriptor, "delete")
    if not Confirm.ask(f"🗑️ Delete {escape(record_id)} from {table}?", default=False, console=console):
        console.print("[blue]🚫 Deletion cancelled.[/]")
        return
    engine.delete(table, record_id)
    console.print("[green]✅ Record deleted.[/]")


MENU_ACTIONS = {
    "1": ("View data", "📚", show_data),
    "2": ("Add a record", "➕", add_record),
    "3": ("Edit a record", "✏️", update_record),
    "4": ("Delete a record", "🗑️", delete_record),
}


def run_menu(engine: CrudEngine) -> None:
    """Numbered console menu over the catalog. Returns when the user exits."""
    def render_menu() -> None:
        grid = Table.grid(padding=(0, 2))
        grid.add_column(justify="right", style="bold cyan", width=4)
        grid.add_column(justify="left", style="white")
        for key, (label, icon, _) in MENU_ACTIONS.items():
            grid.add_row(f"[reverse]{key}[/]", f"{icon} {label}")
        grid.add_row("[reverse]5[/]", "🚪 Exit")
        console.print(Panel(grid, title=APP_NAME, border_style="cyan", box=box.HEAVY, padding=(1, 2)))

    while True:
        render_menu()
        choice = Prompt.ask("Choose an action", choices=["1", "2", "3", "4", "5"], default="1", console=console)
        if choice == "5":
            console.print("[green]Goodbye![/]")
            return
        _, _, action = MENU_ACTIONS[choice]
        try:
            action(engine)
        except CrudError as e:
            _report_error(e)
        print()  # blank line between actions


# ------------------------- Process wiring ------------------------- #
def start_api_thread(engine: CrudEngine, host: Optional[str] = None, port: Optional[int] = None) -> Tuple[uvicorn.Server, threading.Thread]:
    """Serve the HTTP API from a background thread sharing ``engine``."""
    config = uvicorn.Config(
        create_app(engine),
        host=host or settings.api_host,
        port=int(port or settings.api_port),
        log_level="warning",
    )
    server = uvicorn.Server(config)
    thread = threading.Thread(target=server.run, name="bookstore-api", daemon=True)
    thread.start()
    return server, thread


def run(db_file: Optional[str] = None) -> int:
    """Open the store, serve the API and run the console menu until exit."""
    try:
        with open_database(db_file) as db:
            engine = CrudEngine(db)
            server, thread = start_api_thread(engine)
            console.print(f"[dim]🌐 API listening on http://{settings.api_host}:{settings.api_port}/[/]")
            try:
                run_menu(engine)
            finally:
                server.should_exit = True
                thread.join(timeout=5)
    except StoreConnectionError as e:
        console.print(f"[bold red]Critical error:[/] {escape(str(e))}")
        return 1
    return 0


# --- Typer CLI application ---
app = typer.Typer(help=f"{APP_NAME} CLI")


@app.callback()
def _global_options(
    ctx: typer.Context,
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Output format: plain | json | rich (default: plain)"),
    db: Optional[str] = typer.Option(None, "--db", help="SQLite database file (default: LIBRARY_DB_FILE)"),
):
    """Global options for the CLI (output mode, database file)."""
    if output:
        set_output_mode(output)
    ctx.obj = {"db_file": db or settings.database_file}


@contextmanager
def _engine(ctx: typer.Context) -> Iterator[CrudEngine]:
    try:
        with open_database(ctx.obj["db_file"]) as db:
            yield CrudEngine(db)
    except StoreConnectionError as e:
        print(f"Critical error: {e}")
        raise typer.Exit(code=1)
    except CrudError as e:
        if isinstance(e, ValidationFailed):
            print_field_errors(e.field_errors)
        else:
            print(f"Error: {e}")
        raise typer.Exit(code=1)


def _parse_fields(pairs: List[str]) -> Dict[str, str]:
    fields: Dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected column=value, got {pair!r}")
        fields[name.strip()] = value
    return fields


@app.command("tables")
def cli_tables():
    """List the catalog tables."""
    print_tables(schema.table_names())


@app.command("show")
def cli_show(ctx: typer.Context, table: str):
    """Print every row of a table."""
    with _engine(ctx) as engine:
        result = engine.select_all(table)
        print_rows(table, result.columns, result.rows)


@app.command("add")
def cli_add(
    ctx: typer.Context,
    table: str,
    field: List[str] = typer.Option([], "--field", "-f", help="column=value, repeatable"),
):
    """Insert a record from column=value pairs."""
    fields = _parse_fields(field)
    with _engine(ctx) as engine:
        engine.insert(table, fields)
        print(f"Record added to {table}.")


@app.command("update")
def cli_update(
    ctx: typer.Context,
    table: str,
    record_id: str,
    field: List[str] = typer.Option([], "--field", "-f", help="column=value, repeatable"),
):
    """Update the given columns of one record."""
    fields = _parse_fields(field)
    with _engine(ctx) as engine:
        engine.update(table, record_id, fields)
        print(f"Record {record_id} in {table} updated.")


@app.command("delete")
def cli_delete(ctx: typer.Context, table: str, record_id: str):
    """Delete one record by id."""
    with _engine(ctx) as engine:
        engine.delete(table, record_id)
        print(f"Record {record_id} deleted from {table}.")


@app.command("menu")
def cli_menu(ctx: typer.Context):
    """Run the interactive menu without the web API."""
    with _engine(ctx) as engine:
        run_menu(engine)


@app.command("serve")
def cli_serve(
    ctx: typer.Context,
    browser: bool = typer.Option(False, "--browser/--no-browser", help="Open the web UI in a browser"),
):
    """Start the web API with Uvicorn."""
    host = settings.api_host
    port = int(settings.api_port)
    url = f"http://{host}:{port}/"
    print(f"Starting web UI on {url}")
    if browser:
        try:
            webbrowser.open(url)
        except webbrowser.Error:
            print("Could not open a web browser automatically.")
    args = [
        sys.executable,
        "-m", "uvicorn",
        "bookstore.api:app",
        "--host", host,
        "--port", str(port),
    ]
    env = dict(os.environ, LIBRARY_DB_FILE=ctx.obj["db_file"])
    try:
        subprocess.run(args, env=env)
    except FileNotFoundError:
        print("Error: `uvicorn` could not be started. Make sure it is installed.")
        raise typer.Exit(code=1)


def main() -> None:
    if len(sys.argv) > 1:
        app()
    else:
        sys.exit(run())


if __name__ == "__main__":
    main()
