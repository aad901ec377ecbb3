import json
import os
from typing import Any, Dict, List, Sequence

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from bookstore.config import settings

# Environment variable to control CLI output mode
# Allowed values: 'plain' (default), 'json', 'rich'
OUTPUT_MODE_ENV = "LIB_CLI_OUTPUT"

_console = Console()


def set_output_mode(mode: str) -> None:
    mode = (mode or "").lower().strip()
    if mode in {"plain", "json", "rich"}:
        os.environ[OUTPUT_MODE_ENV] = mode


def get_output_mode() -> str:
    return os.environ.get(OUTPUT_MODE_ENV, settings.output_mode).lower()


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


def print_rows(table: str, columns: Sequence[str], rows: List[List[Any]]) -> None:
    """Print the rows of one table in the current output mode.
    - plain: one 'a | b | c' line per row, or 'No rows in <table>.'
    - json: JSON array of column->value objects
    - rich: Rich table
    """
    mode = get_output_mode()

    if not rows:
        # Same message in every mode so scripted callers can rely on it.
        print(f"No rows in {table}.")
        return

    if mode == "json":
        payload = [dict(zip(columns, row)) for row in rows]
        print(json.dumps(payload, ensure_ascii=False, default=str))
    elif mode == "rich":
        grid = Table(title=f"📚 {table}", show_lines=True, header_style="bold cyan")
        for column in columns:
            grid.add_column(column, style="magenta" if column == "id" else "white")
        for row in rows:
            grid.add_row(*(escape(_cell(v)) for v in row))
        _console.print(grid)
        _console.print(f"[dim]📊 {len(rows)} row(s)[/]")
    else:
        for row in rows:
            print(" | ".join(_cell(v) for v in row))


def print_tables(names: List[str]) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps(names))
    elif mode == "rich":
        listing = "\n".join(f"[bold cyan]{i}.[/] {name}" for i, name in enumerate(names, 1))
        _console.print(Panel.fit(listing, title="🗂️ Tables", border_style="blue"))
    else:
        for i, name in enumerate(names, 1):
            print(f"{i}. {name}")


def print_field_errors(errors: Dict[str, str]) -> None:
    mode = get_output_mode()
    if mode == "json":
        print(json.dumps({"errors": errors}, ensure_ascii=False))
    elif mode == "rich":
        lines = "\n".join(f"[bold]{escape(name)}[/]: {escape(msg)}" for name, msg in errors.items())
        _console.print(Panel.fit(lines, title="❌ Invalid input", border_style="red"))
    else:
        for name, msg in errors.items():
            print(f"{name}: {msg}")
