"""Console prompts that keep asking until the input passes validation."""

from typing import Any, Callable, List, Tuple

from rich.console import Console
from rich.markup import escape

from bookstore.config import settings
from bookstore.errors import ValidationError
from bookstore.schema import IdKind, TableDescriptor
from bookstore.validators import FieldKind, FieldSpec, FieldValidator, validate

console = Console()


def ask(prompt: str, check: Callable[[str], Any]) -> Tuple[str, Any]:
    """Prompt until ``check`` accepts the input; return (raw, coerced)."""
    while True:
        raw = console.input(f"{prompt}: ")
        try:
            return raw, check(raw)
        except ValidationError as e:
            console.print(f"[yellow]⚠️ {escape(str(e))}[/]")


def ask_int(prompt: str, min_value: int, max_value: int) -> int:
    _, value = ask(prompt, lambda raw: FieldValidator.validate_integer(raw, min_value, max_value))
    return value


def ask_bool(prompt: str) -> bool:
    _, value = ask(f"{prompt} (y/n/да/нет)", FieldValidator.validate_bool)
    return value


def ask_table(names: List[str], prompt: str = "Select a table") -> str:
    """Ask for a table by menu number or by name."""
    for i, name in enumerate(names, 1):
        console.print(f"  [bold cyan]{i}.[/] {name}")
    numbers = [str(i) for i in range(1, len(names) + 1)]
    _, choice = ask(prompt, lambda raw: FieldValidator.validate_choice(raw, names + numbers))
    if choice in numbers:
        return names[int(choice) - 1]
    return choice


def _field_prompt(name: str, spec: FieldSpec) -> str:
    label = spec.label or name
    if spec.kind is FieldKind.DATE:
        label = f"{label} ({spec.date_format or settings.date_format})"
    if spec.kind is FieldKind.BOOLEAN:
        label = f"{label} (y/n/да/нет)"
    if not spec.required:
        label = f"{label} [dim](blank to skip)[/]"
    return label


def ask_field(name: str, spec: FieldSpec) -> str:
    """Prompt for one column value and return the raw text once it validates."""
    raw, _ = ask(_field_prompt(name, spec), lambda value: validate(value, spec))
    return raw.strip()


def ask_record_id(descriptor: TableDescriptor, action: str) -> str:
    if descriptor.id_kind is IdKind.OPAQUE_IDENTIFIER:
        check = FieldValidator.validate_uuid
    else:
        check = lambda raw: FieldValidator.validate_integer(raw, min_value=1)  # noqa: E731
    raw, _ = ask(f"Enter the ID of the {descriptor.name} record to {action}", check)
    return raw.strip()
