import re
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional, Tuple

from bookstore.config import settings
from bookstore.errors import ValidationError


class FieldKind(str, Enum):
    TEXT = "text"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    UUID = "uuid"
    CHOICE = "choice"


class _Absent:
    """Marker for an optional field that was supplied empty. Bound as NULL."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT = _Absent()


@dataclass(frozen=True)
class FieldSpec:
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    label: str = ""
    min_length: int = 0
    max_length: int = 255
    min_value: Optional[int] = None
    max_value: Optional[int] = None
    date_format: Optional[str] = None
    options: Tuple[str, ...] = field(default_factory=tuple)
    writable: bool = True


_INTEGER_RE = re.compile(r"^[+-]?\d+$")
_UUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)

# Integer input is limited to the 32-bit signed range.
INT_MIN = -(2 ** 31)
INT_MAX = 2 ** 31 - 1

TRUE_TOKENS = frozenset({"y", "yes", "true", "1", "д", "да"})
FALSE_TOKENS = frozenset({"n", "no", "false", "0", "н", "нет"})


class FieldValidator:
    """Single-shot checks for raw console/form input.

    Each check returns the coerced value or raises ValidationError. Nothing
    here prompts or retries; looping until valid is the caller's business.
    """

    @staticmethod
    def _clean(raw: Any) -> str:
        if raw is None:
            return ""
        return str(raw).strip()

    @staticmethod
    def validate_text(raw: Any, required: bool = True, min_length: int = 0, max_length: int = 255):
        text = FieldValidator._clean(raw)
        if not text:
            if required:
                raise ValidationError("Field cannot be empty.")
            return ABSENT
        if len(text) < min_length:
            raise ValidationError(f"Minimum length is {min_length} characters.")
        if len(text) > max_length:
            raise ValidationError(f"Maximum length is {max_length} characters.")
        return text

    @staticmethod
    def validate_integer(raw: Any, min_value: Optional[int] = None, max_value: Optional[int] = None) -> int:
        """Parse a whole number. Unset bounds default to the 32-bit signed range."""
        if isinstance(raw, bool):
            raise ValidationError("Please enter a whole number.")
        text = FieldValidator._clean(raw)
        if not _INTEGER_RE.match(text):
            raise ValidationError("Please enter a whole number.")
        low = INT_MIN if min_value is None else min_value
        high = INT_MAX if max_value is None else max_value
        # Digit strings this long are out of range; skip int() on them.
        if len(text.lstrip("+-").lstrip("0")) > 19:
            raise ValidationError(f"Number must be between {low} and {high}.")
        value = int(text)
        if not low <= value <= high:
            raise ValidationError(f"Number must be between {low} and {high}.")
        return value

    @staticmethod
    def validate_date(raw: Any, date_format: Optional[str] = None) -> date:
        fmt = date_format or settings.date_format
        if isinstance(raw, date) and not isinstance(raw, datetime):
            return raw
        text = FieldValidator._clean(raw)
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            raise ValidationError(f"Enter a date in the format {fmt}.") from None

    @staticmethod
    def validate_bool(raw: Any) -> bool:
        if isinstance(raw, bool):
            return raw
        token = FieldValidator._clean(raw).lower()
        if token in TRUE_TOKENS:
            return True
        if token in FALSE_TOKENS:
            return False
        raise ValidationError("Please enter y/n/да/нет.")

    @staticmethod
    def validate_uuid(raw: Any) -> uuid.UUID:
        if isinstance(raw, uuid.UUID):
            return raw
        text = FieldValidator._clean(raw)
        if not _UUID_RE.match(text):
            raise ValidationError(
                "Enter a valid identifier (for example 550e8400-e29b-41d4-a716-446655440000)."
            )
        return uuid.UUID(text)

    @staticmethod
    def validate_choice(raw: Any, options) -> str:
        text = FieldValidator._clean(raw)
        for option in options:
            if text.lower() == option.lower():
                return option
        raise ValidationError(f"Allowed values: {', '.join(options)}")


def validate(raw: Any, spec: FieldSpec) -> Any:
    """Validate ``raw`` against ``spec`` and return the coerced value.

    Empty input on an optional field returns ``ABSENT`` for every kind, and
    empty input on a required field always fails with the same message.
    """
    if spec.kind is FieldKind.TEXT:
        return FieldValidator.validate_text(raw, spec.required, spec.min_length, spec.max_length)

    if raw is None or (isinstance(raw, str) and not raw.strip()):
        if spec.required:
            raise ValidationError("Field cannot be empty.")
        return ABSENT

    if spec.kind is FieldKind.INTEGER:
        return FieldValidator.validate_integer(raw, spec.min_value, spec.max_value)
    if spec.kind is FieldKind.DATE:
        return FieldValidator.validate_date(raw, spec.date_format)
    if spec.kind is FieldKind.BOOLEAN:
        return FieldValidator.validate_bool(raw)
    if spec.kind is FieldKind.UUID:
        return FieldValidator.validate_uuid(raw)
    if spec.kind is FieldKind.CHOICE:
        return FieldValidator.validate_choice(raw, spec.options)
    raise ValidationError(f"Unsupported field kind: {spec.kind}")
