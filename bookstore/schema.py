"""Static registry of the catalog tables.

The registry is built once at import time and never changes afterwards. Table
and column names handed to the query builder come only from here, never from
client input.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Optional, Tuple

from bookstore.errors import UnknownTable
from bookstore.validators import FieldKind, FieldSpec


class IdKind(str, Enum):
    SURROGATE_INTEGER = "surrogate_integer"
    OPAQUE_IDENTIFIER = "opaque_identifier"


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    columns: Tuple[str, ...]
    id_kind: IdKind
    key_column: Optional[str]
    fields: Mapping[str, FieldSpec] = field(default_factory=dict)

    def field_spec(self, column: str) -> Optional[FieldSpec]:
        return self.fields.get(column)

    def writable_columns(self) -> List[str]:
        return [c for c in self.columns if self.fields[c].writable]

    def required_columns(self) -> List[str]:
        return [c for c in self.columns if self.fields[c].writable and self.fields[c].required]


def _table(name: str, id_kind: IdKind, key_column: Optional[str], /, **specs: FieldSpec) -> TableDescriptor:
    return TableDescriptor(
        name=name,
        columns=tuple(specs),
        id_kind=id_kind,
        key_column=key_column,
        fields=MappingProxyType(dict(specs)),
    )


_SERVER_ID = FieldSpec(kind=FieldKind.UUID, label="ID", writable=False)

_TABLES: Tuple[TableDescriptor, ...] = (
    _table(
        "authors", IdKind.OPAQUE_IDENTIFIER, "id",
        id=_SERVER_ID,
        surname=FieldSpec(required=True, label="Surname", min_length=1, max_length=100),
        name=FieldSpec(required=True, label="Name", min_length=1, max_length=100),
        patronymic=FieldSpec(label="Patronymic (optional)", max_length=100),
        birth_date=FieldSpec(kind=FieldKind.DATE, label="Birth date"),
        biography=FieldSpec(label="Biography", max_length=2000),
    ),
    _table(
        "books", IdKind.OPAQUE_IDENTIFIER, "id",
        id=_SERVER_ID,
        title=FieldSpec(required=True, label="Title", min_length=1, max_length=255),
        description=FieldSpec(label="Description", max_length=2000),
        genre_id=FieldSpec(kind=FieldKind.INTEGER, label="Genre ID", min_value=1),
        is_available=FieldSpec(kind=FieldKind.BOOLEAN, label="Is the book available?"),
        publication_date=FieldSpec(kind=FieldKind.DATE, label="Publication date"),
        popularity_score=FieldSpec(kind=FieldKind.INTEGER, label="Popularity score (1-10)", min_value=1, max_value=10),
        created_at=FieldSpec(label="Created at", writable=False),
    ),
    _table(
        "genres", IdKind.SURROGATE_INTEGER, "id",
        id=FieldSpec(kind=FieldKind.INTEGER, label="ID (optional)", min_value=1),
        name=FieldSpec(required=True, label="Genre name", min_length=1, max_length=100),
    ),
    _table(
        "book_authors", IdKind.OPAQUE_IDENTIFIER, None,
        book_id=FieldSpec(kind=FieldKind.UUID, required=True, label="Book ID"),
        author_id=FieldSpec(kind=FieldKind.UUID, required=True, label="Author ID"),
    ),
)

TABLES: Mapping[str, TableDescriptor] = MappingProxyType({t.name: t for t in _TABLES})


def table_names() -> List[str]:
    """Table names in menu order."""
    return [t.name for t in _TABLES]


def resolve(name: str) -> TableDescriptor:
    descriptor = TABLES.get(name) if isinstance(name, str) else None
    if descriptor is None:
        raise UnknownTable(name)
    return descriptor

