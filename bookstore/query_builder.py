"""Build parameterized SQL for the four catalog operations.

Only values travel as bound parameters. Table and column names are spliced
into the text, so they are taken from the ``TableDescriptor`` and checked
against its declared columns before use.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from bookstore.errors import NoFieldsToUpdate, UnknownTable, UnsupportedOperation
from bookstore.schema import IdKind, TableDescriptor
from bookstore.validators import ABSENT

# SQL expression the store evaluates to produce a new opaque identifier.
GENERATE_ID_SQL = "gen_random_uuid()"


class Operation(str, Enum):
    INSERT = "insert"
    SELECT_ALL = "select_all"
    UPDATE_BY_ID = "update_by_id"
    DELETE_BY_ID = "delete_by_id"


@dataclass(frozen=True)
class QueryPlan:
    sql: str
    params: Tuple[Any, ...] = ()


def _bind(value: Any) -> Any:
    return None if value is ABSENT else value


def _check_columns(descriptor: TableDescriptor, fields: Mapping[str, Any]) -> None:
    for name in fields:
        if name not in descriptor.columns:
            raise UnsupportedOperation(f"Column {name!r} is not declared on {descriptor.name}.")


def _id_condition(descriptor: TableDescriptor) -> str:
    if descriptor.key_column is None:
        raise UnsupportedOperation(f"{descriptor.name} has no single-column key to address rows by id.")
    if descriptor.id_kind is IdKind.OPAQUE_IDENTIFIER:
        return f"{descriptor.key_column} = UUID(?)"
    return f"{descriptor.key_column} = ?"


def _bind_id(descriptor: TableDescriptor, target_id: Any) -> Any:
    if descriptor.id_kind is IdKind.OPAQUE_IDENTIFIER:
        return str(target_id)
    return target_id


def build_insert(descriptor: TableDescriptor, fields: Mapping[str, Any]) -> QueryPlan:
    if not fields:
        raise UnsupportedOperation(f"Insert into {descriptor.name} needs at least one field.")
    _check_columns(descriptor, fields)

    columns = list(fields)
    placeholders = ["?"] * len(columns)
    if descriptor.id_kind is IdKind.OPAQUE_IDENTIFIER and descriptor.key_column and descriptor.key_column not in fields:
        columns.insert(0, descriptor.key_column)
        placeholders.insert(0, GENERATE_ID_SQL)

    sql = f"INSERT INTO {descriptor.name} ({', '.join(columns)}) VALUES ({', '.join(placeholders)})"
    return QueryPlan(sql, tuple(_bind(v) for v in fields.values()))


def build_select_all(descriptor: TableDescriptor) -> QueryPlan:
    return QueryPlan(f"SELECT * FROM {descriptor.name}")


def build_update(descriptor: TableDescriptor, fields: Mapping[str, Any], target_id: Any) -> QueryPlan:
    if not fields:
        raise NoFieldsToUpdate(descriptor.name)
    _check_columns(descriptor, fields)
    condition = _id_condition(descriptor)

    assignments = ", ".join(f"{name} = ?" for name in fields)
    params = tuple(_bind(v) for v in fields.values()) + (_bind_id(descriptor, target_id),)
    return QueryPlan(f"UPDATE {descriptor.name} SET {assignments} WHERE {condition}", params)


def build_delete(descriptor: TableDescriptor, target_id: Any) -> QueryPlan:
    condition = _id_condition(descriptor)
    return QueryPlan(f"DELETE FROM {descriptor.name} WHERE {condition}", (_bind_id(descriptor, target_id),))


def build(
    descriptor: Optional[TableDescriptor],
    operation: Operation,
    fields: Optional[Mapping[str, Any]] = None,
    target_id: Any = None,
) -> QueryPlan:
    """Return the plan for one request. Nothing is cached between calls."""
    if descriptor is None:
        raise UnknownTable("<none>")
    fields = fields or {}

    if operation is Operation.INSERT:
        return build_insert(descriptor, fields)
    if operation is Operation.SELECT_ALL:
        return build_select_all(descriptor)
    if operation is Operation.UPDATE_BY_ID:
        return build_update(descriptor, fields, target_id)
    if operation is Operation.DELETE_BY_ID:
        return build_delete(descriptor, target_id)
    raise UnsupportedOperation(f"Unknown operation: {operation!r}")
