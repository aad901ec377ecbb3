import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from bookstore import query_builder, schema
from bookstore.errors import (
    CrudError,
    RecordNotFound,
    StoreError,
    UnsupportedOperation,
    ValidationError,
    ValidationFailed,
)
from bookstore.query_builder import Operation
from bookstore.schema import IdKind, TableDescriptor
from bookstore.validators import FieldValidator, validate

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrudRequest:
    table: str
    operation: Operation
    target_id: Optional[Any] = None
    fields: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the caller's mapping so the request cannot change once built.
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields or {})))


@dataclass
class CrudResult:
    operation: Operation
    table: str
    columns: List[str] = field(default_factory=list)
    rows: List[List[Any]] = field(default_factory=list)
    rows_affected: int = 0


class CrudEngine:
    """Runs catalog requests against a store.

    ``store`` is any object with ``query(sql, params) -> (columns, rows)`` and
    ``execute(sql, params) -> rows_affected``; normally a ``Database``.
    """

    def __init__(self, store) -> None:
        self.store = store

    # ------------------------- Core operations ------------------------- #
    def execute(self, request: CrudRequest) -> CrudResult:
        try:
            descriptor = schema.resolve(request.table)
            target_id = None
            fields: Dict[str, Any] = {}

            if request.operation in (Operation.UPDATE_BY_ID, Operation.DELETE_BY_ID):
                target_id = self._validate_target_id(descriptor, request.target_id)
            if request.operation in (Operation.INSERT, Operation.UPDATE_BY_ID):
                fields = self._validate_fields(descriptor, request.fields, request.operation)

            plan = query_builder.build(descriptor, request.operation, fields, target_id)
        except CrudError as e:
            logger.warning(f"Rejected {request.operation.value} on {request.table!r}: {e}")
            raise

        try:
            if request.operation is Operation.SELECT_ALL:
                columns, rows = self.store.query(plan.sql, plan.params)
                logger.info(f"Fetched {len(rows)} rows from {descriptor.name}")
                return CrudResult(request.operation, descriptor.name, columns=list(columns), rows=list(rows))
            affected = self.store.execute(plan.sql, plan.params)
        except StoreError as e:
            logger.error(f"Store error during {request.operation.value} on {descriptor.name}: {e}")
            raise

        if request.operation is not Operation.INSERT and affected == 0:
            raise RecordNotFound(descriptor.name, target_id)
        logger.info(f"{request.operation.value} on {descriptor.name}: {affected} row(s) affected")
        return CrudResult(request.operation, descriptor.name, rows_affected=affected)

    def select_all(self, table: str) -> CrudResult:
        return self.execute(CrudRequest(table, Operation.SELECT_ALL))

    def insert(self, table: str, fields: Mapping[str, Any]) -> CrudResult:
        return self.execute(CrudRequest(table, Operation.INSERT, fields=fields))

    def update(self, table: str, target_id: Any, fields: Mapping[str, Any]) -> CrudResult:
        return self.execute(CrudRequest(table, Operation.UPDATE_BY_ID, target_id=target_id, fields=fields))

    def delete(self, table: str, target_id: Any) -> CrudResult:
        return self.execute(CrudRequest(table, Operation.DELETE_BY_ID, target_id=target_id))

    # ------------------------- Validation ------------------------- #
    @staticmethod
    def _validate_target_id(descriptor: TableDescriptor, raw_id: Any) -> Any:
        if descriptor.key_column is None:
            raise UnsupportedOperation(f"{descriptor.name} rows cannot be addressed by a single id.")
        try:
            if descriptor.id_kind is IdKind.OPAQUE_IDENTIFIER:
                return FieldValidator.validate_uuid(raw_id)
            return FieldValidator.validate_integer(raw_id, min_value=1)
        except ValidationError as e:
            raise ValidationFailed({descriptor.key_column: str(e)}) from e

    @staticmethod
    def _validate_fields(descriptor: TableDescriptor, raw_fields: Mapping[str, Any], operation: Operation) -> Dict[str, Any]:
        """Coerce every supplied field, collecting all failures before raising."""
        errors: Dict[str, str] = {}
        coerced: Dict[str, Any] = {}

        for name, raw in raw_fields.items():
            spec = descriptor.field_spec(name)
            if spec is None:
                errors[name] = f"Unknown column for {descriptor.name}."
                continue
            if not spec.writable:
                errors[name] = "Column is managed by the store and cannot be set."
                continue
            try:
                coerced[name] = validate(raw, spec)
            except ValidationError as e:
                errors[name] = str(e)

        if operation is Operation.INSERT:
            for name in descriptor.required_columns():
                if name not in raw_fields:
                    errors[name] = "Field is required."

        if errors:
            raise ValidationFailed(errors)
        return coerced
