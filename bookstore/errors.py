from typing import Dict


class CrudError(Exception):
    """Base class for every error raised while serving a catalog request."""


class UnknownTable(CrudError):
    def __init__(self, table: str) -> None:
        super().__init__(f"Unknown table: {table!r}")
        self.table = table


class ValidationError(ValueError):
    """A single raw value failed its field check."""


class ValidationFailed(CrudError):
    """One or more fields of a request failed validation.

    ``field_errors`` maps each invalid field name to its message, so callers
    can report every problem in one pass.
    """

    def __init__(self, field_errors: Dict[str, str]) -> None:
        self.field_errors = dict(field_errors)
        details = "; ".join(f"{name}: {msg}" for name, msg in self.field_errors.items())
        super().__init__(f"Validation failed ({details})")


class NoFieldsToUpdate(CrudError):
    def __init__(self, table: str) -> None:
        super().__init__(f"Nothing to update in {table}. Provide at least one field.")
        self.table = table


class UnsupportedOperation(CrudError):
    pass


class RecordNotFound(CrudError):
    def __init__(self, table: str, target_id) -> None:
        super().__init__(f"No record with id {target_id} in {table}.")
        self.table = table
        self.target_id = target_id


class StoreError(CrudError):
    """The store rejected or failed to run a statement."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class StoreConnectionError(CrudError):
    """The store could not be opened. Fatal at startup."""
