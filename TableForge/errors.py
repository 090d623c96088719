"""Exception taxonomy for table mapping, migration and upserts."""
from __future__ import annotations

from typing import Any


class TableForgeError(Exception):
    """Base class for all library errors."""


class SchemaDefinitionError(TableForgeError):
    """Static mapping metadata is invalid. Raised at descriptor build time."""


class UnsupportedTypeError(SchemaDefinitionError):
    def __init__(self, python_type: Any, field: str | None = None):
        self.python_type = python_type
        self.field = field
        where = f" (field '{field}')" if field else ""
        super().__init__(f"Don't know about {python_type!r}{where}")


class IndexDefinitionError(SchemaDefinitionError):
    """Index declarations sharing a name disagree."""


class MigrationError(TableForgeError):
    """The database rejected a table creation or additive migration statement."""


class CoercionError(TableForgeError):
    def __init__(self, column: str, semantic_type: Any, value: Any):
        self.column = column
        self.semantic_type = semantic_type
        self.value = value
        super().__init__(
            f"Cannot convert column '{column}' to {getattr(semantic_type, 'name', semantic_type)}: "
            f"stored value {value!r} ({type(value).__name__})"
        )


class TransactionFailure(TableForgeError):
    """A batch failed and its transaction was rolled back."""
