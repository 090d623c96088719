"""SQL text generation (SQLite dialect) for mapped tables."""
from __future__ import annotations

from typing import Iterable, Sequence, Tuple

from .descriptors import FieldDescriptor, FieldRef, SchemaDescriptor
from .errors import SchemaDefinitionError
from .indexes import default_index_name


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _inline_autoincrement(fd: FieldDescriptor) -> bool:
    # AUTOINCREMENT is only legal as a column constraint on an integer key
    return fd.primary_key and fd.autoincrement and fd.sql_type == "integer"


def column_definition(fd: FieldDescriptor) -> str:
    """Render ``"col" type [NOT NULL] [COLLATE c]`` for one column."""
    parts = [quote_identifier(fd.name), fd.sql_type]
    if _inline_autoincrement(fd):
        parts.append("PRIMARY KEY AUTOINCREMENT")
    elif not fd.nullable:
        parts.append("NOT NULL")
    if fd.collation:
        parts.append(f"COLLATE {fd.collation}")
    return " ".join(parts)


def build_create_table(
    table: str,
    columns: Iterable[Tuple[str, FieldDescriptor]],
    if_not_exists: bool = True,
) -> str:
    """Build CREATE TABLE DDL from ``(column, FieldDescriptor)`` pairs."""
    defs = []
    pk_cols = []
    for _, fd in columns:
        defs.append(column_definition(fd))
        if fd.primary_key and not _inline_autoincrement(fd):
            pk_cols.append(quote_identifier(fd.name))
    if pk_cols:
        defs.append(f"PRIMARY KEY({', '.join(pk_cols)})")
    guard = "IF NOT EXISTS " if if_not_exists else ""
    return f"CREATE TABLE {guard}{quote_identifier(table)} ({', '.join(defs)})"


def build_add_column(table: str, fd: FieldDescriptor) -> str:
    """Build ALTER TABLE ADD COLUMN DDL string."""
    parts = [quote_identifier(fd.name), fd.sql_type]
    if not fd.nullable:
        parts.append("NOT NULL")
    if fd.collation:
        parts.append(f"COLLATE {fd.collation}")
    return f"ALTER TABLE {quote_identifier(table)} ADD COLUMN {' '.join(parts)}"


def build_create_index(name: str, table: str, columns: Sequence[str], unique: bool = False) -> str:
    cols = ", ".join(quote_identifier(c) for c in columns)
    kind = "UNIQUE INDEX" if unique else "INDEX"
    return f"CREATE {kind} IF NOT EXISTS {quote_identifier(name)} ON {quote_identifier(table)}({cols})"


def _values_clause(columns: Sequence[str]) -> str:
    cols = ", ".join(quote_identifier(c) for c in columns)
    return f"({cols}) VALUES ({', '.join('?' for _ in columns)})"


def build_insert(table: str, columns: Sequence[str]) -> str:
    return f"INSERT INTO {quote_identifier(table)} {_values_clause(columns)}"


def build_insert_or_replace(table: str, columns: Sequence[str]) -> str:
    return f"INSERT OR REPLACE INTO {quote_identifier(table)} {_values_clause(columns)}"


def build_find_by_rowid(table: str) -> str:
    return f"SELECT * FROM {quote_identifier(table)} WHERE rowid = ?"


def build_find_by_column(table: str, column: str) -> str:
    return f"SELECT * FROM {quote_identifier(table)} WHERE {quote_identifier(column)} = ?"


# ---------- descriptor-level helpers ----------

def create_table_sql(descriptor: SchemaDescriptor, if_not_exists: bool = True) -> str:
    return build_create_table(
        descriptor.table_name,
        ((name, m.metadata) for name, m in descriptor),
        if_not_exists=if_not_exists,
    )


def create_indexes_sql(descriptor: SchemaDescriptor) -> list:
    return [
        build_create_index(idx.name, descriptor.table_name, idx.columns, idx.unique)
        for idx in descriptor.indexes
    ]


def create_index_sql(descriptor: SchemaDescriptor, ref: FieldRef, unique: bool = False) -> str:
    """Single-column index for a field selector, named ``<table>_<column>``."""
    if not isinstance(ref, FieldRef) or ref.owner is not descriptor:
        raise SchemaDefinitionError(f"{ref!r} is not a field reference issued by {descriptor!r}")
    return build_create_index(
        default_index_name(descriptor.table_name, ref.column),
        descriptor.table_name,
        [ref.column],
        unique,
    )


def insert_sql(descriptor: SchemaDescriptor) -> str:
    return build_insert(descriptor.table_name, list(descriptor.columns))


def insert_or_replace_sql(descriptor: SchemaDescriptor) -> str:
    return build_insert_or_replace(descriptor.table_name, list(descriptor.columns))


def find_by_rowid_sql(descriptor: SchemaDescriptor) -> str:
    return build_find_by_rowid(descriptor.table_name)


def find_by_primary_key_sql(descriptor: SchemaDescriptor) -> str:
    pk = descriptor.primary_key
    if pk is None:
        raise SchemaDefinitionError(f"{descriptor.table_name} has no primary key")
    return build_find_by_column(descriptor.table_name, pk.column)
