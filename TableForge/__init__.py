"""Typed record to table mapping: schema derivation, migration, hydration and upserts."""
from __future__ import annotations

from .config import ForgeConfig, load_config
from .errors import (
    TableForgeError,
    SchemaDefinitionError,
    UnsupportedTypeError,
    IndexDefinitionError,
    MigrationError,
    CoercionError,
    TransactionFailure,
)
from .registry import SemanticType, TypeRegistry, sql_type_for
from .descriptors import (
    CreateFlags,
    Indexed,
    FieldDescriptor,
    ColumnMapping,
    IndexDescriptor,
    FieldRef,
    SchemaDescriptor,
)
from .builder import SchemaBuilder, ColumnOptions, mapped_field, describe_dataclass, mapped_table
from .indexes import plan_indexes
from .hydrator import Cell, RecordBuilder, KwargsRecordBuilder, AttributeRecordBuilder, hydrate, hydrate_all
from .cache import SqlCache, MappingRegistry, default_registry, set_default_registry
from .executor import Database, Statement, enable_sqlite_transactions
from .migration import AddColumn, plan_migration, migrate_table, create_table
from .diagnostics import TableSetupReport
from .upsert import (
    insert_or_replace_all,
    insert_or_replace,
    insert_all,
    insert,
    find_by_rowid,
    find,
)

__all__ = [
    "ForgeConfig",
    "load_config",
    "TableForgeError",
    "SchemaDefinitionError",
    "UnsupportedTypeError",
    "IndexDefinitionError",
    "MigrationError",
    "CoercionError",
    "TransactionFailure",
    "SemanticType",
    "TypeRegistry",
    "sql_type_for",
    "CreateFlags",
    "Indexed",
    "FieldDescriptor",
    "ColumnMapping",
    "IndexDescriptor",
    "FieldRef",
    "SchemaDescriptor",
    "SchemaBuilder",
    "ColumnOptions",
    "mapped_field",
    "describe_dataclass",
    "mapped_table",
    "plan_indexes",
    "Cell",
    "RecordBuilder",
    "KwargsRecordBuilder",
    "AttributeRecordBuilder",
    "hydrate",
    "hydrate_all",
    "SqlCache",
    "MappingRegistry",
    "default_registry",
    "set_default_registry",
    "Database",
    "Statement",
    "enable_sqlite_transactions",
    "AddColumn",
    "plan_migration",
    "migrate_table",
    "create_table",
    "TableSetupReport",
    "insert_or_replace_all",
    "insert_or_replace",
    "insert_all",
    "insert",
    "find_by_rowid",
    "find",
]
