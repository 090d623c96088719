"""Immutable table mapping descriptors."""
from __future__ import annotations

import enum
import hashlib
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

from .hydrator import RecordBuilder
from .registry import DEFAULT_TYPES, SemanticType, TypeRegistry


class CreateFlags(enum.Flag):
    NONE = 0
    IMPLICIT_PK = 1
    IMPLICIT_INDEX = 2
    ALL_IMPLICIT = IMPLICIT_PK | IMPLICIT_INDEX
    AUTO_INC_PK = 4


@dataclass(frozen=True)
class Indexed:
    """Index declaration attached to one column."""
    name: Optional[str] = None
    unique: bool = False
    order: int = 0


@dataclass(frozen=True)
class FieldDescriptor:
    name: str
    semantic_type: SemanticType
    sql_type: str
    nullable: bool = True
    primary_key: bool = False
    autoincrement: bool = False
    collation: str = ""
    max_length: Optional[int] = None


@dataclass(frozen=True)
class ColumnMapping:
    """Binds one record field to one column."""
    field_name: str
    python_type: Any
    metadata: FieldDescriptor

    @property
    def column(self) -> str:
        return self.metadata.name


@dataclass(frozen=True)
class IndexDescriptor:
    name: str
    unique: bool
    columns: Tuple[str, ...]


@dataclass(frozen=True)
class FieldRef:
    """Selector token for one mapped field, issued by a builder or descriptor."""
    field_name: str
    column: str
    owner: Any = field(default=None, compare=False, repr=False)


class SchemaDescriptor:
    """Description of how one record type maps to one table.

    Iterating yields ``(column_name, ColumnMapping)`` pairs in declaration order.
    """

    def __init__(
        self,
        record_type: Any,
        table_name: str,
        create_flags: CreateFlags,
        columns: Mapping[str, ColumnMapping],
        indexes: Sequence[IndexDescriptor],
        builder_factory: Callable[[], RecordBuilder],
        types: TypeRegistry = DEFAULT_TYPES,
    ):
        self._record_type = record_type
        self._table_name = table_name
        self._create_flags = create_flags
        self._columns = MappingProxyType(dict(columns))
        self._indexes = tuple(indexes)
        self._builder_factory = builder_factory
        self._types = types
        self._by_field = MappingProxyType({m.field_name: m for m in self._columns.values()})
        self._schema_key = self._compute_schema_key()

    @property
    def record_type(self) -> Any:
        return self._record_type

    @property
    def table_name(self) -> str:
        return self._table_name

    @property
    def create_flags(self) -> CreateFlags:
        return self._create_flags

    @property
    def columns(self) -> Mapping[str, ColumnMapping]:
        return self._columns

    @property
    def indexes(self) -> Tuple[IndexDescriptor, ...]:
        return self._indexes

    @property
    def types(self) -> TypeRegistry:
        return self._types

    @property
    def schema_key(self) -> str:
        return self._schema_key

    @property
    def primary_key(self) -> Optional[ColumnMapping]:
        for mapping in self._columns.values():
            if mapping.metadata.primary_key:
                return mapping
        return None

    def __getitem__(self, column: str) -> ColumnMapping:
        return self._columns[column]

    def __iter__(self) -> Iterator[Tuple[str, ColumnMapping]]:
        return iter(self._columns.items())

    def __len__(self) -> int:
        return len(self._columns)

    def __contains__(self, column: object) -> bool:
        return column in self._columns

    def __repr__(self) -> str:
        return f"SchemaDescriptor(table={self._table_name!r}, columns={list(self._columns)})"

    def try_get_column_mapping(self, column: str) -> Optional[ColumnMapping]:
        return self._columns.get(column)

    def field(self, field_name: str) -> FieldRef:
        """Selector token for a mapped field, by attribute name."""
        mapping = self._by_field.get(field_name)
        if mapping is None:
            raise KeyError(f"'{field_name}' is not a mapped field of {self._table_name}")
        return FieldRef(field_name, mapping.column, owner=self)

    def new_builder(self) -> RecordBuilder:
        return self._builder_factory()

    def bind_params(self, record: Any) -> list:
        """Encoded column values of ``record``, in column order."""
        params = []
        for mapping in self._columns.values():
            if isinstance(record, Mapping):
                value = record.get(mapping.field_name)
            else:
                value = getattr(record, mapping.field_name)
            params.append(self._types.encode(mapping.metadata.semantic_type, value))
        return params

    def _compute_schema_key(self) -> str:
        spec: Dict[str, Any] = {
            "flags": self._create_flags.value,
            "columns": [
                [
                    m.field_name,
                    m.metadata.name,
                    m.metadata.sql_type,
                    m.metadata.nullable,
                    m.metadata.primary_key,
                    m.metadata.autoincrement,
                    m.metadata.collation,
                ]
                for m in self._columns.values()
            ],
            "indexes": [[i.name, i.unique, list(i.columns)] for i in self._indexes],
        }
        digest = hashlib.sha256(json.dumps(spec, sort_keys=True).encode("utf-8")).hexdigest()
        return f"{self._table_name}:{digest[:16]}"
