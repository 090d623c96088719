"""Schema descriptor construction.

Descriptors are derived once, when a record type is registered, either through
the explicit ``SchemaBuilder`` API or from a dataclass's field metadata with
``describe_dataclass`` / ``@mapped_table``. Nothing is introspected at data
access time.

    @mapped_table(create_flags=CreateFlags.ALL_IMPLICIT | CreateFlags.AUTO_INC_PK)
    @dataclass(frozen=True)
    class Person:
        Id: Optional[int] = None
        Name: str = mapped_field(default="", max_length=50)
        CreatedAtId: int = 0
"""
from __future__ import annotations

import dataclasses
import logging
import typing
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .cache import default_registry
from .descriptors import (
    ColumnMapping,
    CreateFlags,
    FieldDescriptor,
    FieldRef,
    Indexed,
    SchemaDescriptor,
)
from .errors import SchemaDefinitionError
from .hydrator import AttributeRecordBuilder, KwargsRecordBuilder, RecordBuilder
from .indexes import plan_indexes
from .registry import DEFAULT_TYPES, SemanticType, TypeRegistry, sql_type_for

logger = logging.getLogger(__name__)

IMPLICIT_PK_NAME = "id"
IMPLICIT_INDEX_SUFFIX = "id"
METADATA_KEY = "tableforge"


@dataclass(frozen=True)
class ColumnOptions:
    """Per-field mapping options."""
    name: Optional[str] = None
    ignore: bool = False
    primary_key: bool = False
    autoincrement: bool = False
    collation: str = ""
    max_length: Optional[int] = None
    not_null: bool = False
    indexes: Tuple[Indexed, ...] = ()
    semantic_type: Optional[SemanticType] = None


@dataclass(frozen=True)
class _FieldSpec:
    field_name: str
    python_type: Any
    options: ColumnOptions


class SchemaBuilder:
    """Explicit, typed construction of a SchemaDescriptor."""

    def __init__(
        self,
        record_type: Any,
        table_name: Optional[str] = None,
        create_flags: CreateFlags = CreateFlags.NONE,
        *,
        builder: Optional[Callable[[], Any]] = None,
        build: Optional[Callable[[Any], Any]] = None,
        types: TypeRegistry = DEFAULT_TYPES,
    ):
        self.record_type = record_type
        self.table_name = table_name or record_type.__name__
        self.create_flags = create_flags
        self._builder = builder
        self._build = build
        self._types = types
        self._fields: List[_FieldSpec] = []
        self._composite: List[Tuple[Optional[str], bool, Tuple[FieldRef, ...]]] = []

    def column(
        self,
        field_name: str,
        python_type: Any,
        *,
        name: Optional[str] = None,
        primary_key: bool = False,
        autoincrement: bool = False,
        collation: str = "",
        max_length: Optional[int] = None,
        not_null: bool = False,
        indexes: Sequence[Indexed] = (),
        semantic_type: Optional[SemanticType] = None,
        ignore: bool = False,
    ) -> FieldRef:
        """Register one field, in declaration order. Returns its selector token."""
        options = ColumnOptions(
            name=name,
            ignore=ignore,
            primary_key=primary_key,
            autoincrement=autoincrement,
            collation=collation,
            max_length=max_length,
            not_null=not_null,
            indexes=tuple(indexes),
            semantic_type=semantic_type,
        )
        return self.add_field(field_name, python_type, options)

    def add_field(self, field_name: str, python_type: Any, options: ColumnOptions) -> FieldRef:
        if any(f.field_name == field_name for f in self._fields):
            raise SchemaDefinitionError(f"Field '{field_name}' registered twice on {self.table_name}")
        self._fields.append(_FieldSpec(field_name, python_type, options))
        return FieldRef(field_name, options.name or field_name, owner=self)

    def index(self, *refs: FieldRef, name: Optional[str] = None, unique: bool = False) -> "SchemaBuilder":
        """Declare a composite index over fields, in the given order."""
        if not refs:
            raise SchemaDefinitionError("An index needs at least one field")
        for ref in refs:
            if not isinstance(ref, FieldRef):
                raise SchemaDefinitionError(f"Index target {ref!r} is not a field reference")
            if ref.owner is not self:
                raise SchemaDefinitionError(f"Field reference '{ref.field_name}' was issued by another builder")
            spec = self._spec(ref.field_name)
            if spec.options.ignore:
                raise SchemaDefinitionError(f"Cannot index ignored field '{ref.field_name}'")
        self._composite.append((name, unique, tuple(refs)))
        return self

    def _spec(self, field_name: str) -> _FieldSpec:
        for spec in self._fields:
            if spec.field_name == field_name:
                return spec
        raise SchemaDefinitionError(f"Unknown field '{field_name}'")

    def _is_primary_key(self, spec: _FieldSpec) -> bool:
        if spec.options.primary_key:
            return True
        explicit = any(f.options.primary_key and not f.options.ignore for f in self._fields)
        return (
            CreateFlags.IMPLICIT_PK in self.create_flags
            and not explicit
            and spec.field_name.lower() == IMPLICIT_PK_NAME
        )

    def _field_descriptor(self, spec: _FieldSpec, column: str) -> FieldDescriptor:
        opts = spec.options
        semantic = opts.semantic_type or self._types.resolve_semantic(spec.python_type, spec.field_name)
        is_pk = self._is_primary_key(spec)
        is_auto = opts.autoincrement or (is_pk and CreateFlags.AUTO_INC_PK in self.create_flags)
        # a UUID key is always supplied by the client
        autoincrement = is_auto and semantic is not SemanticType.UUID
        max_length = opts.max_length if semantic is SemanticType.STRING else None
        return FieldDescriptor(
            name=column,
            semantic_type=semantic,
            sql_type=sql_type_for(semantic, max_length),
            nullable=not (is_pk or opts.not_null),
            primary_key=is_pk,
            autoincrement=autoincrement,
            collation=opts.collation or "",
            max_length=max_length,
        )

    def build(self) -> SchemaDescriptor:
        columns: Dict[str, ColumnMapping] = {}
        declarations: List[Tuple[str, Indexed]] = []
        primary_key: Optional[str] = None

        for spec in self._fields:
            if spec.options.ignore:
                continue
            column = spec.options.name or spec.field_name
            if column in columns:
                raise SchemaDefinitionError(f"Duplicate column '{column}' on {self.table_name}")
            metadata = self._field_descriptor(spec, column)
            if metadata.primary_key:
                if primary_key is not None:
                    raise SchemaDefinitionError(
                        f"{self.table_name} declares more than one primary key: '{primary_key}', '{column}'"
                    )
                primary_key = column
            columns[column] = ColumnMapping(spec.field_name, spec.python_type, metadata)

            column_indexes = list(spec.options.indexes)
            if (
                not column_indexes
                and not metadata.primary_key
                and CreateFlags.IMPLICIT_INDEX in self.create_flags
                and column.lower().endswith(IMPLICIT_INDEX_SUFFIX)
            ):
                column_indexes = [Indexed()]
            declarations.extend((column, decl) for decl in column_indexes)

        for name, unique, refs in self._composite:
            index_name = name or "_".join([self.table_name] + [r.column for r in refs])
            declarations.extend(
                (ref.column, Indexed(name=index_name, unique=unique, order=pos))
                for pos, ref in enumerate(refs)
            )

        indexes = plan_indexes(self.table_name, declarations)
        descriptor = SchemaDescriptor(
            record_type=self.record_type,
            table_name=self.table_name,
            create_flags=self.create_flags,
            columns=columns,
            indexes=indexes,
            builder_factory=self._builder_factory(),
            types=self._types,
        )
        logger.debug(f"Built {descriptor!r} with {len(indexes)} index(es)")
        return descriptor

    def _builder_factory(self) -> Callable[[], RecordBuilder]:
        if self._builder is not None:
            factory, build = self._builder, self._build
            return lambda: AttributeRecordBuilder(factory, build)
        record_type = self.record_type
        return lambda: KwargsRecordBuilder(record_type)


def mapped_field(
    *,
    default: Any = dataclasses.MISSING,
    default_factory: Any = dataclasses.MISSING,
    **options: Any,
) -> Any:
    """``dataclasses.field`` carrying column options for ``describe_dataclass``."""
    if "indexes" in options:
        options["indexes"] = tuple(options["indexes"])
    metadata = {METADATA_KEY: ColumnOptions(**options)}
    return dataclasses.field(default=default, default_factory=default_factory, metadata=metadata)


def describe_dataclass(
    cls: Any,
    table_name: Optional[str] = None,
    create_flags: CreateFlags = CreateFlags.NONE,
    types: TypeRegistry = DEFAULT_TYPES,
) -> SchemaDescriptor:
    """Derive a descriptor from a dataclass's fields and ``mapped_field`` options."""
    if not dataclasses.is_dataclass(cls):
        raise SchemaDefinitionError(f"{cls!r} is not a dataclass")
    hints = typing.get_type_hints(cls)
    builder = SchemaBuilder(cls, table_name, create_flags, types=types)
    for f in dataclasses.fields(cls):
        options = f.metadata.get(METADATA_KEY, ColumnOptions())
        if not f.init:
            options = dataclasses.replace(options, ignore=True)
        builder.add_field(f.name, hints.get(f.name, f.type), options)
    return builder.build()


def mapped_table(
    cls: Any = None,
    *,
    name: Optional[str] = None,
    create_flags: Optional[CreateFlags] = None,
    registry: Any = None,
) -> Any:
    """Class decorator: describe a dataclass once and register the descriptor."""

    def wrap(target: Any) -> Any:
        reg = registry or default_registry()
        flags = create_flags if create_flags is not None else reg.config.default_create_flags
        descriptor = describe_dataclass(target, name, flags, types=reg.types)
        target.__table_descriptor__ = descriptor
        reg.register(descriptor)
        return target

    if cls is None:
        return wrap
    return wrap(cls)
