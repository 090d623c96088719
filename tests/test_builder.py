"""Tests for schema descriptor derivation."""

import uuid
from dataclasses import dataclass
from typing import Optional

import pytest

from TableForge import (
    CreateFlags,
    FieldRef,
    IndexDefinitionError,
    IndexDescriptor,
    Indexed,
    MappingRegistry,
    SchemaBuilder,
    SchemaDefinitionError,
    SemanticType,
    UnsupportedTypeError,
    describe_dataclass,
    mapped_field,
    mapped_table,
)
from sample_records import IMPLICIT, Person, Task


class TestTableLevel:
    """Table name and creation flags."""

    def test_table_name_defaults_to_type_name(self):
        descriptor = describe_dataclass(Person)
        assert descriptor.table_name == "Person"
        assert descriptor.create_flags == CreateFlags.NONE

    def test_table_name_override(self):
        descriptor = describe_dataclass(Person, table_name="people")
        assert descriptor.table_name == "people"

    def test_columns_in_declaration_order(self):
        descriptor = describe_dataclass(Person)
        assert list(descriptor.columns) == ["Id", "Name", "CreatedAtId"]
        assert [name for name, _ in descriptor] == ["Id", "Name", "CreatedAtId"]
        assert len(descriptor) == 3


class TestColumns:
    """Per-column metadata rules."""

    def test_rename_and_ignore(self):
        descriptor = describe_dataclass(Task)
        assert "owner_name" in descriptor
        assert descriptor["owner_name"].field_name == "Owner"
        assert "Scratch" not in descriptor
        assert descriptor.try_get_column_mapping("Owner") is None

    def test_explicit_primary_key_and_autoincrement(self):
        pk = describe_dataclass(Task).primary_key
        assert pk.column == "Id"
        assert pk.metadata.primary_key
        assert pk.metadata.autoincrement
        assert not pk.metadata.nullable

    def test_nullability(self):
        descriptor = describe_dataclass(Task)
        assert not descriptor["Title"].metadata.nullable
        assert descriptor["Due"].metadata.nullable

    def test_no_primary_key_without_flags(self):
        assert describe_dataclass(Person).primary_key is None

    def test_implicit_primary_key(self):
        descriptor = describe_dataclass(Person, create_flags=CreateFlags.IMPLICIT_PK)
        pk = descriptor["Id"].metadata
        assert pk.primary_key
        assert not pk.autoincrement

    def test_implicit_primary_key_is_case_insensitive(self):
        builder = SchemaBuilder(Person, create_flags=IMPLICIT)
        builder.column("ID", int)
        builder.column("Name", str)
        descriptor = builder.build()
        assert descriptor["ID"].metadata.primary_key
        assert descriptor["ID"].metadata.autoincrement

    def test_explicit_key_wins_over_implicit(self):
        builder = SchemaBuilder(Person, create_flags=CreateFlags.IMPLICIT_PK)
        builder.column("Id", int)
        builder.column("Code", str, primary_key=True)
        descriptor = builder.build()
        assert descriptor.primary_key.column == "Code"
        assert not descriptor["Id"].metadata.primary_key

    def test_uuid_key_is_never_autoincrement(self):
        builder = SchemaBuilder(Person, create_flags=IMPLICIT)
        builder.column("Id", uuid.UUID)
        metadata = builder.build()["Id"].metadata
        assert metadata.primary_key
        assert not metadata.autoincrement
        assert metadata.sql_type == "varchar(36)"

    def test_sql_types(self):
        descriptor = describe_dataclass(Person, create_flags=IMPLICIT)
        assert descriptor["Id"].metadata.sql_type == "integer"
        assert descriptor["Name"].metadata.sql_type == "varchar(50)"
        assert descriptor["Name"].metadata.max_length == 50

    def test_semantic_override(self):
        builder = SchemaBuilder(Person)
        builder.column("Small", int, semantic_type=SemanticType.INT8)
        assert builder.build()["Small"].metadata.semantic_type is SemanticType.INT8

    def test_collation(self):
        builder = SchemaBuilder(Person)
        builder.column("Name", str, collation="NOCASE")
        assert builder.build()["Name"].metadata.collation == "NOCASE"

    def test_unsupported_type(self):
        builder = SchemaBuilder(Person)
        builder.column("Tags", list)
        with pytest.raises(UnsupportedTypeError):
            builder.build()

    def test_duplicate_column_name(self):
        builder = SchemaBuilder(Person)
        builder.column("A", int, name="x")
        builder.column("B", int, name="x")
        with pytest.raises(SchemaDefinitionError):
            builder.build()

    def test_two_primary_keys(self):
        builder = SchemaBuilder(Person)
        builder.column("A", int, primary_key=True)
        builder.column("B", int, primary_key=True)
        with pytest.raises(SchemaDefinitionError):
            builder.build()


class TestIndexes:
    """Explicit, composite and implicit indexes."""

    def test_implicit_index_for_id_suffix(self):
        descriptor = describe_dataclass(Person, create_flags=IMPLICIT)
        assert descriptor.indexes == (
            IndexDescriptor(name="Person_CreatedAtId", unique=False, columns=("CreatedAtId",)),
        )

    def test_no_implicit_index_without_flag(self):
        descriptor = describe_dataclass(Person, create_flags=CreateFlags.IMPLICIT_PK)
        assert descriptor.indexes == ()

    def test_composite_index_from_declarations(self):
        descriptor = describe_dataclass(Task)
        assert descriptor.indexes == (
            IndexDescriptor(name="ix_owner_due", unique=False, columns=("owner_name", "Due")),
        )

    def test_explicit_index_suppresses_implicit(self):
        builder = SchemaBuilder(Person, create_flags=IMPLICIT)
        builder.column("Id", int)
        builder.column("GroupId", int, indexes=[Indexed(name="ix_group", unique=True)])
        assert [i.name for i in builder.build().indexes] == ["ix_group"]

    def test_selector_tokens(self):
        builder = SchemaBuilder(Person, table_name="people")
        name = builder.column("Name", str)
        created = builder.column("CreatedAtId", int, name="created")
        builder.index(created, name, unique=True)
        (index,) = builder.build().indexes
        assert index == IndexDescriptor("people_created_Name", True, ("created", "Name"))

    def test_selector_from_other_builder_rejected(self):
        other = SchemaBuilder(Person)
        foreign = other.column("Name", str)
        builder = SchemaBuilder(Person)
        builder.column("Name", str)
        with pytest.raises(SchemaDefinitionError):
            builder.index(foreign)

    def test_non_selector_rejected(self):
        builder = SchemaBuilder(Person)
        builder.column("Name", str)
        with pytest.raises(SchemaDefinitionError):
            builder.index("Name")

    def test_ignored_field_cannot_be_indexed(self):
        builder = SchemaBuilder(Person)
        ref = builder.column("Name", str, ignore=True)
        with pytest.raises(SchemaDefinitionError):
            builder.index(ref)

    def test_uniqueness_conflict(self):
        builder = SchemaBuilder(Person)
        builder.column("A", int, indexes=[Indexed(name="ix", unique=True)])
        builder.column("B", int, indexes=[Indexed(name="ix", unique=False, order=1)])
        with pytest.raises(IndexDefinitionError):
            builder.build()

    def test_order_conflict(self):
        builder = SchemaBuilder(Person)
        builder.column("A", int, indexes=[Indexed(name="ix", order=1)])
        builder.column("B", int, indexes=[Indexed(name="ix", order=1)])
        with pytest.raises(IndexDefinitionError):
            builder.build()


class TestDescriptor:
    """Descriptor accessors and identity."""

    def test_field_returns_token(self):
        descriptor = describe_dataclass(Task)
        ref = descriptor.field("Owner")
        assert isinstance(ref, FieldRef)
        assert ref.column == "owner_name"
        with pytest.raises(KeyError):
            descriptor.field("Scratch")

    def test_schema_key_is_stable_across_instances(self):
        first = describe_dataclass(Person, create_flags=IMPLICIT)
        second = describe_dataclass(Person, create_flags=IMPLICIT)
        assert first is not second
        assert first.schema_key == second.schema_key
        assert first.schema_key.startswith("Person:")

    def test_schema_key_tracks_content(self):
        first = describe_dataclass(Person, create_flags=IMPLICIT)
        second = describe_dataclass(Person, create_flags=CreateFlags.NONE)
        assert first.schema_key != second.schema_key

    def test_bind_params_in_column_order(self):
        descriptor = describe_dataclass(Task)
        record = Task(Id=None, Title="t", Owner="me", Due=3)
        assert descriptor.bind_params(record) == [None, "t", "me", 3]


class TestDecorator:
    """Class-definition-time registration."""

    def test_mapped_table_registers(self):
        registry = MappingRegistry()

        @mapped_table(name="notes", create_flags=IMPLICIT, registry=registry)
        @dataclass(frozen=True)
        class Note:
            Id: Optional[int] = None
            Text: str = mapped_field(default="", max_length=10)

        descriptor = registry.descriptor_for(Note)
        assert descriptor is Note.__table_descriptor__
        assert descriptor.table_name == "notes"
        assert descriptor.primary_key.metadata.autoincrement

    def test_describe_requires_dataclass(self):
        with pytest.raises(SchemaDefinitionError):
            describe_dataclass(int)
