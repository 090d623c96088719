"""Test configuration and fixtures."""

import pytest
from sqlalchemy import create_engine

from TableForge import (
    Database,
    MappingRegistry,
    create_table,
    describe_dataclass,
)
from sample_records import IMPLICIT, Document, Person, Sample, Task


@pytest.fixture
def db():
    """In-memory SQLite database on a single connection."""
    database = Database(create_engine("sqlite://"))
    yield database
    database.close()


@pytest.fixture
def registry() -> MappingRegistry:
    """A fresh registry so cache state never leaks between tests."""
    return MappingRegistry()


@pytest.fixture
def person_descriptor(registry):
    return registry.register(describe_dataclass(Person, create_flags=IMPLICIT))


@pytest.fixture
def task_descriptor(registry):
    return registry.register(describe_dataclass(Task))


@pytest.fixture
def sample_descriptor(registry):
    return registry.register(describe_dataclass(Sample, create_flags=IMPLICIT))


@pytest.fixture
def document_descriptor(registry):
    return registry.register(describe_dataclass(Document))


@pytest.fixture
def person_table(db, person_descriptor):
    create_table(db, person_descriptor)
    return person_descriptor


@pytest.fixture
def task_table(db, task_descriptor):
    create_table(db, task_descriptor)
    return task_descriptor
