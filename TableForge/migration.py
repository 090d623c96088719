"""Table setup and additive schema migration."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from .config import ForgeConfig
from .ddl import build_add_column, create_indexes_sql, create_table_sql
from .descriptors import FieldDescriptor, SchemaDescriptor
from .diagnostics import TableSetupReport, log_report
from .errors import MigrationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddColumn:
    """Pending ``ALTER TABLE ... ADD COLUMN`` for one missing column."""
    table: str
    column: str
    metadata: FieldDescriptor

    def to_sql(self) -> str:
        return build_add_column(self.table, self.metadata)


def plan_migration(
    descriptor: SchemaDescriptor,
    live_columns: Union[Mapping[str, Any], Iterable[str]],
) -> List[AddColumn]:
    """Columns in ``descriptor`` missing from the live table, compared case-insensitively.

    Only additions are planned; live columns unknown to the descriptor and type
    differences are left alone.
    """
    existing = {str(name).lower() for name in live_columns}
    return [
        AddColumn(descriptor.table_name, name, mapping.metadata)
        for name, mapping in descriptor
        if name.lower() not in existing
    ]


def _run_ddl(db, sql: str, msg: str) -> None:
    try:
        db.execute(sql)
        logger.info(msg)
    except SQLAlchemyError as e:
        logger.error(f"DDL failed: {e}")
        raise MigrationError(str(e)) from e


def migrate_table(db, descriptor: SchemaDescriptor) -> List[AddColumn]:
    """Add every descriptor column the live table lacks. Returns the applied directives."""
    try:
        live = db.get_table_columns(descriptor.table_name)
    except SQLAlchemyError as e:
        logger.error(f"Inspecting '{descriptor.table_name}' failed: {e}")
        raise MigrationError(str(e)) from e
    directives = plan_migration(descriptor, live)
    for directive in directives:
        _run_ddl(db, directive.to_sql(), f"Added column {directive.column} to {directive.table}")
    return directives


def create_table(
    db,
    descriptor: SchemaDescriptor,
    report_logger=None,
    config: Optional[ForgeConfig] = None,
) -> TableSetupReport:
    """Create the table, or migrate it when it already exists, then (re)create indexes.

    With ``create_if_not_exists`` off, creating a table that already exists is
    a MigrationError rather than a migration.
    """
    if_not_exists = (config or ForgeConfig()).create_if_not_exists
    report = TableSetupReport(table=descriptor.table_name)
    try:
        sql = create_table_sql(descriptor, if_not_exists=if_not_exists)
        report.created = db.create_table(sql, descriptor.table_name)
    except SQLAlchemyError as e:
        logger.error(f"DDL failed: {e}")
        raise MigrationError(str(e)) from e

    if report.created:
        logger.info(f"Created table {descriptor.table_name}")
    else:
        report.added_columns = [d.column for d in migrate_table(db, descriptor)]

    for index, sql in zip(descriptor.indexes, create_indexes_sql(descriptor)):
        _run_ddl(db, sql, f"Ensured index {index.name} on {descriptor.table_name}")
        report.indexes.append(index.name)

    log_report(report, report_logger)
    return report
