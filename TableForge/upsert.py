"""Transactional batch insert-or-replace with input -> persisted row correlation.

Each record is written, then read back through the connection's last inserted
row id before any other statement runs on that connection. The whole batch is
one transaction: either every record persists or none does.

Callers must not share the connection with another writer while a batch runs.
"""
from __future__ import annotations

import logging
from collections.abc import Hashable
from functools import partial
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from .cache import MappingRegistry, default_registry
from .ddl import find_by_primary_key_sql, find_by_rowid_sql, insert_or_replace_sql, insert_sql
from .descriptors import SchemaDescriptor
from .errors import TableForgeError, TransactionFailure
from .hydrator import Cell, hydrate

logger = logging.getLogger(__name__)

ResultSelector = Callable[[List[Cell]], Any]

INSERT_OR_REPLACE = "insert_or_replace"
INSERT = "insert"
FIND_BY_ROWID = "find_by_rowid"
FIND_BY_KEY = "find_by_key"

_WRITE_SQL = {
    INSERT_OR_REPLACE: insert_or_replace_sql,
    INSERT: insert_sql,
}


def _resolve(
    records: Sequence[Any],
    descriptor: Optional[SchemaDescriptor],
    registry: Optional[MappingRegistry],
) -> Tuple[SchemaDescriptor, MappingRegistry]:
    registry = registry or default_registry()
    if descriptor is None:
        descriptor = registry.descriptor_for(type(records[0]))
    return descriptor, registry


def _yield_correlated(
    db,
    records: Iterable[Any],
    descriptor: SchemaDescriptor,
    selector: ResultSelector,
    write_sql: str,
    find_sql: str,
) -> Iterator[Tuple[Any, Any]]:
    write = db.prepare(write_sql)
    find = db.prepare(find_sql)
    for record in records:
        write.execute(descriptor.bind_params(record))
        # valid only until the next statement on this connection
        row_id = db.last_inserted_row_id
        cells = next(find.query([row_id]), None)
        if cells is None:
            raise TableForgeError(f"Row {row_id} of {descriptor.table_name} vanished after write")
        yield record, selector(cells)


def _write_all(
    kind: str,
    db,
    records: Iterable[Any],
    result_selector: Optional[ResultSelector],
    descriptor: Optional[SchemaDescriptor],
    registry: Optional[MappingRegistry],
) -> Dict[Any, Any]:
    records = list(records)
    if not records:
        return {}
    unhashable = [r for r in records if not isinstance(r, Hashable)]
    if unhashable:
        raise TypeError(f"Records must be hashable to be correlated; got {type(unhashable[0]).__name__}")
    descriptor, registry = _resolve(records, descriptor, registry)
    selector = result_selector or partial(hydrate, descriptor)
    write_sql = registry.sql.get_or_create(descriptor, kind, _WRITE_SQL[kind])
    find_sql = registry.sql.get_or_create(descriptor, FIND_BY_ROWID, find_by_rowid_sql)

    def body(tx_db) -> Dict[Any, Any]:
        # equal records collapse to one key; the later result wins
        return dict(_yield_correlated(tx_db, records, descriptor, selector, write_sql, find_sql))

    logger.debug(f"{kind} of {len(records)} record(s) into {descriptor.table_name}")
    try:
        return db.run_in_transaction(body)
    except Exception as e:
        logger.error(f"{kind} into {descriptor.table_name} rolled back: {type(e).__name__}: {e}")
        raise TransactionFailure(
            f"{kind} of {len(records)} record(s) into '{descriptor.table_name}' failed "
            f"and was rolled back: {e}"
        ) from e


def insert_or_replace_all(
    db,
    records: Iterable[Any],
    result_selector: Optional[ResultSelector] = None,
    descriptor: Optional[SchemaDescriptor] = None,
    registry: Optional[MappingRegistry] = None,
) -> Dict[Any, Any]:
    """Insert or replace every record in one transaction.

    Returns a dict mapping each input record to ``result_selector`` applied to
    the row actually persisted for it (by default, the hydrated record, which
    carries any server-assigned primary key).
    """
    return _write_all(INSERT_OR_REPLACE, db, records, result_selector, descriptor, registry)


def insert_or_replace(
    db,
    record: Any,
    result_selector: Optional[ResultSelector] = None,
    descriptor: Optional[SchemaDescriptor] = None,
    registry: Optional[MappingRegistry] = None,
) -> Any:
    return insert_or_replace_all(db, [record], result_selector, descriptor, registry)[record]


def insert_all(
    db,
    records: Iterable[Any],
    result_selector: Optional[ResultSelector] = None,
    descriptor: Optional[SchemaDescriptor] = None,
    registry: Optional[MappingRegistry] = None,
) -> Dict[Any, Any]:
    """Like ``insert_or_replace_all`` but a primary key collision fails the batch."""
    return _write_all(INSERT, db, records, result_selector, descriptor, registry)


def insert(
    db,
    record: Any,
    result_selector: Optional[ResultSelector] = None,
    descriptor: Optional[SchemaDescriptor] = None,
    registry: Optional[MappingRegistry] = None,
) -> Any:
    return insert_all(db, [record], result_selector, descriptor, registry)[record]


def find_by_rowid(
    db,
    descriptor: SchemaDescriptor,
    rowid: int,
    result_selector: Optional[ResultSelector] = None,
    registry: Optional[MappingRegistry] = None,
) -> Any:
    registry = registry or default_registry()
    sql = registry.sql.get_or_create(descriptor, FIND_BY_ROWID, find_by_rowid_sql)
    cells = next(db.query(sql, [rowid]), None)
    if cells is None:
        return None
    return (result_selector or partial(hydrate, descriptor))(cells)


def find(
    db,
    descriptor: SchemaDescriptor,
    key: Any,
    result_selector: Optional[ResultSelector] = None,
    registry: Optional[MappingRegistry] = None,
) -> Any:
    """Fetch one record by primary key, or None."""
    registry = registry or default_registry()
    sql = registry.sql.get_or_create(descriptor, FIND_BY_KEY, find_by_primary_key_sql)
    pk = descriptor.primary_key.metadata
    cells = next(db.query(sql, [descriptor.types.encode(pk.semantic_type, key)]), None)
    if cells is None:
        return None
    return (result_selector or partial(hydrate, descriptor))(cells)
