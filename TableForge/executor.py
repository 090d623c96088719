"""Statement execution over one SQLAlchemy connection."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, TypeVar, Union

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, Engine

from . import inspector
from .config import load_config
from .ddl import quote_identifier
from .hydrator import Cell, row_to_cells

logger = logging.getLogger(__name__)

T = TypeVar("T")
Params = Union[Sequence[Any], Mapping[str, Any], None]


class Statement:
    """A reusable SQL statement bound to a Database.

    Parameters bind by position (a sequence) or by name (a mapping resolved
    through ``names``, the placeholder order given at prepare time).
    """

    def __init__(self, db: "Database", sql: str, names: Optional[Sequence[str]] = None):
        self.db = db
        self.sql = sql
        self.names = list(names) if names is not None else None

    def _positional(self, params: Params) -> Sequence[Any]:
        if params is None:
            return ()
        if isinstance(params, Mapping):
            if self.names is None:
                raise ValueError("Statement was prepared without parameter names; bind by position")
            missing = [n for n in self.names if n not in params]
            if missing:
                raise KeyError(f"Missing parameters: {missing}")
            return [params[n] for n in self.names]
        return params

    def execute(self, params: Params = None) -> int:
        return self.db.execute(self.sql, self._positional(params))

    def query(self, params: Params = None) -> Iterator[List[Cell]]:
        return self.db.query(self.sql, self._positional(params))


def _driver_autocommit(dbapi_connection: Any, connection_record: Any) -> None:
    dbapi_connection.isolation_level = None


def _emit_begin(conn: Connection) -> None:
    conn.exec_driver_sql("BEGIN")


def enable_sqlite_transactions(engine: Engine) -> Engine:
    """Have SQLAlchemy emit BEGIN itself on a pysqlite engine.

    The sqlite3 driver otherwise defers BEGIN to the first DML statement, so a
    SAVEPOINT can end up as the outermost transaction and commit on release.
    Engines passed to ``Database`` get this automatically; apply it to an
    engine whose connections are handed to ``Database`` directly.
    """
    if engine.dialect.name != "sqlite" or event.contains(engine, "begin", _emit_begin):
        return engine
    event.listen(engine, "connect", _driver_autocommit)
    event.listen(engine, "begin", _emit_begin)
    return engine


class Database:
    """Execution collaborator: one connection, explicit transactions, row ids.

    Statements run outside any transaction are committed immediately. A
    transaction the caller already holds on a passed-in connection is never
    committed here; ``run_in_transaction`` nests inside it as a SAVEPOINT.
    ``trace_sql`` falls back to the loaded configuration when not given.
    """

    def __init__(self, bind: Union[Engine, Connection], trace_sql: Optional[bool] = None):
        if isinstance(bind, Connection):
            self._conn = bind
            self._owns_connection = False
        else:
            enable_sqlite_transactions(bind)
            self._conn = bind.connect()
            self._owns_connection = True
            if bind.dialect.name == "sqlite":
                # pooled connections may predate the connect listener
                _driver_autocommit(self._conn.connection.driver_connection, None)
        self.trace_sql = load_config().trace_sql if trace_sql is None else trace_sql
        self._depth = 0
        self._last_row_id: Optional[int] = None

    @classmethod
    def from_url(cls, url: str, trace_sql: Optional[bool] = None, **engine_kwargs: Any) -> "Database":
        return cls(create_engine(url, **engine_kwargs), trace_sql=trace_sql)

    @property
    def connection(self) -> Connection:
        return self._conn

    @property
    def in_transaction(self) -> bool:
        return self._depth > 0

    @property
    def last_inserted_row_id(self) -> Optional[int]:
        """Row id set by the most recent statement; cleared when another runs."""
        return self._last_row_id

    def _trace(self, sql: str, params: Sequence[Any]) -> None:
        if self.trace_sql:
            logger.debug(f"SQL: {sql} params={list(params)}")

    @contextmanager
    def _autocommit(self) -> Iterator[None]:
        """Commit (or roll back) only a transaction the wrapped call autobegan."""
        started = not self._conn.in_transaction()
        try:
            yield
        except Exception:
            if started and self._conn.in_transaction():
                self._conn.rollback()
            raise
        if started and self._conn.in_transaction():
            self._conn.commit()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Execute one statement; returns rows affected."""
        params = tuple(params)
        self._last_row_id = None
        self._trace(sql, params)
        with self._autocommit():
            result = self._conn.exec_driver_sql(sql, params if params else None)
            self._last_row_id = result.lastrowid
            rowcount = result.rowcount
        return rowcount

    def prepare(self, sql: str, names: Optional[Sequence[str]] = None) -> Statement:
        return Statement(self, sql, names)

    def query(self, sql: str, params: Sequence[Any] = ()) -> Iterator[List[Cell]]:
        """Run a query; yields each row as a list of cells."""
        params = tuple(params)
        self._last_row_id = None
        self._trace(sql, params)
        with self._autocommit():
            result = self._conn.exec_driver_sql(sql, params if params else None)
            keys = list(result.keys())
            rows = result.fetchall()
        return (row_to_cells(keys, row) for row in rows)

    def run_in_transaction(self, body: Callable[["Database"], T]) -> T:
        """Run ``body(self)`` atomically; commit only if it returns normally.

        Opens BEGIN on an idle connection, otherwise a SAVEPOINT.
        """
        if self._conn.in_transaction():
            tx = self._conn.begin_nested()
        else:
            tx = self._conn.begin()
        self._depth += 1
        try:
            with tx:
                return body(self)
        finally:
            self._depth -= 1

    def get_table_columns(self, table: str) -> Dict[str, Dict[str, Any]]:
        with self._autocommit():
            return inspector.get_columns(self._conn, table)

    def has_table(self, table: str) -> bool:
        with self._autocommit():
            return inspector.has_table(self._conn, table)

    def create_table(self, sql: str, table: str) -> bool:
        """Run CREATE TABLE; returns False when the table already existed."""
        existed = self.has_table(table)
        self.execute(sql)
        return not existed

    def row_count(self, table: str) -> int:
        for cells in self.query(f"SELECT COUNT(*) FROM {quote_identifier(table)}"):
            return int(cells[0].value)
        return 0

    def close(self) -> None:
        if self._owns_connection:
            self._conn.close()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
