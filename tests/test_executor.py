"""Tests for the statement execution collaborator."""

import logging

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError

from TableForge import Database, enable_sqlite_transactions


@pytest.fixture
def kv(db):
    db.execute('CREATE TABLE kv ("k" varchar PRIMARY KEY, "v" integer)')
    return db


def test_execute_reports_rowcount_and_rowid(kv):
    assert kv.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1]) == 1
    assert kv.last_inserted_row_id == 1


def test_query_clears_last_row_id(kv):
    kv.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1])
    list(kv.query("SELECT * FROM kv"))
    assert kv.last_inserted_row_id is None


def test_query_yields_cells(kv):
    kv.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1])
    (row,) = list(kv.query('SELECT "k", "v" FROM kv'))
    assert [(c.column, c.value) for c in row] == [("k", "a"), ("v", 1)]


def test_statement_binds_by_name(kv):
    stmt = kv.prepare('INSERT INTO kv ("k", "v") VALUES (?, ?)', names=["k", "v"])
    stmt.execute({"v": 2, "k": "b"})
    assert [c.value for c in next(kv.query("SELECT k, v FROM kv"))] == ["b", 2]


def test_statement_without_names_rejects_mapping(kv):
    stmt = kv.prepare("SELECT * FROM kv WHERE k = ?")
    with pytest.raises(ValueError):
        stmt.query({"k": "a"})


def test_statement_missing_name(kv):
    stmt = kv.prepare("SELECT * FROM kv WHERE k = ?", names=["k"])
    with pytest.raises(KeyError):
        stmt.query({})


def test_transaction_commits(kv):
    kv.run_in_transaction(lambda tx: tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1]))
    assert kv.row_count("kv") == 1


def test_transaction_rolls_back_on_error(kv):
    def body(tx):
        tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1])
        tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 2])

    with pytest.raises(IntegrityError):
        kv.run_in_transaction(body)
    assert kv.row_count("kv") == 0
    assert not kv.in_transaction


def test_create_table_reports_existence(db):
    sql = 'CREATE TABLE IF NOT EXISTS t ("x" integer)'
    assert db.create_table(sql, "t") is True
    assert db.create_table(sql, "t") is False
    assert db.has_table("t")
    assert set(db.get_table_columns("t")) == {"x"}


def test_from_url_context_manager():
    with Database.from_url("sqlite://") as database:
        database.execute('CREATE TABLE t ("x" integer)')
        assert database.row_count("t") == 0


def test_trace_sql_logs_statements(caplog):
    with Database.from_url("sqlite://", trace_sql=True) as database:
        with caplog.at_level(logging.DEBUG, logger="TableForge.executor"):
            database.execute('CREATE TABLE t ("x" integer)')
            database.execute('INSERT INTO t ("x") VALUES (?)', [5])
    assert 'SQL: INSERT INTO t ("x") VALUES (?) params=[5]' in caplog.text


def test_trace_sql_defaults_to_config(monkeypatch):
    monkeypatch.setenv("TABLEFORGE_TRACE_SQL", "true")
    with Database.from_url("sqlite://") as database:
        assert database.trace_sql is True


def _values(db):
    return [c.value for row in db.query('SELECT "k" FROM kv ORDER BY "k"') for c in row]


class TestNestedTransactions:
    """Nested calls open savepoints inside the outer transaction."""

    def test_inner_failure_rolls_back_to_savepoint(self, kv):
        def inner(tx):
            tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["b", 2])
            raise RuntimeError("inner")

        def outer(tx):
            tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["a", 1])
            with pytest.raises(RuntimeError):
                tx.run_in_transaction(inner)
            assert tx.in_transaction

        kv.run_in_transaction(outer)
        assert _values(kv) == ["a"]

    def test_outer_failure_discards_released_savepoint(self, kv):
        def inner(tx):
            tx.execute('INSERT INTO kv ("k", "v") VALUES (?, ?)', ["b", 2])

        def outer(tx):
            tx.run_in_transaction(inner)
            assert _values(tx) == ["b"]
            raise RuntimeError("outer")

        with pytest.raises(RuntimeError):
            kv.run_in_transaction(outer)
        assert _values(kv) == []


class TestCallerConnection:
    """A connection passed in keeps its owner's transaction."""

    @pytest.fixture
    def engine(self, tmp_path):
        engine = enable_sqlite_transactions(create_engine(f"sqlite:///{tmp_path / 'caller.db'}"))
        with engine.begin() as conn:
            conn.exec_driver_sql('CREATE TABLE t ("x" integer)')
        yield engine
        engine.dispose()

    @staticmethod
    def _persisted(engine):
        with engine.connect() as fresh:
            return fresh.exec_driver_sql("SELECT COUNT(*) FROM t").scalar()

    def test_open_transaction_is_not_committed(self, engine):
        with engine.connect() as conn:
            tx = conn.begin()
            conn.exec_driver_sql('INSERT INTO t ("x") VALUES (1)')
            database = Database(conn)
            assert database.row_count("t") == 1
            database.execute('INSERT INTO t ("x") VALUES (?)', [2])
            assert database.has_table("t")
            assert conn.in_transaction()
            tx.rollback()
            database.close()
            assert not conn.closed
        assert self._persisted(engine) == 0

    def test_batch_nests_inside_caller_transaction(self, engine):
        with engine.connect() as conn:
            tx = conn.begin()
            database = Database(conn)
            database.run_in_transaction(lambda d: d.execute('INSERT INTO t ("x") VALUES (?)', [1]))
            assert conn.in_transaction()
            tx.rollback()
        assert self._persisted(engine) == 0

    def test_idle_connection_commits_each_statement(self, engine):
        with engine.connect() as conn:
            Database(conn).execute('INSERT INTO t ("x") VALUES (?)', [1])
            assert not conn.in_transaction()
        assert self._persisted(engine) == 1
