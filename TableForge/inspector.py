"""Live table inspection utilities."""
from __future__ import annotations

from typing import Any, Dict, List, Union

from sqlalchemy import inspect
from sqlalchemy.engine import Connection, Engine

Bind = Union[Engine, Connection]


def list_tables(bind: Bind) -> List[str]:
    """List tables in the main schema."""
    return inspect(bind).get_table_names()


def has_table(bind: Bind, table: str) -> bool:
    """Check table existence."""
    return inspect(bind).has_table(table)


def get_columns(bind: Bind, table: str) -> Dict[str, Dict[str, Any]]:
    """Column metadata keyed by column name, in table order."""
    return {c["name"]: {k: v for k, v in c.items() if k != "name"} for c in inspect(bind).get_columns(table)}


def get_indexes(bind: Bind, table: str) -> List[Dict[str, Any]]:
    return inspect(bind).get_indexes(table)


def get_pk(bind: Bind, table: str) -> List[str]:
    """Get primary key columns."""
    pk_constraint = inspect(bind).get_pk_constraint(table)
    return pk_constraint.get("constrained_columns", []) if pk_constraint else []
