"""Index planning: group per-column declarations into named indexes."""
from __future__ import annotations

from typing import Dict, Iterable, List, Tuple

from .descriptors import IndexDescriptor, Indexed
from .errors import IndexDefinitionError


def default_index_name(table_name: str, column: str) -> str:
    return f"{table_name}_{column}"


def plan_indexes(
    table_name: str,
    declarations: Iterable[Tuple[str, Indexed]],
) -> Tuple[IndexDescriptor, ...]:
    """Group ``(column, Indexed)`` pairs into one IndexDescriptor per index name.

    Columns within an index are ordered by ascending ``order``. Declarations that
    share a name must agree on ``unique`` and use distinct ``order`` values.
    """
    grouped: Dict[str, Tuple[bool, Dict[int, str]]] = {}
    for column, decl in declarations:
        name = decl.name or default_index_name(table_name, column)
        unique, ordered = grouped.setdefault(name, (decl.unique, {}))
        if decl.unique != unique:
            raise IndexDefinitionError(
                f"All the columns in index '{name}' must have the same value for unique"
            )
        if decl.order in ordered:
            raise IndexDefinitionError(
                f"Columns '{ordered[decl.order]}' and '{column}' both claim order "
                f"{decl.order} in index '{name}'"
            )
        ordered[decl.order] = column

    indexes: List[IndexDescriptor] = []
    for name, (unique, ordered) in grouped.items():
        columns = tuple(ordered[k] for k in sorted(ordered))
        indexes.append(IndexDescriptor(name=name, unique=unique, columns=columns))
    return tuple(indexes)
