"""Row hydration: fetched cells back into typed records."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Sequence, runtime_checkable

from .errors import CoercionError
from .registry import DEFAULT_TYPES, SemanticType, TypeRegistry


@dataclass(frozen=True)
class Cell:
    """One fetched value and the column it came from."""
    column: str
    value: Any

    def coerce(
        self,
        semantic_type: SemanticType,
        python_type: Any = None,
        types: TypeRegistry = DEFAULT_TYPES,
    ) -> Any:
        try:
            return types.decode(semantic_type, self.value, python_type)
        except (TypeError, ValueError, OverflowError) as e:
            raise CoercionError(self.column, semantic_type, self.value) from e


def row_to_cells(keys: Sequence[str], row: Sequence[Any]) -> List[Cell]:
    return [Cell(k, v) for k, v in zip(keys, row)]


@runtime_checkable
class RecordBuilder(Protocol):
    """Two-phase construction: set fields by name, then finalize."""

    def set(self, field_name: str, value: Any) -> None: ...

    def finalize(self) -> Any: ...


class KwargsRecordBuilder:
    """Collects field values, then calls the record type with them as keywords."""

    def __init__(self, record_type: Callable[..., Any]):
        self._record_type = record_type
        self._values: Dict[str, Any] = {}

    def set(self, field_name: str, value: Any) -> None:
        self._values[field_name] = value

    def finalize(self) -> Any:
        return self._record_type(**self._values)


class AttributeRecordBuilder:
    """Sets attributes on a blank instance, then passes it through ``build``."""

    def __init__(self, factory: Callable[[], Any], build: Optional[Callable[[Any], Any]] = None):
        self._instance = factory()
        self._build = build

    def set(self, field_name: str, value: Any) -> None:
        setattr(self._instance, field_name, value)

    def finalize(self) -> Any:
        return self._build(self._instance) if self._build else self._instance


def hydrate(descriptor, cells: Iterable[Cell]) -> Any:
    """Build one record from a row's cells.

    Cells whose column is not mapped are ignored, so rows from tables with extra
    legacy columns still hydrate.
    """
    builder: RecordBuilder = descriptor.new_builder()
    for cell in cells:
        mapping = descriptor.try_get_column_mapping(cell.column)
        if mapping is None:
            continue
        value = cell.coerce(mapping.metadata.semantic_type, mapping.python_type, descriptor.types)
        builder.set(mapping.field_name, value)
    return builder.finalize()


def hydrate_all(descriptor, rows: Iterable[Iterable[Cell]]) -> List[Any]:
    return [hydrate(descriptor, cells) for cells in rows]
