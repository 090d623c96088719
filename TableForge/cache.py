"""Generated SQL memoization and the descriptor registry that owns it."""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from .config import ForgeConfig, load_config
from .descriptors import SchemaDescriptor
from .registry import DEFAULT_TYPES, TypeRegistry

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str]


class SqlCache:
    """SQL text keyed by ``(schema_key, statement_kind)``.

    Entries hold strings only, never descriptors. Equal descriptors built
    separately share one entry through their common ``schema_key``.
    """

    def __init__(self, maxsize: Optional[int] = None):
        self.maxsize = maxsize
        self._entries: "OrderedDict[CacheKey, str]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get_or_create(self, descriptor: SchemaDescriptor, kind: str, factory: Callable[[SchemaDescriptor], str]) -> str:
        key = (descriptor.schema_key, kind)
        with self._lock:
            sql = self._entries.get(key)
            if sql is not None:
                self._entries.move_to_end(key)
                self.hits += 1
                return sql
        sql = factory(descriptor)
        with self._lock:
            self.misses += 1
            existing = self._entries.setdefault(key, sql)
            self._entries.move_to_end(key)
            if self.maxsize is not None:
                while len(self._entries) > self.maxsize:
                    self._entries.popitem(last=False)
            return existing

    def invalidate(self, schema_key: str) -> int:
        with self._lock:
            stale = [k for k in self._entries if k[0] == schema_key]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries


class MappingRegistry:
    """Record type -> SchemaDescriptor, plus the SQL cache for those descriptors."""

    def __init__(self, config: Optional[ForgeConfig] = None, types: TypeRegistry = DEFAULT_TYPES):
        self.config = config or ForgeConfig()
        self.types = types
        self.sql = SqlCache(self.config.sql_cache_size)
        self._descriptors: Dict[Any, SchemaDescriptor] = {}
        self._lock = threading.Lock()

    def register(self, descriptor: SchemaDescriptor) -> SchemaDescriptor:
        with self._lock:
            previous = self._descriptors.get(descriptor.record_type)
            self._descriptors[descriptor.record_type] = descriptor
        if previous is not None and previous.schema_key != descriptor.schema_key:
            dropped = self.sql.invalidate(previous.schema_key)
            logger.info(f"Replaced mapping for {descriptor.table_name}; dropped {dropped} cached statement(s)")
        return descriptor

    def unregister(self, record_type: Any) -> None:
        with self._lock:
            previous = self._descriptors.pop(record_type, None)
        if previous is not None:
            self.sql.invalidate(previous.schema_key)

    def get(self, record_type: Any) -> Optional[SchemaDescriptor]:
        return self._descriptors.get(record_type)

    def descriptor_for(self, record_type: Any) -> SchemaDescriptor:
        descriptor = self.get(record_type)
        if descriptor is None:
            descriptor = getattr(record_type, "__table_descriptor__", None)
        if descriptor is None:
            raise KeyError(f"No table mapping registered for {record_type!r}")
        return descriptor

    def __contains__(self, record_type: object) -> bool:
        return record_type in self._descriptors


_DEFAULT_REGISTRY: Optional[MappingRegistry] = None
_DEFAULT_LOCK = threading.Lock()


def default_registry() -> MappingRegistry:
    global _DEFAULT_REGISTRY
    with _DEFAULT_LOCK:
        if _DEFAULT_REGISTRY is None:
            _DEFAULT_REGISTRY = MappingRegistry(load_config())
        return _DEFAULT_REGISTRY


def set_default_registry(registry: MappingRegistry) -> MappingRegistry:
    global _DEFAULT_REGISTRY
    with _DEFAULT_LOCK:
        _DEFAULT_REGISTRY = registry
    return registry
