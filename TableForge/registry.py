"""Central semantic type registry: Python types, SQL types and value codecs."""
from __future__ import annotations

import datetime as dt
import enum
import types
import typing
import uuid
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Optional

from .errors import UnsupportedTypeError


class SemanticType(enum.Enum):
    BOOLEAN = "boolean"
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    UINT8 = "uint8"
    UINT16 = "uint16"
    UINT32 = "uint32"
    ENUM = "enum"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    DECIMAL = "decimal"
    STRING = "string"
    DURATION = "duration"
    INSTANT = "instant"
    INSTANT_OFFSET = "instant_offset"
    BYTES = "bytes"
    UUID = "uuid"


INTEGER_TYPES = frozenset({
    SemanticType.BOOLEAN,
    SemanticType.INT8,
    SemanticType.INT16,
    SemanticType.INT32,
    SemanticType.INT64,
    SemanticType.UINT8,
    SemanticType.UINT16,
    SemanticType.UINT32,
    SemanticType.ENUM,
})
FLOAT_TYPES = frozenset({SemanticType.FLOAT32, SemanticType.FLOAT64, SemanticType.DECIMAL})
TICK_TYPES = frozenset({SemanticType.DURATION, SemanticType.INSTANT, SemanticType.INSTANT_OFFSET})

_EPOCH = dt.datetime(1970, 1, 1)
_EPOCH_UTC = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
_MICROS = 1_000_000


def sql_type_for(semantic_type: SemanticType, max_length: Optional[int] = None) -> str:
    """Map a semantic type to its column type. Total over SemanticType."""
    if semantic_type in INTEGER_TYPES:
        return "integer"
    if semantic_type in FLOAT_TYPES:
        return "float"
    if semantic_type is SemanticType.STRING:
        return f"varchar({max_length})" if max_length is not None else "varchar"
    if semantic_type in TICK_TYPES:
        return "bigint"
    if semantic_type is SemanticType.BYTES:
        return "blob"
    if semantic_type is SemanticType.UUID:
        return "varchar(36)"
    raise UnsupportedTypeError(semantic_type)


def unwrap_optional(python_type: Any) -> Any:
    """Return X for Optional[X] / X | None, otherwise the type unchanged."""
    origin = typing.get_origin(python_type)
    if origin is typing.Union or (hasattr(types, "UnionType") and origin is getattr(types, "UnionType")):
        args = [a for a in typing.get_args(python_type) if a is not type(None)]
        if len(args) == 1:
            return args[0]
    return python_type


# ---------- codecs ----------

def _to_micros(delta: dt.timedelta) -> int:
    return (delta.days * 86400 + delta.seconds) * _MICROS + delta.microseconds


def _encode_instant(value: dt.datetime) -> int:
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc).replace(tzinfo=None)
    return _to_micros(value - _EPOCH)


def _encode_instant_offset(value: dt.datetime) -> int:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    return _to_micros(value - _EPOCH_UTC)


def _decode_int(value: Any, _py: Any = None) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not integral")
        return int(value)
    if isinstance(value, (bytes, bytearray)):
        raise TypeError("blob is not an integer")
    return int(value)


def _decode_enum(value: Any, python_type: Any) -> Any:
    raw = _decode_int(value)
    if isinstance(python_type, type) and issubclass(python_type, enum.Enum):
        return python_type(raw)
    return raw


def _decode_decimal(value: Any, _py: Any = None) -> Decimal:
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(str(e)) from e


def _decode_string(value: Any, _py: Any = None) -> str:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8")
    if isinstance(value, (int, float, str)):
        return str(value)
    raise TypeError(f"cannot read {type(value).__name__} as text")


def _decode_bytes(value: Any, _py: Any = None) -> bytes:
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise TypeError(f"cannot read {type(value).__name__} as blob")


def _encode_enum(value: Any) -> int:
    raw = value.value if isinstance(value, enum.Enum) else value
    if not isinstance(raw, int):
        raise TypeError(f"enum value {value!r} is not an integer")
    return int(raw)


_ENCODERS: Dict[SemanticType, Callable[[Any], Any]] = {
    SemanticType.BOOLEAN: lambda v: 1 if v else 0,
    SemanticType.ENUM: _encode_enum,
    SemanticType.FLOAT32: float,
    SemanticType.FLOAT64: float,
    SemanticType.DECIMAL: float,
    SemanticType.STRING: str,
    SemanticType.DURATION: _to_micros,
    SemanticType.INSTANT: _encode_instant,
    SemanticType.INSTANT_OFFSET: _encode_instant_offset,
    SemanticType.BYTES: bytes,
    SemanticType.UUID: lambda v: str(v if isinstance(v, uuid.UUID) else uuid.UUID(str(v))),
}

_DECODERS: Dict[SemanticType, Callable[[Any, Any], Any]] = {
    SemanticType.BOOLEAN: lambda v, _py: bool(_decode_int(v)),
    SemanticType.ENUM: _decode_enum,
    SemanticType.FLOAT32: lambda v, _py: float(v),
    SemanticType.FLOAT64: lambda v, _py: float(v),
    SemanticType.DECIMAL: _decode_decimal,
    SemanticType.STRING: _decode_string,
    SemanticType.DURATION: lambda v, _py: dt.timedelta(microseconds=_decode_int(v)),
    SemanticType.INSTANT: lambda v, _py: _EPOCH + dt.timedelta(microseconds=_decode_int(v)),
    SemanticType.INSTANT_OFFSET: lambda v, _py: _EPOCH_UTC + dt.timedelta(microseconds=_decode_int(v)),
    SemanticType.BYTES: _decode_bytes,
    SemanticType.UUID: lambda v, _py: uuid.UUID(_decode_string(v)),
}

for _int_type in INTEGER_TYPES - {SemanticType.BOOLEAN, SemanticType.ENUM}:
    _ENCODERS[_int_type] = int
    _DECODERS[_int_type] = _decode_int


@dataclass
class TypeRegistry:
    _python_to_semantic: Dict[Any, SemanticType] = field(default_factory=dict)

    def register(self, python_type: Any, semantic_type: SemanticType) -> None:
        self._python_to_semantic[python_type] = semantic_type

    def resolve_semantic(self, python_type: Any, field_name: Optional[str] = None) -> SemanticType:
        """Resolve a field's type hint to its semantic type."""
        python_type = unwrap_optional(python_type)
        if python_type in self._python_to_semantic:
            return self._python_to_semantic[python_type]
        if isinstance(python_type, type) and issubclass(python_type, enum.Enum):
            return SemanticType.ENUM
        raise UnsupportedTypeError(python_type, field_name)

    def resolve_sql(self, semantic_type: SemanticType, max_length: Optional[int] = None) -> str:
        return sql_type_for(semantic_type, max_length)

    def encode(self, semantic_type: SemanticType, value: Any) -> Any:
        """Convert a record value to its stored representation."""
        if value is None:
            return None
        return _ENCODERS[semantic_type](value)

    def decode(self, semantic_type: SemanticType, value: Any, python_type: Any = None) -> Any:
        """Convert a stored value back to the field's Python value."""
        if value is None:
            return None
        return _DECODERS[semantic_type](value, unwrap_optional(python_type))

    @classmethod
    def default(cls) -> "TypeRegistry":
        reg = cls()
        reg.register(bool, SemanticType.BOOLEAN)
        reg.register(int, SemanticType.INT64)
        reg.register(float, SemanticType.FLOAT64)
        reg.register(Decimal, SemanticType.DECIMAL)
        reg.register(str, SemanticType.STRING)
        reg.register(dt.timedelta, SemanticType.DURATION)
        reg.register(dt.datetime, SemanticType.INSTANT)
        reg.register(bytes, SemanticType.BYTES)
        reg.register(bytearray, SemanticType.BYTES)
        reg.register(uuid.UUID, SemanticType.UUID)
        return reg


DEFAULT_TYPES = TypeRegistry.default()
