"""Hooks that let user types encode and decode scalar wire formats.

A type takes part in marshaling a scalar by defining
``marshal_edgedb_<scalar>()`` returning bytes, and in unmarshaling by
defining ``unmarshal_edgedb_<scalar>(data)``. Optional shape fields
additionally implement :class:`OptionalUnmarshaler` or
:class:`OptionalMarshaler`.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class OptionalUnmarshaler(Protocol):
    """Used for optional (not required) shape field values."""

    def set_missing(self, missing: bool) -> None:
        """Called with True when the value is missing, False when present."""


@runtime_checkable
class OptionalMarshaler(Protocol):
    """Used for optional (not required) shape field values."""

    def missing(self) -> bool:
        """Return True when the value is missing."""


class ScalarType(str, Enum):
    """Scalar wire formats that user types may marshal."""

    STR = "str"
    BOOL = "bool"
    JSON = "json"
    UUID = "uuid"
    BYTES = "bytes"
    BIGINT = "bigint"
    DECIMAL = "decimal"
    DATETIME = "datetime"
    LOCAL_DATETIME = "local_datetime"
    LOCAL_DATE = "local_date"
    LOCAL_TIME = "local_time"
    DURATION = "duration"
    RELATIVE_DURATION = "relative_duration"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    MEMORY = "memory"

    @property
    def marshal_method(self) -> str:
        return f"marshal_edgedb_{self.value}"

    @property
    def unmarshal_method(self) -> str:
        return f"unmarshal_edgedb_{self.value}"


def _method(obj: Any, name: str) -> Any:
    method = getattr(obj, name, None)
    return method if callable(method) else None


def can_marshal(obj: Any, scalar_type: ScalarType | str) -> bool:
    """Whether ``obj`` can encode itself into the given wire format."""
    return _method(obj, ScalarType(scalar_type).marshal_method) is not None


def can_unmarshal(obj: Any, scalar_type: ScalarType | str) -> bool:
    """Whether ``obj`` can decode the given wire format into itself."""
    return _method(obj, ScalarType(scalar_type).unmarshal_method) is not None


def marshal_edgedb(obj: Any, scalar_type: ScalarType | str) -> bytes:
    """Encode ``obj`` into the wire format of ``scalar_type``."""
    kind = ScalarType(scalar_type)
    method = _method(obj, kind.marshal_method)
    if method is None:
        raise TypeError(
            f"{type(obj).__name__} does not implement {kind.marshal_method}()"
        )
    data = method()
    if not isinstance(data, (bytes, bytearray, memoryview)):
        raise TypeError(
            f"{kind.marshal_method}() must return bytes, "
            f"got {type(data).__name__}"
        )
    return bytes(data)


def unmarshal_edgedb(
    obj: Any, scalar_type: ScalarType | str, data: bytes | bytearray | memoryview
) -> None:
    """Decode ``data`` in the wire format of ``scalar_type`` into ``obj``.

    The data is copied first, so ``obj`` may keep what it is given.
    """
    kind = ScalarType(scalar_type)
    method = _method(obj, kind.unmarshal_method)
    if method is None:
        raise TypeError(
            f"{type(obj).__name__} does not implement {kind.unmarshal_method}()"
        )
    method(bytes(data))