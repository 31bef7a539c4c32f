"""Values that may be missing, for optional query fields and arguments."""

from __future__ import annotations

import datetime as _dt
import struct
import uuid
from typing import Any, ClassVar, Generic, TypeVar

_T = TypeVar("_T")
_UNSET: Any = object()


class Optional(Generic[_T]):
    """A value that is either present or missing."""

    __slots__ = ("_value", "_present")
    _zero: ClassVar[Any] = None

    def __init__(self, value: Any = _UNSET) -> None:
        self._value: Any = self._zero
        self._present = False
        if value is not _UNSET:
            self.set(value)

    @classmethod
    def _check(cls, value: Any) -> Any:
        return value

    def set(self, value: _T) -> None:
        """Store ``value`` and mark the optional as present."""
        self._value = self._check(value)
        self._present = True

    def unset(self) -> None:
        """Mark the optional as missing."""
        self._value = self._zero
        self._present = False

    def get(self) -> _T | None:
        """Return the value, or None when it is missing."""
        return self._value if self._present else None

    def missing(self) -> bool:
        """Whether the value is missing."""
        return not self._present

    def set_missing(self, missing: bool) -> None:
        """Mark the value missing, or present with the zero value."""
        if missing:
            self.unset()
        else:
            self._value = self._zero
            self._present = True

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._present == other._present and self._value == other._value

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        if not self._present:
            return f"{type(self).__name__}()"
        return f"{type(self).__name__}({self._value!r})"


def _require(value: Any, kinds: tuple[type, ...], name: str) -> None:
    if isinstance(value, bool) and bool not in kinds:
        raise TypeError(f"expected {name}, got bool")
    if not isinstance(value, kinds):
        raise TypeError(f"expected {name}, got {type(value).__name__}")


class OptionalBool(Optional[bool]):
    """A bool that is not required."""

    __slots__ = ()
    _zero = False

    @classmethod
    def _check(cls, value: Any) -> bool:
        _require(value, (bool,), "bool")
        return value


class OptionalBytes(Optional[bytes]):
    """Bytes that are not required."""

    __slots__ = ()
    _zero = b""

    @classmethod
    def _check(cls, value: Any) -> bytes:
        _require(value, (bytes, bytearray, memoryview), "bytes")
        return bytes(value)


class OptionalStr(Optional[str]):
    """A string that is not required."""

    __slots__ = ()
    _zero = ""

    @classmethod
    def _check(cls, value: Any) -> str:
        _require(value, (str,), "str")
        return value


class _OptionalSignedInt(Optional[int]):
    __slots__ = ()
    _zero = 0
    _bits: ClassVar[int] = 64

    @classmethod
    def _check(cls, value: Any) -> int:
        _require(value, (int,), "int")
        low, high = -(1 << (cls._bits - 1)), (1 << (cls._bits - 1)) - 1
        if not low <= value <= high:
            raise ValueError(f"{value} is out of range for int{cls._bits}")
        return int(value)


class OptionalInt16(_OptionalSignedInt):
    """An int16 that is not required."""

    __slots__ = ()
    _bits = 16


class OptionalInt32(_OptionalSignedInt):
    """An int32 that is not required."""

    __slots__ = ()
    _bits = 32


class OptionalInt64(_OptionalSignedInt):
    """An int64 that is not required."""

    __slots__ = ()
    _bits = 64


class OptionalMemory(_OptionalSignedInt):
    """A memory size in bytes that is not required."""

    __slots__ = ()
    _bits = 64


class OptionalFloat32(Optional[float]):
    """A float32 that is not required; values are rounded to float32."""

    __slots__ = ()
    _zero = 0.0

    @classmethod
    def _check(cls, value: Any) -> float:
        _require(value, (int, float), "float")
        try:
            return struct.unpack("<f", struct.pack("<f", float(value)))[0]
        except OverflowError as exc:
            raise ValueError(f"{value} is out of range for float32") from exc


class OptionalFloat64(Optional[float]):
    """A float64 that is not required."""

    __slots__ = ()
    _zero = 0.0

    @classmethod
    def _check(cls, value: Any) -> float:
        _require(value, (int, float), "float")
        return float(value)


class OptionalBigInt(Optional[int]):
    """An arbitrary precision integer that is not required."""

    __slots__ = ()
    _zero = 0

    @classmethod
    def _check(cls, value: Any) -> int:
        _require(value, (int,), "int")
        return int(value)


class OptionalUUID(Optional[uuid.UUID]):
    """A UUID that is not required; strings are parsed."""

    __slots__ = ()
    _zero = uuid.UUID(int=0)

    @classmethod
    def _check(cls, value: Any) -> uuid.UUID:
        if isinstance(value, str):
            return uuid.UUID(value)
        _require(value, (uuid.UUID,), "UUID")
        return value


class OptionalDateTime(Optional[_dt.datetime]):
    """A time zone aware datetime that is not required."""

    __slots__ = ()
    _zero = _dt.datetime(1, 1, 1, tzinfo=_dt.timezone.utc)

    @classmethod
    def _check(cls, value: Any) -> _dt.datetime:
        _require(value, (_dt.datetime,), "datetime")
        if value.tzinfo is None or value.utcoffset() is None:
            raise ValueError("datetime must be time zone aware")
        return value