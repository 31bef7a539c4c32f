"""Error classes raised by the client."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import ClassVar


class ErrorTag(Enum):
    """Tags that describe how an error may be handled."""

    SHOULD_RECONNECT = "SHOULD_RECONNECT"
    SHOULD_RETRY = "SHOULD_RETRY"


class EdgeDBError(Exception):
    """Base class of every error raised by the client or the server."""

    tags: ClassVar[frozenset[ErrorTag]] = frozenset()

    def __init__(self, message: str = "", *, tags: Iterable[ErrorTag] = ()) -> None:
        super().__init__(message)
        self.message = message
        self._extra_tags = frozenset(ErrorTag(tag) for tag in tags)

    def __str__(self) -> str:
        return f"edgedb.{type(self).__name__}: {self.message}"

    def has_tag(self, tag: ErrorTag | str) -> bool:
        """Whether the error carries ``tag``."""
        tag = ErrorTag(tag)
        return tag in type(self).tags or tag in self._extra_tags

    def category(self, kind: type[EdgeDBError]) -> bool:
        """Whether the error is ``kind`` or one of its subclasses."""
        if not (isinstance(kind, type) and issubclass(kind, EdgeDBError)):
            raise TypeError(f"expected an error class, got {kind!r}")
        return isinstance(self, kind)


class ClientError(EdgeDBError):
    """An error detected by the client."""


class InterfaceError(ClientError):
    """The client was used in a way it does not support."""


class ClientConnectionError(ClientError):
    """A connection to the server could not be used."""


class ClientConnectionFailedError(ClientConnectionError):
    """A connection to the server could not be established."""


class TransactionConflictError(EdgeDBError):
    """The server could not complete a transaction because of a conflict."""

    tags: ClassVar[frozenset[ErrorTag]] = frozenset({ErrorTag.SHOULD_RETRY})


class NoDataError(ClientError):
    """A singleton query returned no result."""