"""Query descriptions and the common query runner."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Protocol

from edgeflow.errors import NoDataError

Headers = dict[int, bytes]


class QueryMethod(str, Enum):
    """The ways a query can be run."""

    QUERY = "Query"
    QUERY_SINGLE = "QuerySingle"
    QUERY_JSON = "QueryJSON"
    QUERY_SINGLE_JSON = "QuerySingleJSON"

    @property
    def single(self) -> bool:
        return self in (QueryMethod.QUERY_SINGLE, QueryMethod.QUERY_SINGLE_JSON)


class OutputFormat(IntEnum):
    """Result encodings."""

    BINARY = 0x62
    JSON = 0x6A


class Cardinality(IntEnum):
    """Result cardinalities."""

    NO_RESULT = 0x6E
    AT_MOST_ONE = 0x6F
    ONE = 0x41
    MANY = 0x6D
    AT_LEAST_ONE = 0x4D


_METHODS: dict[QueryMethod, tuple[Cardinality, OutputFormat]] = {
    QueryMethod.QUERY: (Cardinality.MANY, OutputFormat.BINARY),
    QueryMethod.QUERY_SINGLE: (Cardinality.AT_MOST_ONE, OutputFormat.BINARY),
    QueryMethod.QUERY_JSON: (Cardinality.MANY, OutputFormat.JSON),
    QueryMethod.QUERY_SINGLE_JSON: (Cardinality.AT_MOST_ONE, OutputFormat.JSON),
}


@dataclass(frozen=True)
class ScriptQuery:
    """A script flow command."""

    command: str
    headers: Headers = field(default_factory=dict)


@dataclass(frozen=True)
class Query:
    """A granular flow query."""

    method: QueryMethod
    command: str
    format: OutputFormat
    expected_cardinality: Cardinality
    args: tuple[Any, ...] = ()
    headers: Headers = field(default_factory=dict)

    def flat(self) -> bool:
        """Whether the result is a single value rather than a list of rows."""
        return (
            self.expected_cardinality != Cardinality.MANY
            or self.format == OutputFormat.JSON
        )


class Queryable(Protocol):
    """Something that can run granular flow queries."""

    def headers(self) -> Headers:
        """Headers to send with every query."""

    def granular_flow(self, query: Query) -> Any:
        """Run ``query`` and return its result."""


def new_query(
    method: QueryMethod | str,
    command: str,
    args: Sequence[Any] = (),
    headers: Headers | None = None,
) -> Query:
    """Build a granular flow query for ``method``."""
    try:
        method = QueryMethod(method)
    except ValueError:
        raise ValueError(f"unknown query method {method!r}") from None
    cardinality, fmt = _METHODS[method]
    return Query(
        method=method,
        command=command,
        format=fmt,
        expected_cardinality=cardinality,
        args=tuple(args),
        headers=dict(headers or {}),
    )


def run_query(
    target: Queryable,
    method: QueryMethod | str,
    command: str,
    args: Sequence[Any] = (),
    optional: bool = False,
) -> Any:
    """Run a query on ``target``.

    When ``optional`` is true a singleton query without a result returns
    None instead of raising :class:`NoDataError`.
    """
    query = new_query(method, command, args, target.headers())
    try:
        return target.granular_flow(query)
    except NoDataError:
        if optional and query.method.single:
            return None
        raise