"""Connection, retry and transaction options."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum

from edgeflow.errors import ClientError, EdgeDBError, TransactionConflictError
from edgeflow.types import OptionalStr

_rng = random.Random()


class TLSSecurityMode(str, Enum):
    """How strict TLS validation is."""

    DEFAULT = "default"
    INSECURE = "insecure"
    NO_HOST_VERIFICATION = "no_host_verification"
    STRICT = "strict"


@dataclass
class TLSOptions:
    """Parameters used to configure TLS connections."""

    ca: bytes | None = None
    ca_file: str = ""
    security_mode: TLSSecurityMode = TLSSecurityMode.DEFAULT

    def __post_init__(self) -> None:
        self.security_mode = TLSSecurityMode(self.security_mode)


@dataclass
class Options:
    """Options for connecting to a server.

    Durations are in seconds.
    """

    host: str = ""
    port: int = 0
    credentials: bytes | None = None
    credentials_file: str = ""
    user: str = ""
    database: str = ""
    password: OptionalStr = field(default_factory=OptionalStr)
    connect_timeout: float = 0.0
    wait_until_available: float = 0.0
    concurrency: int = 0
    tls_options: TLSOptions = field(default_factory=TLSOptions)
    tls_ca_file: str = ""
    tls_security: str = ""
    server_settings: dict[str, bytes] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if isinstance(self.password, str):
            self.password = OptionalStr(self.password)
        if self.concurrency < 0:
            raise ValueError(
                f"concurrency must not be negative, got {self.concurrency}"
            )


RetryBackoff = Callable[[int], float]


def default_backoff(attempt: int) -> float:
    """Seconds to wait after the ``attempt``-th try: exponential plus jitter."""
    backoff = 2.0**attempt * 100.0
    jitter = _rng.random() * 100.0
    return int(backoff + jitter) / 1000.0


class RetryCondition(IntEnum):
    """Situations in which a transaction may be retried."""

    TX_CONFLICT = 0
    NETWORK_ERROR = 1


@dataclass(frozen=True)
class RetryRule:
    """How many times to attempt a transaction and how long to wait between."""

    attempts: int = 3
    backoff: RetryBackoff = default_backoff

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError(
                f"RetryRule attempts must be greater than 0, got {self.attempts}"
            )
        if not callable(self.backoff):
            raise TypeError("the backoff function must be callable")

    def with_attempts(self, attempts: int) -> RetryRule:
        """Return a copy with ``attempts`` set; it must be at least one."""
        return replace(self, attempts=attempts)

    def with_backoff(self, fn: RetryBackoff) -> RetryRule:
        """Return a copy with the backoff function set to ``fn``."""
        if fn is None:
            raise TypeError("the backoff function must not be None")
        return replace(self, backoff=fn)


@dataclass(frozen=True)
class RetryOptions:
    """Retry rules for each retry condition."""

    tx_conflict: RetryRule = field(default_factory=RetryRule)
    network: RetryRule = field(default_factory=RetryRule)

    def with_default(self, rule: RetryRule) -> RetryOptions:
        """Return a copy using ``rule`` for every condition."""
        if not isinstance(rule, RetryRule):
            raise TypeError(f"expected a RetryRule, got {type(rule).__name__}")
        return replace(self, tx_conflict=rule, network=rule)

    def with_condition(
        self, condition: RetryCondition | int, rule: RetryRule
    ) -> RetryOptions:
        """Return a copy using ``rule`` for ``condition``."""
        if not isinstance(rule, RetryRule):
            raise TypeError(f"expected a RetryRule, got {type(rule).__name__}")
        try:
            condition = RetryCondition(condition)
        except ValueError:
            raise ValueError(f"unexpected condition: {condition!r}") from None
        if condition is RetryCondition.TX_CONFLICT:
            return replace(self, tx_conflict=rule)
        return replace(self, network=rule)

    def rule_for_exception(self, err: BaseException) -> RetryRule:
        """Return the rule that applies to ``err``."""
        if not isinstance(err, EdgeDBError):
            raise TypeError(f"unexpected error type: {type(err).__name__}")
        if err.category(TransactionConflictError):
            return self.tx_conflict
        if err.category(ClientError):
            return self.network
        raise ValueError(f"unexpected error type: {type(err).__name__}")


class IsolationLevel(str, Enum):
    """Transaction isolation levels."""

    SERIALIZABLE = "serializable"
    REPEATABLE_READ = "repeatable_read"


def _isolation(level: IsolationLevel | str) -> IsolationLevel:
    try:
        return IsolationLevel(level)
    except ValueError:
        raise ValueError(f"unknown isolation level: {level!r}") from None


@dataclass(frozen=True)
class TxOptions:
    """How transactions behave."""

    read_only: bool = False
    deferrable: bool = False
    isolation: IsolationLevel = IsolationLevel.REPEATABLE_READ

    def __post_init__(self) -> None:
        object.__setattr__(self, "isolation", _isolation(self.isolation))

    def with_isolation(self, level: IsolationLevel | str) -> TxOptions:
        """Return a copy with the isolation level set to ``level``."""
        return replace(self, isolation=_isolation(level))

    def with_read_only(self, read_only: bool) -> TxOptions:
        """Return a copy with read only access set to ``read_only``."""
        return replace(self, read_only=bool(read_only))

    def with_deferrable(self, deferrable: bool) -> TxOptions:
        """Return a copy with deferrable mode set to ``deferrable``."""
        return replace(self, deferrable=bool(deferrable))

    def start_tx_query(self) -> str:
        """The command that starts a transaction with these options."""
        isolation = {
            IsolationLevel.REPEATABLE_READ: "ISOLATION REPEATABLE READ",
            IsolationLevel.SERIALIZABLE: "ISOLATION SERIALIZABLE",
        }[self.isolation]
        access = "READ ONLY" if self.read_only else "READ WRITE"
        deferrable = "DEFERRABLE" if self.deferrable else "NOT DEFERRABLE"
        return f"START TRANSACTION {isolation}, {access}, {deferrable};"