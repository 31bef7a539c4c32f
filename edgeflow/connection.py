"""Sockets, and connections that reconnect and retry failed work."""

from __future__ import annotations

import copy
import random
import socket
import ssl
import threading
import time
from collections.abc import Callable, MutableMapping
from typing import Any

from edgeflow.errors import (
    ClientConnectionError,
    ClientConnectionFailedError,
    EdgeDBError,
    ErrorTag,
    InterfaceError,
    TransactionConflictError,
)
from edgeflow.options import RetryOptions, TxOptions
from edgeflow.query import Query, QueryMethod, ScriptQuery, run_query
from edgeflow.transaction import BorrowableConnection, Tx

ALPN_PROTOCOL = "edgedb-binary"

CapabilityCache = MutableMapping[tuple, int]
Connector = Callable[[CapabilityCache], Any]

_rng = random.Random()

_TEMPORARY_ERRORS = (
    ConnectionRefusedError,
    ConnectionResetError,
    ConnectionAbortedError,
    TimeoutError,
)


def _wrap_net_error(
    exc: BaseException, kind: type[ClientConnectionError] = ClientConnectionError
) -> ClientConnectionError:
    tags = (ErrorTag.SHOULD_RECONNECT,) if isinstance(exc, _TEMPORARY_ERRORS) else ()
    return kind(str(exc) or type(exc).__name__, tags=tags)


class AutoClosingSocket:
    """A socket that closes itself on network errors.

    Errors from the underlying socket are raised as
    :class:`ClientConnectionError`.
    """

    def __init__(self, conn: Any) -> None:
        self._conn = conn
        self._closed = False
        self._lock = threading.Lock()

    def __enter__(self) -> AutoClosingSocket:
        return self

    def __exit__(self, *exc_info: object) -> None:
        if not self.closed():
            self.close()

    def closed(self) -> bool:
        """Whether the socket has been closed."""
        with self._lock:
            return self._closed

    def close(self) -> None:
        """Close the socket."""
        with self._lock:
            self._closed = True
        try:
            self._conn.close()
        except OSError as exc:
            raise _wrap_net_error(exc) from exc

    def _fail(self, exc: OSError) -> ClientConnectionError:
        try:
            self.close()
        except ClientConnectionError:
            pass
        return _wrap_net_error(exc)

    def read(self, size: int) -> bytes:
        """Read up to ``size`` bytes; end of stream closes the socket."""
        try:
            data = self._conn.recv(size)
        except OSError as exc:
            raise self._fail(exc) from exc
        if size > 0 and not data:
            try:
                self.close()
            except ClientConnectionError:
                pass
        return data

    def write(self, data: bytes) -> int:
        """Write some of ``data`` and return how many bytes were sent."""
        try:
            return self._conn.send(data)
        except OSError as exc:
            raise self._fail(exc) from exc

    def write_all(self, data: bytes) -> None:
        """Write all of ``data``."""
        view = memoryview(data)
        while view:
            view = view[self.write(view) :]

    def set_timeout(self, timeout: float | None) -> None:
        """Set the timeout of blocking operations, in seconds."""
        try:
            self._conn.settimeout(timeout)
        except OSError as exc:
            raise self._fail(exc) from exc


def _open(host: str, port: int, timeout: float | None) -> socket.socket:
    try:
        return socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        raise _wrap_net_error(exc, ClientConnectionFailedError) from exc


def _connect_plain(host: str, port: int, timeout: float | None) -> socket.socket:
    sock = _open(host, port, timeout)
    sock.settimeout(None)
    return sock


def _connect_tls(
    host: str, port: int, ssl_context: ssl.SSLContext, timeout: float | None
) -> ssl.SSLSocket:
    ssl_context.set_alpn_protocols([ALPN_PROTOCOL])
    raw = _open(host, port, timeout)
    try:
        tls = ssl_context.wrap_socket(raw, server_hostname=host)
    except OSError as exc:
        raw.close()
        raise _wrap_net_error(exc, ClientConnectionFailedError) from exc
    if tls.selected_alpn_protocol() != ALPN_PROTOCOL:
        tls.close()
        raise ClientConnectionFailedError(
            "The server doesn't support the edgedb-binary protocol."
        )
    tls.settimeout(None)
    return tls


def connect_socket(
    host: str,
    port: int,
    ssl_context: ssl.SSLContext | None = None,
    timeout: float | None = None,
) -> AutoClosingSocket:
    """Connect to ``host``:``port``.

    With an ``ssl_context`` a TLS connection is tried first (its ALPN
    protocols are set on the context); if it fails for a reason other
    than TLS itself, a plain connection is tried. ``timeout`` applies to
    establishing the connection only.
    """
    timeout = timeout if timeout and timeout > 0 else None
    if ssl_context is None:
        return AutoClosingSocket(_connect_plain(host, port, timeout))

    try:
        conn: socket.socket = _connect_tls(host, port, ssl_context, timeout)
    except ClientConnectionError as tls_error:
        if isinstance(tls_error.__cause__, ssl.SSLError):
            raise
        try:
            conn = _connect_plain(host, port, timeout)
        except ClientConnectionError:
            raise tls_error
    return AutoClosingSocket(conn)


def _capabilities_key(query: Query) -> tuple:
    return (query.command, query.format, query.expected_cardinality)


class ReconnectingConnection(BorrowableConnection):
    """A connection that reconnects to the server when it has been lost.

    ``connector`` is called with the capability cache and returns a
    protocol connection with ``script_flow``, ``granular_flow``,
    ``is_closed`` and ``close``. The cache maps a query's
    ``(command, format, expected_cardinality)`` to the capabilities the
    server reported for it.
    """

    def __init__(
        self,
        connector: Connector,
        *,
        wait_until_available: float = 0.0,
        capabilities: CapabilityCache | None = None,
    ) -> None:
        super().__init__(None)  # type: ignore[arg-type]
        self._connector = connector
        self.wait_until_available = wait_until_available
        self.capabilities: CapabilityCache = (
            capabilities if capabilities is not None else {}
        )
        self._closed = False

    def _connection_lost(self) -> bool:
        return self.connection is None or self.connection.is_closed()

    def reconnect(self, single: bool = False) -> Any:
        """Connect anew, retrying until ``wait_until_available`` runs out.

        With ``single`` only one attempt is made.
        """
        if self._closed:
            raise InterfaceError("Connection is closed")

        deadline = time.monotonic() + self.wait_until_available
        while True:
            self.connection = None
            try:
                self.connection = self._connector(self.capabilities)
                return self.connection
            except EdgeDBError as exc:
                if (
                    single
                    or not exc.category(ClientConnectionError)
                    or not exc.has_tag(ErrorTag.SHOULD_RECONNECT)
                    or time.monotonic() > deadline
                ):
                    raise
            time.sleep((10 + _rng.randrange(200)) / 1000.0)

    def ensure_connection(self) -> None:
        """Reconnect to the server if not connected."""
        if not self._closed and not self._connection_lost():
            return
        self.reconnect(False)

    def script_flow(self, query: ScriptQuery) -> Any:
        self.ensure_connection()
        return super().script_flow(query)

    def granular_flow(self, query: Query) -> Any:
        self.ensure_connection()
        return super().granular_flow(query)

    def close(self) -> None:
        """Close the connection; it cannot be used afterwards."""
        if self._closed:
            raise InterfaceError("connection released more than once")
        self._closed = True
        if not self._connection_lost():
            self.connection.close()


class TransactableConnection(ReconnectingConnection):
    """A reconnecting connection that runs queries and retried transactions."""

    def __init__(
        self,
        connector: Connector,
        *,
        wait_until_available: float = 0.0,
        capabilities: CapabilityCache | None = None,
        tx_options: TxOptions | None = None,
        retry_options: RetryOptions | None = None,
    ) -> None:
        super().__init__(
            connector,
            wait_until_available=wait_until_available,
            capabilities=capabilities,
        )
        self.tx_options = _checked(tx_options or TxOptions(), TxOptions)
        self.retry_options = _checked(retry_options or RetryOptions(), RetryOptions)

    def execute(self, command: str) -> None:
        """Execute an EdgeQL command or commands."""
        self.script_flow(ScriptQuery(command, self.headers()))

    def query(self, command: str, *args: Any) -> Any:
        """Run a query and return its results."""
        return run_query(self, QueryMethod.QUERY, command, args)

    def query_single(self, command: str, *args: Any) -> Any:
        """Run a singleton query; raise NoDataError when there is no result."""
        return run_query(self, QueryMethod.QUERY_SINGLE, command, args)

    def query_json(self, command: str, *args: Any) -> Any:
        """Run a query and return its results as JSON."""
        return run_query(self, QueryMethod.QUERY_JSON, command, args)

    def query_single_json(self, command: str, *args: Any) -> Any:
        """Run a singleton query returning JSON; raise NoDataError if empty."""
        return run_query(self, QueryMethod.QUERY_SINGLE_JSON, command, args)

    def granular_flow(self, query: Query) -> Any:
        """Run ``query``, retrying it when that is known to be safe.

        Read only queries (no capabilities) are retried on any retryable
        error; other queries only on transaction conflicts.
        """
        attempt = 1
        failed = False
        while True:
            try:
                if failed and self._connection_lost():
                    self.reconnect(True)
                return super().granular_flow(query)
            except EdgeDBError as exc:
                capabilities = self.capabilities.get(_capabilities_key(query))
                if (
                    capabilities is None
                    or not exc.has_tag(ErrorTag.SHOULD_RETRY)
                    or not (
                        capabilities == 0
                        or exc.category(TransactionConflictError)
                    )
                ):
                    raise
                rule = self.retry_options.rule_for_exception(exc)
                if attempt >= rule.attempts:
                    raise
                time.sleep(rule.backoff(attempt))
                attempt += 1
                failed = True

    def tx(self, action: Callable[[Tx], Any]) -> Any:
        """Run ``action`` in a transaction and return its result.

        Failed attempts are retried when they might succeed later.
        """
        self.ensure_connection()
        connection = self.borrow("transaction")
        try:
            return self._run_tx(action, connection)
        finally:
            self.unborrow()

    def _run_tx(self, action: Callable[[Tx], Any], connection: Any) -> Any:
        attempt = 1
        failed = False
        while True:
            try:
                if failed and self._connection_lost():
                    connection = self.reconnect(True)
                transaction = Tx(connection, self.tx_options)
                transaction.start()
                try:
                    result = action(transaction)
                except BaseException as exc:
                    if isinstance(exc, ClientConnectionError):
                        raise
                    try:
                        transaction.rollback()
                    except EdgeDBError:
                        pass
                    raise
            except EdgeDBError as exc:
                if not exc.has_tag(ErrorTag.SHOULD_RETRY):
                    raise
                rule = self.retry_options.rule_for_exception(exc)
                if attempt >= rule.attempts:
                    raise
                time.sleep(rule.backoff(attempt))
                attempt += 1
                failed = True
            else:
                transaction.commit()
                return result

    def with_tx_options(self, options: TxOptions) -> TransactableConnection:
        """Return a shallow copy using ``options`` for transactions."""
        clone = copy.copy(self)
        clone.tx_options = _checked(options, TxOptions)
        return clone

    def with_retry_options(self, options: RetryOptions) -> TransactableConnection:
        """Return a shallow copy using ``options`` for retries."""
        clone = copy.copy(self)
        clone.retry_options = _checked(options, RetryOptions)
        return clone


def _checked(value: Any, kind: type) -> Any:
    if not isinstance(value, kind):
        raise TypeError(f"expected {kind.__name__}, got {type(value).__name__}")
    return value