"""Transactions and savepoint based subtransactions."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Protocol

from edgeflow.errors import InterfaceError
from edgeflow.options import TxOptions
from edgeflow.query import Headers, Query, QueryMethod, ScriptQuery, run_query


class ProtocolConnection(Protocol):
    """A connection that runs script and granular flows."""

    def script_flow(self, query: ScriptQuery) -> Any:
        """Run a script flow command."""

    def granular_flow(self, query: Query) -> Any:
        """Run a granular flow query and return its result."""


class TxStatus(Enum):
    """The life cycle of a transaction."""

    NEW = auto()
    STARTED = auto()
    COMMITTED = auto()
    ROLLED_BACK = auto()
    FAILED = auto()


@dataclass
class TxState:
    """State shared by a transaction and its subtransactions."""

    status: TxStatus = TxStatus.NEW
    savepoint_count: int = 0

    def assert_not_done(self, op_name: str) -> None:
        """Raise InterfaceError if the transaction is finished."""
        reason = {
            TxStatus.COMMITTED: "the transaction is already committed",
            TxStatus.ROLLED_BACK: "the transaction is already rolled back",
            TxStatus.FAILED: "the transaction is in error state",
        }.get(self.status)
        if reason is not None:
            raise InterfaceError(f"cannot {op_name}; {reason}")

    def assert_started(self, op_name: str) -> None:
        """Raise InterfaceError unless the transaction is started."""
        if self.status is TxStatus.STARTED:
            return
        if self.status is TxStatus.NEW:
            raise InterfaceError(
                f"cannot {op_name}; the transaction is not yet started"
            )
        self.assert_not_done(op_name)

    def next_savepoint_name(self) -> str:
        """Return a fresh savepoint name."""
        self.savepoint_count += 1
        return f"EdgeflowSavepoint{self.savepoint_count}"


class BorrowableConnection:
    """A connection that can be lent out exclusively to a nested block."""

    _owner = "connection"

    def __init__(self, connection: ProtocolConnection) -> None:
        self.connection = connection
        self._borrowed_for: str | None = None

    @property
    def borrowed(self) -> bool:
        return self._borrowed_for is not None

    def _assert_unborrowed(self) -> None:
        if self._borrowed_for is not None:
            reason = self._borrowed_for
            raise InterfaceError(
                f"The {self._owner} is borrowed for a {reason}. "
                f"Use the methods on the {reason} object instead."
            )

    def borrow(self, reason: str) -> ProtocolConnection:
        """Lend out the underlying connection for ``reason``."""
        self._assert_unborrowed()
        self._borrowed_for = reason
        return self.connection

    def unborrow(self) -> None:
        """Take back the underlying connection."""
        if self._borrowed_for is None:
            raise InterfaceError("not borrowed, cannot unborrow")
        self._borrowed_for = None

    def headers(self) -> Headers:
        """Headers sent with every query."""
        headers = getattr(self.connection, "headers", None)
        return dict(headers()) if callable(headers) else {}

    def script_flow(self, query: ScriptQuery) -> Any:
        """Run a script flow command unless the connection is borrowed."""
        self._assert_unborrowed()
        return self.connection.script_flow(query)

    def granular_flow(self, query: Query) -> Any:
        """Run a granular flow query unless the connection is borrowed."""
        self._assert_unborrowed()
        return self.connection.granular_flow(query)


class _Block(BorrowableConnection):
    _owner = "transaction"

    def __init__(
        self,
        connection: ProtocolConnection,
        options: TxOptions | None = None,
        state: TxState | None = None,
    ) -> None:
        super().__init__(connection)
        self.options = options if options is not None else TxOptions()
        self.state = state if state is not None else TxState()

    def granular_flow(self, query: Query) -> Any:
        self.state.assert_started(query.method.value)
        return super().granular_flow(query)


class Tx(_Block):
    """A transaction."""

    def _run(self, command: str, success: TxStatus) -> None:
        try:
            BorrowableConnection.script_flow(self, ScriptQuery(command))
        except BaseException:
            self.state.status = TxStatus.FAILED
            raise
        self.state.status = success

    def start(self) -> None:
        """Start the transaction."""
        self.state.assert_not_done("start")
        if self.state.status is TxStatus.STARTED:
            raise InterfaceError("cannot start; the transaction is already started")
        self._run(self.options.start_tx_query(), TxStatus.STARTED)

    def commit(self) -> None:
        """Commit the transaction."""
        self.state.assert_started("commit")
        self._run("COMMIT;", TxStatus.COMMITTED)

    def rollback(self) -> None:
        """Roll the transaction back."""
        self.state.assert_started("rollback")
        self._run("ROLLBACK;", TxStatus.ROLLED_BACK)

    def script_flow(self, query: ScriptQuery) -> Any:
        self.state.assert_started("Execute")
        return super().script_flow(query)

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

    def subtx(self, action: Callable[[Subtx], Any]) -> Any:
        """Run ``action`` in a savepoint, rolled back if it raises."""
        return run_subtx(action, self)


class Subtx(_Block):
    """A subtransaction backed by a savepoint."""

    def __init__(
        self,
        connection: ProtocolConnection,
        options: TxOptions | None = None,
        state: TxState | None = None,
    ) -> None:
        super().__init__(connection, options, state)
        self.name = ""

    def declare(self) -> None:
        """Declare the savepoint."""
        self.state.assert_started("start subtransaction")
        self.name = self.state.next_savepoint_name()
        self.script_flow(ScriptQuery(f"DECLARE SAVEPOINT {self.name}"))

    def release(self) -> None:
        """Release the savepoint."""
        self.state.assert_started("release subtransaction")
        self.script_flow(ScriptQuery(f"RELEASE SAVEPOINT {self.name}"))

    def rollback(self) -> None:
        """Roll back to the savepoint."""
        self.state.assert_started("rollback subtransaction")
        self.script_flow(ScriptQuery(f"ROLLBACK TO SAVEPOINT {self.name}"))

    def execute(self, command: str) -> None:
        """Execute an EdgeQL command or commands."""
        self.state.assert_started("Execute")
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

    def subtx(self, action: Callable[[Subtx], Any]) -> Any:
        """Run ``action`` in a nested savepoint, rolled back if it raises."""
        return run_subtx(action, self)


def run_subtx(action: Callable[[Subtx], Any], parent: Tx | Subtx) -> Any:
    """Run ``action`` in a savepoint of ``parent`` and return its result.

    The savepoint is released when the action succeeds and rolled back
    when it raises; the action's exception is then re-raised unless the
    rollback itself fails.
    """
    connection = parent.borrow("subtransaction")
    try:
        subtx = Subtx(connection, parent.options, parent.state)
        subtx.declare()
        try:
            result = action(subtx)
        except BaseException as exc:
            try:
                subtx.rollback()
            except BaseException as rollback_error:
                raise rollback_error from exc
            raise
        subtx.release()
    except BaseException:
        try:
            parent.unborrow()
        except InterfaceError:
            pass
        raise
    parent.unborrow()
    return result