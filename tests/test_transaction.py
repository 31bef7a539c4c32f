import pytest

from edgeflow.errors import EdgeDBError, InterfaceError, NoDataError
from edgeflow.options import IsolationLevel, TxOptions
from edgeflow.query import QueryMethod
from edgeflow.transaction import (
    BorrowableConnection,
    Subtx,
    Tx,
    TxState,
    TxStatus,
    run_subtx,
)


class DivisionByZeroError(EdgeDBError):
    pass


class FakeConnection:
    def __init__(self, fail_on=None, results=None):
        self.commands = []
        self.queries = []
        self.fail_on = dict(fail_on or {})
        self.results = dict(results or {})

    def script_flow(self, query):
        self.commands.append(query.command)
        exc = self.fail_on.get(query.command)
        if exc is not None:
            raise exc

    def granular_flow(self, query):
        self.queries.append(query)
        result = self.results.get(query.command)
        if isinstance(result, BaseException):
            raise result
        return result

    def headers(self):
        return {1: b"h"}


BORROWED = (
    "edgedb.InterfaceError: "
    "The transaction is borrowed for a subtransaction. "
    "Use the methods on the subtransaction object instead."
)


def started_tx(conn=None, options=None):
    tx = Tx(conn or FakeConnection(), options)
    tx.start()
    return tx


def test_savepoint_names_increment():
    state = TxState()
    assert state.next_savepoint_name() == "EdgeflowSavepoint1"
    assert state.next_savepoint_name() == "EdgeflowSavepoint2"
    assert state.savepoint_count == 2


@pytest.mark.parametrize(
    "status, reason",
    [
        (TxStatus.COMMITTED, "the transaction is already committed"),
        (TxStatus.ROLLED_BACK, "the transaction is already rolled back"),
        (TxStatus.FAILED, "the transaction is in error state"),
    ],
)
def test_assert_not_done(status, reason):
    state = TxState(status=status)
    with pytest.raises(InterfaceError) as info:
        state.assert_started("commit")
    assert info.value.message == f"cannot commit; {reason}"


def test_assert_started_on_new():
    with pytest.raises(InterfaceError) as info:
        TxState().assert_started("Query")
    assert info.value.message == "cannot Query; the transaction is not yet started"


def test_start_and_commit():
    conn = FakeConnection()
    tx = started_tx(conn)
    assert tx.state.status is TxStatus.STARTED
    tx.execute("INSERT TxTest {name := 'Test Commit'};")
    tx.commit()
    assert tx.state.status is TxStatus.COMMITTED
    assert conn.commands == [
        "START TRANSACTION ISOLATION REPEATABLE READ, READ WRITE, NOT DEFERRABLE;",
        "INSERT TxTest {name := 'Test Commit'};",
        "COMMIT;",
    ]
    with pytest.raises(InterfaceError) as info:
        tx.execute("SELECT 1")
    assert info.value.message == (
        "cannot Execute; the transaction is already committed"
    )


def test_start_twice():
    tx = started_tx()
    with pytest.raises(InterfaceError) as info:
        tx.start()
    assert info.value.message == "cannot start; the transaction is already started"


def test_rollback():
    conn = FakeConnection()
    tx = started_tx(conn)
    tx.rollback()
    assert tx.state.status is TxStatus.ROLLED_BACK
    assert conn.commands[-1] == "ROLLBACK;"


def test_failed_command_marks_error_state():
    conn = FakeConnection(fail_on={"COMMIT;": DivisionByZeroError("division by zero")})
    tx = started_tx(conn)
    with pytest.raises(DivisionByZeroError):
        tx.commit()
    assert tx.state.status is TxStatus.FAILED
    with pytest.raises(InterfaceError) as info:
        tx.rollback()
    assert info.value.message == "cannot rollback; the transaction is in error state"


def test_query_before_start():
    tx = Tx(FakeConnection())
    with pytest.raises(InterfaceError) as info:
        tx.query("SELECT 1")
    assert info.value.message == "cannot Query; the transaction is not yet started"


def test_queries_pass_method_args_and_headers():
    conn = FakeConnection(results={"SELECT 42": 42})
    tx = started_tx(conn)
    assert tx.query_single("SELECT 42", 7) == 42
    query = conn.queries[-1]
    assert query.method is QueryMethod.QUERY_SINGLE
    assert query.args == (7,)
    assert query.headers == {1: b"h"}
    tx.query_json("SELECT 42")
    tx.query_single_json("SELECT 42")
    tx.query("SELECT 42")
    assert [q.method for q in conn.queries[1:]] == [
        QueryMethod.QUERY_JSON,
        QueryMethod.QUERY_SINGLE_JSON,
        QueryMethod.QUERY,
    ]


def test_query_single_zero_results():
    conn = FakeConnection(results={"SELECT <int64>{}": NoDataError("zero results")})
    tx = started_tx(conn)
    with pytest.raises(NoDataError) as info:
        tx.query_single("SELECT <int64>{}")
    assert str(info.value) == "edgedb.NoDataError: zero results"


def test_subtx_rollback():
    conn = FakeConnection()
    tx = started_tx(conn)

    def insert(name):
        return f"INSERT TxTest {{name := 'subtx {name}'}};"

    def first(stx):
        stx.execute(insert("rollback 1"))
        raise ValueError("user error 1")

    with pytest.raises(ValueError, match="user error 1"):
        tx.subtx(first)

    def second(stx):
        stx.subtx(lambda stx2: stx2.execute(insert("commit 1")))

        def inner(stx2):
            stx2.execute(insert("rollback 2"))
            raise ValueError("user error 2")

        with pytest.raises(ValueError, match="user error 2"):
            stx.subtx(inner)
        stx.execute(insert("commit 2"))
        return "done"

    assert tx.subtx(second) == "done"
    tx.commit()
    assert conn.commands[1:] == [
        "DECLARE SAVEPOINT EdgeflowSavepoint1",
        insert("rollback 1"),
        "ROLLBACK TO SAVEPOINT EdgeflowSavepoint1",
        "DECLARE SAVEPOINT EdgeflowSavepoint2",
        "DECLARE SAVEPOINT EdgeflowSavepoint3",
        insert("commit 1"),
        "RELEASE SAVEPOINT EdgeflowSavepoint3",
        "DECLARE SAVEPOINT EdgeflowSavepoint4",
        insert("rollback 2"),
        "ROLLBACK TO SAVEPOINT EdgeflowSavepoint4",
        insert("commit 2"),
        "RELEASE SAVEPOINT EdgeflowSavepoint2",
        "COMMIT;",
    ]


def test_subtx_borrowing():
    tx = started_tx(FakeConnection())
    errors = []

    def check(block):
        for call in (
            lambda: block.execute("SELECT 1"),
            lambda: block.query("SELECT b''"),
            lambda: block.query_single("SELECT b''"),
            lambda: block.query_json("SELECT b''"),
            lambda: block.query_single_json("SELECT b''"),
            lambda: block.subtx(lambda s: None),
        ):
            with pytest.raises(InterfaceError) as info:
                call()
            errors.append(str(info.value))

    def outer(stx):
        check(tx)
        stx.subtx(lambda stx2: check(stx))

    tx.subtx(outer)
    assert errors == [BORROWED] * 12
    tx.execute("SELECT 1")
    assert tx.borrowed is False


def test_rollback_failure_replaces_user_error():
    conn = FakeConnection(
        fail_on={"ROLLBACK TO SAVEPOINT EdgeflowSavepoint1": DivisionByZeroError("bad")}
    )
    tx = started_tx(conn)

    def action(stx):
        raise ValueError("user error")

    with pytest.raises(DivisionByZeroError) as info:
        tx.subtx(action)
    assert isinstance(info.value.__cause__, ValueError)
    assert tx.borrowed is False


def test_subtx_requires_started_transaction():
    tx = Tx(FakeConnection())
    with pytest.raises(InterfaceError) as info:
        run_subtx(lambda s: None, tx)
    assert info.value.message == (
        "cannot start subtransaction; the transaction is not yet started"
    )
    assert tx.borrowed is False


def test_subtx_shares_state_and_options():
    options = TxOptions().with_read_only(True)
    tx = started_tx(FakeConnection(), options)
    seen = []
    tx.subtx(lambda stx: seen.append((stx.state, stx.options, stx.name)))
    assert seen == [(tx.state, options, "EdgeflowSavepoint1")]
    assert isinstance(Subtx(FakeConnection()).state, TxState)


def test_unborrow_without_borrow():
    conn = BorrowableConnection(FakeConnection())
    with pytest.raises(InterfaceError) as info:
        conn.unborrow()
    assert info.value.message == "not borrowed, cannot unborrow"


def test_connection_borrow_message():
    conn = BorrowableConnection(FakeConnection())
    conn.borrow("transaction")
    with pytest.raises(InterfaceError) as info:
        conn.execute_query = None
        conn.granular_flow(None)
    assert info.value.message == (
        "The connection is borrowed for a transaction. "
        "Use the methods on the transaction object instead."
    )


def _opts(level, read_only, deferrable):
    return (
        TxOptions()
        .with_isolation(level)
        .with_read_only(read_only)
        .with_deferrable(deferrable)
    )


@pytest.mark.parametrize(
    "options, expected",
    [
        (
            _opts(IsolationLevel.REPEATABLE_READ, True, True),
            "START TRANSACTION ISOLATION REPEATABLE READ, READ ONLY, DEFERRABLE;",
        ),
        (
            _opts(IsolationLevel.REPEATABLE_READ, False, False),
            "START TRANSACTION ISOLATION REPEATABLE READ, READ WRITE, "
            "NOT DEFERRABLE;",
        ),
        (
            _opts(IsolationLevel.SERIALIZABLE, True, False),
            "START TRANSACTION ISOLATION SERIALIZABLE, READ ONLY, NOT DEFERRABLE;",
        ),
        (
            _opts(IsolationLevel.SERIALIZABLE, False, True),
            "START TRANSACTION ISOLATION SERIALIZABLE, READ WRITE, DEFERRABLE;",
        ),
        (
            TxOptions().with_isolation(IsolationLevel.SERIALIZABLE),
            "START TRANSACTION ISOLATION SERIALIZABLE, READ WRITE, "
            "NOT DEFERRABLE;",
        ),
    ],
)
def test_tx_kinds(options, expected):
    conn = FakeConnection()
    tx = started_tx(conn, options)
    tx.commit()
    assert conn.commands == [expected, "COMMIT;"]