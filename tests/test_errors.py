import pytest

from edgeflow.errors import (
    ClientConnectionError,
    ClientConnectionFailedError,
    ClientError,
    EdgeDBError,
    ErrorTag,
    InterfaceError,
    NoDataError,
    TransactionConflictError,
)


def test_str_carries_class_name_and_message():
    assert str(NoDataError("zero results")) == "edgedb.NoDataError: zero results"


def test_message_is_kept():
    err = InterfaceError("Connection is closed")
    assert err.message == "Connection is closed"
    assert str(err) == "edgedb.InterfaceError: Connection is closed"


def test_category_follows_hierarchy():
    err = ClientConnectionFailedError("failed")
    assert err.category(ClientConnectionError)
    assert err.category(ClientError)
    assert err.category(EdgeDBError)
    assert not err.category(TransactionConflictError)
    assert not err.category(InterfaceError)


def test_category_rejects_non_error_class():
    with pytest.raises(TypeError):
        NoDataError("x").category(ValueError)


def test_transaction_conflict_should_retry():
    err = TransactionConflictError("conflict")
    assert err.has_tag(ErrorTag.SHOULD_RETRY)
    assert not err.has_tag(ErrorTag.SHOULD_RECONNECT)


def test_instance_tags_are_added():
    err = ClientConnectionError("reset", tags=[ErrorTag.SHOULD_RECONNECT])
    assert err.has_tag(ErrorTag.SHOULD_RECONNECT)
    assert not err.has_tag(ErrorTag.SHOULD_RETRY)
    assert not ClientConnectionError("reset").has_tag(ErrorTag.SHOULD_RECONNECT)


def test_has_tag_accepts_tag_value():
    assert TransactionConflictError("c").has_tag("SHOULD_RETRY")
    with pytest.raises(ValueError):
        TransactionConflictError("c").has_tag("NOT_A_TAG")


def test_errors_are_catchable_by_base_class():
    err = NoDataError("zero results")
    assert err.category(ClientError) is True
    with pytest.raises(ClientError) as info:
        raise err
    assert info.value.message == "zero results"
    assert str(info.value) == "edgedb.NoDataError: zero results"