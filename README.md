# edgeflow

Client-side building blocks for talking to an EdgeDB server over its binary
protocol: transaction and savepoint handling, retry and reconnect logic,
query descriptions, message headers, optional values and TLS socket setup.
It has no dependencies outside the standard library.

## Modules

- `edgeflow.message` – protocol message type codes as `IntEnum`s:
  `ServerMessage` and `ClientMessage`.
- `edgeflow.mempool` – `MemPool`, a bounded pool of equally sized
  `bytearray` slabs (`acquire()`, `release(buf)`), and
  `read_socket(conn, pool)`, a generator that reads `conn` (anything with
  `readinto` or `recv_into`) into pooled slabs and yields `Chunk` objects.
  After a failed read or end of stream it yields one last `Chunk` whose
  `error` is set, then stops. Releasing the last chunk written to a slab
  gives the slab back to the pool.
- `edgeflow.marshal` – hooks for user types that encode or decode a scalar
  wire format. A type defines `marshal_edgedb_<scalar>()` returning bytes
  and/or `unmarshal_edgedb_<scalar>(data)`, where `<scalar>` is a
  `ScalarType` value such as `int64` or `local_date`. `can_marshal`,
  `can_unmarshal`, `marshal_edgedb` and `unmarshal_edgedb` look these up;
  the `OptionalMarshaler` and `OptionalUnmarshaler` protocols describe
  optional fields.
- `edgeflow.errors` – `EdgeDBError` and its subclasses `ClientError`,
  `InterfaceError`, `ClientConnectionError`, `ClientConnectionFailedError`,
  `TransactionConflictError` and `NoDataError`. Errors carry `ErrorTag`s
  (`SHOULD_RETRY`, `SHOULD_RECONNECT`), checked with `has_tag()`, and
  `category(kind)` tells whether an error is of a given class. `str()` of an
  error reads like `edgedb.NoDataError: zero results`.
- `edgeflow.types` – optional values: `Optional` and its typed subclasses
  `OptionalBool`, `OptionalBytes`, `OptionalStr`, `OptionalInt16`,
  `OptionalInt32`, `OptionalInt64`, `OptionalFloat32`, `OptionalFloat64`,
  `OptionalBigInt`, `OptionalUUID`, `OptionalDateTime` and `OptionalMemory`.
  Each checks the type and range of what it is given.
- `edgeflow.options` – connection `Options` and `TLSOptions` (plain
  dataclasses, durations in seconds), `TLSSecurityMode`, `RetryRule`,
  `RetryOptions`, `RetryCondition`, `default_backoff`, `IsolationLevel` and
  `TxOptions`.
- `edgeflow.query` – `QueryMethod`, `OutputFormat`, `Cardinality`,
  `ScriptQuery`, `Query`, `new_query()` and `run_query()`.
- `edgeflow.headers` – `encode_headers`, `decode_headers`, `skip_headers`
  and `encode_execute_script`, which builds a complete ExecuteScript
  message.
- `edgeflow.transaction` – `TxState`, `TxStatus`, `BorrowableConnection`,
  `Tx`, `Subtx` and `run_subtx`.
- `edgeflow.connection` – `AutoClosingSocket`, `connect_socket()`,
  `ReconnectingConnection` and `TransactableConnection`.
- `edgeflow.platform` – `config_dir()`, `device(path)` and
  `system_ssl_context()`.

## Installing

    pip install .

and, for running the tests:

    pip install ".[test]"
    pytest

## Transaction options

```python
from edgeflow.options import IsolationLevel, TxOptions

opts = (
    TxOptions()
    .with_isolation(IsolationLevel.SERIALIZABLE)
    .with_read_only(True)
    .with_deferrable(False)
)
print(opts.start_tx_query())
# START TRANSACTION ISOLATION SERIALIZABLE, READ ONLY, NOT DEFERRABLE;
```

`TxOptions` is frozen; each `with_*` method returns a copy. The default is
`REPEATABLE READ, READ WRITE, NOT DEFERRABLE`.

## Retrying

```python
from edgeflow.options import RetryCondition, RetryOptions, RetryRule

rule = RetryRule().with_attempts(5).with_backoff(lambda n: 0.1 * n)
retry = RetryOptions().with_condition(RetryCondition.TX_CONFLICT, rule)
```

A rule defaults to 3 attempts with `default_backoff`, which waits
`2 ** n * 100` ms plus up to 100 ms of jitter after the n-th attempt.
`RetryOptions.rule_for_exception(err)` picks the transaction conflict rule
for `TransactionConflictError` and the network rule for `ClientError`.

## Connections

`ReconnectingConnection` and `TransactableConnection` take a `connector`:
a callable that receives the capability cache (a mapping from a query's
`(command, format, expected_cardinality)` to the capabilities reported for
it) and returns a protocol connection object with `script_flow(query)`,
`granular_flow(query)`, `is_closed()` and `close()`.

- A lost connection is re-established on the next call. `reconnect()`
  keeps trying, with a short random pause, while connecting fails with a
  `ClientConnectionError` tagged `SHOULD_RECONNECT` and
  `wait_until_available` seconds have not passed.
- `TransactableConnection.execute`, `query`, `query_single`, `query_json`
  and `query_single_json` run commands. A failed query tagged
  `SHOULD_RETRY` is retried if the cache says it has no capabilities, or if
  it failed with a `TransactionConflictError`.
- `tx(action)` calls `action(tx)` inside a transaction and returns its
  result: it commits on success, rolls back on error, and retries errors
  tagged `SHOULD_RETRY` up to the rule's attempt count.
- `with_tx_options` and `with_retry_options` return shallow copies that
  share the underlying connection.

While a transaction or savepoint is running, the object that lent out its
connection refuses work with an `InterfaceError` ("The transaction is
borrowed for a subtransaction. ..."). `Tx.subtx(action)` and
`Subtx.subtx(action)` declare a savepoint (`EdgeflowSavepoint1`,
`EdgeflowSavepoint2`, ...), release it when `action` returns and roll back
to it when `action` raises, re-raising the error.

`connect_socket(host, port, ssl_context=None, timeout=None)` opens an
`AutoClosingSocket`. With an `ssl_context` it asks for the `edgedb-binary`
ALPN protocol and falls back to a plain connection when the TLS attempt
fails for a reason other than TLS itself. The socket closes itself on any
network error and raises `ClientConnectionError`.

## Optional values

```python
from edgeflow.types import OptionalStr

name = OptionalStr()
name.missing()        # True
name.set("Denis")
name.get()            # "Denis"
name.unset()
name.get()            # None
```

## What this package does not do

It has no wire codecs for query arguments or results, no handshake or
authentication, no connection pool and no resolution of credentials,
environment variables or project files: `Options` only holds settings.
The protocol connection that does the talking to a server is supplied by
the caller through the `connector` described above. There is no command
line program.