"""A pool of reusable memory slabs and a socket reader that fills them."""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from functools import partial
from typing import Any

MIN_CHUNK_SIZE = 5


class MemPool:
    """A bounded pool of equally sized bytearray slabs."""

    def __init__(self, slab_count: int, slab_size: int) -> None:
        if slab_count < 0:
            raise ValueError(f"slab_count must not be negative, got {slab_count}")
        if slab_size <= 0:
            raise ValueError(f"slab_size must be positive, got {slab_size}")
        self.slab_size = slab_size
        self._capacity = slab_count
        self._free = [bytearray(slab_size) for _ in range(slab_count)]
        self._lock = threading.Lock()

    def acquire(self) -> bytearray:
        """Return a slab owned by the caller, allocating one if none are free."""
        with self._lock:
            if self._free:
                return self._free.pop()
        return bytearray(self.slab_size)

    def release(self, buf: bytearray) -> None:
        """Give a slab back to the pool; it is discarded when the pool is full."""
        if len(buf) != self.slab_size:
            raise ValueError(
                "unexpected buffer len. "
                "The buffer probably doesn't belong in this pool"
            )
        with self._lock:
            if len(self._free) < self._capacity:
                self._free.append(buf)


@dataclass
class Chunk:
    """Bytes or an error read from a socket.

    Release the chunk when its data is no longer used.
    """

    data: memoryview | bytes = b""
    error: BaseException | None = None
    _on_release: Callable[[], None] | None = field(default=None, repr=False)

    def release(self) -> None:
        """Free the underlying slab for reuse, if this chunk owns it."""
        callback, self._on_release = self._on_release, None
        if callback is not None:
            callback()


def _reader(conn: Any) -> Callable[[memoryview], int | None]:
    for name in ("readinto", "recv_into"):
        method = getattr(conn, name, None)
        if callable(method):
            return method
    raise TypeError(
        f"{type(conn).__name__} has neither readinto() nor recv_into()"
    )


def read_socket(conn: Any, pool: MemPool) -> Iterator[Chunk]:
    """Read ``conn`` into slabs from ``pool``, yielding each chunk read.

    After a read fails or reaches end of stream, a final chunk carrying
    the error is yielded and the generator stops.
    """
    read_into = _reader(conn)

    while True:
        slab = pool.acquire()
        view = memoryview(slab)
        offset = 0

        while len(slab) - offset >= MIN_CHUNK_SIZE:
            error: BaseException | None = None
            try:
                count = read_into(view[offset:]) or 0
            except (OSError, ValueError) as exc:
                count, error = 0, exc
            else:
                if count == 0:
                    error = EOFError("connection closed")

            chunk = Chunk(data=view[offset : offset + count])
            offset += count

            # releasing the last chunk written to a slab releases the slab
            if error is not None or len(slab) - offset < MIN_CHUNK_SIZE:
                chunk._on_release = partial(pool.release, slab)

            yield chunk

            if error is not None:
                yield Chunk(error=error)
                return