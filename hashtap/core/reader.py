# Author: Futhark1393
# Description: Pass-through reader that hashes every byte delivered to the caller.
# Wraps any readable byte source without buffering; the digest is read out with hash().

import io
from typing import Protocol

from hashtap.core.hashing import HashCode, HashFunction, HasherStateError, get_hash_function

# End-of-data sentinel for read_byte() / read_into()
EOF = -1


class ByteSource(Protocol):
    """Minimal readable byte source. ``readinto`` is used when present."""

    def read(self, size: int = -1) -> bytes | None:
        ...


class HashingReader(io.RawIOBase):
    """
    Reads from *source* and feeds exactly the bytes returned to a hasher
    created once from *hash_function*.

    The source is borrowed: closing the reader never closes it. Errors
    raised by the source propagate unchanged and leave the hash untouched.

    Mark/rewind is not supported: mark() is a no-op and reset() raises
    io.UnsupportedOperation, since already-hashed bytes cannot be un-hashed.

    hash() finalizes on the first call; later calls return the same cached
    HashCode, and reads after hash() raise HasherStateError.
    """

    def __init__(self, hash_function: HashFunction | str, source: ByteSource):
        super().__init__()
        if hash_function is None:
            raise ValueError("hash_function is required.")
        if source is None:
            raise ValueError("source is required.")
        if not callable(getattr(source, "read", None)):
            raise TypeError(f"source is not readable: {type(source).__name__}")

        if isinstance(hash_function, str):
            hash_function = get_hash_function(hash_function)

        self._source = source
        self._hash_function = hash_function
        self._hasher = hash_function.new_hasher()
        self._hash_code: HashCode | None = None
        self._bytes_hashed = 0

    @property
    def hash_function(self) -> HashFunction:
        return self._hash_function

    @property
    def bytes_hashed(self) -> int:
        return self._bytes_hashed

    def _check_usable(self) -> None:
        if self.closed:
            raise ValueError("I/O operation on closed HashingReader.")
        if self._hash_code is not None:
            raise HasherStateError("Cannot read from a HashingReader after hash().")

    # ── Reads ───────────────────────────────────────────────────────────

    def read_byte(self) -> int | None:
        """Return the next byte as 0-255, EOF at end of data (None if non-blocking and empty)."""
        self._check_usable()
        data = self._source.read(1)
        if data is None:
            return None
        if not data:
            return EOF
        value = data[0]
        self._hasher.put_byte(value)
        self._bytes_hashed += 1
        return value

    def read_into(self, buffer, offset: int = 0, count: int | None = None) -> int | None:
        """
        Read up to *count* bytes into ``buffer[offset:offset + count]``.

        Returns the number of bytes read, EOF at end of data, or None when a
        non-blocking source has nothing available. Only the bytes actually
        returned are hashed.
        """
        self._check_usable()
        with memoryview(buffer) as raw, raw.cast("B") as view:
            size = len(view)
            if count is None:
                count = size - offset
            if offset < 0 or count < 0 or offset > size or count > size - offset:
                raise ValueError(
                    f"Buffer range out of bounds: offset={offset}, count={count}, size={size}"
                )
            if count == 0:
                return 0

            with view[offset:offset + count] as window:
                n = self._read_source(window)
            if n is None:
                return None
            if n == 0:
                return EOF

            self._hasher.put_bytes(view, offset, n)
            self._bytes_hashed += n
            return n

    def _read_source(self, window: memoryview) -> int | None:
        readinto = getattr(self._source, "readinto", None)
        if readinto is not None:
            n = readinto(window)
            if n is not None and n > len(window):
                raise ValueError(
                    f"Source readinto() reported {n} bytes for a {len(window)}-byte buffer"
                )
            return n
        data = self._source.read(len(window))
        if data is None:
            return None
        n = len(data)
        if n > len(window):
            raise ValueError(
                f"Source read() returned {n} bytes when at most {len(window)} were requested"
            )
        window[:n] = data
        return n

    # ── io.RawIOBase protocol ───────────────────────────────────────────

    def readinto(self, b) -> int | None:
        n = self.read_into(b)
        return 0 if n == EOF else n

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    # ── Mark / reset (unsupported) ──────────────────────────────────────

    def mark_supported(self) -> bool:
        return False

    def mark(self, readlimit: int = 0) -> None:
        pass

    def reset(self) -> None:
        raise io.UnsupportedOperation("reset not supported")

    # ── Digest ──────────────────────────────────────────────────────────

    def hash(self) -> HashCode:
        """Digest of every byte successfully read so far."""
        if self._hash_code is None:
            self._hash_code = self._hasher.hash()
        return self._hash_code

    def hexdigest(self) -> str:
        return self.hash().hex()
