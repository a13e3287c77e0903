# Author: Futhark1393
# Description: Streaming digest engine, no UI dependency.
# Features: multi-algorithm hashing in a single pass via stacked HashingReaders,
#          optional LZ4 frame decompression, ETA, throttling, graceful stop.

import os
import time
from typing import Callable

from hashtap.core.hashing import HashFunction, get_hash_function
from hashtap.core.reader import EOF, HashingReader

LZ4_AVAILABLE = False
_LZ4_IMPORT_ERROR = ""

try:
    import lz4.frame
    LZ4_AVAILABLE = True
except ImportError as _e:
    _LZ4_IMPORT_ERROR = str(_e)


class DigestError(Exception):
    """Raised on unrecoverable digest failure."""
    pass


class DigestEngine:
    """
    Hashes a file (or the decompressed content of an LZ4 frame file) with
    one or more algorithms in a single read pass.

    Each algorithm gets its own HashingReader; readers are stacked so the
    outermost read pulls every byte through all of them.

    Progress is reported via an ``on_progress(data: dict)`` callback.
    """

    CHUNK_SIZE = 4 * 1024 * 1024  # 4 MB

    def __init__(
        self,
        source_path: str,
        algorithms: list[str | HashFunction] | None = None,
        backend: str = "hashlib",
        chunk_size: int = CHUNK_SIZE,
        decompress_lz4: bool = False,
        throttle_limit: float = 0.0,
        on_progress: Callable[[dict], None] | None = None,
    ):
        self.source_path = source_path
        self.algorithms = list(algorithms or ["sha256"])
        self.backend = backend
        self.chunk_size = chunk_size
        self.decompress_lz4 = decompress_lz4
        self.throttle_limit = throttle_limit
        self.on_progress = on_progress or (lambda d: None)

        self._is_running = True

    def stop(self) -> None:
        """Request a graceful stop of the read loop."""
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running

    # ── Progress helper ─────────────────────────────────────────────

    def _emit(self, bytes_read: int, target_bytes: int, start_time: float) -> None:
        elapsed = time.time() - start_time
        mb_per_sec = (bytes_read / (1024 * 1024)) / elapsed if elapsed > 0 else 0

        pct = 0
        eta_str = "Calculating..."
        if target_bytes > 0:
            pct = int((bytes_read / target_bytes) * 100)
            if mb_per_sec > 0:
                remaining = max(0, target_bytes - bytes_read)
                eta_seconds = remaining / (mb_per_sec * 1024 * 1024)
                eta_str = time.strftime("%H:%M:%S", time.gmtime(eta_seconds))

        self.on_progress({
            "bytes_read": bytes_read,
            "speed_mb_s": round(mb_per_sec, 2),
            "percentage": min(100, pct),
            "eta": eta_str,
        })

    # ── Source I/O ──────────────────────────────────────────────────

    def _open_source(self):
        if self.decompress_lz4:
            if not LZ4_AVAILABLE:
                raise DigestError(
                    "LZ4 input selected but lz4 is not installed.\n"
                    "Install with: pip install lz4>=4.0.0\n"
                    f"Details: {_LZ4_IMPORT_ERROR}"
                )
            return lz4.frame.open(self.source_path, "rb")
        return open(self.source_path, "rb")

    def _target_bytes(self) -> int:
        # Decompressed size of an LZ4 frame is not known up front
        if self.decompress_lz4:
            return 0
        try:
            return os.path.getsize(self.source_path)
        except OSError:
            return 0

    def _resolve(self) -> list[HashFunction]:
        # Spellings of one algorithm ("sha256", "SHA-256") collapse to a single reader
        functions = []
        seen = set()
        for algo in self.algorithms:
            fn = algo if isinstance(algo, HashFunction) else get_hash_function(algo, self.backend)
            if fn.name in seen:
                continue
            seen.add(fn.name)
            functions.append(fn)
        return functions

    # ── Main loop ───────────────────────────────────────────────────

    def run(self) -> dict:
        """
        Read the source to EOF and hash it.

        Returns a dict:
            total_bytes, digests ({algorithm: hex}), elapsed_s, source

        Raises DigestError on failure or when stopped.
        """
        if self.chunk_size <= 0:
            raise DigestError(f"Invalid chunk size: {self.chunk_size}")
        try:
            functions = self._resolve()
        except ValueError as e:
            raise DigestError(str(e)) from e

        target_bytes = self._target_bytes()
        start_time = time.time()
        total_bytes = 0

        try:
            src = self._open_source()
        except OSError as e:
            raise DigestError(f"Cannot open source {self.source_path}: {e}") from e

        try:
            readers = []
            upstream = src
            for fn in functions:
                upstream = HashingReader(fn, upstream)
                readers.append(upstream)
            outer = readers[-1]

            buf = bytearray(self.chunk_size)
            while self._is_running:
                chunk_start = time.time()
                n = outer.read_into(buf)
                if n == EOF:
                    break
                if not n:
                    continue
                total_bytes += n

                if self.throttle_limit > 0:
                    expected = (n / (1024 * 1024)) / self.throttle_limit
                    actual = time.time() - chunk_start
                    if actual < expected:
                        time.sleep(expected - actual)

                self._emit(total_bytes, target_bytes, start_time)

            if not self._is_running:
                raise DigestError("Process aborted by user.")

            digests = {reader.hash_function.name: reader.hexdigest() for reader in readers}
        except DigestError:
            raise
        except (OSError, EOFError, RuntimeError) as e:
            raise DigestError(f"Read error after {total_bytes} bytes: {e}") from e
        finally:
            src.close()

        return {
            "source": self.source_path,
            "total_bytes": total_bytes,
            "digests": digests,
            "elapsed_s": round(time.time() - start_time, 3),
        }
