# Author: Futhark1393
# Description: Pluggable hash functions for stream hashing.
# Backends: hashlib, cryptography (hazmat hashes), and zlib checksums (CRC32 / Adler-32).

import hashlib
import re
import zlib
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes


class UnknownAlgorithmError(ValueError):
    """Raised when an algorithm name cannot be resolved to a hash function."""
    pass


class HasherStateError(RuntimeError):
    """Raised when a hasher (or hashing reader) is used after hash() was called."""
    pass


BACKENDS = ("hashlib", "cryptography")


# ── Digest value ────────────────────────────────────────────────────────

@dataclass(frozen=True)
class HashCode:
    """Immutable digest produced by finalizing a Hasher."""

    digest: bytes

    @classmethod
    def from_hex(cls, value: str) -> "HashCode":
        return cls(bytes.fromhex(value.strip()))

    @property
    def bits(self) -> int:
        return len(self.digest) * 8

    def as_bytes(self) -> bytes:
        return self.digest

    def as_int(self) -> int:
        """Digest as an unsigned big-endian integer (CRC32 'abc' -> 0x352441C2)."""
        return int.from_bytes(self.digest, "big")

    def hex(self) -> str:
        return self.digest.hex()

    def __str__(self) -> str:
        return self.hex()


# ── Hashers (accumulators) ──────────────────────────────────────────────

class _AbstractHasher:
    """
    Append-only accumulator. Subclasses implement _update() and _finish().

    A hasher is single-use: once hash() has been called every further
    put_*() or hash() raises HasherStateError.
    """

    def __init__(self):
        self._done = False

    def _check_not_done(self) -> None:
        if self._done:
            raise HasherStateError("Cannot re-use a Hasher after calling hash() on it.")

    def put_byte(self, value: int) -> "_AbstractHasher":
        self._check_not_done()
        self._update(bytes((value & 0xFF,)))
        return self

    def put_bytes(self, data, offset: int = 0, length: int | None = None) -> "_AbstractHasher":
        """Feed ``data[offset:offset + length]`` (any bytes-like object)."""
        self._check_not_done()
        with memoryview(data) as raw, raw.cast("B") as view:
            end = len(view) if length is None else offset + length
            if offset < 0 or end < offset or end > len(view):
                raise ValueError(
                    f"Range out of bounds: offset={offset}, length={length}, size={len(view)}"
                )
            if end > offset:
                self._update(view[offset:end])
        return self

    def hash(self) -> HashCode:
        self._check_not_done()
        self._done = True
        return HashCode(self._finish())

    def _update(self, chunk) -> None:
        raise NotImplementedError

    def _finish(self) -> bytes:
        raise NotImplementedError


class _HashlibHasher(_AbstractHasher):
    def __init__(self, name: str):
        super().__init__()
        self._obj = hashlib.new(name)

    def _update(self, chunk) -> None:
        self._obj.update(chunk)

    def _finish(self) -> bytes:
        return self._obj.digest()


class _CryptographyHasher(_AbstractHasher):
    def __init__(self, algorithm: hashes.HashAlgorithm):
        super().__init__()
        self._ctx = hashes.Hash(algorithm)

    def _update(self, chunk) -> None:
        self._ctx.update(bytes(chunk))

    def _finish(self) -> bytes:
        return self._ctx.finalize()


class _ChecksumHasher(_AbstractHasher):
    def __init__(self, func, initial: int):
        super().__init__()
        self._func = func
        self._value = initial

    def _update(self, chunk) -> None:
        self._value = self._func(chunk, self._value)

    def _finish(self) -> bytes:
        return (self._value & 0xFFFFFFFF).to_bytes(4, "big")


# ── Hash functions (accumulator factories) ──────────────────────────────

class HashFunction:
    """Factory for fresh, independent hashers of a single algorithm."""

    name: str = ""
    backend: str = ""

    @property
    def bits(self) -> int:
        raise NotImplementedError

    def new_hasher(self) -> _AbstractHasher:
        raise NotImplementedError

    def hash_bytes(self, data) -> HashCode:
        return self.new_hasher().put_bytes(data).hash()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class HashlibFunction(HashFunction):
    backend = "hashlib"

    def __init__(self, name: str):
        name = name.lower()
        try:
            probe = hashlib.new(name)
        except ValueError as e:
            raise UnknownAlgorithmError(f"Unknown hashlib algorithm: {name}") from e
        # shake_* (XOF) need an explicit output length
        if probe.digest_size == 0 or name.startswith("shake"):
            raise UnknownAlgorithmError(f"Variable-length algorithm not supported: {name}")
        self.name = name
        self._digest_size = probe.digest_size

    @property
    def bits(self) -> int:
        return self._digest_size * 8

    def new_hasher(self) -> _HashlibHasher:
        return _HashlibHasher(self.name)


_CRYPTOGRAPHY_ALGORITHMS = {
    "md5": hashes.MD5,
    "sha1": hashes.SHA1,
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
    "sha512_224": hashes.SHA512_224,
    "sha512_256": hashes.SHA512_256,
    "sha3_224": hashes.SHA3_224,
    "sha3_256": hashes.SHA3_256,
    "sha3_384": hashes.SHA3_384,
    "sha3_512": hashes.SHA3_512,
    "blake2b": lambda: hashes.BLAKE2b(64),
    "blake2s": lambda: hashes.BLAKE2s(32),
    "sm3": hashes.SM3,
}


class CryptographyFunction(HashFunction):
    backend = "cryptography"

    def __init__(self, name: str):
        name = name.lower()
        factory = _CRYPTOGRAPHY_ALGORITHMS.get(name)
        if factory is None:
            raise UnknownAlgorithmError(f"Unknown cryptography algorithm: {name}")
        self.name = name
        self._factory = factory

    @property
    def bits(self) -> int:
        return self._factory().digest_size * 8

    def new_hasher(self) -> _CryptographyHasher:
        return _CryptographyHasher(self._factory())


_CHECKSUMS = {
    "crc32": (zlib.crc32, 0),
    "adler32": (zlib.adler32, 1),
}


class ChecksumFunction(HashFunction):
    """Non-cryptographic 32-bit checksums from zlib."""

    backend = "zlib"

    def __init__(self, name: str):
        name = name.lower()
        if name not in _CHECKSUMS:
            raise UnknownAlgorithmError(f"Unknown checksum: {name}")
        self.name = name

    @property
    def bits(self) -> int:
        return 32

    def new_hasher(self) -> _ChecksumHasher:
        func, initial = _CHECKSUMS[self.name]
        return _ChecksumHasher(func, initial)


def get_hash_function(name: str, backend: str = "hashlib") -> HashFunction:
    """
    Resolve an algorithm name to a HashFunction.

    Checksum names (crc32, adler32) always resolve to zlib regardless of
    *backend*. Raises UnknownAlgorithmError for unknown names or backends.
    """
    if not name:
        raise UnknownAlgorithmError("Algorithm name is required.")
    key = name.strip().lower().replace("-", "_")
    key = re.sub(r"^sha_(\d)", r"sha\1", key)  # SHA-256 -> sha256, SHA3-256 -> sha3_256
    if key in _CHECKSUMS:
        return ChecksumFunction(key)
    if backend == "hashlib":
        return HashlibFunction(key)
    if backend == "cryptography":
        return CryptographyFunction(key)
    raise UnknownAlgorithmError(
        f"Unknown backend: {backend}. Use one of: {', '.join(BACKENDS)}"
    )


def available_algorithms(backend: str = "hashlib") -> list[str]:
    """Sorted algorithm names usable with *backend* (checksums included)."""
    if backend == "hashlib":
        names = []
        for n in hashlib.algorithms_available:
            try:
                HashlibFunction(n)
            except UnknownAlgorithmError:
                continue  # listed by OpenSSL but not constructible (legacy provider)
            names.append(n)
    elif backend == "cryptography":
        names = list(_CRYPTOGRAPHY_ALGORITHMS)
    else:
        raise UnknownAlgorithmError(f"Unknown backend: {backend}")
    return sorted(set(n.lower() for n in names) | set(_CHECKSUMS))
