# Author: Kemal Sebzeci
# Description: Shared validation helpers for CLI input.
# Each validator returns (ok, error_message) so callers decide how to report.

import os
import re

from hashtap.core.hashing import BACKENDS, UnknownAlgorithmError, get_hash_function


def validate_algorithm(name: str, backend: str = "hashlib") -> tuple[bool, str]:
    """Validate an algorithm name against *backend*.

    Returns (ok, error_message). If ok is True, error_message is empty.
    """
    if not name:
        return False, "Algorithm name is required."
    if backend not in BACKENDS:
        return False, f"Unknown backend: {backend}. Use one of: {', '.join(BACKENDS)}."
    try:
        get_hash_function(name, backend)
    except UnknownAlgorithmError as e:
        return False, str(e)
    return True, ""


def validate_expected_digest(value: str, bits: int) -> tuple[bool, str]:
    """Validate an expected hex digest for an algorithm of *bits* output size."""
    if not value:
        return True, ""  # expected digest is optional
    clean = value.strip().lower()
    if not re.match(r"^[0-9a-f]+$", clean):
        return False, "Expected digest must be hexadecimal."
    if len(clean) * 4 != bits:
        return False, (
            f"Expected digest has {len(clean) * 4} bits, algorithm produces {bits}."
        )
    return True, ""


def validate_chunk_size(size: int) -> tuple[bool, str]:
    if size <= 0:
        return False, "Chunk size must be a positive number of bytes."
    if size > 256 * 1024 * 1024:
        return False, "Chunk size must not exceed 256 MB."
    return True, ""


def validate_audit_dir(path: str) -> tuple[bool, str]:
    """Validate that an audit output directory exists and is writable.

    Returns (ok, error_message). If path is empty, returns True (optional).
    """
    if not path:
        return True, ""
    if not os.path.isdir(path):
        return False, f"Audit directory does not exist: {path}"
    if not os.access(path, os.W_OK):
        return False, f"Audit directory lacks write permissions: {path}"
    return True, ""


def format_bytes(size_bytes: int) -> str:
    """Format a byte count into a human-readable string (e.g., '500.00 GB')."""
    if size_bytes < 0:
        return "Unknown"
    for unit in ("B", "KB", "MB", "GB", "TB", "PB"):
        if abs(size_bytes) < 1024.0 or unit == "PB":
            if unit == "B":
                return f"{size_bytes} {unit}"
            return f"{size_bytes:.2f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.2f} PB"
