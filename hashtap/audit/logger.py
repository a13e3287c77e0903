# Author: Futhark1393
# Description: Structured audit trail for digest runs.
# Features: Cryptographic hash chaining, thread-safety, kernel sync (fsync),
#          and file sealing.

import hashlib
import json
import os
import re
import sys
import threading
import uuid
from datetime import datetime, timezone

GENESIS_HASH = hashlib.sha256(b"HASHTAP_GENESIS_BLOCK").hexdigest()


class DigestLoggerError(Exception):
    pass


def sanitize_label(name: str) -> str:
    clean = re.sub(r"[^a-zA-Z0-9_\-]", "_", str(name).strip())
    return clean if clean else "UNASSIGNED"


class DigestLogger:
    """
    Append-only JSONL audit trail. Every entry carries the hash of the
    previous entry (``prev_hash``) and its own ``entry_hash``, so any edit,
    removal or reordering breaks the chain (see AuditChainVerifier).
    """

    def __init__(self, output_dir: str, label: str = "UNASSIGNED"):
        if not os.path.isdir(output_dir):
            raise DigestLoggerError(f"Output directory does not exist: {output_dir}")
        if not os.access(output_dir, os.W_OK):
            raise DigestLoggerError(f"Output directory lacks write permissions: {output_dir}")

        self.session_id = str(uuid.uuid4())
        self.label = sanitize_label(label)
        self.output_dir = output_dir
        self.log_file_path = os.path.join(
            output_dir, f"DigestAudit_{self.label}_{self.session_id}.jsonl"
        )

        self._lock = threading.Lock()
        self.prev_hash = GENESIS_HASH
        self._is_sealed = False

    @property
    def is_sealed(self) -> bool:
        return self._is_sealed

    def log(
        self,
        message: str,
        level: str = "INFO",
        event_type: str = "GENERAL",
        source_module: str = "cli",
        hash_context: dict | None = None,
    ) -> str:
        with self._lock:
            return self._internal_log_unlocked(message, level, event_type, source_module, hash_context)

    def log_digest(self, result: dict, source_module: str = "engine") -> str:
        """Record a DigestEngine result."""
        return self.log(
            f"Digest computed for {result.get('source', '-')} "
            f"({result.get('total_bytes', 0)} bytes).",
            "INFO",
            "DIGEST_COMPUTED",
            source_module=source_module,
            hash_context={
                "total_bytes": result.get("total_bytes", 0),
                "digests": dict(result.get("digests", {})),
            },
        )

    def _internal_log_unlocked(
        self,
        message: str,
        level: str,
        event_type: str,
        source_module: str,
        hash_context: dict | None = None,
    ) -> str:
        if self._is_sealed:
            raise DigestLoggerError(
                f"Audit log is sealed. Attempted to append: {message}"
            )

        timestamp_iso = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

        log_entry = {
            "timestamp": timestamp_iso,
            "session_id": self.session_id,
            "label": self.label,
            "event_id": str(uuid.uuid4()),
            "event_type": event_type,
            "severity": level,
            "source_module": source_module,
            "message": message,
        }
        if hash_context:
            log_entry["hash_context"] = hash_context

        self._write_to_file(log_entry)
        return f"[{timestamp_iso}] [{level}] {message}"

    def _write_to_file(self, log_entry: dict) -> None:
        try:
            log_entry["prev_hash"] = self.prev_hash

            entry_json = json.dumps(log_entry, sort_keys=True)
            entry_hash = hashlib.sha256(entry_json.encode("utf-8")).hexdigest()
            log_entry["entry_hash"] = entry_hash

            with open(self.log_file_path, "a", encoding="utf-8") as f:
                f.write(json.dumps(log_entry, sort_keys=True) + "\n")
                f.flush()
                os.fsync(f.fileno())
            self.prev_hash = entry_hash
        except OSError as e:
            raise DigestLoggerError(f"File System Write Error: {str(e)}")

    def seal(self) -> str:
        """
        Seal the audit trail: append a sealing entry, compute the final file
        hash and chmod 444. Further log() calls raise DigestLoggerError.

        Returns the SHA-256 of the sealed file, or "UNAVAILABLE" if nothing
        was ever written.
        """
        with self._lock:
            if not os.path.exists(self.log_file_path):
                self._is_sealed = True
                return "UNAVAILABLE"

            self._internal_log_unlocked(
                "Sealing audit trail.", "INFO", "AUDIT_SEALING", source_module="logger",
            )
            self._is_sealed = True

            hasher = hashlib.sha256()
            try:
                with open(self.log_file_path, "rb") as f:
                    for chunk in iter(lambda: f.read(4096), b""):
                        hasher.update(chunk)
                os.chmod(self.log_file_path, 0o444)
            except OSError as e:
                print(f"CRITICAL: Failed to seal audit trail: {e}", file=sys.stderr)
                return "ERROR_CALCULATING_HASH"
            return hasher.hexdigest()
