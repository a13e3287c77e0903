# Author: Futhark1393
# Description: Audit trail verifier for HashTap digest logs.
# Checks the hash chain, then the content rules DigestLogger guarantees:
# one session per file, nothing after AUDIT_SEALING, and well-formed
# digest records in every DIGEST_COMPUTED entry.

import hashlib
import json
import os
import re

from hashtap.audit.logger import GENESIS_HASH

_HEX_RE = re.compile(r"^[0-9a-f]+$")


def _check_digest_record(hash_context) -> tuple[bool, str]:
    """Validate the hash_context of a DIGEST_COMPUTED entry."""
    if not isinstance(hash_context, dict):
        return False, "hash_context missing"

    total = hash_context.get("total_bytes")
    if isinstance(total, bool) or not isinstance(total, int) or total < 0:
        return False, f"invalid total_bytes {total!r}"

    digests = hash_context.get("digests")
    if not isinstance(digests, dict) or not digests:
        return False, "no digests recorded"
    for algorithm, value in digests.items():
        if not isinstance(value, str) or not _HEX_RE.match(value) or len(value) % 2:
            return False, f"digest for {algorithm} is not lowercase hex: {value!r}"
    return True, ""


class AuditChainVerifier:
    @staticmethod
    def verify_chain(filepath: str) -> tuple[bool, str]:
        """
        Verify a DigestAudit_*.jsonl file.

        Returns (ok, message). The message names the first offending line.
        """
        if not os.path.exists(filepath):
            return False, "File not found."

        expected_prev = GENESIS_HASH
        session_id = None
        sealed_at = 0
        line_number = 0
        records = 0
        digest_records = 0

        try:
            with open(filepath, "r", encoding="utf-8") as f:
                for line in f:
                    line_number += 1
                    if not line.strip():
                        continue

                    entry = json.loads(line)
                    entry_hash = entry.pop("entry_hash", None)
                    if not entry_hash:
                        return False, (
                            f"Tampering detected: 'entry_hash' missing at line {line_number}."
                        )

                    prev_hash = entry.get("prev_hash")
                    if prev_hash != expected_prev:
                        return False, (
                            f"Chain broken at line {line_number}. "
                            f"Expected prev: {expected_prev}, found: {prev_hash}"
                        )

                    canonical = json.dumps(entry, sort_keys=True).encode("utf-8")
                    if hashlib.sha256(canonical).hexdigest() != entry_hash:
                        return False, f"Entry manipulation detected at line {line_number}. Hash mismatch."

                    if sealed_at:
                        return False, (
                            f"Entry appended after sealing at line {line_number} "
                            f"(sealed at line {sealed_at})."
                        )

                    if session_id is None:
                        session_id = entry.get("session_id")
                    elif entry.get("session_id") != session_id:
                        return False, (
                            f"Session mismatch at line {line_number}: "
                            f"expected {session_id}, found {entry.get('session_id')}"
                        )

                    event_type = entry.get("event_type")
                    if event_type == "DIGEST_COMPUTED":
                        ok, reason = _check_digest_record(entry.get("hash_context"))
                        if not ok:
                            return False, f"Malformed digest record at line {line_number}: {reason}."
                        digest_records += 1
                    elif event_type == "AUDIT_SEALING":
                        sealed_at = line_number

                    expected_prev = entry_hash
                    records += 1

            state = "sealed" if sealed_at else "not sealed"
            return True, (
                f"Chain verified successfully. {records} cryptographic records intact "
                f"({digest_records} digest records, {state})."
            )
        except (OSError, ValueError, AttributeError) as e:
            return False, f"Verification error at line {line_number}: {str(e)}"
