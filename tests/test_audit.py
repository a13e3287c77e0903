# Tests for HashTap audit trail: DigestLogger hash chaining, sealing,
# concurrent writes, and AuditChainVerifier tamper detection.

import hashlib
import json
import os
import stat
import tempfile
import threading

import pytest

from hashtap.audit.logger import GENESIS_HASH, DigestLogger, DigestLoggerError, sanitize_label
from hashtap.audit.verify import AuditChainVerifier


# ═══════════════════════════════════════════════════════════════════════
# DigestLogger tests
# ═══════════════════════════════════════════════════════════════════════

class TestDigestLogger:
    def test_log_and_verify_chain(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir, "TEST-001")
            logger.log("First entry", "INFO", "TEST_EVENT")
            logger.log("Second entry", "INFO", "TEST_EVENT")
            logger.log("Third entry", "WARNING", "TEST_EVENT")

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert ok, f"Chain verification failed: {msg}"
            assert "3 cryptographic records" in msg

    def test_file_name_contains_label_and_session(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir, "CASE 7/A")
            logger.log("entry")
            name = os.path.basename(logger.log_file_path)
            assert name == f"DigestAudit_CASE_7_A_{logger.session_id}.jsonl"

    def test_first_entry_links_to_genesis(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("entry")
            with open(logger.log_file_path, encoding="utf-8") as f:
                entry = json.loads(f.readline())
            assert entry["prev_hash"] == GENESIS_HASH
            assert entry["label"] == "UNASSIGNED"
            assert entry["session_id"] == logger.session_id

    def test_log_returns_display_line(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            line = DigestLogger(tmpdir).log("hello", "WARNING")
            assert line.endswith("[WARNING] hello")

    def test_log_digest_records_hash_context(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log_digest({
                "source": "evidence.raw",
                "total_bytes": 3,
                "digests": {"crc32": "352441c2"},
            })
            with open(logger.log_file_path, encoding="utf-8") as f:
                entry = json.loads(f.readline())
            assert entry["event_type"] == "DIGEST_COMPUTED"
            assert entry["hash_context"] == {"total_bytes": 3, "digests": {"crc32": "352441c2"}}

    def test_missing_output_dir(self):
        with pytest.raises(DigestLoggerError, match="does not exist"):
            DigestLogger("/nonexistent/audit/dir")

    def test_seal_blocks_writes(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("Before seal")
            logger.seal()
            assert logger.is_sealed
            with pytest.raises(DigestLoggerError, match="sealed"):
                logger.log("After seal")

    def test_seal_returns_file_hash_and_is_readonly(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("entry")
            final_hash = logger.seal()

            with open(logger.log_file_path, "rb") as f:
                assert final_hash == hashlib.sha256(f.read()).hexdigest()
            mode = stat.S_IMODE(os.stat(logger.log_file_path).st_mode)
            assert mode == 0o444

            ok, _ = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert ok

    def test_seal_without_entries(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            assert logger.seal() == "UNAVAILABLE"
            with pytest.raises(DigestLoggerError):
                logger.log("late")

    def test_concurrent_writes_keep_chain(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir, "CONCURRENT")

            def _writer(n):
                for i in range(25):
                    logger.log(f"thread {n} entry {i}", "INFO", "STRESS")

            threads = [threading.Thread(target=_writer, args=(n,)) for n in range(4)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert ok, msg
            assert "100 cryptographic records" in msg

    def test_sanitize_label(self):
        assert sanitize_label("  ") == "UNASSIGNED"
        assert sanitize_label("a b;c") == "a_b_c"


# ═══════════════════════════════════════════════════════════════════════
# AuditChainVerifier tests
# ═══════════════════════════════════════════════════════════════════════

class TestAuditChainVerifier:
    def test_verify_missing_file(self):
        ok, msg = AuditChainVerifier.verify_chain("/nonexistent/file.jsonl")
        assert not ok
        assert "not found" in msg.lower()

    def test_verify_empty_file(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
            path = f.name
        try:
            ok, _ = AuditChainVerifier.verify_chain(path)
            assert ok
        finally:
            os.unlink(path)

    def test_verify_corrupted_json(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
            f.write("not valid json\n")
            path = f.name
        try:
            ok, _ = AuditChainVerifier.verify_chain(path)
            assert not ok
        finally:
            os.unlink(path)

    def test_verify_missing_entry_hash(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
            f.write(json.dumps({"message": "test", "prev_hash": GENESIS_HASH}) + "\n")
            path = f.name
        try:
            ok, msg = AuditChainVerifier.verify_chain(path)
            assert not ok
            assert "entry_hash" in msg
        finally:
            os.unlink(path)

    def test_verify_broken_prev_hash(self):
        with tempfile.NamedTemporaryFile(mode="w", suffix=".jsonl", delete=False) as f:
            entry = {"message": "test", "prev_hash": "wrong_hash"}
            entry["entry_hash"] = hashlib.sha256(
                json.dumps(entry, sort_keys=True).encode()
            ).hexdigest()
            f.write(json.dumps(entry, sort_keys=True) + "\n")
            path = f.name
        try:
            ok, msg = AuditChainVerifier.verify_chain(path)
            assert not ok
            assert "Chain broken" in msg
        finally:
            os.unlink(path)

    def test_detects_modified_entry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("original one")
            logger.log("original two")

            with open(logger.log_file_path, encoding="utf-8") as f:
                lines = f.readlines()
            entry = json.loads(lines[1])
            entry["message"] = "forged"
            lines[1] = json.dumps(entry, sort_keys=True) + "\n"
            with open(logger.log_file_path, "w", encoding="utf-8") as f:
                f.writelines(lines)

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "line 2" in msg

    def test_detects_removed_entry(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            for i in range(3):
                logger.log(f"entry {i}")

            with open(logger.log_file_path, encoding="utf-8") as f:
                lines = f.readlines()
            with open(logger.log_file_path, "w", encoding="utf-8") as f:
                f.writelines([lines[0], lines[2]])

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "Chain broken" in msg


def _rechain(path: str, entries: list[dict]) -> None:
    """Rewrite *path* with *entries*, recomputing prev_hash/entry_hash."""
    os.chmod(path, 0o644)
    prev = GENESIS_HASH
    with open(path, "w", encoding="utf-8") as f:
        for entry in entries:
            entry.pop("entry_hash", None)
            entry["prev_hash"] = prev
            prev = hashlib.sha256(json.dumps(entry, sort_keys=True).encode("utf-8")).hexdigest()
            entry["entry_hash"] = prev
            f.write(json.dumps(entry, sort_keys=True) + "\n")


def _load(path: str) -> list[dict]:
    with open(path, encoding="utf-8") as f:
        return [json.loads(line) for line in f]


# ═══════════════════════════════════════════════════════════════════════
# Digest trail content checks
# ═══════════════════════════════════════════════════════════════════════

class TestDigestTrailContent:
    def test_summary_counts_digest_records(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir, "CASE-1")
            logger.log("start", "INFO", "DIGEST_STARTED")
            logger.log_digest({"source": "a", "total_bytes": 0, "digests": {"crc32": "00000000"}})
            logger.seal()

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert ok, msg
            assert "3 cryptographic records" in msg
            assert "1 digest records, sealed" in msg

    def test_unsealed_trail_reported(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("entry")
            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert ok
            assert "not sealed" in msg

    def test_rechained_forged_digest_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log_digest({"source": "a", "total_bytes": 3, "digests": {"sha256": "ab" * 32}})

            entries = _load(logger.log_file_path)
            entries[0]["hash_context"]["digests"]["sha256"] = "not-a-digest"
            _rechain(logger.log_file_path, entries)

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "Malformed digest record at line 1" in msg
            assert "sha256" in msg

    def test_uppercase_digest_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log_digest({"total_bytes": 3, "digests": {"crc32": "352441C2"}})
            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "lowercase hex" in msg

    def test_negative_total_bytes_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log_digest({"total_bytes": -1, "digests": {"crc32": "00000000"}})
            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "total_bytes" in msg

    def test_digest_event_without_context_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("no context", "INFO", "DIGEST_COMPUTED")
            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "hash_context missing" in msg

    def test_mixed_sessions_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            first = DigestLogger(tmpdir, "A")
            first.log("one")
            second = DigestLogger(tmpdir, "B")
            second.log("two")

            spliced = _load(first.log_file_path) + _load(second.log_file_path)
            _rechain(first.log_file_path, spliced)

            ok, msg = AuditChainVerifier.verify_chain(first.log_file_path)
            assert not ok
            assert "Session mismatch at line 2" in msg
            assert second.session_id in msg

    def test_entry_after_seal_rejected(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            logger = DigestLogger(tmpdir)
            logger.log("entry")
            logger.seal()

            entries = _load(logger.log_file_path)
            late = dict(entries[0], message="late", event_id="late")
            _rechain(logger.log_file_path, entries + [late])

            ok, msg = AuditChainVerifier.verify_chain(logger.log_file_path)
            assert not ok
            assert "after sealing at line 3" in msg
