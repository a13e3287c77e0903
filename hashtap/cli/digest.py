#!/usr/bin/env python3
# Author: Kemal Sebzeci
# Description: hashtap, the CLI for streaming file digests.
#              Hashes a file with one or more algorithms in a single pass,
#              optionally decompressing LZ4 frames and checking an expected digest.
#
# Usage:
#   hashtap evidence.raw
#   hashtap evidence.raw -a md5 -a sha256 -a crc32
#   hashtap evidence.raw.lz4 --lz4 --expect 9f86d081...
#   hashtap evidence.raw --backend cryptography -a sha3_256 --json
#   hashtap evidence.raw --audit-dir ./audit --label CASE-001

import argparse
import json
import os
import signal
import sys

from hashtap.audit.logger import DigestLogger, DigestLoggerError
from hashtap.core.engine import DigestEngine, DigestError
from hashtap.core.hashing import BACKENDS, get_hash_function
from hashtap.core.validation import (
    format_bytes,
    validate_algorithm,
    validate_audit_dir,
    validate_chunk_size,
    validate_expected_digest,
)

__version__ = "1.0.0"

# Module-level reference for SIGINT handler
_active_engine = None


def _sigint_handler(signum, frame):
    """Stop the digest loop on Ctrl+C; the engine reports the abort."""
    print("\n\n  [!] SIGINT received, stopping...", file=sys.stderr)
    if _active_engine is not None:
        _active_engine.stop()


def _print_banner() -> None:
    C1 = "\033[1;36m"
    DIM = "\033[2m"
    C0 = "\033[0m"
    print()
    print(f"  {C1}HashTap{C0} {C1}v{__version__}{C0}  {DIM}Streaming Digest{C0}")
    print()


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        prog="hashtap",
        description="Compute digests of a file in a single streaming pass.",
    )
    p.add_argument("source", help="File to hash.")
    p.add_argument(
        "-a", "--algorithm",
        dest="algorithms",
        action="append",
        help="Hash algorithm (repeatable). Default: sha256. Checksums: crc32, adler32.",
    )
    p.add_argument(
        "--backend",
        choices=BACKENDS,
        default="hashlib",
        help="Hash implementation backend (default: hashlib).",
    )
    p.add_argument(
        "--lz4",
        action="store_true",
        help="Source is an LZ4 frame file; hash the decompressed content.",
    )
    p.add_argument(
        "--chunk-size",
        type=int,
        default=DigestEngine.CHUNK_SIZE,
        help=f"Read size in bytes (default: {DigestEngine.CHUNK_SIZE}).",
    )
    p.add_argument(
        "--throttle",
        type=float,
        default=0.0,
        help="Read speed limit in MB/s (0 = unlimited).",
    )
    p.add_argument(
        "--expect",
        help="Expected hex digest (requires exactly one algorithm). Exit 2 on mismatch or bad input.",
    )
    p.add_argument(
        "--audit-dir",
        help="Write a hash-chained JSONL audit trail to this directory.",
    )
    p.add_argument(
        "--label",
        default="UNASSIGNED",
        help="Label (e.g. case number) recorded in the audit trail file name.",
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Only print digests (no banner or progress).",
    )
    p.add_argument(
        "--json",
        dest="json_output",
        action="store_true",
        help="Output results as JSON (machine-readable). Implies --quiet.",
    )
    return p.parse_args(argv)


def cli_progress(data: dict) -> None:
    """Print digest progress to terminal."""
    pct = data.get("percentage", 0)
    speed = data.get("speed_mb_s", 0)
    eta = data.get("eta", "")
    mb_read = data.get("bytes_read", 0) / (1024 * 1024)

    bar_len = 30
    filled = int(bar_len * pct / 100)
    bar = "█" * filled + "░" * (bar_len - filled)

    sys.stdout.write(f"\r  [{bar}] {pct:3d}% | {mb_read:,.0f} MB | {speed:.1f} MB/s | ETA: {eta}")
    sys.stdout.flush()


def main(argv: list[str] | None = None) -> int:
    global _active_engine
    args = parse_args(argv)
    quiet = args.quiet or args.json_output
    algorithms = args.algorithms or ["sha256"]

    if not quiet:
        _print_banner()

    # ── Input validation ─────────────────────────────────────────────
    if not os.path.isfile(args.source):
        print(f"ERROR: Source not found: {args.source}", file=sys.stderr)
        return 2

    for algo in algorithms:
        ok, msg = validate_algorithm(algo, args.backend)
        if not ok:
            print(f"ERROR: {msg}", file=sys.stderr)
            return 2

    ok, msg = validate_chunk_size(args.chunk_size)
    if not ok:
        print(f"ERROR: {msg}", file=sys.stderr)
        return 2

    if args.expect:
        if len(algorithms) != 1:
            print("ERROR: --expect requires exactly one --algorithm.", file=sys.stderr)
            return 2
        bits = get_hash_function(algorithms[0], args.backend).bits
        ok, msg = validate_expected_digest(args.expect, bits)
        if not ok:
            print(f"ERROR: {msg}", file=sys.stderr)
            return 2

    ok, msg = validate_audit_dir(args.audit_dir)
    if not ok:
        print(f"ERROR: {msg}", file=sys.stderr)
        return 2

    logger = None
    if args.audit_dir:
        try:
            logger = DigestLogger(args.audit_dir, args.label)
            logger.log(
                f"Digest requested: source={args.source} algorithms={','.join(algorithms)} "
                f"backend={args.backend} lz4={args.lz4}",
                "INFO", "DIGEST_STARTED",
            )
        except DigestLoggerError as e:
            print(f"ERROR: Audit trail initialization failed: {e}", file=sys.stderr)
            return 1

    # ── Run ──────────────────────────────────────────────────────────
    engine = DigestEngine(
        source_path=args.source,
        algorithms=algorithms,
        backend=args.backend,
        chunk_size=args.chunk_size,
        decompress_lz4=args.lz4,
        throttle_limit=args.throttle,
        on_progress=None if quiet else cli_progress,
    )
    _active_engine = engine
    previous_handler = signal.signal(signal.SIGINT, _sigint_handler)

    try:
        result = engine.run()
    except DigestError as e:
        print(f"\n  DIGEST FAILED: {e}\n", file=sys.stderr)
        if logger is not None:
            try:
                logger.log(f"Digest failed: {e}", "ERROR", "DIGEST_FAILED")
                logger.seal()
            except DigestLoggerError as le:
                print(f"ERROR: Audit trail write failed: {le}", file=sys.stderr)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        _active_engine = None

    # ── Expected digest check ────────────────────────────────────────
    match = None
    if args.expect:
        actual = next(iter(result["digests"].values()))
        match = actual == args.expect.strip().lower()
        result["expected"] = args.expect.strip().lower()
        result["match"] = match

    if logger is not None:
        try:
            logger.log_digest(result)
            if match is False:
                logger.log(
                    f"Digest mismatch: expected {result['expected']}",
                    "WARNING", "DIGEST_MISMATCH",
                )
            result["audit_trail"] = logger.log_file_path
            result["audit_hash"] = logger.seal()
        except DigestLoggerError as e:
            print(f"ERROR: Audit trail write failed: {e}", file=sys.stderr)
            return 1

    # ── Output ───────────────────────────────────────────────────────
    if args.json_output:
        print(json.dumps(result, indent=2))
    elif args.quiet:
        for name, digest in result["digests"].items():
            print(f"{digest}  {name}")
    else:
        print("\n\n" + "=" * 60)
        print("  DIGEST COMPLETE")
        print("=" * 60)
        print(f"  Source       : {result['source']}")
        print(f"  Total Bytes  : {result['total_bytes']:,} ({format_bytes(result['total_bytes'])})")
        for name, digest in result["digests"].items():
            print(f"  {name.upper():<13}: {digest}")
        if match is not None:
            print(f"  Expected     : {'MATCH' if match else 'MISMATCH'}")
        if logger is not None:
            print(f"  Audit Trail  : {result['audit_trail']}")
        print("=" * 60)

    if match is False:
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
