"""
Performance benchmark for the chat's cryptographic engines.

Measures:
  - AES-256-CBC frame encryption / decryption latency and throughput
  - Wire overhead (IV + length header + PKCS7 padding) per frame
  - RSA-2048 key pair generation and session key wrap / unwrap latency

Usage:
  python speed_test.py
  python speed_test.py -n 5000 --min 32 --max 2048
  python speed_test.py -n 1000 --fixed 1024 --rsa 20
  python speed_test.py --json-only

Notes:
  - Padding: PKCS7 always adds 1-16 bytes, so a frame's ciphertext is the next multiple of 16 above the plaintext.
  - All timings use perf_counter_ns.
  - Warmup iterations are excluded from statistics.
"""
from __future__ import annotations

import argparse
import json
import random
import statistics
import string
import sys
import time
from dataclasses import dataclass
from typing import Any, Sequence

from shared import AES_BLOCK_SIZE, FRAME_HEADER_SIZE, AsymmetricKeyAgent, SymmetricCipher


@dataclass
class TimingStats:
    samples_ns: list[int]

    def count(self) -> int:
        return len(self.samples_ns)

    def total_ns(self) -> int:
        return sum(self.samples_ns)

    def percentile_ns(self, pct: float) -> float:
        if not self.samples_ns:
            return 0.0
        ordered = sorted(self.samples_ns)
        # Nearest-rank percentile
        index = min(len(ordered) - 1, max(0, round((len(ordered) - 1) * pct / 100.0)))
        return float(ordered[index])

    def as_dict(self) -> dict[str, float]:
        if not self.samples_ns:
            return {"count": 0}
        return {
            "count":     self.count(),
            "total_ms":  self.total_ns() / 1e6,
            "min_us":    min(self.samples_ns) / 1e3,
            "max_us":    max(self.samples_ns) / 1e3,
            "avg_us":    self.total_ns() / self.count() / 1e3,
            "median_us": statistics.median(self.samples_ns) / 1e3,
            "p95_us":    self.percentile_ns(95) / 1e3,
            "p99_us":    self.percentile_ns(99) / 1e3,
        }


PRINTABLE = string.ascii_letters + string.digits + string.punctuation + " "


def make_message(length: int) -> str:
    return ''.join(random.choice(PRINTABLE) for _ in range(length))


def frame_size(plaintext_length: int) -> int:
    """Bytes on the wire for one frame carrying ``plaintext_length`` bytes."""
    padded = (plaintext_length // AES_BLOCK_SIZE + 1) * AES_BLOCK_SIZE
    return FRAME_HEADER_SIZE + padded


def run_frame_benchmark(num_messages: int, min_size: int, max_size: int, fixed_size: int | None,
                        warmup: int) -> dict[str, Any]:
    if fixed_size is None and min_size > max_size:
        raise ValueError("min_size cannot be greater than max_size")

    key = SymmetricCipher.generate_session_key()
    sender = SymmetricCipher(key)
    receiver = SymmetricCipher(key)

    for _ in range(warmup):
        m = make_message(32)
        if receiver.decrypt_frame(sender.encrypt_frame(m)) != m:
            raise RuntimeError("Warmup decryption mismatch")

    sizes = [fixed_size] * num_messages if fixed_size is not None else \
        [random.randint(min_size, max_size) for _ in range(num_messages)]

    enc_times: list[int] = []
    dec_times: list[int] = []
    total_plain = 0
    total_wire = 0

    start_wall = time.perf_counter_ns()
    for size in sizes:
        msg = make_message(size)

        t0 = time.perf_counter_ns()
        frame = sender.encrypt_frame(msg)
        wire = frame.encode()
        t1 = time.perf_counter_ns()
        decrypted = receiver.decrypt_frame(frame)
        t2 = time.perf_counter_ns()

        if decrypted != msg:
            raise RuntimeError("Decryption mismatch")
        enc_times.append(t1 - t0)
        dec_times.append(t2 - t1)
        total_plain += size
        total_wire += len(wire)
    wall_s = (time.perf_counter_ns() - start_wall) / 1e9

    enc_s = sum(enc_times) / 1e9
    dec_s = sum(dec_times) / 1e9
    mib = 1024 * 1024
    return {
        "messages":              num_messages,
        "plaintext_bytes":       total_plain,
        "wire_bytes":            total_wire,
        "overhead_pct":          (total_wire - total_plain) / total_plain * 100.0 if total_plain else 0.0,
        "wall_clock_time_s":     wall_s,
        "enc_msgs_per_sec":      num_messages / enc_s if enc_s else 0.0,
        "dec_msgs_per_sec":      num_messages / dec_s if dec_s else 0.0,
        "enc_throughput_MBps":   total_plain / mib / enc_s if enc_s else 0.0,
        "dec_throughput_MBps":   total_plain / mib / dec_s if dec_s else 0.0,
        "encryption_latency":    TimingStats(enc_times).as_dict(),
        "decryption_latency":    TimingStats(dec_times).as_dict(),
    }


def run_rsa_benchmark(iterations: int) -> dict[str, Any]:
    keygen_times: list[int] = []
    wrap_times: list[int] = []
    unwrap_times: list[int] = []

    for _ in range(iterations):
        responder = AsymmetricKeyAgent()
        initiator = AsymmetricKeyAgent()

        t0 = time.perf_counter_ns()
        responder.generate_key_pair()
        t1 = time.perf_counter_ns()
        initiator.import_peer_public_key(responder.export_public_key())

        session_key = SymmetricCipher.generate_session_key()
        t2 = time.perf_counter_ns()
        wrapped = initiator.wrap_session_key(session_key)
        t3 = time.perf_counter_ns()
        unwrapped = responder.unwrap_session_key(wrapped)
        t4 = time.perf_counter_ns()

        if unwrapped != session_key:
            raise RuntimeError("Session key unwrap mismatch")
        keygen_times.append(t1 - t0)
        wrap_times.append(t3 - t2)
        unwrap_times.append(t4 - t3)

    return {
        "iterations": iterations,
        "keygen":     TimingStats(keygen_times).as_dict(),
        "wrap":       TimingStats(wrap_times).as_dict(),
        "unwrap":     TimingStats(unwrap_times).as_dict(),
    }


def print_report(results: dict[str, Any]) -> None:
    frames = results["frames"]
    print("")
    print("=== Encrypted Chat Crypto Benchmark ===")
    print("\nAES-256-CBC frames:")
    print(f"  Messages:             {frames['messages']}")
    print(f"  Plaintext bytes:      {frames['plaintext_bytes']}")
    print(f"  Wire bytes:           {frames['wire_bytes']} (+{frames['overhead_pct']:.1f}%)")
    print(f"  Wall clock time:      {frames['wall_clock_time_s']:.6f} s")
    print(f"  Enc msgs/sec:         {frames['enc_msgs_per_sec']:.2f}")
    print(f"  Dec msgs/sec:         {frames['dec_msgs_per_sec']:.2f}")
    print(f"  Enc throughput:       {frames['enc_throughput_MBps']:.2f} MB/s")
    print(f"  Dec throughput:       {frames['dec_throughput_MBps']:.2f} MB/s")
    for label in ("encryption_latency", "decryption_latency"):
        print(f"  {label.replace('_', ' ').capitalize()}:")
        for k, v in frames[label].items():
            print(f"    {k:>10}: {v:.3f}")

    rsa_results = results.get("rsa")
    if rsa_results:
        print(f"\nRSA-2048 ({rsa_results['iterations']} iterations):")
        for label in ("keygen", "wrap", "unwrap"):
            stats = rsa_results[label]
            print(f"  {label:>7}: avg {stats.get('avg_us', 0.0):.1f} us, p95 {stats.get('p95_us', 0.0):.1f} us")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Benchmark frame encryption and RSA key wrapping")
    parser.add_argument('-n', '--num', dest='num_messages', type=int, default=10000,
                        help='Number of messages to benchmark')
    parser.add_argument('--min', dest='min_size', type=int, default=16, help='Minimum message size')
    parser.add_argument('--max', dest='max_size', type=int, default=8192, help='Maximum message size')
    parser.add_argument('--fixed', dest='fixed_size', type=int, default=None,
                        help='Use this message size for every message')
    parser.add_argument('--rsa', dest='rsa_iterations', type=int, default=5,
                        help='RSA keygen/wrap/unwrap iterations (0 to skip)')
    parser.add_argument('--warmup', dest='warmup', type=int, default=50, help='Warmup iterations (not measured)')
    parser.add_argument('--seed', dest='seed', type=int, default=None, help='Random seed for reproducibility')
    parser.add_argument('--json-only', dest='json_only', action='store_true', help='Print ONLY JSON')
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> int:
    args = parse_args(argv)
    if args.seed is not None:
        random.seed(args.seed)

    try:
        results: dict[str, Any] = {
            "frames": run_frame_benchmark(args.num_messages, args.min_size, args.max_size,
                                          args.fixed_size, args.warmup),
        }
        if args.rsa_iterations > 0:
            results["rsa"] = run_rsa_benchmark(args.rsa_iterations)
    except KeyboardInterrupt:
        print("\nBenchmark interrupted by user")
        return 1
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}")
        return 2

    if args.json_only:
        print(json.dumps(results, indent=2))
    else:
        print_report(results)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
