"""Two-phase throughput check: a sequential write pass, then a read pass."""

from __future__ import annotations

import argparse
import errno
import math
import os
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from raidio.config import parse_size
from raidio.engine import BenchmarkError, run_job

MIB = 1024 * 1024
DEFAULT_DEVICE = "/dev/sda"

_O_DIRECT = getattr(os, "O_DIRECT", 0)


@dataclass
class PhaseSummary:
    is_write: bool
    jobs: int
    total_bytes: int
    max_seconds: float
    total_seconds: float

    @property
    def total_mb(self) -> float:
        return self.total_bytes / MIB

    @property
    def bandwidth(self) -> float:
        """Throughput in MB/s, measured against the slowest job."""
        if self.max_seconds > 0:
            return self.total_mb / self.max_seconds
        return math.inf if self.total_bytes else 0.0


def _direct_supported(path) -> bool:
    """Whether ``path`` can be opened for direct I/O; EINVAL means it cannot."""
    if not _O_DIRECT:
        return False
    try:
        fd = os.open(path, os.O_RDWR | _O_DIRECT)
    except OSError as exc:
        if exc.errno == errno.EINVAL:
            return False
        raise BenchmarkError(f"cannot open {path}: {exc}") from exc
    os.close(fd)
    return True


def run_phase(path, is_write, block_size, queue_depth, total_size, jobs) -> PhaseSummary:
    """Split ``total_size`` evenly over ``jobs`` sequential jobs and run them together."""
    if jobs <= 0:
        raise BenchmarkError(f"invalid job count: {jobs}")
    per_job = total_size // jobs
    direct = _direct_supported(path)
    rw_type = "write" if is_write else "read"
    with ThreadPoolExecutor(max_workers=jobs) as pool:
        futures = [
            pool.submit(run_job, path, rw_type, block_size, queue_depth,
                        per_job, index * per_job, direct)
            for index in range(jobs)
        ]
        results = [future.result() for future in futures]
    seconds = [r.elapsed_ms / 1000 for r in results]
    return PhaseSummary(
        is_write=is_write,
        jobs=jobs,
        total_bytes=sum(r.completed for r in results) * block_size,
        max_seconds=max(seconds),
        total_seconds=sum(seconds),
    )


def format_summary(summary: PhaseSummary) -> str:
    return (
        f"\n== {'WRITE' if summary.is_write else 'READ'} Summary ==\n"
        f"Threads    : {summary.jobs}\n"
        f"Total MB   : {summary.total_mb:.2f} MB\n"
        f"Max Time   : {summary.max_seconds:.2f} sec\n"
        f"Total BW   : {summary.bandwidth:.2f} MB/s\n\n"
    )


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Sequential write then read throughput test."
    )
    parser.add_argument("device", nargs="?", default=DEFAULT_DEVICE)
    parser.add_argument("--bs", type=parse_size, default=MIB, help="block size")
    parser.add_argument("--iodepth", type=int, default=32, help="queue depth per job")
    parser.add_argument("--size", type=parse_size, default=10 * MIB, help="total size")
    parser.add_argument("--jobs", type=int, default=4, help="number of jobs")
    options = parser.parse_args(argv)

    print(f"Testing performance on {options.device}")
    try:
        for is_write in (True, False):
            summary = run_phase(options.device, is_write, options.bs,
                                options.iodepth, options.size, options.jobs)
            print(format_summary(summary), end="")
    except BenchmarkError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0