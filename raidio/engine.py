"""Block I/O load generator: worker threads issuing batches of reads or writes."""

from __future__ import annotations

import logging
import math
import mmap
import os
import random
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Union

from raidio.config import RANDOM_RW_TYPES, FastPlot, RioArgs

logger = logging.getLogger(__name__)

BUCKETS = 1000
BUCKET_NS = 1000
WRITE_PATTERN = 0xAB
MIB = 1024 * 1024

READ_TYPES = ("read", "randread")
WRITE_TYPES = ("write", "randwrite")

_O_DIRECT = getattr(os, "O_DIRECT", 0)


class BenchmarkError(RuntimeError):
    """Raised when a benchmark cannot run or an I/O request fails."""


@dataclass
class LatencyHistogram:
    """Completion latencies in 1 µs buckets; the last bucket collects the rest."""

    counts: list = field(default_factory=lambda: [0] * BUCKETS)
    total: int = 0

    def record(self, latency_ns: int) -> None:
        bucket = min(max(latency_ns, 0) // BUCKET_NS, BUCKETS - 1)
        self.counts[bucket] += 1
        self.total += 1

    def merge(self, other: "LatencyHistogram") -> "LatencyHistogram":
        self.counts = [a + b for a, b in zip(self.counts, other.counts)]
        self.total += other.total
        return self


@dataclass
class JobResult:
    submitted: int
    completed: int
    elapsed_ms: float
    histogram: LatencyHistogram


@dataclass
class BenchmarkSummary:
    rw_type: str
    threads: int
    iodepth: int
    block_size: int
    total_ios: int
    max_time_ms: float
    total_time_ms: float
    histogram: LatencyHistogram = field(default_factory=LatencyHistogram)

    @property
    def total_mb(self) -> float:
        return self.total_ios * self.block_size / MIB

    @property
    def bandwidth(self) -> float:
        """Aggregate throughput in MB/s, measured against the slowest thread."""
        if self.max_time_ms > 0:
            return self.total_mb / self.max_time_ms * 1000
        return math.inf if self.total_mb else 0.0


def _do_io(fd: int, buf: memoryview, offset: int, is_read: bool) -> int:
    started = time.perf_counter_ns()
    try:
        if is_read:
            os.preadv(fd, [buf], offset)
        else:
            os.pwrite(fd, buf, offset)
    except OSError as exc:
        raise BenchmarkError(f"I/O at offset {offset} failed: {exc}") from exc
    return time.perf_counter_ns() - started


def run_job(path, rw_type, block_size, queue_depth, size, offset_start=0, direct=True) -> JobResult:
    """Issue ``size // block_size`` requests against ``path``, ``queue_depth`` at a time.

    Sequential types walk blocks from ``offset_start``; random types pick any of
    the blocks at random. Writes carry a 0xAB fill pattern.
    """
    if block_size <= 0:
        raise BenchmarkError(f"invalid block size: {block_size}")
    if queue_depth <= 0:
        raise BenchmarkError(f"invalid queue depth: {queue_depth}")
    is_read = rw_type in READ_TYPES
    is_random = rw_type in RANDOM_RW_TYPES
    nr_requests = size // block_size
    flags = os.O_RDWR | (_O_DIRECT if direct else 0)
    try:
        fd = os.open(path, flags)
    except OSError as exc:
        raise BenchmarkError(f"cannot open {path}: {exc}") from exc

    histogram = LatencyHistogram()
    arena = mmap.mmap(-1, queue_depth * block_size)
    buffers: list = []
    try:
        if rw_type in WRITE_TYPES:
            arena.write(bytes([WRITE_PATTERN]) * len(arena))
        with memoryview(arena) as view:
            buffers = [view[i * block_size:(i + 1) * block_size] for i in range(queue_depth)]
            rng = random.Random()
            submitted = completed = 0
            started = time.perf_counter_ns()
            with ThreadPoolExecutor(max_workers=queue_depth) as pool:
                while submitted < nr_requests:
                    batch = min(nr_requests - submitted, queue_depth)
                    offsets = [
                        offset_start
                        + (rng.randrange(nr_requests) if is_random else submitted + i) * block_size
                        for i in range(batch)
                    ]
                    futures = [
                        pool.submit(_do_io, fd, buf, offset, is_read)
                        for buf, offset in zip(buffers, offsets)
                    ]
                    submitted += batch
                    for future in futures:
                        histogram.record(future.result())
                        completed += 1
            elapsed_ms = (time.perf_counter_ns() - started) / 1e6
            for buf in buffers:
                buf.release()
    finally:
        for buf in buffers:
            buf.release()
        arena.close()
        os.close(fd)
    return JobResult(submitted, completed, elapsed_ms, histogram)


def log_file_name(fk_plot: FastPlot) -> str:
    """Name of the result log that a run with this plot mode appends to."""
    return f"raid-{fk_plot.log_name}-results.log"


def format_log_line(args: RioArgs, bandwidth: float, timestamp_ns: int) -> str:
    """One result record: rw, depth, block size in KB, threads, MB/s, timestamp."""
    return (
        f"{args.rw_type}, {args.iodepth}, {args.block_size // 1024} , "
        f"{args.thread_n}, {bandwidth:.2f}, {timestamp_ns}\n"
    )


def run_benchmark(args: RioArgs, result_dir: Union[str, Path] = "result") -> BenchmarkSummary:
    """Run ``args.thread_n`` jobs in parallel and append the result to the log."""
    if args.size < args.block_size:
        raise BenchmarkError("size too small")
    if args.thread_n <= 0:
        raise BenchmarkError(f"invalid thread count: {args.thread_n}")
    per_thread_size = args.size // args.thread_n
    with ThreadPoolExecutor(max_workers=args.thread_n) as pool:
        futures = [
            pool.submit(
                run_job, args.file, args.rw_type, args.block_size, args.iodepth,
                args.size, index * per_thread_size, args.direct,
            )
            for index in range(args.thread_n)
        ]
        results = [future.result() for future in futures]

    histogram = LatencyHistogram()
    for result in results:
        histogram.merge(result.histogram)
    summary = BenchmarkSummary(
        rw_type=args.rw_type,
        threads=args.thread_n,
        iodepth=args.iodepth,
        block_size=args.block_size,
        total_ios=sum(r.completed for r in results),
        max_time_ms=max(r.elapsed_ms for r in results),
        total_time_ms=sum(r.elapsed_ms for r in results),
        histogram=histogram,
    )
    logger.debug(
        "%s: %d threads, qd %d, %.2f MB in %.2f ms, %.2f MB/s",
        summary.rw_type, summary.threads, summary.iodepth, summary.total_mb,
        summary.max_time_ms, summary.bandwidth,
    )
    log_path = Path(result_dir) / log_file_name(args.fk_plot)
    try:
        with log_path.open("a", encoding="utf-8") as log:
            log.write(format_log_line(args, summary.bandwidth, time.time_ns()))
    except OSError as exc:
        logger.warning("cannot append to %s: %s", log_path, exc)
    return summary