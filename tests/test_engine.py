import pytest

from raidio.config import FastPlot, RioArgs
from raidio.engine import (
    BUCKETS,
    BenchmarkError,
    BenchmarkSummary,
    LatencyHistogram,
    format_log_line,
    log_file_name,
    run_benchmark,
    run_job,
)

BS = 1024 * 1024
QD = 4


@pytest.fixture
def target(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(b"")
    return path


def test_histogram_buckets_are_one_microsecond():
    hist = LatencyHistogram()
    hist.record(0)
    hist.record(999)
    hist.record(5_500)
    assert hist.counts[0] == 2
    assert hist.counts[5] == 1
    assert hist.total == 3


def test_histogram_clamps_slow_requests():
    hist = LatencyHistogram()
    hist.record(10**9)
    assert hist.counts[BUCKETS - 1] == 1
    assert len(hist.counts) == BUCKETS


def test_histogram_merge_adds_counts():
    a, b = LatencyHistogram(), LatencyHistogram()
    a.record(1_000)
    b.record(1_000)
    b.record(3_000)
    a.merge(b)
    assert a.counts[1] == 2
    assert a.counts[3] == 1
    assert a.total == 3


def test_write_then_read_full_batches(target):
    # Mirrors the write-then-read pass over whole batches of 1 MB blocks.
    written = run_job(target, "write", BS, QD, 2 * QD * BS, 0, False)
    assert written.submitted == written.completed == 2 * QD
    data = target.read_bytes()
    assert len(data) == 2 * QD * BS
    assert set(data) == {0xAB}
    read = run_job(target, "read", BS, QD, 2 * QD * BS, 0, False)
    assert read.completed == 2 * QD
    assert read.histogram.total == read.completed


def test_partial_block_is_not_issued(target):
    result = run_job(target, "write", 4096, 8, 10000, 0, False)
    assert result.completed == 2
    assert target.stat().st_size == 2 * 4096


def test_offset_start_shifts_writes(target):
    run_job(target, "write", 4096, 2, 4096, 8192, False)
    data = target.read_bytes()
    assert data[:8192] == bytes(8192)
    assert set(data[8192:]) == {0xAB}


def test_random_writes_stay_within_range(target):
    result = run_job(target, "randwrite", 4096, 4, 4 * 4096, 0, False)
    assert result.completed == 4
    assert target.stat().st_size <= 4 * 4096


def test_missing_file_raises(tmp_path):
    with pytest.raises(BenchmarkError):
        run_job(tmp_path / "absent", "read", 4096, 1, 4096, 0, False)


def test_invalid_block_size_raises(target):
    with pytest.raises(BenchmarkError):
        run_job(target, "read", 0, 1, 4096, 0, False)


def test_log_file_names():
    assert log_file_name(FastPlot.BW) == "raid-bw-results.log"
    assert log_file_name(FastPlot.IOPS) == "raid-iops-results.log"
    assert log_file_name(FastPlot.NONE) == "raid-normal-results.log"


def test_format_log_line():
    args = RioArgs(rw_type="read", iodepth=16, block_size=BS, thread_n=4)
    assert format_log_line(args, 123.456, 42) == "read, 16, 1024 , 4, 123.46, 42\n"


def test_summary_bandwidth_against_slowest_thread():
    summary = BenchmarkSummary("read", 2, 4, BS, 10, 1000.0, 1500.0)
    assert summary.total_mb == 10.0
    assert summary.bandwidth == pytest.approx(10.0)


def test_run_benchmark_appends_log(target, tmp_path):
    args = RioArgs(file=str(target), block_size=4096, size=8 * 4096, iodepth=4,
                   thread_n=2, direct=False, rw_type="write")
    summary = run_benchmark(args, tmp_path)
    assert summary.total_ios == 16
    assert summary.histogram.total == 16
    assert summary.max_time_ms <= summary.total_time_ms
    assert target.stat().st_size == 4 * 4096 + 8 * 4096
    lines = (tmp_path / "raid-normal-results.log").read_text().splitlines()
    assert len(lines) == 1
    assert lines[0].startswith("write, 4, 4 , 2, ")


def test_run_benchmark_size_too_small(target, tmp_path):
    args = RioArgs(file=str(target), block_size=8192, size=4096, direct=False)
    with pytest.raises(BenchmarkError):
        run_benchmark(args, tmp_path)