"""The ``rio`` command: prepare the device under test, then run or sweep benchmarks."""

from __future__ import annotations

import logging
import subprocess
import sys
import time
from typing import Iterator, NamedTuple, Optional

from raidio.config import (
    RW_TYPES,
    FastPlot,
    OptionError,
    RaidConfig,
    RaidType,
    RioArgs,
    format_args,
    help_text,
    parse_options,
)
from raidio.devices import check_lsscsi_vendor, find_new_disk_after
from raidio.engine import BenchmarkError, run_benchmark
from raidio.storcli import StorCli, StorCliError, find_cli

PROG = "rio"
KIB = 1024

SWEEP_QUEUE_DEPTHS = (1, 4, 16, 64, 256)
SWEEP_THREADS = (1, 4, 16, 32)
BW_RW_TYPES = ("read", "write")
BW_BLOCK_SIZES_KB = (64, 128, 256, 1024)
IOPS_RW_TYPES = ("randread", "randwrite")
IOPS_BLOCK_SIZES_KB = (4, 16, 32)

DEVICE_SETTLE_SECONDS = 5

logger = logging.getLogger(__name__)


class _SweepPoint(NamedTuple):
    rw_type: str
    thread_n: int
    iodepth: int
    block_size: int


def full_stripe_size(conf: RaidConfig) -> int:
    """Data width of one full stripe in KB for RAID 0, 5 and 6; 0 for other levels."""
    data_disks = {
        0: conf.num_members,
        5: conf.num_members - 1,
        6: conf.num_members - 2,
    }.get(conf.raid_level)
    return 0 if data_disks is None else data_disks * conf.strip_size


def bw_sweep(full_stripe: int) -> Iterator[_SweepPoint]:
    """Sequential sweep points; the full stripe (KB) is added unless it repeats a size."""
    extra = () if full_stripe in BW_BLOCK_SIZES_KB else (full_stripe,)
    sizes = [kb for kb in BW_BLOCK_SIZES_KB + extra if kb]
    for rw_type in BW_RW_TYPES:
        for threads in SWEEP_THREADS:
            for depth in SWEEP_QUEUE_DEPTHS:
                for kb in sizes:
                    yield _SweepPoint(rw_type, threads, depth, kb * KIB)


def iops_sweep() -> Iterator[_SweepPoint]:
    """Random-access sweep points with small block sizes."""
    for rw_type in IOPS_RW_TYPES:
        for threads in SWEEP_THREADS:
            for depth in SWEEP_QUEUE_DEPTHS:
                for kb in IOPS_BLOCK_SIZES_KB:
                    yield _SweepPoint(rw_type, threads, depth, kb * KIB)


def plot(fk_plot: FastPlot) -> bool:
    """Render the result log of a sweep; True when the plotting script succeeded."""
    name = fk_plot.log_name
    command = ["python3", "src/plot.py", f"result/raid-{name}-results.log", name]
    try:
        code = subprocess.run(command, check=False).returncode
    except OSError as exc:
        print(f"plot failed, [error: {exc}]...")
        return False
    if code != 0:
        print(f"plot failed, [error: {code}]...")
        return False
    print("Generate plot successful...")
    return True


def _optimize(block_size: int, cli: str, disk_name: str) -> None:
    print(
        f"Optimizing RAID for block size {block_size}: "
        f"kernel parameters of {disk_name}, or controller settings through {cli}"
    )


def _create_volume(args: RioArgs, storcli: StorCli) -> int:
    raid = args.raid_cf
    print("---    Device is NULL   ---")
    print("---  Start Create RAID  ---")
    print("--- drives are taken in slot order; create the volume beforehand to pick slots ---")
    started = time.time()
    storcli.create_raid(raid)
    time.sleep(DEVICE_SETTLE_SECONDS)
    disk = find_new_disk_after(started)
    if disk is None:
        raise StorCliError("failed to detect the new RAID disk in dmesg")
    args.file = disk
    print(f"create_raid:  New RAID device appeared [{disk}]...")
    vd_number = storcli.vd_id_by_name(raid.raid_name)
    if vd_number is None:
        raise StorCliError("cannot get the VD number of the new RAID volume")
    print(f"create_raid:  vd_number [{vd_number}]")
    print("--- Create RAID Success ---")
    print("\n---    Full Init RAID   ---")
    storcli.full_init(vd_number)
    print("---  init RAID success  ---")
    print(f"Add VD{vd_number} -> File: {args.file}")
    return vd_number


def prepare_device(args: RioArgs, storcli: StorCli) -> Optional[int]:
    """Set up the hardware RAID volume under test and return its VD number.

    Without ``args.file`` a volume is created, initialized and ``args.file`` is
    set to its device. A device not behind a RAID controller is tested as a
    plain disk and None is returned.
    """
    raid = args.raid_cf
    if args.file:
        try:
            is_raid = check_lsscsi_vendor(args.file)
        except OSError as exc:
            print(f"Error running lsscsi: {exc}")
            return None
        print("---     Device exist    ---")
        if not is_raid:
            print(f"--- {args.file} vendor: not BROADCOM ---")
            print("---  Device maybe not RAID  ---")
            print("---     Go on JBOD test     ---")
            print("\n=========none raid=========")
            return None
        print(f"--- {args.file} vendor: BROADCOM ---")
        vd_number = storcli.vd_number_for_disk(args.file)
        if vd_number is None:
            raise StorCliError(f"cannot find the virtual drive of {args.file}")
    else:
        vd_number = _create_volume(args, storcli)

    print(f"Configuring RAID volume {vd_number} through {storcli.cli}")
    storcli.set_cache(raid.wcache, raid.rcache, raid.pdcache, vd_number)
    if raid.raid_status == "degrade":
        for pd in storcli.degrade(raid.raid_level, vd_number):
            print(f"EID:{pd.eid} Slt:{pd.slot} set offline")
    if raid.optimizer:
        print("\n--- Try Optimizer RAID  ---")
        _optimize(args.block_size, storcli.cli, args.file)
    print("===========================")
    return vd_number


def _apply_point(args: RioArgs, point: _SweepPoint) -> None:
    args.rw_type = point.rw_type
    args.thread_n = point.thread_n
    args.iodepth = point.iodepth
    args.block_size = point.block_size


def _run_single(args: RioArgs) -> int:
    if args.rw_type not in RW_TYPES:
        print(
            f"Error: Unsupported rw_type: '{args.rw_type}'. "
            f"Must be one of: {', '.join(RW_TYPES)}.",
            file=sys.stderr,
        )
        return 1
    print(f"[1] Start {args.rw_type} task call...")
    try:
        summary = run_benchmark(args)
    except BenchmarkError as exc:
        print(f"libaio read/write error: {exc}")
        return 1
    print(
        f"{summary.rw_type}: {summary.total_mb:.2f} MB in {summary.max_time_ms:.2f} ms, "
        f"{summary.bandwidth:.2f} MB/s"
    )
    return 0


def _run(args: RioArgs) -> int:
    raid = args.raid_cf
    if raid.raid_type is RaidType.NONE:
        return _run_single(args)

    stripe = full_stripe_size(raid)
    if raid.raid_level in (0, 5, 6):
        print(f"{raid.num_members} disks raid{raid.raid_level}, full stripe size :{stripe} KB")

    if args.fk_plot is FastPlot.BW:
        print("bandwidth sweep: sequential access, large block sizes")
        for point in bw_sweep(stripe):
            _apply_point(args, point)
            try:
                run_benchmark(args)
            except BenchmarkError as exc:
                print(f"libaio read/write error: {exc}")
        plot(args.fk_plot)
        return 0
    if args.fk_plot is FastPlot.IOPS:
        print("IOPS sweep: random access, small block sizes")
        for point in iops_sweep():
            _apply_point(args, point)
            try:
                run_benchmark(args)
            except BenchmarkError as exc:
                print(f"libaio read/write error: {exc}")
                return 1
        plot(args.fk_plot)
        return 0
    if args.fk_plot is FastPlot.TAILLAT:
        print("tail latency plot")
        plot(args.fk_plot)
        return 0
    return _run_single(args)


def _restore_online(storcli: Optional[StorCli], raid_level: int) -> None:
    try:
        if storcli is None:
            storcli = StorCli(find_cli())
        storcli.set_online(raid_level)
    except StorCliError as exc:
        print(f"cannot bring drives back online: {exc}", file=sys.stderr)


def main(argv=None) -> int:
    """Entry point of the ``rio`` command."""
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    if argv is None:
        argv = sys.argv[1:]
    try:
        args = parse_options(argv)
    except OptionError as exc:
        print(f"{PROG}: {exc}", file=sys.stderr)
        print(help_text(PROG), end="", file=sys.stderr)
        return 1
    if args.help_requested:
        print(help_text(PROG), end="")
        return 0

    print(format_args(args), end="")
    raid = args.raid_cf
    storcli: Optional[StorCli] = None
    try:
        if raid.raid_type is RaidType.HARD:
            print("\n=========hard raid=========")
            storcli = StorCli(find_cli())
            print(f"--- Found cli-cmd: {storcli.cli} ---")
            prepare_device(args, storcli)
        elif raid.raid_type is RaidType.SOFT:
            print("\n=========soft raid=========")
            print("Detected soft RAID...")
            print("\n=========  TO DO  =========")
        else:
            print("\n=========none raid=========")
        return _run(args)
    except (StorCliError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    finally:
        if raid.raid_status == "degrade":
            _restore_online(storcli, raid.raid_level)


if __name__ == "__main__":
    sys.exit(main())