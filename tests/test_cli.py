import subprocess
import time
from unittest import mock

import pytest

from raidio.cli import (
    bw_sweep,
    full_stripe_size,
    iops_sweep,
    main,
    plot,
    prepare_device,
)
from raidio.config import FastPlot, RaidConfig, RioArgs
from raidio.devices import DMESG_TIME_FORMAT
from raidio.storcli import PdSlot, StorCli, StorCliError

KIB = 1024


class _Controller:
    """Records storcli invocations and answers from canned output."""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    def __call__(self, argv):
        self.calls.append(list(argv))
        return self.responses.get(tuple(argv[1:]), (0, ""))


VALL = (
    "Virtual Drives :\n"
    "==============\n"
    "DG/VD TYPE  State Access\n"
    "0/0   RAID5 Optl  RW vol0\n"
)

SHOW_ALL = (
    "OS Drive Name = /dev/sdb\n"
    "PDs for VD 0 :\n"
    "============\n"
    "---------------\n"
    "EID:Slt DID State\n"
    "---------------\n"
    "252:1 10 Onln 0\n"
    "252:2 11 Onln 0\n"
    "---------------\n"
    "EID=Enclosure Device ID\n"
)

LSSCSI_RAID = "[0:2:0:0]    disk    BROADCOM MR9560-16i       5.22  /dev/sdb\n"
LSSCSI_PLAIN = "[1:0:0:0]    disk    ATA      SAMPLEDISK       0001  /dev/sdb\n"


def _completed(stdout):
    return subprocess.CompletedProcess(["tool"], 0, stdout=stdout)


def test_full_stripe_size_by_level():
    assert full_stripe_size(RaidConfig(raid_level=0, num_members=3, strip_size=64)) == 192
    assert full_stripe_size(RaidConfig(raid_level=5, num_members=4, strip_size=64)) == 192
    assert full_stripe_size(RaidConfig(raid_level=6, num_members=5, strip_size=64)) == 192


def test_full_stripe_size_other_level_is_zero():
    assert full_stripe_size(RaidConfig(raid_level=1, num_members=2, strip_size=64)) == 0


def test_bw_sweep_without_stripe_covers_source_grid():
    points = list(bw_sweep(0))
    assert {p.rw_type for p in points} == {"read", "write"}
    assert {p.thread_n for p in points} == {1, 4, 16, 32}
    assert {p.iodepth for p in points} == {1, 4, 16, 64, 256}
    assert {p.block_size for p in points} == {64 * KIB, 128 * KIB, 256 * KIB, 1024 * KIB}
    assert points[0] == ("read", 1, 1, 64 * KIB)
    assert len(set(points)) == len(points)


def test_bw_sweep_skips_duplicate_stripe():
    assert list(bw_sweep(128)) == list(bw_sweep(0))


def test_bw_sweep_adds_new_stripe_size():
    base = list(bw_sweep(0))
    extended = list(bw_sweep(192))
    assert 192 * KIB in {p.block_size for p in extended}
    assert set(base) < set(extended)
    assert len(extended) * 4 == len(base) * 5


def test_iops_sweep_grid():
    points = list(iops_sweep())
    assert {p.rw_type for p in points} == {"randread", "randwrite"}
    assert {p.block_size for p in points} == {4 * KIB, 16 * KIB, 32 * KIB}
    assert {p.iodepth for p in points} == {1, 4, 16, 64, 256}
    assert len(set(points)) == len(points)


def test_plot_runs_script_with_log_name():
    with mock.patch("raidio.cli.subprocess.run", return_value=subprocess.CompletedProcess([], 0)) as run:
        assert plot(FastPlot.BW) is True
    assert run.call_args.args[0] == ["python3", "src/plot.py", "result/raid-bw-results.log", "bw"]


def test_plot_reports_failure():
    with mock.patch("raidio.cli.subprocess.run", return_value=subprocess.CompletedProcess([], 2)):
        assert plot(FastPlot.IOPS) is False


def test_plot_missing_interpreter():
    with mock.patch("raidio.cli.subprocess.run", side_effect=FileNotFoundError("python3")):
        assert plot(FastPlot.TAILLAT) is False


def test_prepare_existing_raid_device_sets_cache():
    controller = _Controller({
        ("/c0", "/vall", "show"): (0, VALL),
        ("/c0", "/v0", "show", "all"): (0, SHOW_ALL),
    })
    args = RioArgs(file="/dev/sdb")
    with mock.patch("raidio.devices.subprocess.run", return_value=_completed(LSSCSI_RAID)):
        vd = prepare_device(args, StorCli("storcli", controller))
    assert vd == 0
    assert ["storcli", "/c0", "/v0", "set", "wrcache=WT"] in controller.calls
    assert ["storcli", "/c0", "/v0", "set", "rdcache=nora"] in controller.calls
    assert ["storcli", "/c0", "/v0", "set", "pdcache=off"] in controller.calls


def test_prepare_plain_disk_is_left_alone():
    controller = _Controller({})
    args = RioArgs(file="/dev/sdb")
    with mock.patch("raidio.devices.subprocess.run", return_value=_completed(LSSCSI_PLAIN)):
        vd = prepare_device(args, StorCli("storcli", controller))
    assert vd is None
    assert controller.calls == []
    assert args.file == "/dev/sdb"


def test_prepare_unknown_volume_raises():
    controller = _Controller({
        ("/c0", "/vall", "show"): (0, VALL),
        ("/c0", "/v0", "show", "all"): (0, "OS Drive Name = /dev/sdz\n"),
    })
    args = RioArgs(file="/dev/sdb")
    with mock.patch("raidio.devices.subprocess.run", return_value=_completed(LSSCSI_RAID)):
        with pytest.raises(StorCliError):
            prepare_device(args, StorCli("storcli", controller))


def test_prepare_degrade_takes_one_drive_offline_for_raid5():
    controller = _Controller({
        ("/c0", "/vall", "show"): (0, VALL),
        ("/c0", "/v0", "show", "all"): (0, SHOW_ALL),
    })
    args = RioArgs(file="/dev/sdb")
    args.raid_cf.raid_level = 5
    args.raid_cf.raid_status = "degrade"
    storcli = StorCli("storcli", controller)
    with mock.patch("raidio.devices.subprocess.run", return_value=_completed(LSSCSI_RAID)):
        prepare_device(args, storcli)
    assert ["storcli", "/c0", "/e252/s1", "set", "offline"] in controller.calls
    assert ["storcli", "/c0", "/e252/s2", "set", "offline"] not in controller.calls
    assert storcli.offline_pds == [PdSlot(252, 1)]


def test_prepare_creates_volume_when_no_file():
    controller = _Controller({
        ("/c0", "show"): (0, "PD LIST :\nEID:Slt DID State\n----\n252:4 14 UGood -\n252:5 15 UGood -\nEnclosure LIST :\n"),
        ("/c0", "/vall", "show"): (0, "Virtual Drives :\n0/3 RAID0 Optl RW benchvol\n"),
        ("/c0", "show", "events"): (0, "Event Description: Initialization complete on VD 03\n"),
    })
    stamp = time.strftime(DMESG_TIME_FORMAT, time.localtime(time.time() + 3600))
    dmesg = f"[{stamp}] sd 0:2:3:0: [sdc] Attached SCSI disk\n"
    args = RioArgs()
    args.raid_cf.raid_name = "benchvol"
    args.raid_cf.num_members = 2
    with mock.patch("raidio.devices.subprocess.run", return_value=_completed(dmesg)), \
            mock.patch("raidio.cli.time.sleep"):
        vd = prepare_device(args, StorCli("storcli", controller))
    assert vd == 3
    assert args.file == "/dev/sdc"
    add = next(call for call in controller.calls if "add" in call)
    assert "drives=252:4,252:5" in add
    assert "name=benchvol" in add


def test_prepare_create_fails_without_free_drives():
    controller = _Controller({("/c0", "show"): (0, "PD LIST :\nEnclosure LIST :\n")})
    args = RioArgs()
    args.raid_cf.num_members = 2
    with mock.patch("raidio.cli.time.sleep"):
        with pytest.raises(StorCliError):
            prepare_device(args, StorCli("storcli", controller))
    assert not any("add" in call for call in controller.calls)


def test_main_help(capsys):
    assert main(["--help"]) == 0
    assert "Usage: rio" in capsys.readouterr().out


def test_main_unknown_option():
    assert main(["--bogus"]) == 1


def test_main_rejects_unsupported_rw(capsys):
    assert main(["--raid_type", "none", "--rw", "bogus"]) == 1
    assert "Unsupported rw_type" in capsys.readouterr().err


def test_main_write_run_fills_file_and_logs(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "result").mkdir()
    target = tmp_path / "disk.img"
    target.write_bytes(bytes(16 * KIB))
    code = main([
        "--raid_type", "none", "--file", str(target), "--rw", "write",
        "--bs", "4K", "--size", "16K", "--iodepth", "2", "--thread_n", "1",
        "--direct", "0",
    ])
    assert code == 0
    assert target.read_bytes() == b"\xab" * (16 * KIB)
    log = (tmp_path / "result" / "raid-normal-results.log").read_text()
    assert log.startswith("write, 2, 4 , 1, ")
    assert log.count("\n") == 1