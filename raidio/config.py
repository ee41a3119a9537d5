"""Benchmark options: data model, size parsing and command-line parsing."""

from __future__ import annotations

import enum
import re
import string
from dataclasses import dataclass, field

KIB = 1024
_UNITS = {"K": KIB, "M": KIB**2, "G": KIB**3, "T": KIB**4}

RW_TYPES = ("read", "randread", "write", "randwrite")
RANDOM_RW_TYPES = ("randread", "randwrite")

FILE_MAX = 255
RAID_NAME_MAX = 63
RAID_STATUS_MAX = 15

_INT_PREFIX = re.compile(r"\s*([+-]?\d+)")


class OptionError(ValueError):
    """Raised when the command line holds an unknown or invalid option."""


class RaidType(enum.Enum):
    SOFT = "soft"
    HARD = "hard"
    NONE = "none"


class FastPlot(enum.Enum):
    NONE = -1
    BW = 0
    IOPS = 1
    TAILLAT = 2

    @property
    def log_name(self) -> str:
        """Name used in the result log file and by the plotting step."""
        return _PLOT_LOG_NAMES[self]

    @property
    def label(self) -> str:
        return _PLOT_LABELS[self]


_PLOT_LOG_NAMES = {
    FastPlot.NONE: "normal",
    FastPlot.BW: "bw",
    FastPlot.IOPS: "iops",
    FastPlot.TAILLAT: "taillat",
}
_PLOT_LABELS = {
    FastPlot.NONE: "none",
    FastPlot.BW: "bw",
    FastPlot.IOPS: "iops",
    FastPlot.TAILLAT: "tail-latency",
}
_PLOT_OPTION_VALUES = {"bw": FastPlot.BW, "iops": FastPlot.IOPS, "lat": FastPlot.TAILLAT}


@dataclass
class RaidConfig:
    raid_type: RaidType = RaidType.HARD
    raid_level: int = 0
    strip_size: int = 64
    num_members: int = 1
    wcache: bool = False
    rcache: bool = False
    pdcache: bool = False
    optimizer: bool = False
    capability: int = 100
    raid_name: str = ""
    raid_status: str = "optl"


@dataclass
class RioArgs:
    file: str = ""
    block_size: int = 1048576
    rw_type: str = "read"
    ioengine: str = "libaio"
    size: int = 100 * KIB * KIB
    iodepth: int = 16
    thread_n: int = 1
    direct: bool = True
    raid_cf: RaidConfig = field(default_factory=RaidConfig)
    fk_plot: FastPlot = FastPlot.NONE
    help_requested: bool = False


def _atoi(text: str) -> int:
    """Leading integer of ``text``, or 0 when there is none."""
    match = _INT_PREFIX.match(text)
    return int(match.group(1)) if match else 0


def parse_size(text: str) -> int:
    """Parse a size such as ``4K``, ``1M``, ``2G``, ``1T`` or ``512`` into bytes."""
    if len(text) < 2:
        raise ValueError(f"invalid size: {text!r}")
    unit = text[-1].upper()
    if unit in _UNITS:
        number, multiplier = text[:-1], _UNITS[unit]
    elif unit in string.digits:
        number, multiplier = text, 1
    else:
        raise ValueError(f"invalid size unit: {text[-1]}")
    value = _atoi(number)
    if value <= 0:
        raise ValueError(f"invalid numeric value: {number}")
    return value * multiplier


_LONG_OPTIONS = (
    "wcache", "raid_type", "bs", "rcache", "direct", "pdcache", "file",
    "raid_level", "ioengine", "strip_size", "num_members", "capability",
    "raid_name", "fk_plot", "optimizer", "raid_status", "iodepth", "rw",
    "size", "thread_n", "help",
)
_SHORT_OPTIONS = {
    "w": "wcache", "a": "raid_type", "b": "bs", "c": "rcache", "d": "direct",
    "e": "pdcache", "f": "file", "g": "raid_level", "i": "ioengine",
    "j": "strip_size", "k": "num_members", "l": "capability", "m": "raid_name",
    "n": "fk_plot", "o": "optimizer", "p": "raid_status", "q": "iodepth",
    "r": "rw", "s": "size", "t": "thread_n", "h": "help",
}


def _match_long(name: str) -> str:
    if name in _LONG_OPTIONS:
        return name
    candidates = [opt for opt in _LONG_OPTIONS if opt.startswith(name)]
    if not name or not candidates:
        raise OptionError(f"unrecognized option '--{name}'")
    if len(candidates) > 1:
        raise OptionError(f"option '--{name}' is ambiguous")
    return candidates[0]


def _apply(args: RioArgs, key: str, value: str) -> None:
    raid = args.raid_cf
    if key == "file":
        args.file = value[:FILE_MAX]
    elif key == "rw":
        args.rw_type = value
        if value in RANDOM_RW_TYPES:
            args.block_size = 4096
    elif key == "bs":
        try:
            args.block_size = parse_size(value)
        except ValueError as exc:
            raise OptionError(f"Invalid block size: {value}") from exc
        args.thread_n = 1 if args.block_size > 128 * KIB else 16
    elif key == "size":
        try:
            args.size = parse_size(value)
        except ValueError as exc:
            raise OptionError(f"Invalid size: {value}") from exc
    elif key == "ioengine":
        args.ioengine = value
    elif key == "iodepth":
        args.iodepth = _atoi(value)
    elif key == "thread_n":
        args.thread_n = _atoi(value)
    elif key == "direct":
        args.direct = bool(_atoi(value))
    elif key == "wcache":
        raid.wcache = bool(_atoi(value))
    elif key == "rcache":
        raid.rcache = bool(_atoi(value))
    elif key == "pdcache":
        raid.pdcache = bool(_atoi(value))
    elif key == "optimizer":
        raid.optimizer = bool(_atoi(value))
    elif key == "raid_type":
        try:
            raid.raid_type = RaidType(value)
        except ValueError as exc:
            raise OptionError(f"Unknown RAID type: {value}") from exc
    elif key == "raid_level":
        raid.raid_level = _atoi(value)
    elif key == "strip_size":
        raid.strip_size = _atoi(value)
    elif key == "num_members":
        raid.num_members = _atoi(value)
    elif key == "capability":
        raid.capability = _atoi(value)
    elif key == "raid_name":
        raid.raid_name = value[:RAID_NAME_MAX]
    elif key == "fk_plot":
        try:
            args.fk_plot = _PLOT_OPTION_VALUES[value]
        except KeyError as exc:
            raise OptionError(f"Unknown fk_plot type: {value}") from exc
    elif key == "raid_status":
        raid.raid_status = value[:RAID_STATUS_MAX]


def parse_options(argv) -> RioArgs:
    """Parse command-line arguments (without the program name) into ``RioArgs``.

    Options are applied in order, so ``--rw randread`` after ``--bs`` resets
    the block size. ``--help`` stops parsing and sets ``help_requested``.
    """
    args = RioArgs()
    tokens = list(argv)
    position = 0
    while position < len(tokens):
        token = tokens[position]
        position += 1
        if token == "--":
            break
        if token.startswith("--"):
            name, has_value, value = token[2:].partition("=")
            key = _match_long(name)
            if key == "help":
                if has_value:
                    raise OptionError("option '--help' doesn't allow an argument")
                args.help_requested = True
                return args
        elif token.startswith("-") and len(token) > 1:
            key = _SHORT_OPTIONS.get(token[1])
            if key is None:
                raise OptionError(f"invalid option -- '{token[1]}'")
            if key == "help":
                args.help_requested = True
                return args
            value = token[2:]
            has_value = bool(value)
            name = token[1]
        else:
            continue
        if not has_value:
            if position >= len(tokens):
                raise OptionError(f"option '{name}' requires an argument")
            value = tokens[position]
            position += 1
        _apply(args, key, value)
    return args


def _enabled(flag: bool) -> str:
    return "Enabled" if flag else "Disabled"


def format_args(args: RioArgs) -> str:
    """Human-readable summary of the test configuration."""
    lines = [
        "==========Test Conf========",
        "",
        "=== RIO Configuration ===",
        f"File:         {args.file}",
        f"Block size:   {args.block_size} bytes",
        f"RW Type:      {args.rw_type}",
        f"IO Engine:    {args.ioengine}",
        f"Size:         {args.size} bytes",
        f"IO Depth:     {args.iodepth}",
        f"Threads:      {args.thread_n}",
        f"Direct IO:    {'Yes' if args.direct else 'No'}",
    ]
    raid = args.raid_cf
    if raid.raid_type in (RaidType.SOFT, RaidType.HARD):
        lines += [
            "",
            "--- RAID Conf(default) ---",
            f"RAID Type:    {raid.raid_type.value} RAID",
            f"RAID Level:   {raid.raid_level}",
            f"Strip Size:   {raid.strip_size} KB",
            f"Num_members:  {raid.num_members} Disks",
            f"Capability:   {raid.capability} GB",
            f"Raid_name:    {raid.raid_name} ",
            f"Write Cache:  {_enabled(raid.wcache)}",
            f"Read Cache:   {_enabled(raid.rcache)}",
            f"PD Cache:     {_enabled(raid.pdcache)}",
            f"Optimizer:    {_enabled(raid.optimizer)}",
        ]
    lines += [
        "",
        "--- plot Configuration ---",
        f"Plot Type:    {args.fk_plot.label}",
        "===========================",
    ]
    return "\n".join(lines) + "\n"


def help_text(progname: str) -> str:
    """Usage text for the command."""
    p = progname
    return "\n".join([
        f"Usage: {p} --raid_type <none|hard|soft> --file <path> [--bs <size>] [--rw <type>]...",
        f"Example 1      JBOD: {p} --raid_type none --file /dev/sda --bs 256K --rw write --size 1G --iodepth 16 --thread_n 4",
        f"Example 2 Hard RAID: {p} --raid_type hard --file /dev/sda --bs 1024K --rw read --size 1G --iodepth 16 --thread_n 4",
        f"Example 3 Soft RAID: {p} --raid_type soft --file /dev/sda --bs 16K --rw write --size 1G --iodepth 16 --thread_n 4",
        f"Example 4   fk_plot: {p} --raid_type hard --file /dev/sda  --size 1G --fk_plot bw",
        "Options:",
        "===== general =====",
        "  --file <path>                 Optional. Device or file under test; without it a RAID volume may be created",
        "  --bs <size>                   Optional. Block size, default 1M (4K for random access)",
        "  --rw <type>                   Optional. Access type: read/write/randread/randwrite, default read",
        "  --ioengine <engine>           Optional. IO engine, default libaio",
        "  --size <io_size>              Optional. Total size of IO to issue, default 100M",
        "  --iodepth <queue depth>       Optional. Concurrent IOs per thread, default 16",
        "  --thread_n <threads>          Optional. Number of worker threads, default 1",
        "  --direct <0|1>                Optional. Bypass the page cache, default 1",
        "===== raid =====",
        "  --wcache <0|1>                Optional. Controller write-back (1) or write-through (0), default 0",
        "  --rcache <0|1>                Optional. Controller read-ahead (1) or no read-ahead (0), default 0",
        "  --pdcache <0|1>               Optional. Physical drive cache on (1) or off (0), default 0",
        "  --raid_type <soft|hard|none>  Required. Software or hardware RAID, default hard",
        "  --raid_level <level>          Optional. RAID level, default 0",
        "  --strip_size <KB>             Optional. Strip size in KB, default 64",
        "  --num_members <disks>         Optional. Member drives of a new volume, default 1",
        "  --capability <GB>             Optional. Capacity of a new volume, default 100",
        "  --raid_name <name>            Optional. Name of a new volume",
        "  --raid_status <optl|degrade>  Optional. Run degraded by taking members offline, default optl",
        "  --optimizer <0|1>             Optional. Try to optimize the volume, default 0",
        "===== quick test =====",
        "  --fk_plot <bw|iops|lat>       Optional. Run a sweep and plot the results",
        "  --help                        Show this help message",
    ]) + "\n"