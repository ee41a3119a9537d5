"""Block-device discovery through dmesg and lsscsi."""

from __future__ import annotations

import logging
import subprocess
import time
from typing import Optional

logger = logging.getLogger(__name__)

ATTACHED_MARKER = "Attached SCSI disk"
DMESG_TIME_FORMAT = "%a %b %d %H:%M:%S %Y"
RAID_VENDORS = frozenset({"BROADCOM", "LSI", "AVAGO"})

_TIME_MAX = 63
_DISK_MAX = 31


def _line_time(line: str) -> Optional[float]:
    """Epoch seconds of the leading ``[...]`` timestamp of a ``dmesg --ctime`` line."""
    if not line.startswith("["):
        return None
    stamp = line[1:].split("]", 1)[0][:_TIME_MAX]
    if not stamp:
        return None
    try:
        return time.mktime(time.strptime(stamp.strip(), DMESG_TIME_FORMAT))
    except (ValueError, OverflowError):
        return None


def _bracketed_disk(line: str) -> Optional[str]:
    """Contents of the second ``[...]`` group of a line, such as ``sdb``."""
    parts = line.split("[", 2)
    if len(parts) < 3:
        return None
    return parts[2].split("]", 1)[0][:_DISK_MAX]


def parse_new_disk(dmesg_text: str, start_time: float) -> Optional[str]:
    """Device path of the last disk attached at or after ``start_time``, or None."""
    latest = ""
    for line in dmesg_text.splitlines():
        if ATTACHED_MARKER not in line:
            continue
        logged = _line_time(line)
        if logged is None or logged < start_time or logged <= 0:
            continue
        disk = _bracketed_disk(line)
        if disk is not None:
            latest = disk
    return f"/dev/{latest}" if latest else None


def find_new_disk_after(start_time: float) -> Optional[str]:
    """Ask the kernel log for a disk attached since ``start_time``.

    Raises OSError when dmesg cannot be run.
    """
    proc = subprocess.run(
        ["dmesg", "--ctime"], capture_output=True, text=True, check=False
    )
    return parse_new_disk(proc.stdout, start_time)


def is_raid_vendor(lsscsi_text: str, filename: str) -> bool:
    """True if the first lsscsi row naming ``filename`` has a RAID controller vendor."""
    for line in lsscsi_text.splitlines():
        if filename not in line:
            continue
        fields = line.split()
        if len(fields) >= 3:
            return fields[2] in RAID_VENDORS
    return False


def check_lsscsi_vendor(filename: str) -> bool:
    """Whether ``filename`` is a volume of a Broadcom/LSI controller, per lsscsi.

    Raises OSError when lsscsi cannot be run.
    """
    proc = subprocess.run(["lsscsi"], capture_output=True, text=True, check=False)
    return is_raid_vendor(proc.stdout, filename)