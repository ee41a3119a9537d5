"""Hardware RAID management through the storcli command-line tool."""

from __future__ import annotations

import logging
import os
import re
import subprocess
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from raidio.config import RaidConfig

logger = logging.getLogger(__name__)

MAX_VDS = 512
MAX_UGOOD = 64
EVENT_WINDOW = 1024
EVENT_DESCRIPTIONS_CHECKED = 8

_SLASH_PAIR = re.compile(r"\s*([+-]?\d+)/([+-]?\d+)")
_COLON_PAIR = re.compile(r"\s*([+-]?\d+):([+-]?\d+)")

Runner = Callable[[Sequence[str]], "tuple[int, str]"]


class StorCliError(RuntimeError):
    """Raised when a RAID controller command fails or is unavailable."""


@dataclass(frozen=True)
class PdSlot:
    eid: int
    slot: int

    def __str__(self) -> str:
        return f"{self.eid}:{self.slot}"


def command_exists(cmd: str) -> bool:
    """True if an executable named ``cmd`` is found in a directory of PATH."""
    path_env = os.environ.get("PATH")
    if not path_env:
        return False
    return any(
        os.access(os.path.join(directory, cmd), os.X_OK)
        for directory in path_env.split(os.pathsep)
        if directory
    )


def find_cli() -> str:
    """Name of the installed storcli tool."""
    for name in ("storcli", "storcli64"):
        if command_exists(name):
            return name
    raise StorCliError("no RAID command-line tool found; install storcli")


def parse_vd_ids(text: str, max_vds: int = MAX_VDS) -> list[int]:
    """VD numbers listed after the 'Virtual Drives :' marker of '/vall show'."""
    ids: list[int] = []
    in_section = False
    for line in text.splitlines():
        if not in_section:
            in_section = "Virtual Drives :" in line
            continue
        match = _SLASH_PAIR.match(line)
        if match:
            if len(ids) >= max_vds:
                logger.warning("more than %d virtual drives; ignoring the rest", max_vds)
                break
            ids.append(int(match.group(2)))
    return ids


def find_vd_id_by_name(text: str, name: str) -> Optional[int]:
    """VD number of the first drive row mentioning ``name``, or None."""
    in_section = False
    for line in text.splitlines():
        if "Virtual Drives :" in line:
            in_section = True
            continue
        if in_section and name in line:
            match = _SLASH_PAIR.match(line)
            if match:
                return int(match.group(2))
    return None


def parse_ugood_disks(text: str, max_disks: int = MAX_UGOOD) -> list[PdSlot]:
    """Unconfigured-good drives from the PD LIST section of '/c0 show'."""
    disks: list[PdSlot] = []
    in_list = False
    for line in text.splitlines():
        if not in_list:
            in_list = "PD LIST" in line
            continue
        if "Enclosure LIST" in line:
            break
        if "EID:Slt" in line or "----" in line or "UGood" not in line:
            continue
        words = line.split()
        if not words:
            continue
        match = _COLON_PAIR.match(words[0][:15])
        if match and len(disks) < max_disks:
            disks.append(PdSlot(int(match.group(1)), int(match.group(2))))
    return disks


def parse_onln_pds(text: str, vd_number: int, limit: int) -> list[PdSlot]:
    """Up to ``limit`` online member drives from the 'PDs for VD n' table."""
    found: list[PdSlot] = []
    if limit <= 0:
        return found
    tag = f"PDs for VD {vd_number}"
    in_section = False
    separators = 0
    for line in text.splitlines():
        if not in_section:
            in_section = tag in line
            continue
        if "---------------" in line:
            separators += 1
            continue
        if "EID=" in line:
            break
        if separators >= 2 and " Onln" in line:
            match = _COLON_PAIR.match(line)
            if not match:
                logger.warning("cannot parse drive row: %s", line)
                continue
            found.append(PdSlot(int(match.group(1)), int(match.group(2))))
            if len(found) >= limit:
                break
    return found


def init_complete_in_events(text: str, vd_number: int) -> bool:
    """True if one of the latest event descriptions reports init done for the VD."""
    wanted = f"Initialization complete on VD {vd_number:02x}"
    seen = 0
    for line in reversed(text.splitlines()[-EVENT_WINDOW:]):
        line = line.lstrip(" \t")
        if not line.startswith("Event Description:"):
            continue
        seen += 1
        logger.info("[Event %d] %s", seen, line)
        if wanted in line:
            return True
        if seen >= EVENT_DESCRIPTIONS_CHECKED:
            break
    return False


def _os_drive_name(text: str) -> Optional[str]:
    for line in text.splitlines():
        if "OS Drive Name" in line:
            fields = line.split("= ")
            return fields[1] if len(fields) > 1 else ""
    return None


def _run_command(argv: Sequence[str]) -> "tuple[int, str]":
    try:
        proc = subprocess.run(list(argv), capture_output=True, text=True, check=False)
    except OSError as exc:
        raise StorCliError(f"cannot run {argv[0]}: {exc}") from exc
    return proc.returncode, proc.stdout


class StorCli:
    """Controller 0 as seen through a storcli executable."""

    def __init__(self, cli: str, run: Optional[Runner] = None):
        self.cli = cli
        self._run = run or _run_command
        self.offline_pds: list[PdSlot] = []

    def _output(self, *words: str) -> str:
        return self._run([self.cli, *words])[1]

    def vd_ids(self) -> list[int]:
        return parse_vd_ids(self._output("/c0", "/vall", "show"))

    def vd_number_for_disk(self, disk_name: str) -> Optional[int]:
        """VD whose OS drive name is ``disk_name``; only the first VD is consulted."""
        ids = self.vd_ids()
        logger.info("found %d virtual drives", len(ids))
        if not ids:
            return None
        vd = ids[0]
        name = _os_drive_name(self._output("/c0", f"/v{vd}", "show", "all"))
        if name is None:
            logger.info("could not read the OS drive name of VD %d", vd)
            return None
        if name != disk_name:
            logger.info("VD %d is %s, not %s", vd, name, disk_name)
            return None
        return vd

    def initialization_complete(self, vd_number: int) -> bool:
        return init_complete_in_events(self._output("/c0", "show", "events"), vd_number)

    def full_init(self, vd_number: int, interval: float = 30.0) -> None:
        """Start a full initialization and wait until the controller reports it done."""
        code, _ = self._run([self.cli, "/c0", f"/v{vd_number}", "start", "init", "full"])
        if code != 0:
            raise StorCliError(f"starting initialization failed, status {code}")
        while not self.initialization_complete(vd_number):
            logger.info("VD %02d is initializing, checking again in %s s", vd_number, interval)
            time.sleep(interval)
        logger.info("VD %02d initialization complete", vd_number)

    def set_cache(self, wcache: bool, rcache: bool, pdcache: bool, vd_number: int) -> None:
        vd = f"/v{vd_number}"
        settings = (
            "wrcache=AWB" if wcache else "wrcache=WT",
            "rdcache=ra" if rcache else "rdcache=nora",
            "pdcache=on" if pdcache else "pdcache=off",
        )
        for setting in settings:
            self._run([self.cli, "/c0", vd, "set", setting])

    def degrade(self, raid_level: int, vd_number: int) -> list[PdSlot]:
        """Take member drives offline: one for RAID 5, two for RAID 6."""
        if raid_level < 5:
            logger.warning("RAID level %d cannot be degraded", raid_level)
            return []
        text = self._output("/c0", f"/v{vd_number}", "show", "all")
        drives = parse_onln_pds(text, vd_number, raid_level - 4)
        for pd in drives:
            self._run([self.cli, "/c0", f"/e{pd.eid}/s{pd.slot}", "set", "offline"])
        self.offline_pds = drives
        return drives

    def set_online(self, raid_level: int) -> None:
        """Bring the drives taken offline by ``degrade`` back online."""
        count = 2 if raid_level == 6 else 1
        if len(self.offline_pds) < count:
            raise StorCliError("no drives were taken offline")
        for pd in self.offline_pds[:count]:
            self._run([self.cli, "/c0", f"/e{pd.eid}/s{pd.slot}", "set", "online"])

    def vd_id_by_name(self, name: str) -> Optional[int]:
        return find_vd_id_by_name(self._output("/c0", "/vall", "show"), name)

    def ugood_disks(self, max_disks: int = MAX_UGOOD) -> list[PdSlot]:
        return parse_ugood_disks(self._output("/c0", "show"), max_disks)

    def create_raid(self, conf: RaidConfig) -> list[PdSlot]:
        """Create a virtual drive from the first free drives; return the members used."""
        disks = self.ugood_disks(MAX_UGOOD)
        if len(disks) < conf.num_members:
            raise StorCliError(
                f"not enough free drives: need {conf.num_members}, found {len(disks)}"
            )
        members = disks[: conf.num_members]
        code, _ = self._run([
            self.cli, "/c0", "add", "vd", f"r{conf.raid_level}",
            f"size={conf.capability}GB", f"name={conf.raid_name}",
            "drives=" + ",".join(str(pd) for pd in members),
            f"strip={conf.strip_size}",
        ])
        if code != 0:
            raise StorCliError(f"creating the RAID volume failed, status {code}")
        return members