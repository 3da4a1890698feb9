"""Linux procfs backend: pid enumeration, per-process sampling and system counters.

Reads are sequential and blocking. Enumeration and sampling span real time, so a
pid listed by ``list_pids`` may have exited by the time ``read_process`` runs;
that surfaces as a ``SamplingError`` for the pid alone.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import psutil
import structlog

from forgeview.models import Process

log = structlog.get_logger()

DEFAULT_PROC_ROOT = "/proc"
DEFAULT_PASSWD_PATH = "/etc/passwd"
DEFAULT_CLOCK_TICKS = 100

# user, nice, system, idle, iowait, irq, softirq, steal, guest
CPU_FIELD_COUNT = 9
CPU_IDLE_INDEX = 3
MEM_FREE_LABELS = ("MemFree", "Buffers", "Cached")

# 1-indexed positions in /proc/<pid>/stat
STAT_UTIME = 14
STAT_STIME = 15
STAT_STARTTIME = 22
# Position of the first field after the parenthesised comm
_STAT_AFTER_COMM = 3


class SamplingError(Exception):
    """A single process could not be sampled (it vanished or its record is malformed)."""

    def __init__(self, pid: int, reason: str) -> None:
        super().__init__(f"pid {pid}: {reason}")
        self.pid = pid
        self.reason = reason


@dataclass(slots=True, frozen=True)
class SystemCounters:
    """System-wide counters read once per refresh."""

    cpu_fields: tuple[float, ...]
    meminfo: dict[str, int] = field(default_factory=dict)
    uptime: float = 0.0  # Seconds since boot

    @property
    def mem_total_kb(self) -> int:
        return self.meminfo.get("MemTotal", 0)


class ProcessSource(Protocol):
    """Capabilities the aggregator needs from a kernel-interface backend."""

    def list_pids(self) -> set[int]: ...

    def read_system_counters(self) -> SystemCounters: ...

    def read_accounts(self) -> dict[int, str]: ...

    def read_process(
        self, pid: int, counters: SystemCounters, accounts: dict[int, str]
    ) -> Process: ...


# ─────────────────────────────────────────────────────────────────────────────
# Parsing
# ─────────────────────────────────────────────────────────────────────────────


def parse_status(text: str) -> dict[str, str]:
    """Parse a ``status`` record into a ``key -> value`` dict (values stripped)."""
    fields: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def parse_stat_times(text: str) -> tuple[int, int, int]:
    """
    Extract ``(utime, stime, starttime)`` in clock ticks from a ``stat`` record.

    The comm field is wrapped in parentheses and may itself contain spaces or
    parentheses, so fields are counted from the last closing parenthesis.

    Raises:
        ValueError: If the record has no comm field. Missing or non-integer
            fields count as zero.
    """
    _, sep, rest = text.rpartition(")")
    if not sep:
        raise ValueError("stat record has no comm field")
    fields = rest.split()

    def at(position: int) -> int:
        index = position - _STAT_AFTER_COMM
        if index >= len(fields) or not fields[index].isdigit():
            return 0
        return int(fields[index])

    return at(STAT_UTIME), at(STAT_STIME), at(STAT_STARTTIME)


def parse_meminfo(text: str) -> dict[str, int]:
    """Parse ``meminfo`` lines into ``label -> kB``; unparsable lines are skipped."""
    values: dict[str, int] = {}
    for line in text.splitlines():
        label, sep, rest = line.partition(":")
        tokens = rest.split()
        if sep and tokens and tokens[0].isdigit():
            values[label.strip()] = int(tokens[0])
    return values


def parse_cpu_line(text: str) -> tuple[float, ...]:
    """
    Return the nine aggregate CPU counters from a ``stat`` file.

    Missing trailing fields (older kernels) count as zero.

    Raises:
        ValueError: If there is no aggregate ``cpu`` line or a field is not numeric.
    """
    for line in text.splitlines():
        tokens = line.split()
        if tokens and tokens[0] == "cpu":
            values = [float(token) for token in tokens[1 : CPU_FIELD_COUNT + 1]]
            values.extend([0.0] * (CPU_FIELD_COUNT - len(values)))
            return tuple(values)
    raise ValueError("no aggregate cpu line in stat")


def parse_passwd(text: str) -> dict[int, str]:
    """Map numeric uid (third field) to account name (first field); first entry wins."""
    accounts: dict[int, str] = {}
    for line in text.splitlines():
        parts = line.split(":")
        if len(parts) >= 3 and parts[2].isdigit():
            accounts.setdefault(int(parts[2]), parts[0])
    return accounts


def _leading_int(value: str | None, default: int = 0) -> int:
    tokens = (value or "").split()
    if tokens and tokens[0].lstrip("-").isdigit():
        return int(tokens[0])
    return default


# ─────────────────────────────────────────────────────────────────────────────
# Metrics
# ─────────────────────────────────────────────────────────────────────────────


def process_cpu_usage(
    utime: float,
    stime: float,
    starttime: float,
    uptime: float,
    clock_ticks: int,
    cpu_count: int,
) -> float:
    """
    Average CPU share of a process over its whole lifetime, in percent.

    ``100 * ((utime + stime) / ticks) / (uptime - starttime / ticks) / cpus``.
    A process with no measurable elapsed time reports 0.0, and the result is
    clamped into [0, 100] so tick rounding never yields NaN, inf or > 100.
    """
    if clock_ticks <= 0:
        clock_ticks = DEFAULT_CLOCK_TICKS
    elapsed = uptime - starttime / clock_ticks
    if elapsed <= 0 or cpu_count <= 0:
        return 0.0
    usage = 100.0 * ((utime + stime) / clock_ticks) / elapsed / cpu_count
    return min(max(usage, 0.0), 100.0)


def process_mem_usage(rss_kb: int, mem_total_kb: int) -> float:
    """Resident memory as a percentage of total memory."""
    if mem_total_kb <= 0:
        return 0.0
    return rss_kb / mem_total_kb * 100.0


def total_cpu_usage(cpu_fields: tuple[float, ...]) -> float:
    """``100 - idle / sum(first nine counters) * 100``."""
    fields = cpu_fields[:CPU_FIELD_COUNT]
    total = sum(fields)
    if total <= 0:
        return 0.0
    return 100.0 - fields[CPU_IDLE_INDEX] / total * 100.0


def total_mem_usage(meminfo: dict[str, int]) -> float:
    """``100 - (MemFree + Buffers + Cached) / MemTotal * 100``."""
    total = meminfo.get("MemTotal", 0)
    if total <= 0:
        return 0.0
    free = sum(meminfo.get(label, 0) for label in MEM_FREE_LABELS)
    return 100.0 - free / total * 100.0


# ─────────────────────────────────────────────────────────────────────────────
# Backend
# ─────────────────────────────────────────────────────────────────────────────


def system_clock_ticks() -> int:
    """Scheduler ticks per second, falling back to 100."""
    try:
        ticks = os.sysconf("SC_CLK_TCK")
    except (AttributeError, ValueError, OSError):
        return DEFAULT_CLOCK_TICKS
    return ticks if ticks > 0 else DEFAULT_CLOCK_TICKS


class ProcfsSource:
    """
    Samples processes and system counters from a procfs mount.

    Args:
        proc_root: Directory procfs is mounted on.
        passwd_path: Account table used to resolve uids to names.
        clock_ticks: Ticks per second; queried from the runtime when None.
        cpu_count: Logical CPUs; taken from psutil when None.
    """

    def __init__(
        self,
        proc_root: str | Path = DEFAULT_PROC_ROOT,
        passwd_path: str | Path = DEFAULT_PASSWD_PATH,
        clock_ticks: int | None = None,
        cpu_count: int | None = None,
    ) -> None:
        self._root = Path(proc_root)
        self._passwd_path = Path(passwd_path)
        self._clock_ticks = clock_ticks if clock_ticks is not None else system_clock_ticks()
        self._cpu_count = cpu_count if cpu_count is not None else (psutil.cpu_count(logical=True) or 1)

    @property
    def proc_root(self) -> Path:
        return self._root

    @property
    def clock_ticks(self) -> int:
        return self._clock_ticks

    @property
    def cpu_count(self) -> int:
        return self._cpu_count

    def list_pids(self) -> set[int]:
        """
        Pids currently present under the proc root.

        Raises:
            OSError: If the proc root cannot be listed.
        """
        return {int(entry.name) for entry in self._root.iterdir() if entry.name.isdigit()}

    def read_uptime(self) -> float:
        tokens = self._read(self._root / "uptime").split()
        if not tokens:
            raise ValueError("empty uptime record")
        return float(tokens[0])

    def read_system_counters(self) -> SystemCounters:
        """
        Read the aggregate CPU line, memory counters and uptime.

        Raises:
            OSError: If any of the files is unreadable.
            ValueError: If the CPU line or uptime is missing or malformed.
        """
        cpu_fields = parse_cpu_line(self._read(self._root / "stat"))
        meminfo = parse_meminfo(self._read(self._root / "meminfo"))
        return SystemCounters(cpu_fields=cpu_fields, meminfo=meminfo, uptime=self.read_uptime())

    def read_accounts(self) -> dict[int, str]:
        """Load the uid table; an unreadable table resolves every user to ''."""
        try:
            return parse_passwd(self._read(self._passwd_path))
        except OSError as e:
            log.warning("accounts_unreadable", path=str(self._passwd_path), error=str(e))
            return {}

    def read_process(
        self, pid: int, counters: SystemCounters, accounts: dict[int, str]
    ) -> Process:
        """
        Sample one process.

        Raises:
            SamplingError: If the status or stat record is unreadable or the
                stat record has no comm field.
        """
        proc_dir = self._root / str(pid)
        try:
            status = parse_status(self._read(proc_dir / "status"))
            utime, stime, starttime = parse_stat_times(self._read(proc_dir / "stat"))
        except (OSError, ValueError) as e:
            raise SamplingError(pid, str(e)) from e

        # Uid: real, effective, saved, filesystem
        uid_tokens = status.get("Uid", "").split()
        uid = int(uid_tokens[-1]) if uid_tokens and uid_tokens[-1].isdigit() else None

        return Process(
            pid=pid,
            name=status.get("Name", ""),
            ppid=_leading_int(status.get("PPid")),
            cpu_used=process_cpu_usage(
                utime, stime, starttime, counters.uptime, self._clock_ticks, self._cpu_count
            ),
            mem_used=process_mem_usage(_leading_int(status.get("VmRSS")), counters.mem_total_kb),
            path=self._read_exe(proc_dir),
            user=accounts.get(uid, "") if uid is not None else "",
        )

    @staticmethod
    def _read_exe(proc_dir: Path) -> str:
        try:
            return os.readlink(proc_dir / "exe")
        except OSError:
            return ""

    @staticmethod
    def _read(path: Path) -> str:
        return path.read_text(encoding="utf-8", errors="replace")
