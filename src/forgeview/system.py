"""System aggregator: owns the current snapshot and system-wide totals."""

import time
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

import structlog

from forgeview.models import Process, ProcessTree
from forgeview.procfs import (
    ProcessSource,
    ProcfsSource,
    SamplingError,
    total_cpu_usage,
    total_mem_usage,
)
from forgeview.tree import build_tree as build_process_tree

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class RefreshResult:
    """Outcome of one refresh attempt."""

    ok: bool
    sampled: int = 0
    skipped_pids: tuple[int, ...] = ()
    duration: float = 0.0
    error: str = ""


class System:
    """
    Current process snapshot plus total CPU and memory usage.

    The snapshot is replaced wholesale by ``refresh()`` and is only mutated
    there. Callers must not read it from another thread while a refresh runs.

    Per-pid sampling failures are skipped and reported through
    ``last_refresh.skipped_pids``. Failures reading the pid listing or the
    system counters abort the refresh and leave the previous snapshot intact.
    """

    def __init__(self, source: ProcessSource | None = None) -> None:
        self._source: ProcessSource = source if source is not None else ProcfsSource()
        self._procs: dict[int, Process] = {}
        self._cpu_used = 0.0
        self._mem_used = 0.0
        self._last_refresh: RefreshResult | None = None

    @property
    def source(self) -> ProcessSource:
        return self._source

    @property
    def last_refresh(self) -> RefreshResult | None:
        """Result of the most recent refresh attempt, or None before the first."""
        return self._last_refresh

    @property
    def processes(self) -> Mapping[int, Process]:
        """Read-only view of the current snapshot."""
        return MappingProxyType(self._procs)

    def refresh(self) -> bool:
        """
        Re-enumerate and re-sample every process.

        Returns:
            True if a new snapshot was installed, False if the refresh aborted.
        """
        started = time.monotonic()
        try:
            pids = self._source.list_pids()
            counters = self._source.read_system_counters()
            accounts = self._source.read_accounts()
        except (OSError, ValueError) as e:
            log.error("refresh_failed", error=str(e))
            self._last_refresh = RefreshResult(
                ok=False, duration=time.monotonic() - started, error=str(e)
            )
            return False

        procs: dict[int, Process] = {}
        skipped: list[int] = []
        for pid in pids:
            try:
                procs[pid] = self._source.read_process(pid, counters, accounts)
            except SamplingError as e:
                log.debug("pid_skipped", pid=pid, reason=e.reason)
                skipped.append(pid)

        self._procs = procs
        self._cpu_used = total_cpu_usage(counters.cpu_fields)
        self._mem_used = total_mem_usage(counters.meminfo)
        self._last_refresh = RefreshResult(
            ok=True,
            sampled=len(procs),
            skipped_pids=tuple(sorted(skipped)),
            duration=time.monotonic() - started,
        )
        log.debug(
            "refresh_complete",
            sampled=len(procs),
            skipped=len(skipped),
            duration=round(self._last_refresh.duration, 3),
        )
        return True

    def snapshot_as_list(self) -> list[tuple[int, Process]]:
        """Copy of the current snapshot as ``(pid, Process)`` pairs ordered by pid."""
        return sorted(self._procs.items())

    def lookup(self, pid: int) -> Process | None:
        return self._procs.get(pid)

    def total_cpu_usage(self) -> float:
        return self._cpu_used

    def total_mem_usage(self) -> float:
        return self._mem_used

    def build_tree(self) -> ProcessTree:
        """
        Build the hierarchy of the current snapshot.

        Live pids are enumerated again, so processes that exited since the
        last refresh are left out. If enumeration fails the tree is root-only.
        """
        try:
            live_pids = self._source.list_pids()
        except OSError as e:
            log.warning("tree_enumeration_failed", error=str(e))
            live_pids = set()
        return build_process_tree(self._procs, live_pids)
