"""Background refresh loop for forgeview."""

import threading
from dataclasses import dataclass
from queue import Queue

import structlog

from forgeview.models import Process, ProcessTree
from forgeview.system import System

log = structlog.get_logger()


@dataclass(slots=True, frozen=True)
class Frame:
    """Everything the presentation layer needs from one refresh."""

    ok: bool
    processes: list[tuple[int, Process]]
    tree: ProcessTree
    total_cpu_usage: float
    total_mem_usage: float
    skipped_pids: tuple[int, ...] = ()


class SystemMonitor:
    """
    Refreshes a System on a daemon thread and pushes Frames to a Queue.

    The thread is the only writer of the System, so consumers never observe
    a snapshot mid-refresh; they only see the Frames it publishes.
    """

    def __init__(
        self,
        update_queue: Queue[Frame],
        system: System | None = None,
        poll_rate: float = 2.0,
    ) -> None:
        """
        Initialize the SystemMonitor.

        Args:
            update_queue: Thread-safe queue to push frames to.
            system: Aggregator to refresh. A procfs-backed one is created if None.
            poll_rate: Seconds between refreshes. Default 2.0s.
        """
        self._queue = update_queue
        self._system = system if system is not None else System()
        self._poll_rate = max(0.1, poll_rate)
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._wake_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="SystemMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        self._wake_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def request_refresh(self) -> None:
        """Cut the current wait short and refresh immediately."""
        self._wake_event.set()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        while not self._stop_event.is_set():
            try:
                self._queue.put(self.collect_frame())
            except Exception:
                log.exception("collect_failed")

            # Wait for poll_rate seconds, an explicit refresh request or stop
            self._wake_event.wait(timeout=self._poll_rate)
            self._wake_event.clear()

    def collect_frame(self) -> Frame:
        """Refresh the System and package the result."""
        ok = self._system.refresh()
        result = self._system.last_refresh
        if not ok:
            log.warning("refresh_kept_previous_snapshot")
        return Frame(
            ok=ok,
            processes=self._system.snapshot_as_list(),
            tree=self._system.build_tree(),
            total_cpu_usage=self._system.total_cpu_usage(),
            total_mem_usage=self._system.total_mem_usage(),
            skipped_pids=result.skipped_pids if result is not None else (),
        )
