"""Forge View - Textual list and tree views over the process snapshot."""

import logging
import sys
from enum import Enum
from queue import Empty, Queue

import structlog
from textual.app import App, ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Footer, Static, Tree
from textual.widgets.tree import TreeNode

from forgeview.models import ROOT_NAME, Process, ProcessTree, ProcessTreeNode
from forgeview.monitor import Frame, SystemMonitor
from forgeview.system import System

PRECISION = 2


class ViewMode(Enum):
    """Which view of the snapshot is shown."""

    LIST = "list"
    TREE = "tree"


def format_percent(value: float) -> str:
    return f"{value:.{PRECISION}f}"


def node_label(proc: Process) -> str:
    return f"{proc.name} - PID: {proc.pid}"


class UsageBar(Static):
    """Bottom bar with total CPU and memory usage."""

    DEFAULT_CSS = """
    UsageBar {
        dock: bottom;
        height: auto;
        padding: 0 1;
        background: $surface;
        text-align: center;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(self.render_usage(None), *args, **kwargs)

    @staticmethod
    def render_usage(frame: Frame | None) -> str:
        if frame is None:
            return "System Usage: loading..."
        text = (
            f"System Usage:  CPU usage: %{format_percent(frame.total_cpu_usage)}"
            f"  Memory usage: %{format_percent(frame.total_mem_usage)}"
        )
        if frame.skipped_pids:
            text += f"  ({len(frame.skipped_pids)} skipped)"
        if not frame.ok:
            text += "  [yellow]stale[/yellow]"
        return text

    def update_usage(self, frame: Frame) -> None:
        self.update(self.render_usage(frame))


class ProcessList(Container):
    """Container for the flat process table."""

    DEFAULT_CSS = """
    ProcessList {
        height: 1fr;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        yield DataTable(id="process-list")

    def on_mount(self) -> None:
        table = self.query_one("#process-list", DataTable)
        table.cursor_type = "row"
        table.zebra_stripes = True
        table.add_column("Name", key="name")
        table.add_column("PID", key="pid", width=8)
        table.add_column("%CPU", key="cpu", width=8)
        table.add_column("%MEM", key="mem", width=8)
        table.add_column("Path", key="path")
        table.add_column("User", key="user", width=12)

    def update_processes(self, processes: list[tuple[int, Process]]) -> None:
        """Replace the table rows with a new snapshot."""
        table = self.query_one("#process-list", DataTable)
        table.clear()
        for pid, proc in processes:
            table.add_row(
                proc.name,
                str(pid),
                format_percent(proc.cpu_used),
                format_percent(proc.mem_used),
                proc.path,
                proc.user,
                key=str(pid),
            )


class ProcessTreeView(Container):
    """Container for the collapsible process hierarchy."""

    DEFAULT_CSS = """
    ProcessTreeView {
        height: 1fr;
        border: solid $primary;
    }
    """

    def compose(self) -> ComposeResult:
        yield Tree(ROOT_NAME, id="process-tree")

    def update_tree(self, tree: ProcessTree) -> None:
        """Rebuild the widget from a new hierarchy, expanded by default."""
        widget = self.query_one("#process-tree", Tree)
        widget.clear()
        widget.root.set_label(node_label(tree.root.proc_info))
        widget.root.data = tree.root.proc_info
        self._populate(widget.root, tree.root)
        widget.root.expand()

    def _populate(self, parent: TreeNode, node: ProcessTreeNode) -> None:
        for child in node.children:
            label = node_label(child.proc_info)
            if child.children:
                branch = parent.add(label, data=child.proc_info, expand=True)
                self._populate(branch, child)
            else:
                parent.add_leaf(label, data=child.proc_info)


class ForgeViewApp(App):
    """Main Forge View application."""

    TITLE = "Forge View"

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        ("l", "show_list", "Process List"),
        ("t", "show_tree", "Process Tree"),
        ("r", "refresh", "Refresh"),
        ("d", "toggle_dark", "Dark mode"),
        ("q", "quit", "Quit"),
    ]

    def __init__(self, system: System | None = None, poll_rate: float = 2.0) -> None:
        """
        Initialize the ForgeViewApp.

        Args:
            system: Aggregator to display; procfs-backed if None.
            poll_rate: Seconds between background refreshes.
        """
        super().__init__()
        self._update_queue: Queue[Frame] = Queue()
        self._monitor = SystemMonitor(self._update_queue, system, poll_rate=poll_rate)
        self._view = ViewMode.LIST
        self._last_frame: Frame | None = None

    @property
    def view(self) -> ViewMode:
        return self._view

    def compose(self) -> ComposeResult:
        yield ProcessList()
        yield ProcessTreeView()
        yield UsageBar(id="usage")
        yield Footer()

    def on_mount(self) -> None:
        """Start the system monitor when the app is mounted."""
        self._apply_view()
        self._monitor.start()
        self.set_interval(0.5, self._check_for_updates)

    def _check_for_updates(self) -> None:
        """Drain the queue and show the most recent frame."""
        frame = None
        while True:
            try:
                frame = self._update_queue.get_nowait()
            except Empty:
                break

        if frame is not None:
            self._update_ui(frame)

    def _update_ui(self, frame: Frame) -> None:
        """Show a frame in the usage bar and the active view."""
        self._last_frame = frame
        self.query_one("#usage", UsageBar).update_usage(frame)
        if self._view is ViewMode.LIST:
            self.query_one(ProcessList).update_processes(frame.processes)
        else:
            self.query_one(ProcessTreeView).update_tree(frame.tree)

    def _apply_view(self) -> None:
        self.query_one(ProcessList).display = self._view is ViewMode.LIST
        self.query_one(ProcessTreeView).display = self._view is ViewMode.TREE
        self.sub_title = "Process List" if self._view is ViewMode.LIST else "Process Tree"

    def _switch_view(self, view: ViewMode) -> None:
        if view is self._view:
            return
        self._view = view
        self._apply_view()
        if self._last_frame is not None:
            self._update_ui(self._last_frame)

    def action_show_list(self) -> None:
        self._switch_view(ViewMode.LIST)

    def action_show_tree(self) -> None:
        self._switch_view(ViewMode.TREE)

    def action_refresh(self) -> None:
        self._monitor.request_refresh()

    def action_toggle_dark(self) -> None:
        self.theme = "textual-light" if self.current_theme.dark else "textual-dark"

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._monitor.stop()
        self.exit()


def configure_logging(level: int = logging.WARNING) -> None:
    """Send structlog events at or above level to stderr."""
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S", utc=False),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def main() -> None:
    """Entry point for the forgeview application."""
    configure_logging()
    app = ForgeViewApp()
    app.run()


if __name__ == "__main__":
    main()
