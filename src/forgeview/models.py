"""Data models for forgeview."""

from collections.abc import Iterator
from dataclasses import dataclass, field

ROOT_PID = 0
ROOT_NAME = "System Hierarchy"


@dataclass(slots=True, frozen=True)
class Process:
    """Immutable record of one process captured during a refresh."""

    pid: int
    name: str
    ppid: int
    cpu_used: float  # Lifetime average, 0.0 - 100.0 across all cores
    mem_used: float  # Share of MemTotal, 0.0 - 100.0
    path: str = ""
    user: str = ""


@dataclass(slots=True)
class ProcessTreeNode:
    """A process and the nodes of its children."""

    proc_info: Process
    children: list["ProcessTreeNode"] = field(default_factory=list)


@dataclass(slots=True)
class ProcessTree:
    """Hierarchy built from one snapshot, anchored on a synthetic root."""

    root: ProcessTreeNode

    def walk(self) -> Iterator[tuple[int, ProcessTreeNode]]:
        """Yield ``(depth, node)`` pairs in pre-order, starting at the root."""
        stack = [(0, self.root)]
        while stack:
            depth, node = stack.pop()
            yield depth, node
            for child in reversed(node.children):
                stack.append((depth + 1, child))

    def pids(self) -> list[int]:
        """Pids of every real process in the tree, in pre-order."""
        return [node.proc_info.pid for depth, node in self.walk() if depth > 0]

    def find(self, pid: int) -> ProcessTreeNode | None:
        for depth, node in self.walk():
            if depth > 0 and node.proc_info.pid == pid:
                return node
        return None

    def __len__(self) -> int:
        return sum(1 for depth, _ in self.walk() if depth > 0)


def root_process() -> Process:
    """Placeholder record for the synthetic root node."""
    return Process(pid=ROOT_PID, name=ROOT_NAME, ppid=ROOT_PID, cpu_used=0.0, mem_used=0.0)
