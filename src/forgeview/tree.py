"""Reconstructs the parent-child hierarchy of a process snapshot."""

from collections import defaultdict
from collections.abc import Iterable, Mapping

from forgeview.models import ROOT_PID, Process, ProcessTree, ProcessTreeNode, root_process


def children_map(snapshot: Mapping[int, Process], live_pids: Iterable[int]) -> dict[int, list[int]]:
    """
    Map each parent pid to its child pids, ordered by pid.

    Only pids that are both live and present in the snapshot are included.
    """
    children: defaultdict[int, list[int]] = defaultdict(list)
    for pid in set(live_pids):
        proc = snapshot.get(pid)
        if proc is None or pid == ROOT_PID:
            continue
        children[proc.ppid].append(pid)
    for pids in children.values():
        pids.sort()
    return dict(children)


def build_tree(
    snapshot: Mapping[int, Process],
    live_pids: Iterable[int] | None = None,
) -> ProcessTree:
    """
    Build a tree rooted at the synthetic pid 0 node.

    Every snapshot process reachable from pid 0 through parent links is
    attached exactly once; processes whose parent is missing are dropped.

    Args:
        snapshot: Mapping of pid to Process from a single refresh.
        live_pids: Pids enumerated for this build; defaults to the snapshot keys.
    """
    if live_pids is None:
        live_pids = snapshot.keys()
    children = children_map(snapshot, live_pids)

    root = ProcessTreeNode(root_process())
    visited = {ROOT_PID}
    stack = [root]
    while stack:
        node = stack.pop()
        for child_pid in children.get(node.proc_info.pid, ()):
            # Guards against corrupted parent links
            if child_pid in visited:
                continue
            visited.add(child_pid)
            child = ProcessTreeNode(snapshot[child_pid])
            node.children.append(child)
            stack.append(child)
    return ProcessTree(root)
