"""forgeview - process table sampling and hierarchy reconstruction."""

from forgeview.models import Process, ProcessTree, ProcessTreeNode
from forgeview.system import System
from forgeview.tree import build_tree

__all__ = ["Process", "ProcessTree", "ProcessTreeNode", "System", "build_tree"]
