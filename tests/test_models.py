"""Tests for forgeview data models."""

from forgeview.models import ROOT_NAME, ROOT_PID, Process, ProcessTree, ProcessTreeNode, root_process


def test_process_creation():
    """Test Process dataclass creation."""
    proc = Process(
        pid=123,
        name="test_process",
        ppid=1,
        cpu_used=50.0,
        mem_used=25.0,
        path="/usr/bin/test",
        user="testuser",
    )

    assert proc.pid == 123
    assert proc.name == "test_process"
    assert proc.ppid == 1
    assert proc.cpu_used == 50.0
    assert proc.mem_used == 25.0
    assert proc.path == "/usr/bin/test"
    assert proc.user == "testuser"


def test_process_path_and_user_default_empty():
    proc = Process(pid=2, name="kthreadd", ppid=0, cpu_used=0.0, mem_used=0.0)
    assert proc.path == ""
    assert proc.user == ""


def test_process_is_frozen():
    """Test that Process is immutable (frozen)."""
    proc = Process(pid=1, name="init", ppid=0, cpu_used=0.1, mem_used=0.5)

    try:
        proc.pid = 999
        raise AssertionError("Should have raised FrozenInstanceError")
    except AttributeError:
        pass  # Expected behavior for frozen dataclass


def test_process_uses_slots():
    """Test that Process uses __slots__ for memory efficiency."""
    proc = Process(pid=1, name="init", ppid=0, cpu_used=0.1, mem_used=0.5)

    # Slots-based dataclasses don't have __dict__
    assert not hasattr(proc, "__dict__")


def test_root_process():
    root = root_process()
    assert root.pid == ROOT_PID
    assert root.name == ROOT_NAME


def test_tree_helpers():
    leaf = ProcessTreeNode(Process(pid=2, name="bash", ppid=1, cpu_used=0.0, mem_used=0.0))
    init = ProcessTreeNode(Process(pid=1, name="init", ppid=0, cpu_used=0.0, mem_used=0.0), [leaf])
    tree = ProcessTree(ProcessTreeNode(root_process(), [init]))

    assert tree.pids() == [1, 2]
    assert len(tree) == 2
    assert tree.find(2) is leaf
    assert tree.find(0) is None
    assert tree.find(3) is None
