"""Shared fixtures: a fake procfs tree under tmp_path."""

from pathlib import Path

import pytest

from forgeview.procfs import ProcfsSource
from forgeview.system import System

CLOCK_TICKS = 100
CPU_COUNT = 2
UPTIME = 1000.0
MEM_TOTAL_KB = 1000

PASSWD = """root:x:0:0:root:/root:/bin/bash
daemon:x:1:1:daemon:/usr/sbin:/usr/sbin/nologin
alice:x:1000:1000:Alice:/home/alice:/bin/bash
"""


class FakeProc:
    """Writes procfs-shaped files so the real parser can be exercised."""

    def __init__(self, root: Path, passwd: Path) -> None:
        self.root = root
        self.passwd = passwd
        self.root.mkdir()
        self.passwd.write_text(PASSWD)
        self.set_uptime(UPTIME)
        self.set_cpu([100, 0, 50, 800, 0, 0, 0, 0, 0])
        self.set_meminfo(MemTotal=MEM_TOTAL_KB, MemFree=200, Buffers=50, Cached=50)

    def set_uptime(self, seconds: float) -> None:
        (self.root / "uptime").write_text(f"{seconds:.2f} 1234.56\n")

    def set_cpu(self, fields: list[int]) -> None:
        line = "cpu  " + " ".join(str(f) for f in fields)
        (self.root / "stat").write_text(f"{line}\ncpu0 1 2 3 4 5 6 7 8 9 0\nintr 0\n")

    def set_meminfo(self, **values: int) -> None:
        lines = [f"{label}:{value:>12} kB" for label, value in values.items()]
        (self.root / "meminfo").write_text("\n".join(lines) + "\n")

    def add_process(
        self,
        pid: int,
        name: str = "proc",
        ppid: int = 1,
        uid: int = 1000,
        rss_kb: int | None = 100,
        utime: int = 0,
        stime: int = 0,
        starttime: int = 0,
        exe: str | None = None,
    ) -> Path:
        proc_dir = self.root / str(pid)
        proc_dir.mkdir()
        status = [
            f"Name:\t{name}",
            "Umask:\t0022",
            "State:\tS (sleeping)",
            f"Pid:\t{pid}",
            f"PPid:\t{ppid}",
            f"Uid:\t{uid}\t{uid}\t{uid}\t{uid}",
        ]
        if rss_kb is not None:
            status.append(f"VmRSS:\t{rss_kb:>8} kB")
        (proc_dir / "status").write_text("\n".join(status) + "\n")

        fields = ["0"] * 52
        fields[0] = str(pid)
        fields[1] = f"({name})"
        fields[2] = "S"
        fields[3] = str(ppid)
        fields[13] = str(utime)
        fields[14] = str(stime)
        fields[21] = str(starttime)
        (proc_dir / "stat").write_text(" ".join(fields) + "\n")

        if exe is not None:
            (proc_dir / "exe").symlink_to(exe)
        return proc_dir

    def remove_process(self, pid: int) -> None:
        proc_dir = self.root / str(pid)
        for entry in proc_dir.iterdir():
            entry.unlink()
        proc_dir.rmdir()

    def source(self) -> ProcfsSource:
        return ProcfsSource(
            proc_root=self.root,
            passwd_path=self.passwd,
            clock_ticks=CLOCK_TICKS,
            cpu_count=CPU_COUNT,
        )


@pytest.fixture
def fake_proc(tmp_path: Path) -> FakeProc:
    """An empty fake procfs with system counters populated."""
    return FakeProc(tmp_path / "proc", tmp_path / "passwd")


@pytest.fixture
def populated_proc(fake_proc: FakeProc) -> FakeProc:
    """init with two children and one orphan whose parent is absent."""
    fake_proc.add_process(1, name="init", ppid=0, uid=0, exe="/sbin/init")
    fake_proc.add_process(2, name="sshd", ppid=1, uid=0)
    fake_proc.add_process(3, name="bash", ppid=1)
    fake_proc.add_process(4, name="orphan", ppid=99)
    return fake_proc


@pytest.fixture
def system(populated_proc: FakeProc) -> System:
    return System(populated_proc.source())
