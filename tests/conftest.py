"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src and project root to path
ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT / "src"))
sys.path.insert(0, str(ROOT))


SAMPLE_TRACE = [
    '1234 100.500000 open("/tmp/x", O_RDONLY) = 3 <0.000010>',
    '1234 100.500100 read(3, <unfinished ...>',
    '1235 100.500200 openat(AT_FDCWD, "/nope", O_RDONLY) = -1 ENOENT (No such file or directory) <0.000005>',
    '1236 100.500300 futex(0x7f00, FUTEX_WAIT, 0, NULL <unfinished ...>',
    '1235 100.550000 --- SIGCHLD {si_signo=SIGCHLD, si_code=CLD_EXITED} ---',
    '1234 100.600000 <... read resumed>, "data", 4) = 4 <0.000020>',
    '1235 100.700000 +++ exited with 0 +++',
]


@pytest.fixture
def sample_trace():
    """Short multi-thread strace capture."""
    return list(SAMPLE_TRACE)


@pytest.fixture
def trace_file(tmp_path, sample_trace):
    """Sample capture written to disk."""
    path = tmp_path / "trace.txt"
    path.write_text("\n".join(sample_trace) + "\n")
    return path


@pytest.fixture
def proc_root(tmp_path):
    """Fake procfs with one process and three task entries."""
    task_dir = tmp_path / "proc" / "4321" / "task"
    for tid, comm in (("4321", "server\n"), ("4322", "worker-1\n")):
        (task_dir / tid).mkdir(parents=True)
        (task_dir / tid / "comm").write_text(comm)
    # Thread that exited between listing and reading
    (task_dir / "4323").mkdir()
    (task_dir / "self").mkdir()
    return tmp_path / "proc"
