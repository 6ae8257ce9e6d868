"""Tests for thread metadata collection."""

import pytest

from thread_metadata import get_process_threads_metadata


class TestThreadMetadata:
    """Tests for reading thread names from procfs."""

    def test_named_threads(self, proc_root):
        events = get_process_threads_metadata(4321, proc_root=proc_root)

        assert [(e.pid, e.tid, e.args.name) for e in events] == [
            (4321, 4321, "server"),
            (4321, 4322, "worker-1"),
        ]
        assert all(e.ph == "M" and e.name == "thread_name" for e in events)

    def test_missing_process(self, proc_root):
        with pytest.raises(FileNotFoundError):
            get_process_threads_metadata(9999, proc_root=proc_root)
