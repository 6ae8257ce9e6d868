"""
Thread metadata from /proc.

Reads the name of every thread of a running process so the timeline shows
thread names instead of bare thread ids.
"""

import logging
from pathlib import Path
from typing import List, Union

from trace_events import TraceEvent

logger = logging.getLogger(__name__)


def get_process_threads_metadata(pid: int, proc_root: Union[str, Path] = "/proc") -> List[TraceEvent]:
    """
    Build `thread_name` metadata events for every thread of a process.

    Args:
        pid: Process id whose threads are listed
        proc_root: Mount point of procfs

    Returns:
        One metadata event per readable thread

    Raises:
        FileNotFoundError: the process has no task directory
    """
    threads_dir = Path(proc_root) / str(pid) / "task"
    if not threads_dir.is_dir():
        raise FileNotFoundError(f"No task directory for pid {pid}: {threads_dir}")

    events = []
    for tid_entry in sorted(threads_dir.iterdir()):
        if not tid_entry.name.isdigit():
            continue

        try:
            thread_name = (tid_entry / "comm").read_text().strip()
        except OSError as e:
            logger.debug(f"Skipping thread {tid_entry.name}: {e}")
            continue

        events.append(TraceEvent.thread_name(pid, int(tid_entry.name), thread_name))

    logger.info(f"Found {len(events)} named threads for pid {pid}")
    return events
