"""
Strace Runner
=============
Runs strace around a command (or attached to a pid) and captures its output
to a temporary trace file.

Author: strace-perfetto Project
Date: October 16, 2026
"""

import os
import signal
import logging
import tempfile
import subprocess
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# -f    trace child processes
# -T    time spent in each syscall
# -ttt  timestamp of each event (microseconds)
# -yy   print paths/socket details for fds
# -qq   don't display process exit status
DEFAULT_STRACE_ARGS = ["-f", "-T", "-ttt", "-yy", "-qq"]


class StraceNotFoundError(FileNotFoundError):
    """The strace executable is not installed or not on PATH."""


def build_user_args(command: Sequence[str], syscalls: Optional[str] = None) -> Tuple[List[str], Optional[int]]:
    """
    Translate the positional command line into strace arguments.

    A single numeric argument means "attach to this pid"; anything else is
    the command to spawn under the tracer.

    Args:
        command: Positional arguments given by the user
        syscalls: Optional `-e` filter expression

    Returns:
        (strace user arguments, attached pid or None)
    """
    user_args = []
    if syscalls:
        user_args.extend(["-e", syscalls])

    command = list(command)
    pid = None
    if len(command) == 1 and command[0].isdigit():
        pid = int(command[0])
        user_args.extend(["-p", command[0]])
        command = []

    user_args.extend(command)
    return user_args, pid


@contextmanager
def trace_to_file(prefix: str = "stracefile") -> Iterator[Path]:
    """Yield a temporary trace file path that is removed afterwards."""
    fd, name = tempfile.mkstemp(prefix=prefix)
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)


class StraceRunner:
    """Launches strace with a timeout."""

    def __init__(self, default_args: Optional[Sequence[str]] = None,
                 user_args: Sequence[str] = (),
                 timeout: float = 10,
                 executable: str = "strace"):
        """
        Initialize strace runner.

        Args:
            default_args: Output-shaping flags (defaults to DEFAULT_STRACE_ARGS)
            user_args: Filter, attach and command arguments
            timeout: Seconds to trace before interrupting strace
            executable: strace binary to run
        """
        self.default_args = list(default_args) if default_args is not None else list(DEFAULT_STRACE_ARGS)
        self.user_args = list(user_args)
        self.timeout = timeout
        self.executable = executable

    def build_command(self, output_file: Path) -> List[str]:
        return [self.executable, *self.default_args, "-o", str(output_file), *self.user_args]

    def run(self, output_file: Path) -> int:
        """
        Trace until the target exits or the timeout expires.

        On timeout strace receives SIGINT, which makes it detach from an
        attached process; it is killed if it does not exit shortly after.

        Args:
            output_file: File strace writes its trace to

        Returns:
            strace exit code
        """
        command = self.build_command(output_file)
        logger.info(f"Running strace (timeout {self.timeout}s)")
        logger.debug(f"Command: {' '.join(command)}")

        try:
            process = subprocess.Popen(command)
        except FileNotFoundError as e:
            raise StraceNotFoundError(f"strace executable not found: {self.executable}") from e

        try:
            returncode = process.wait(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            logger.info(f"Timeout of {self.timeout}s reached, stopping strace")
            process.send_signal(signal.SIGINT)
            try:
                returncode = process.wait(timeout=5)
            except subprocess.TimeoutExpired:
                logger.warning("strace did not stop after SIGINT, killing it")
                process.kill()
                returncode = process.wait()

        if returncode != 0:
            logger.warning(f"strace exited with code {returncode}")
        return returncode
