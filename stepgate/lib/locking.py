"""
Lock management for stepgate.

Uses flock for per-task locking so independent tasks can run in parallel
while a single task is only ever driven by one process.
"""

import fcntl
import os
import time
from contextlib import contextmanager
from pathlib import Path

from stepgate.lib.errors import StepgateError


class LockTimeout(StepgateError):
    """Lock acquisition timed out."""
    pass


@contextmanager
def _acquire_lock(lock_file: Path, timeout: int, lock_name: str):
    """
    Internal helper to acquire a file lock.

    Args:
        lock_file: Path to the lock file
        timeout: Seconds to wait for lock
        lock_name: Human-readable name for error messages
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_file, 'w')
    start = time.time()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.time() - start > timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(0.5)

    try:
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        yield
    finally:
        fcntl.flock(fd, fcntl.LOCK_UN)
        fd.close()


@contextmanager
def task_lock(state_dir: Path, task_id: str, timeout: int = 10):
    """
    Acquire per-task lock, yield, release on exit.

    Lock files are never deleted: removing one while another process waits
    on it would let two processes hold "exclusive" locks on different inodes.
    """
    lock_file = state_dir / "locks" / f"{task_id}.lock"
    with _acquire_lock(lock_file, timeout, f"lock for task {task_id}"):
        yield
