"""Advisory run lock: one osync run per working tree at a time."""

import fcntl
import os
from contextlib import contextmanager
from pathlib import Path

from ..errors import LockHeldError
from .logging import timestamp, vlog


@contextmanager
def run_lock(lock_path: Path):
    """Hold an exclusive, non-blocking flock on lock_path.

    The file records the holder's pid and start time for humans; the lock
    itself is the flock, so a stale file left by a killed run is harmless.
    """
    fd = os.open(str(lock_path), os.O_CREAT | os.O_RDWR | getattr(os, "O_CLOEXEC", 0), 0o644)
    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            holder = _read_holder(fd)
            raise LockHeldError(
                f"another osync run holds {lock_path}{f' ({holder})' if holder else ''}"
            ) from None
        os.ftruncate(fd, 0)
        os.write(fd, f"pid={os.getpid()} started={timestamp()}\n".encode())
        vlog(f"[lock] acquired {lock_path}")
        try:
            yield
        finally:
            os.ftruncate(fd, 0)
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)


def _read_holder(fd: int) -> str:
    try:
        os.lseek(fd, 0, os.SEEK_SET)
        return os.read(fd, 256).decode("utf-8", "replace").strip()
    except OSError:
        return ""
