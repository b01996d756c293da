"""
Per-host run lock.

tsm output directories and the archive directory are shared between runs;
holding an exclusive advisory lock for the whole run keeps two invocations
from sweeping and moving the same files.
"""

import fcntl
import os
from pathlib import Path


class LockError(Exception):
    """Raised when the run lock is held by another process."""
    pass


class LockFileError(LockError):
    """Raised when the lock file or its directory cannot be created or opened."""
    pass


class RunLock:
    """
    Non-blocking exclusive flock on a lock file, used as a context manager.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._file = None

    @property
    def locked(self) -> bool:
        return self._file is not None

    def acquire(self):
        """
        Take the lock.

        Raises:
            LockFileError: If the lock file cannot be created or opened
            LockError: If another run holds it
        """
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            lock_file = open(self.path, 'a+')
        except OSError as e:
            raise LockFileError(f"Cannot open lock file {self.path}: {e}")

        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            lock_file.close()
            raise LockError(f"Another backup run holds {self.path}")

        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        self._file = lock_file

    def release(self):
        if self._file is None:
            return
        try:
            fcntl.flock(self._file.fileno(), fcntl.LOCK_UN)
        finally:
            self._file.close()
            self._file = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
