import os
import fcntl

from pathlib import Path

from alicebackup.log import logger
from alicebackup.errors import RunLockError


class RunLock:
    """
    Advisory lock allowing at most one run per machine.

    Differential index allocation and marker forking are not safe under
    concurrent runs, so the lock is held for the whole run. The lock is released
    by the kernel if the process dies.
    """

    def __init__(self, local_dir, machine: str):
        self.path = Path(local_dir) / f".alicebackup-{machine}.lock"
        self._fd = None

    def acquire(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_CREAT | os.O_RDWR, 0o600)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise RunLockError(f"Another backup run holds {self.path.name}.")

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug(f"Run lock {self.path} acquired.")
        return self

    def release(self):
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug(f"Run lock {self.path} released.")

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc, tb):
        self.release()
