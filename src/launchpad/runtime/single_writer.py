import fcntl
import os
from typing import IO, Optional


class SingleWriterError(RuntimeError):
    pass


class SingleWriterLock:
    """
    Enforces a single writer process per ledger database.
    Uses an exclusive, non-blocking filesystem lock next to the DB file.
    """

    def __init__(self, path: str):
        self.path = path
        self._fd: Optional[IO[str]] = None

    @classmethod
    def for_db(cls, db_path: str) -> "SingleWriterLock":
        return cls(f"{db_path}.writer.lock")

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fd = open(self.path, "w")
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            fd.close()
            raise SingleWriterError(f"single-writer lock already held: {self.path}")
        fd.write(str(os.getpid()))
        fd.flush()
        self._fd = fd

    def release(self) -> None:
        if self._fd:
            try:
                fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                self._fd.close()
                self._fd = None

    def __enter__(self) -> "SingleWriterLock":
        self.acquire()
        return self

    def __exit__(self, *exc: object) -> None:
        self.release()
