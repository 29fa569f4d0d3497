"""Single-instance lock for the monitor and launcher."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

import structlog

from certshare.contracts.errors import MonitorAlreadyRunning

logger = structlog.get_logger(__name__)

DEFAULT_LOCK_PATH = Path(tempfile.gettempdir()) / "certshare-monitor.lock"


def pid_alive(pid: int) -> bool:
    """Whether ``pid`` names a live process."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user.
        return True
    return True


class MonitorLock:
    """PID lock file.

    A lock whose PID is not a live process is stale and gets replaced.

    Example:
        with MonitorLock() as lock:
            run_monitor()
    """

    def __init__(self, path: Path = DEFAULT_LOCK_PATH, *, pid: int | None = None) -> None:
        self.path = path
        self.pid = os.getpid() if pid is None else pid
        self._held = False

    def _read_owner(self) -> int | None:
        try:
            return int(self.path.read_text(encoding="utf-8").strip())
        except FileNotFoundError:
            return None
        except ValueError:
            return None

    def _create(self) -> bool:
        """Create the lock file holding our PID, failing if it already exists."""
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(str(self.pid))
        return True

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            MonitorAlreadyRunning: If a live process other than us holds it.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            if self._create():
                self._held = True
                return
            owner = self._read_owner()
            if owner is not None and owner != self.pid and pid_alive(owner):
                raise MonitorAlreadyRunning(owner, str(self.path))
            logger.debug("Replacing stale monitor lock", path=str(self.path), stale_pid=owner)
            self.path.unlink(missing_ok=True)
        # Another monitor took the lock between our unlink and create.
        raise MonitorAlreadyRunning(self._read_owner() or 0, str(self.path))

    def release(self) -> None:
        """Remove the lock file if we still own it."""
        if not self._held:
            return
        self._held = False
        if self._read_owner() == self.pid:
            self.path.unlink(missing_ok=True)

    def __enter__(self) -> MonitorLock:
        self.acquire()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()
