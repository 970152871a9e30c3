"""Run lock — at most one pipeline run per machine.

The lock is a small JSON file created with ``O_EXCL``. It records the
owner's pid and creation time; a lock older than ``STALE_AFTER`` seconds
is considered abandoned and may be reclaimed by any process.
"""

from __future__ import annotations

import atexit
import json
import os
import signal
import time
from dataclasses import dataclass, field
from pathlib import Path

from principles_sync.log import get_logger
from principles_sync.models.results import Busy

log = get_logger(__name__)

STALE_AFTER = 30.0


@dataclass
class LockHandle:
    """A held run lock. Release is idempotent.

    Use as a context manager, or call :meth:`release_on_exit` to also
    release on interpreter exit and on SIGINT/SIGTERM::

        handle = RunLock(path).acquire()
        if isinstance(handle, Busy):
            return
        with handle:
            run()
    """

    path: Path
    token: str
    released: bool = False
    _previous_handlers: dict[int, object] = field(default_factory=dict, repr=False)

    def __enter__(self) -> "LockHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.release()

    def release(self) -> None:
        """Delete the lock file if it is still ours."""
        if self.released:
            return
        self.released = True
        self._restore_signal_handlers()
        # Move the file out of reach first so a concurrent reclaim cannot
        # slip a new lock in between the ownership check and the delete.
        mine = _private_name(self.path, "release")
        try:
            os.rename(self.path, mine)
        except FileNotFoundError:
            return
        owner = _read_lock(mine)
        if owner.get("token") not in (None, self.token):
            log.debug("Lock %s now belongs to another run, leaving it", self.path)
            _put_back(mine, self.path)
            return
        mine.unlink(missing_ok=True)
        log.debug("Released lock %s", self.path)

    def release_on_exit(self) -> "LockHandle":
        """Register release for normal exit and interruption signals."""
        atexit.register(self.release)
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                self._previous_handlers[signum] = signal.signal(signum, self._on_signal)
            except ValueError:
                # Not the main thread; atexit still covers normal exits.
                pass
        return self

    def _on_signal(self, signum, frame) -> None:
        previous = self._previous_handlers.get(signum)
        self.release()
        if callable(previous):
            previous(signum, frame)
            return
        raise SystemExit(128 + signum)

    def _restore_signal_handlers(self) -> None:
        for signum, previous in self._previous_handlers.items():
            try:
                signal.signal(signum, previous)
            except (ValueError, TypeError):
                pass
        self._previous_handlers.clear()


class RunLock:
    """Coordinates exclusive pipeline runs through a lock file."""

    def __init__(self, path: str | Path, stale_after: float = STALE_AFTER):
        self.path = Path(path)
        self.stale_after = stale_after

    def acquire(self) -> LockHandle | Busy:
        """Try to take the lock.

        Returns a ``LockHandle`` on success. If a fresh lock exists, returns
        ``Busy`` without touching it. A stale lock is moved aside, checked to
        still be the one judged stale, and acquisition is retried once.
        """
        handle = self._try_create()
        if handle is not None:
            return handle

        seen = self._observe()
        if seen is None:
            # Released between our create attempt and the look.
            return self._try_create() or Busy(lock_path=self.path, age_seconds=0.0)

        if seen.age <= self.stale_after:
            pid = seen.data.get("pid")
            log.debug("Lock %s held by pid %s (%.1fs old)", self.path, pid, seen.age)
            return Busy(
                lock_path=self.path,
                owner_pid=pid if isinstance(pid, int) else None,
                age_seconds=seen.age,
            )
        return self._reclaim(seen)

    def age(self) -> float | None:
        """Seconds since the current lock was created, or None if absent."""
        seen = self._observe()
        return seen.age if seen is not None else None

    def _observe(self) -> _LockState | None:
        try:
            raw = self.path.read_bytes()
            st = self.path.stat()
        except FileNotFoundError:
            return None
        data = _parse_lock(raw)
        created = data.get("created")
        if isinstance(created, (int, float)):
            age = time.time() - float(created)
        else:
            # Unreadable or half-written lock: fall back to the file's mtime.
            age = time.time() - st.st_mtime
        return _LockState(raw=raw, inode=(st.st_dev, st.st_ino), data=data, age=max(0.0, age))

    def _reclaim(self, seen: _LockState) -> LockHandle | Busy:
        aside = _private_name(self.path, "stale")
        try:
            os.rename(self.path, aside)
        except FileNotFoundError:
            # Another run got here first; race it for the fresh lock.
            return self._try_create() or Busy(lock_path=self.path, age_seconds=0.0)

        if not _same_lock(aside, seen):
            # Someone reclaimed and re-created the lock after we looked.
            _put_back(aside, self.path)
            log.debug("Lock %s was reclaimed by another run", self.path)
            return Busy(lock_path=self.path, age_seconds=0.0)

        aside.unlink(missing_ok=True)
        log.info("Reclaimed stale lock %s (%.1fs old)", self.path, seen.age)
        handle = self._try_create()
        if handle is not None:
            return handle
        # Lost the retry to another process.
        return Busy(lock_path=self.path, age_seconds=0.0)

    def _try_create(self) -> LockHandle | None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        token = f"{os.getpid()}-{time.time_ns()}"
        try:
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
        except FileExistsError:
            return None
        payload = {"pid": os.getpid(), "created": time.time(), "token": token}
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f)
            f.write("\n")
        log.debug("Acquired lock %s", self.path)
        return LockHandle(path=self.path, token=token)


@dataclass(frozen=True)
class _LockState:
    raw: bytes
    inode: tuple[int, int]
    data: dict
    age: float


def _parse_lock(raw: bytes) -> dict:
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _read_lock(path: Path) -> dict:
    try:
        return _parse_lock(path.read_bytes())
    except OSError:
        return {}


def _same_lock(path: Path, seen: _LockState) -> bool:
    try:
        st = path.stat()
        raw = path.read_bytes()
    except OSError:
        return False
    return (st.st_dev, st.st_ino) == seen.inode and raw == seen.raw


def _private_name(path: Path, purpose: str) -> Path:
    return path.with_name(f"{path.name}.{purpose}-{os.getpid()}-{time.time_ns()}")


def _put_back(aside: Path, path: Path) -> None:
    """Return a lock moved aside by mistake, unless a newer one took its place."""
    try:
        os.link(aside, path)
    except FileExistsError:
        log.debug("Lock %s was re-created meanwhile, dropping %s", path, aside.name)
    except OSError:
        # No hard links on this filesystem.
        os.rename(aside, path)
        return
    aside.unlink(missing_ok=True)
