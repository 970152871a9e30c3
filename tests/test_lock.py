"""Tests for the run lock."""

import json
import os
import signal
import tempfile
import time
from pathlib import Path

import pytest

from principles_sync.models.results import Busy
from principles_sync.sync.lock import LockHandle, RunLock


def _write_lock(path: Path, created: float, pid: int = 999999, token: str = "other") -> None:
    path.write_text(json.dumps({"pid": pid, "created": created, "token": token}))


def test_acquire_creates_lock_file():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        handle = RunLock(path).acquire()

        assert isinstance(handle, LockHandle)
        data = json.loads(path.read_text())
        assert data["pid"] == os.getpid()
        assert data["token"] == handle.token
        handle.release()
        assert not path.exists()


def test_second_acquire_is_busy_and_leaves_lock_alone():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        first = RunLock(path).acquire()
        before = path.read_text()

        second = RunLock(path).acquire()

        assert isinstance(second, Busy)
        assert second.owner_pid == os.getpid()
        assert second.age_seconds < 30
        assert path.read_text() == before
        first.release()


def test_stale_lock_is_reclaimed_even_if_owner_is_gone():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 60)

        handle = RunLock(path).acquire()

        assert isinstance(handle, LockHandle)
        assert json.loads(path.read_text())["token"] == handle.token
        handle.release()


def test_fresh_lock_from_other_process_is_busy():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 5)

        result = RunLock(path).acquire()

        assert isinstance(result, Busy)
        assert result.owner_pid == 999999
        assert json.loads(path.read_text())["token"] == "other"


def test_unreadable_lock_uses_file_age():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        path.write_text("not json")
        assert isinstance(RunLock(path).acquire(), Busy)

        old = time.time() - 120
        os.utime(path, (old, old))
        handle = RunLock(path).acquire()
        assert isinstance(handle, LockHandle)
        handle.release()


def test_custom_staleness_threshold():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 5)

        handle = RunLock(path, stale_after=1).acquire()
        assert isinstance(handle, LockHandle)
        handle.release()


def test_release_is_idempotent_and_context_managed():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        with RunLock(path).acquire() as handle:
            assert path.exists()
        assert not path.exists()
        handle.release()
        assert handle.released


def test_release_keeps_a_lock_that_was_taken_over():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        handle = RunLock(path).acquire()
        _write_lock(path, created=time.time(), token="someone-else")

        handle.release()

        assert path.exists()


def test_release_on_exit_installs_and_restores_signal_handlers():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        previous = signal.getsignal(signal.SIGTERM)
        handle = RunLock(path).acquire().release_on_exit()
        try:
            assert signal.getsignal(signal.SIGTERM) == handle._on_signal
        finally:
            handle.release()
        assert signal.getsignal(signal.SIGTERM) == previous
        assert not path.exists()


def test_signal_releases_lock_before_exiting():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        original = signal.getsignal(signal.SIGTERM)
        handle = RunLock(path).acquire()
        handle._previous_handlers[signal.SIGTERM] = signal.SIG_DFL
        try:
            with pytest.raises(SystemExit) as excinfo:
                handle._on_signal(signal.SIGTERM, None)
        finally:
            signal.signal(signal.SIGTERM, original)
        assert excinfo.value.code == 128 + signal.SIGTERM
        assert not path.exists()


def test_interleaved_reclaim_leaves_a_single_holder(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 60)
        first, second = RunLock(path), RunLock(path)
        holders = []

        observe = second._observe

        def observe_then_lose_the_race():
            seen = observe()
            # The other run reclaims the stale lock after we judged it stale.
            holders.append(first.acquire())
            return seen

        monkeypatch.setattr(second, "_observe", observe_then_lose_the_race)
        result = second.acquire()

        assert isinstance(holders[0], LockHandle)
        assert isinstance(result, Busy)
        assert json.loads(path.read_text())["token"] == holders[0].token
        assert sorted(p.name for p in Path(tmpdir).iterdir()) == ["run.lock"]
        holders[0].release()
        assert not path.exists()


def test_reclaim_retries_when_stale_lock_vanishes(monkeypatch):
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 60)
        lock = RunLock(path)
        observe = lock._observe

        def observe_then_owner_cleans_up():
            seen = observe()
            path.unlink()
            return seen

        monkeypatch.setattr(lock, "_observe", observe_then_owner_cleans_up)
        handle = lock.acquire()

        assert isinstance(handle, LockHandle)
        assert json.loads(path.read_text())["token"] == handle.token
        handle.release()


def test_reclaim_and_release_leave_no_stray_files():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "run.lock"
        _write_lock(path, created=time.time() - 60)

        handle = RunLock(path).acquire()
        assert sorted(p.name for p in Path(tmpdir).iterdir()) == ["run.lock"]
        handle.release()

        assert list(Path(tmpdir).iterdir()) == []
