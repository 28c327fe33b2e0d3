"""Tests for FileLockManager."""

import os

import pytest

from cronspine.core.errors import LockError
from cronspine.scheduling import FileLockManager


class TestTryLock:
    def test_acquire_creates_file_with_pid(self, lock_manager):
        assert lock_manager.try_lock("nightly") is True
        path = lock_manager.lock_path("nightly")
        assert path.exists()
        assert lock_manager.get_lock_holder("nightly") == os.getpid()

    def test_second_acquire_fails_without_side_effects(self, lock_manager):
        assert lock_manager.try_lock("nightly") is True
        path = lock_manager.lock_path("nightly")
        before = path.read_text()

        assert lock_manager.try_lock("nightly") is False
        assert path.read_text() == before

    def test_locks_are_per_job(self, lock_manager):
        assert lock_manager.try_lock("a") is True
        assert lock_manager.try_lock("b") is True

    def test_lock_dir_created_on_demand(self, tmp_path):
        manager = FileLockManager(tmp_path / "nested" / "locks")
        assert manager.try_lock("a") is True

    def test_unusable_lock_dir_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")
        manager = FileLockManager(blocker / "locks")
        with pytest.raises(LockError):
            manager.try_lock("a")

    def test_failed_pid_write_leaves_no_lock(self, lock_manager, monkeypatch):
        def disk_full(fd, data):
            raise OSError(28, "No space left on device")

        with monkeypatch.context() as patch:
            patch.setattr(os, "write", disk_full)
            with pytest.raises(LockError) as info:
                lock_manager.try_lock("nightly")

        assert info.value.context.job_id == "nightly"
        assert not lock_manager.is_locked("nightly")
        assert lock_manager.try_lock("nightly") is True


class TestUnlock:
    def test_unlock_removes_file(self, lock_manager):
        lock_manager.try_lock("a")
        assert lock_manager.unlock("a") is True
        assert not lock_manager.is_locked("a")

    def test_unlock_is_idempotent(self, lock_manager):
        lock_manager.try_lock("a")
        assert lock_manager.unlock("a") is True
        assert lock_manager.unlock("a") is False
        assert lock_manager.unlock("never-locked") is False

    def test_relock_after_unlock(self, lock_manager):
        lock_manager.try_lock("a")
        lock_manager.unlock("a")
        assert lock_manager.try_lock("a") is True


class TestLockPath:
    def test_deterministic(self, lock_dir):
        first = FileLockManager(lock_dir, namespace="w").lock_path("job")
        second = FileLockManager(lock_dir, namespace="w").lock_path("job")
        assert first == second
        assert first.parent == lock_dir
        assert first.name.startswith("w-job-")
        assert first.suffix == ".lock"

    def test_namespace_separates_workers(self, lock_dir):
        a = FileLockManager(lock_dir, namespace="alpha")
        b = FileLockManager(lock_dir, namespace="beta")
        assert a.lock_path("job") != b.lock_path("job")
        assert a.try_lock("job") is True
        assert b.try_lock("job") is True

    def test_slug_collisions_get_distinct_paths(self, lock_manager):
        assert lock_manager.lock_path("a/b") != lock_manager.lock_path("a b")

    def test_unsafe_ids_stay_inside_lock_dir(self, lock_manager, lock_dir):
        path = lock_manager.lock_path("../../etc/passwd")
        assert path.parent == lock_dir


class TestMaintenance:
    def test_list_active_locks(self, lock_manager):
        lock_manager.try_lock("a")
        lock_manager.try_lock("b")
        locks = lock_manager.list_active_locks()
        assert len(locks) == 2
        assert {lock["holder_pid"] for lock in locks} == {os.getpid()}
        assert all(lock["locked_at"] for lock in locks)

    def test_list_ignores_other_namespaces(self, lock_dir):
        FileLockManager(lock_dir, namespace="other").try_lock("a")
        assert FileLockManager(lock_dir, namespace="mine").list_active_locks() == []

    def test_list_on_missing_dir(self, tmp_path):
        assert FileLockManager(tmp_path / "missing").list_active_locks() == []

    def test_force_release_all(self, lock_manager):
        lock_manager.try_lock("a")
        lock_manager.try_lock("b")
        assert lock_manager.force_release_all() == 2
        assert lock_manager.list_active_locks() == []

    def test_get_lock_holder_when_unlocked(self, lock_manager):
        assert lock_manager.get_lock_holder("a") is None
