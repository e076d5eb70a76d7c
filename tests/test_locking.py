"""Tests for stepgate.lib.locking module."""

import pytest

from stepgate.lib.locking import LockTimeout, task_lock


class TestTaskLock:
    """Tests for per-task locks."""

    def test_creates_lock_file(self, tmp_path):
        with task_lock(tmp_path, "t1"):
            assert (tmp_path / "locks" / "t1.lock").exists()
        # Lock files stay behind on purpose
        assert (tmp_path / "locks" / "t1.lock").exists()

    def test_held_lock_times_out(self, tmp_path):
        with task_lock(tmp_path, "t1"):
            with pytest.raises(LockTimeout):
                with task_lock(tmp_path, "t1", timeout=0):
                    pass

    def test_different_tasks_independent(self, tmp_path):
        with task_lock(tmp_path, "t1"):
            with task_lock(tmp_path, "t2", timeout=0):
                pass

    def test_released_after_exit(self, tmp_path):
        with task_lock(tmp_path, "t1"):
            pass
        with task_lock(tmp_path, "t1", timeout=0):
            pass
