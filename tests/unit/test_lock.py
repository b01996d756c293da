"""
Unit tests for the run lock (tsbackup/backup/lock.py).
"""

import pytest

from tsbackup.backup.lock import RunLock, LockError, LockFileError


class TestRunLock:

    def test_acquire_and_release(self, tmp_path):
        lock = RunLock(tmp_path / 'run.lock')

        with lock:
            assert lock.locked
            assert (tmp_path / 'run.lock').exists()

        assert not lock.locked

    def test_second_lock_is_refused(self, tmp_path):
        path = tmp_path / 'run.lock'

        with RunLock(path):
            with pytest.raises(LockError, match='Another backup run'):
                RunLock(path).acquire()

    def test_lock_can_be_retaken_after_release(self, tmp_path):
        path = tmp_path / 'run.lock'

        with RunLock(path):
            pass
        with RunLock(path) as lock:
            assert lock.locked

    def test_creates_parent_directory(self, tmp_path):
        with RunLock(tmp_path / 'a' / 'b' / 'run.lock'):
            assert (tmp_path / 'a' / 'b').is_dir()

    def test_unusable_path(self, tmp_path):
        blocker = tmp_path / 'file'
        blocker.write_text('x')

        with pytest.raises(LockFileError, match='Cannot open lock file'):
            RunLock(blocker / 'run.lock').acquire()

    def test_release_without_acquire(self, tmp_path):
        RunLock(tmp_path / 'run.lock').release()

    def test_held_lock_is_not_a_file_error(self, tmp_path):
        path = tmp_path / 'run.lock'

        with RunLock(path):
            with pytest.raises(LockError) as excinfo:
                RunLock(path).acquire()

        assert not isinstance(excinfo.value, LockFileError)
