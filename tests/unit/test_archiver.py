"""
Unit tests for the archiver (tsbackup/backup/archiver.py).
"""

from unittest.mock import patch

import pytest

from tsbackup.backup.archiver import Archiver, ArchiveError


class TestCopyIn:

    def test_copies_file_and_keeps_original(self, tmp_path, make_file):
        archive = tmp_path / 'Daily'
        archive.mkdir()
        source = make_file(tmp_path / 'backups', 'srv-backup.tsbak', content=b'backup')

        dest = Archiver(archive).copy_in(source)

        assert dest == archive / 'srv-backup.tsbak'
        assert dest.read_bytes() == b'backup'
        assert source.exists()

    def test_file_already_in_archive_is_noop(self, tmp_path, make_file):
        archive = tmp_path / 'Daily'
        config_export = make_file(archive, 'srv-config.json', content=b'{}')

        dest = Archiver(archive).copy_in(config_export)

        assert dest == config_export
        assert config_export.read_bytes() == b'{}'

    def test_missing_source(self, tmp_path):
        with pytest.raises(ArchiveError, match='Source file not found'):
            Archiver(tmp_path).copy_in(tmp_path / 'nope.tsbak')

    def test_copy_failure(self, tmp_path, make_file):
        source = make_file(tmp_path / 'src', 'x.tsbak')
        archive = tmp_path / 'Daily'
        archive.mkdir()

        with patch('tsbackup.backup.archiver.shutil.copy2', side_effect=PermissionError('denied')):
            with pytest.raises(ArchiveError, match='Failed to copy'):
                Archiver(archive).copy_in(source)


class TestCollectLeftovers:

    def test_moves_everything_but_current_file(self, tmp_path, make_file):
        tool_dir = tmp_path / 'backups'
        archive = tmp_path / 'Daily'
        archive.mkdir()
        old1 = make_file(tool_dir, 'srv-2024-0313-0200-backup.tsbak', age_days=2)
        old2 = make_file(tool_dir, 'srv-2024-0314-0200-backup.tsbak', age_days=1)
        current = make_file(tool_dir, 'srv-2024-0315-0200-backup.tsbak')
        other = make_file(tool_dir, 'srv-2024-0314-0200-config.json')

        moved = Archiver(archive).collect_leftovers(tool_dir, '*.tsbak', current.name)

        assert moved == [archive / old1.name, archive / old2.name]
        assert not old1.exists()
        assert not old2.exists()
        assert current.exists()
        assert other.exists()
        assert not (archive / current.name).exists()

    def test_replaces_existing_archive_copy(self, tmp_path, make_file):
        tool_dir = tmp_path / 'logs'
        archive = tmp_path / 'Daily'
        make_file(archive, 'srv-2024-0314-0200-ziplogs.zip', content=b'partial')
        make_file(tool_dir, 'srv-2024-0314-0200-ziplogs.zip', content=b'complete')

        moved = Archiver(archive).collect_leftovers(tool_dir, '*.zip', 'srv-2024-0315-0200-ziplogs.zip')

        assert len(moved) == 1
        assert (archive / 'srv-2024-0314-0200-ziplogs.zip').read_bytes() == b'complete'

    def test_missing_directory(self, tmp_path):
        assert Archiver(tmp_path).collect_leftovers(tmp_path / 'nope', '*.zip', 'x.zip') == []

    def test_move_failures_are_recorded(self, tmp_path, make_file):
        tool_dir = tmp_path / 'backups'
        archive = tmp_path / 'Daily'
        archive.mkdir()
        make_file(tool_dir, 'a.tsbak')
        archiver = Archiver(archive)

        with patch('tsbackup.backup.archiver.shutil.move', side_effect=OSError('disk full')):
            moved = archiver.collect_leftovers(tool_dir, '*.tsbak', 'current.tsbak')

        assert moved == []
        assert len(archiver.errors) == 1
        assert 'disk full' in archiver.errors[0]

    def test_unlistable_directory_is_recorded(self, tmp_path):
        tool_dir = tmp_path / 'backups'
        tool_dir.mkdir()
        archiver = Archiver(tmp_path)

        with patch.object(type(tool_dir), 'iterdir', side_effect=PermissionError(13, 'Permission denied')):
            moved = archiver.collect_leftovers(tool_dir, '*.tsbak', 'current.tsbak')

        assert moved == []
        assert len(archiver.errors) == 1
        assert archiver.errors[0].startswith(f"Failed to list {tool_dir}")
