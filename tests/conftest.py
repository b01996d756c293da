"""
Shared pytest fixtures for tsbackup tests.

This module provides fixtures for:
- Test configuration rooted in a temporary directory
- A fake tsm client that writes real files into temporary tool directories
- Aged file creation for retention tests
- Mock fixtures for external services (S3)
"""

import os
import time
from pathlib import Path

import pytest
import boto3
from moto import mock_aws

from tsbackup.config import Config
from tsbackup.backup.tsm import CommandResult, ConfigQueryError


class FakeTSM:
    """
    Stand-in for TSMClient.

    Produces the same files tsm would, in the configured tool directories.
    ``failures`` maps a command name (ziplogs, backup, export) to the number
    of attempts that should fail before it succeeds.
    """

    def __init__(self, ziplogs_dir: Path, backup_dir: Path):
        self.ziplogs_dir = Path(ziplogs_dir)
        self.backup_dir = Path(backup_dir)
        self.directories = {
            'basefilepath.log_archive': str(self.ziplogs_dir),
            'basefilepath.backuprestore': str(self.backup_dir),
        }
        self.failures = {}
        self.broken_keys = set()
        self.calls = []

    def get_config(self, key):
        self.calls.append(('get_config', key))
        if key in self.broken_keys:
            raise ConfigQueryError(f"tsm configuration get -k {key} failed (1): not available")
        return self.directories[key]

    def ziplogs(self, file_name, description, overwrite=False):
        cmd = ['tsm', 'maintenance', 'ziplogs', '--file', file_name, '--description', description]
        if overwrite:
            cmd.append('--overwrite')
        return self._produce('ziplogs', cmd, self.ziplogs_dir / file_name, b'PK\x05\x06' + b'\x00' * 18)

    def backup(self, file_name):
        cmd = ['tsm', 'maintenance', 'backup', '-f', file_name]
        return self._produce('backup', cmd, self.backup_dir / file_name, b'tsbak' * 64)

    def export_settings(self, path):
        cmd = ['tsm', 'settings', 'export', '-f', str(path)]
        return self._produce('export', cmd, Path(path), b'{"configEntities": {}}')

    def commands(self, name):
        return [call for call in self.calls if call[0] == name]

    def _produce(self, name, cmd, output, content):
        self.calls.append((name, cmd))
        if self.failures.get(name, 0) > 0:
            self.failures[name] -= 1
            return CommandResult(cmd, 1, stderr=f"{name} failed")
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(content)
        return CommandResult(cmd, 0, stdout='OK')


@pytest.fixture
def aws_credentials(monkeypatch):
    """Fake AWS credentials so boto3 never reaches a real account."""
    monkeypatch.setenv('AWS_ACCESS_KEY_ID', 'testing')
    monkeypatch.setenv('AWS_SECRET_ACCESS_KEY', 'testing')
    monkeypatch.setenv('AWS_SECURITY_TOKEN', 'testing')
    monkeypatch.setenv('AWS_SESSION_TOKEN', 'testing')
    monkeypatch.setenv('AWS_DEFAULT_REGION', 'us-east-1')


@pytest.fixture
def mock_s3(aws_credentials):
    """
    Mock AWS S3 service using moto.

    Creates a test bucket 'test-bucket' in us-east-1 region.
    """
    with mock_aws():
        s3 = boto3.resource('s3', region_name='us-east-1')
        s3.create_bucket(Bucket='test-bucket')
        yield s3


@pytest.fixture
def test_config(tmp_path):
    """
    Configuration with every directory under tmp_path.

    Host: tableauA, retention 14 / 365 / 3 days.
    """
    root = tmp_path / 'backups'

    class TestConfig(Config):
        BACKUP_ROOT = str(root)
        DAILY_ARCHIVE_DIR = str(root / 'Daily')
        MONTHLY_ARCHIVE_DIR = str(root / 'Monthly')
        S3_DESTINATION = 's3://test-bucket/tableau-backups/'
        AWS_REGION = 'us-east-1'
        BACKUP_RETENTION_DAYS = 14
        MONTHLY_RETENTION_DAYS = 365
        ZIPLOG_RETENTION_DAYS = 3
        TSM_EXECUTABLE = 'tsm'
        TSM_REQUEST_TIMEOUT = None
        PRODUCER_RETRIES = 1
        HOSTNAME = 'tableauA'
        LOCK_FILE = str(root / '.tsbackup.lock')
        LOG_DIR = str(tmp_path / 'logs')
        DEBUG = False

    return TestConfig


@pytest.fixture
def tool_dirs(tmp_path):
    """tsm log archive and backup directories."""
    ziplogs_dir = tmp_path / 'tableau' / 'log-archive'
    backup_dir = tmp_path / 'tableau' / 'backups'
    ziplogs_dir.mkdir(parents=True)
    backup_dir.mkdir(parents=True)
    return ziplogs_dir, backup_dir


@pytest.fixture
def fake_tsm(tool_dirs):
    ziplogs_dir, backup_dir = tool_dirs
    return FakeTSM(ziplogs_dir, backup_dir)


@pytest.fixture
def make_file():
    """
    Factory creating a file whose mtime is ``age_days`` in the past.

    Usage: make_file(directory, 'name.tsbak', age_days=20)
    """
    def _make(directory, name, age_days=0, content=b'data', now=None):
        path = Path(directory) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        mtime = (now if now is not None else time.time()) - age_days * 86400
        os.utime(path, (mtime, mtime))
        return path

    return _make
