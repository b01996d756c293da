"""
Path resolution for a backup run.

Every artifact name is derived from the run context:
{host}-{timestamp}-{suffix}
"""

import socket
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional, Dict

from .classifier import RunKind


TIMESTAMP_FORMAT = '%Y-%m%d-%H%M'


class ArchiveDirectoryError(Exception):
    """Raised when the local archive directory cannot be created."""
    pass


class ArtifactKind(Enum):
    """Files produced by a run, keyed to their file-name suffix."""

    AUDIT_LOG = 'backup-log.txt'
    ZIPLOGS = 'ziplogs.zip'
    REPOSITORY_BACKUP = 'backup.tsbak'
    CONFIG_EXPORT = 'config.json'

    @property
    def suffix(self) -> str:
        return self.value


@dataclass(frozen=True)
class RunContext:
    """Identity of a single run; immutable once created."""

    timestamp: str
    host: str
    kind: RunKind

    @classmethod
    def create(cls, kind: RunKind, now: Optional[datetime] = None, host: Optional[str] = None) -> 'RunContext':
        """
        Build the context for a run starting now.

        Args:
            kind: Daily or Monthly
            now: Run start time (default: datetime.now())
            host: Host identifier (default: socket.gethostname())
        """
        if now is None:
            now = datetime.now()
        if not host:
            host = socket.gethostname()
        return cls(timestamp=now.strftime(TIMESTAMP_FORMAT), host=host, kind=kind)

    def artifact_name(self, artifact: ArtifactKind) -> str:
        return f"{self.host}-{self.timestamp}-{artifact.suffix}"


@dataclass(frozen=True)
class RunPaths:
    """Every file and directory a run reads or writes."""

    archive_dir: Path
    ziplogs_dir: Path
    backup_dir: Path
    audit_log: Path
    ziplogs_file: Path
    repository_backup_file: Path
    config_export_file: Path

    @property
    def ziplogs_name(self) -> str:
        return self.ziplogs_file.name

    @property
    def repository_backup_name(self) -> str:
        return self.repository_backup_file.name

    @property
    def current_names(self) -> frozenset:
        """File names created by this run; never swept or moved as leftovers."""
        return frozenset({
            self.audit_log.name,
            self.ziplogs_file.name,
            self.repository_backup_file.name,
            self.config_export_file.name,
        })

    def as_dict(self) -> Dict[str, str]:
        return {
            'ziplogs_file': str(self.ziplogs_file),
            'repositorybackup_file': str(self.repository_backup_file),
            'configbackup_file': str(self.config_export_file),
        }


def archive_dir_for(kind: RunKind, config) -> Path:
    """
    Select the archive directory for a run kind.

    Args:
        kind: Daily or Monthly
        config: Configuration with DAILY_ARCHIVE_DIR and MONTHLY_ARCHIVE_DIR

    Returns:
        Archive directory path
    """
    if kind is RunKind.MONTHLY:
        return Path(config.MONTHLY_ARCHIVE_DIR)
    return Path(config.DAILY_ARCHIVE_DIR)


def audit_log_path(context: RunContext, archive_dir: Path) -> Path:
    return Path(archive_dir) / context.artifact_name(ArtifactKind.AUDIT_LOG)


def ensure_archive_dir(path: Path) -> Path:
    """
    Create the archive directory (and parents) if needed.

    Args:
        path: Archive directory

    Returns:
        The same path

    Raises:
        ArchiveDirectoryError: If the directory cannot be created
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ArchiveDirectoryError(f"Failed to create local folder: {path} ({e})")
    return path


def resolve_paths(context: RunContext, archive_dir: Path, ziplogs_dir: Path, backup_dir: Path) -> RunPaths:
    """
    Derive every path used by a run.

    Ziplogs and repository backups are written by tsm into its own
    directories; the configuration export goes straight into the archive.

    Args:
        context: Run context
        archive_dir: Local archive directory for the run kind
        ziplogs_dir: tsm log archive directory (basefilepath.log_archive)
        backup_dir: tsm backup directory (basefilepath.backuprestore)

    Returns:
        RunPaths for the run
    """
    archive_dir = Path(archive_dir)
    ziplogs_dir = Path(ziplogs_dir)
    backup_dir = Path(backup_dir)

    return RunPaths(
        archive_dir=archive_dir,
        ziplogs_dir=ziplogs_dir,
        backup_dir=backup_dir,
        audit_log=audit_log_path(context, archive_dir),
        ziplogs_file=ziplogs_dir / context.artifact_name(ArtifactKind.ZIPLOGS),
        repository_backup_file=backup_dir / context.artifact_name(ArtifactKind.REPOSITORY_BACKUP),
        config_export_file=archive_dir / context.artifact_name(ArtifactKind.CONFIG_EXPORT),
    )
