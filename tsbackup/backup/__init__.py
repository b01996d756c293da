"""
Backup module for tsbackup.

This module handles the core backup functionality including:
- Run classification (daily or monthly)
- Path resolution and the per-run audit log
- tsm invocations (ziplogs, repository backup, settings export)
- Retention policy enforcement
- Archiving into the local archive directory
- Replication to S3
- Execution orchestration
"""

from .classifier import RunKind, classify_run
from .paths import RunContext, ArtifactKind, resolve_paths
from .audit import AuditLog
from .tsm import TSMClient, CommandResult
from .retention import RetentionPolicy, RetentionSweeper, sweep_directory
from .archiver import Archiver
from .storage import S3Storage
from .lock import RunLock
from .executor import BackupExecutor, ExitCode, RunReport

__all__ = [
    'RunKind',
    'classify_run',
    'RunContext',
    'ArtifactKind',
    'resolve_paths',
    'AuditLog',
    'TSMClient',
    'CommandResult',
    'RetentionPolicy',
    'RetentionSweeper',
    'sweep_directory',
    'Archiver',
    'S3Storage',
    'RunLock',
    'BackupExecutor',
    'ExitCode',
    'RunReport'
]
