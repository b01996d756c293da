"""
Retention policy enforcement for backup artifacts.

Deletes files older than a threshold from the tsm output directories and from
the local archive directory, one (directory, pattern) pair at a time.
"""

import logging
import os
import time
from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import List, Dict, Any, Iterable, Optional

from .classifier import RunKind
from .paths import RunPaths


logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400

# Patterns swept in each location
BACKUP_DIR_PATTERNS = ('*.tsbak', '*.json')
ZIPLOG_DIR_PATTERNS = ('*.zip',)
ARCHIVE_DIR_PATTERNS = ('*.tsbak', '*.json', '*.zip', '*log.txt')


@dataclass(frozen=True)
class RetentionPolicy:
    """Age thresholds, in whole days."""

    backup_days: int = 14
    monthly_backup_days: int = 365
    ziplog_days: int = 3

    @classmethod
    def from_config(cls, config) -> 'RetentionPolicy':
        return cls(
            backup_days=config.BACKUP_RETENTION_DAYS,
            monthly_backup_days=config.MONTHLY_RETENTION_DAYS,
            ziplog_days=config.ZIPLOG_RETENTION_DAYS,
        )

    def archive_days(self, kind: RunKind) -> int:
        if kind is RunKind.MONTHLY:
            return self.monthly_backup_days
        return self.backup_days


@dataclass(frozen=True)
class SweepTarget:
    directory: Path
    pattern: str
    max_age_days: int


@dataclass
class SweepResult:
    deleted: List[Path] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


def file_age_days(mtime: float, now: float) -> int:
    """Whole days elapsed since mtime (find -mtime rounding)."""
    return int((now - mtime) // SECONDS_PER_DAY)


def sweep_directory(
    directory: Path,
    pattern: str,
    max_age_days: int,
    now: Optional[float] = None,
    exclude: Iterable[str] = ()
) -> SweepResult:
    """
    Delete old files matching a pattern from one directory.

    Only regular files directly inside ``directory`` are considered. A file is
    deleted when its whole-day age is greater than ``max_age_days``.

    Args:
        directory: Directory to sweep (not recursive)
        pattern: Glob matched against the file name
        max_age_days: Age threshold in days
        now: Reference time as a UNIX timestamp (default: time.time())
        exclude: File names that must never be deleted

    Returns:
        SweepResult with deleted paths, listing and per-file errors
    """
    result = SweepResult()
    directory = Path(directory)

    if not directory.is_dir():
        return result

    if now is None:
        now = time.time()
    excluded = set(exclude)

    try:
        with os.scandir(directory) as it:
            entries = list(it)
    except OSError as e:
        result.errors.append(f"Failed to list {directory}: {e}")
        return result

    for entry in entries:
        try:
            if not entry.is_file(follow_symlinks=False):
                continue
            if entry.name in excluded or not fnmatch(entry.name, pattern):
                continue

            age = file_age_days(entry.stat(follow_symlinks=False).st_mtime, now)
            if age <= max_age_days:
                continue
            os.unlink(entry.path)
            result.deleted.append(Path(entry.path))
            logger.debug(f"Deleted {entry.path} ({age} days old)")
        except FileNotFoundError:
            # Removed by someone else since the listing
            continue
        except OSError as e:
            result.errors.append(f"Failed to delete {entry.path}: {e}")

    return result


class RetentionSweeper:
    """
    Plans and runs the retention sweeps for one backup run.
    """

    def __init__(self, policy: RetentionPolicy):
        """
        Args:
            policy: Retention thresholds
        """
        self.policy = policy
        self.logs = []

    def plan(self, paths: RunPaths, kind: RunKind) -> List[SweepTarget]:
        """
        Build the sweep targets for a run.

        The tsm backup directory uses the daily threshold, the tsm log archive
        the ziplog threshold and the archive directory the threshold of the
        run kind.
        """
        targets = []
        for pattern in BACKUP_DIR_PATTERNS:
            targets.append(SweepTarget(paths.backup_dir, pattern, self.policy.backup_days))
        for pattern in ZIPLOG_DIR_PATTERNS:
            targets.append(SweepTarget(paths.ziplogs_dir, pattern, self.policy.ziplog_days))
        archive_days = self.policy.archive_days(kind)
        for pattern in ARCHIVE_DIR_PATTERNS:
            targets.append(SweepTarget(paths.archive_dir, pattern, archive_days))
        return targets

    def sweep(self, targets: Iterable[SweepTarget], exclude: Iterable[str] = (), now: Optional[float] = None) -> Dict[str, Any]:
        """
        Run every sweep target.

        Args:
            targets: (directory, pattern, threshold) triples
            exclude: File names protected from deletion
            now: Reference UNIX time shared by all sweeps

        Returns:
            Dict with summary of the sweep:
            {
                'deleted': List[Path],
                'errors': List[str],
                'logs': List[str]
            }
        """
        if now is None:
            now = time.time()
        exclude = frozenset(exclude)
        self.logs = []

        summary = {
            'deleted': [],
            'errors': []
        }

        for target in targets:
            result = sweep_directory(target.directory, target.pattern, target.max_age_days, now=now, exclude=exclude)
            summary['deleted'].extend(result.deleted)
            summary['errors'].extend(result.errors)
            self._log(
                f"Removed {len(result.deleted)} '{target.pattern}' files older than "
                f"{target.max_age_days} days from {target.directory}"
            )
            for error in result.errors:
                self._log(error)

        summary['logs'] = self.logs
        return summary

    def _log(self, message: str):
        self.logs.append(message)
        logger.info(message)
