"""
Backup executor - orchestrates the complete backup workflow.

Workflow (one named stage each, run in order):
1. prepare_archive: create the archive directory, open the audit log
2. resolve_tool_directories: ask tsm where it writes ziplogs and backups
3. ziplogs: bundle server logs
4. repository_backup: create the .tsbak repository backup
5. config_export: export the server configuration into the archive
6. retention: delete artifacts older than the retention thresholds
7. archive: copy this run's artifacts and collect leftovers into the archive
8. replicate: upload backups and configuration exports to S3

Every stage records an outcome. A fatal failure skips the remaining stages;
other failures are recorded and the run carries on.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Optional, List, Callable

from .archiver import Archiver, ArchiveError
from .audit import AuditLog, DIVIDER
from .paths import (
    RunContext, RunPaths, ArchiveDirectoryError,
    archive_dir_for, audit_log_path, ensure_archive_dir, resolve_paths
)
from .retention import RetentionPolicy, RetentionSweeper
from .storage import S3Storage, StorageError
from .tsm import TSMClient, CommandResult, ConfigQueryError


logger = logging.getLogger(__name__)


class ExitCode(IntEnum):
    OK = 0
    ARCHIVE_DIR_FAILED = 1
    CONFIG_QUERY_FAILED = 2
    PRODUCER_FAILED = 3
    REMOTE_SYNC_FAILED = 4
    LOCKED = 5
    STAGE_FAILED = 6


class StageError(Exception):
    """Raised by a stage that did not complete."""

    def __init__(self, message: str, exit_code: ExitCode, fatal: bool = False):
        super().__init__(message)
        self.exit_code = exit_code
        self.fatal = fatal


class StageSkipped(Exception):
    """Raised by a stage that has nothing to do."""
    pass


@dataclass
class StageOutcome:
    name: str
    status: str = 'running'
    message: str = ''
    exit_code: ExitCode = ExitCode.OK
    fatal: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


@dataclass
class RunReport:
    """Ordered stage outcomes of one run."""

    context: RunContext
    outcomes: List[StageOutcome] = field(default_factory=list)

    def outcome(self, name: str) -> Optional[StageOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    @property
    def failed(self) -> List[StageOutcome]:
        return [o for o in self.outcomes if o.status == 'failed']

    @property
    def succeeded(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> ExitCode:
        """Fatal failure's code, else the first failure's code, else OK."""
        failed = self.failed
        for outcome in failed:
            if outcome.fatal:
                return outcome.exit_code
        if failed:
            return failed[0].exit_code
        return ExitCode.OK


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for a run.
    """

    STAGES = (
        ('prepare_archive', '_prepare_archive'),
        ('resolve_tool_directories', '_resolve_tool_directories'),
        ('ziplogs', '_create_ziplogs'),
        ('repository_backup', '_create_repository_backup'),
        ('config_export', '_export_configuration'),
        ('retention', '_enforce_retention'),
        ('archive', '_archive_artifacts'),
        ('replicate', '_replicate'),
    )

    def __init__(self, context: RunContext, config, tsm: Optional[TSMClient] = None,
                 storage: Optional[S3Storage] = None, sweeper: Optional[RetentionSweeper] = None):
        """
        Initialize backup executor.

        Args:
            context: Run context (timestamp, host, kind)
            config: Configuration class or object
            tsm: tsm client (default: built from config)
            storage: S3 storage (default: built from config.S3_DESTINATION)
            sweeper: Retention sweeper (default: built from config)
        """
        self.context = context
        self.config = config
        self.tsm = tsm or TSMClient(config.TSM_EXECUTABLE, timeout=config.TSM_REQUEST_TIMEOUT)
        self.storage = storage
        self.sweeper = sweeper or RetentionSweeper(RetentionPolicy.from_config(config))
        self.audit = None
        self.archive_dir = None
        self.paths: Optional[RunPaths] = None
        self.report = RunReport(context)

    def execute(self) -> RunReport:
        """
        Execute every stage in order.

        Returns:
            RunReport with one outcome per stage
        """
        logger.info(f"Starting {self.context.kind.label} backup on {self.context.host} ({self.context.timestamp})")

        stopped_by = None
        for name, method_name in self.STAGES:
            outcome = StageOutcome(name=name)
            self.report.outcomes.append(outcome)

            if stopped_by is not None:
                outcome.status = 'skipped'
                outcome.message = f"skipped after {stopped_by} failed"
                continue

            outcome.started_at = datetime.now()
            try:
                outcome.message = getattr(self, method_name)() or ''
                outcome.status = 'success'
            except StageSkipped as e:
                outcome.status = 'skipped'
                outcome.message = str(e)
            except StageError as e:
                outcome.status = 'failed'
                outcome.message = str(e)
                outcome.exit_code = e.exit_code
                outcome.fatal = e.fatal
                self._log(f"{name} failed: {e}")
                if e.fatal:
                    stopped_by = name
            except OSError as e:
                outcome.status = 'failed'
                outcome.message = f"Unexpected file error: {e}"
                outcome.exit_code = ExitCode.STAGE_FAILED
                # Later stages need the archive and tool directories
                outcome.fatal = self.paths is None
                self._log(f"{name} failed: {outcome.message}")
                if outcome.fatal:
                    stopped_by = name
            finally:
                outcome.completed_at = datetime.now()

        self._finish()
        return self.report

    # Stages

    def _prepare_archive(self) -> str:
        self.archive_dir = archive_dir_for(self.context.kind, self.config)
        try:
            ensure_archive_dir(self.archive_dir)
        except ArchiveDirectoryError as e:
            raise StageError(str(e), ExitCode.ARCHIVE_DIR_FAILED, fatal=True)

        self.audit = AuditLog(audit_log_path(self.context, self.archive_dir))
        self.audit.section(f"{self.context.kind.label} backup started.")
        self.audit.line(DIVIDER)
        self.audit.heading('Input variables...')
        self.audit.variable('dest_path', self.config.S3_DESTINATION)
        self.audit.variable('local_path', self.archive_dir)
        self.audit.variable('backup_retention_days', self.config.BACKUP_RETENTION_DAYS)
        self.audit.variable('monthly_retention_days', self.config.MONTHLY_RETENTION_DAYS)
        self.audit.variable('ziplog_retention', self.config.ZIPLOG_RETENTION_DAYS)
        self.audit.blank()

        return f"Archive directory: {self.archive_dir}"

    def _resolve_tool_directories(self) -> str:
        try:
            ziplogs_dir = self.tsm.get_config(self.config.LOG_ARCHIVE_KEY)
            backup_dir = self.tsm.get_config(self.config.BACKUP_DIR_KEY)
        except ConfigQueryError as e:
            raise StageError(str(e), ExitCode.CONFIG_QUERY_FAILED, fatal=True)

        self.paths = resolve_paths(self.context, self.archive_dir, ziplogs_dir, backup_dir)

        self.audit.heading('Setting variables...')
        self.audit.variable('ts', self.context.timestamp)
        self.audit.variable('backup_server', self.context.host)
        for name, value in self.paths.as_dict().items():
            self.audit.variable(name, value)
        self.audit.blank()

        return f"ziplogs: {ziplogs_dir}, backups: {backup_dir}"

    def _create_ziplogs(self) -> str:
        self.audit.section('Creating ziplog files...')
        description = f"Logs from {self.context.kind.label} Backup"

        result = self._run_with_retry(
            lambda attempt: self.tsm.ziplogs(self.paths.ziplogs_name, description, overwrite=attempt > 0),
            self.paths.ziplogs_file,
        )
        self.audit.blank()

        if not result.ok:
            # Logs are diagnostic only; the backup itself can still proceed
            raise StageError(self._failure_message(result), ExitCode.PRODUCER_FAILED)
        return f"Created {self.paths.ziplogs_file}"

    def _create_repository_backup(self) -> str:
        self.audit.section('Creating repository backup file...')

        result = self._run_with_retry(
            lambda attempt: self.tsm.backup(self.paths.repository_backup_name),
            self.paths.repository_backup_file,
        )
        self.audit.blank()

        if not result.ok:
            raise StageError(self._failure_message(result), ExitCode.PRODUCER_FAILED, fatal=True)
        return f"Created {self.paths.repository_backup_file}"

    def _export_configuration(self) -> str:
        self.audit.section('Creating config backup file...')

        result = self._run_with_retry(
            lambda attempt: self.tsm.export_settings(str(self.paths.config_export_file)),
            self.paths.config_export_file,
        )
        self.audit.blank()

        if not result.ok:
            raise StageError(self._failure_message(result), ExitCode.PRODUCER_FAILED, fatal=True)
        return f"Created {self.paths.config_export_file}"

    def _enforce_retention(self) -> str:
        policy = self.sweeper.policy
        self.audit.section(
            f"Removing backup files older than {policy.archive_days(self.context.kind)} days "
            f"(ziplogs older than {policy.ziplog_days} days)..."
        )

        targets = self.sweeper.plan(self.paths, self.context.kind)
        summary = self.sweeper.sweep(targets, exclude=self.paths.current_names)
        for entry in summary['logs']:
            self.audit.line(entry)
        self.audit.blank()

        if summary['errors']:
            raise StageError(
                f"{len(summary['errors'])} files could not be deleted",
                ExitCode.STAGE_FAILED
            )
        return f"Removed {len(summary['deleted'])} files"

    def _archive_artifacts(self) -> str:
        self.audit.section(f"Copying backup files to archive location ({self.archive_dir})...")
        archiver = Archiver(self.archive_dir)
        errors = []

        produced = [self.paths.repository_backup_file, self.paths.config_export_file]
        if self.report.outcome('ziplogs').status == 'success':
            produced.append(self.paths.ziplogs_file)

        for artifact in produced:
            try:
                archiver.copy_in(artifact)
            except ArchiveError as e:
                self.audit.line(str(e))
                errors.append(str(e))

        # Move older backups and ziplogs out of the tsm directories, keeping this run's files
        repository_moved = archiver.collect_leftovers(
            self.paths.backup_dir, '*.tsbak', self.paths.repository_backup_name
        )
        ziplogs_moved = archiver.collect_leftovers(
            self.paths.ziplogs_dir, '*.zip', self.paths.ziplogs_name
        )
        errors.extend(archiver.errors)
        for error in archiver.errors:
            self.audit.line(error)

        self.audit.line(
            f"Moved {len(repository_moved)} repository backup files and {len(ziplogs_moved)} ziplog files "
            f"from the tableau backup repository and ziplog archive to the local_path destination."
        )
        self.audit.blank()

        if errors:
            raise StageError(f"{len(errors)} files could not be archived", ExitCode.STAGE_FAILED)
        return f"Moved {len(repository_moved)} repository backups and {len(ziplogs_moved)} ziplogs"

    def _replicate(self) -> str:
        destination = self.config.S3_DESTINATION
        if self.storage is None and not destination:
            self.audit.line('S3 destination not configured, skipping remote copy')
            raise StageSkipped('S3 destination not configured')

        try:
            storage = self.storage or S3Storage.from_url(destination, region=self.config.AWS_REGION)
            self.audit.section(f"Copying backup files to AWS S3 archive location ({storage.destination})...")
            storage.test_connection()
            result = storage.sync_directory(self.archive_dir)
        except StorageError as e:
            raise StageError(str(e), ExitCode.REMOTE_SYNC_FAILED)

        message = f"Uploaded {len(result.uploaded)} files, {len(result.skipped)} already present"
        self.audit.line(message)
        return message

    # Helpers

    def _run_with_retry(self, command: Callable[[int], CommandResult], expected_output) -> CommandResult:
        """
        Run a producer command, retrying failures.

        A zero exit status without the expected output file counts as a
        failure.

        Args:
            command: Called with the attempt number (0 for the first try)
            expected_output: File the command must produce

        Returns:
            Result of the last attempt
        """
        attempts = 1 + max(0, self.config.PRODUCER_RETRIES)
        result = None

        for attempt in range(attempts):
            result = command(attempt)
            if result.ok and not expected_output.exists():
                result = CommandResult(
                    result.command, 1,
                    stdout=result.stdout,
                    stderr=f"command succeeded but {expected_output} was not created",
                )

            self.audit.line(f"{result.command_line} -> exit {result.returncode}")
            if result.ok:
                return result

            self.audit.line(f"Attempt {attempt + 1} of {attempts} failed: {result.message}")

        return result

    def _failure_message(self, result: CommandResult) -> str:
        return f"{result.command_line} failed ({result.returncode}): {result.message}"

    def _log(self, message: str):
        if self.audit is not None:
            self.audit.line(message, level=logging.ERROR)
        else:
            logger.error(message)

    def _finish(self):
        if self.audit is None:
            return

        failed = self.report.failed
        self.audit.section(f"{self.context.kind.label} backup complete.")
        if failed:
            self.audit.line(f"Failed stages: {', '.join(o.name for o in failed)}")
            self.audit.line(f"Exit code: {int(self.report.exit_code)}")
