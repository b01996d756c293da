"""
Command-line entry point.

Usage: tsbackup [OPTION]

Meant to be run by cron, e.g. daily at 02:00:
    0 2 * * * /usr/local/bin/tsbackup
"""

import argparse
import logging
import sys
from datetime import datetime
from typing import Optional, List

from tsbackup import configure_logging
from tsbackup.config import get_config
from tsbackup.backup.classifier import classify_run
from tsbackup.backup.executor import BackupExecutor, ExitCode, RunReport
from tsbackup.backup.lock import RunLock, LockError, LockFileError
from tsbackup.backup.paths import RunContext


logger = logging.getLogger(__name__)

OPTION_STRINGS = ('--monthly', '-M', '--help', '-H')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='tsbackup',
        description='Backup Tableau Server data and configuration.',
        add_help=False,
        allow_abbrev=False,
    )
    parser.add_argument(
        '--monthly', '-M',
        action='store_true',
        help='Perform a monthly backup instead of a daily backup'
    )
    parser.add_argument(
        '--help', '-H',
        action='store_true',
        help='Display this help message and exit'
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command-line options.

    Only exact option strings are recognized. Anything else, including
    malformed forms of known options such as ``-Mx`` or ``--monthly=yes``,
    is ignored.
    """
    argv = sys.argv[1:] if argv is None else argv
    return build_parser().parse_args([arg for arg in argv if arg in OPTION_STRINGS])


def log_report(report: RunReport):
    for outcome in report.outcomes:
        level = logging.ERROR if outcome.status == 'failed' else logging.INFO
        logger.log(level, f"{outcome.name}: {outcome.status} {outcome.message}".rstrip())
    logger.info(f"Backup finished with exit code {int(report.exit_code)}")


def main(argv: Optional[List[str]] = None, now: Optional[datetime] = None, config=None) -> int:
    """
    Run one backup.

    Args:
        argv: Arguments (default: sys.argv[1:])
        now: Run start time (default: datetime.now())
        config: Configuration class (default: selected by TSBACKUP_ENV)

    Returns:
        Process exit code
    """
    args = parse_args(argv)

    if args.help:
        # No side effects before this point
        print(build_parser().format_help(), end='')
        return ExitCode.OK

    if config is None:
        config = get_config()
    try:
        configure_logging(config)
    except OSError as e:
        print(f"tsbackup: cannot set up logging in {config.LOG_DIR}: {e}", file=sys.stderr)
        return ExitCode.ARCHIVE_DIR_FAILED

    if now is None:
        now = datetime.now()
    kind = classify_run(now, force_monthly=args.monthly)
    context = RunContext.create(kind, now=now, host=config.HOSTNAME)

    try:
        with RunLock(config.LOCK_FILE):
            report = BackupExecutor(context, config).execute()
    except LockFileError as e:
        logger.error(f"Backup not started: {e}")
        return ExitCode.ARCHIVE_DIR_FAILED
    except LockError as e:
        logger.error(f"Backup not started: {e}")
        return ExitCode.LOCKED

    log_report(report)
    return report.exit_code


if __name__ == '__main__':
    sys.exit(main())
