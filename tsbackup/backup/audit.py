"""
Per-run audit log.

A plain-text, append-only file kept next to the run's artifacts in the archive
directory. Old audit logs are removed by the retention sweep like any other
artifact.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any


logger = logging.getLogger(__name__)

DIVIDER = '*' * 48
SUB_DIVIDER = '*' * 19


class AuditLog:
    """
    Append-only audit log for one backup run.

    Writes never raise: a failed append is reported through the Python logger
    and the run carries on.
    """

    def __init__(self, path: Path):
        """
        Args:
            path: Log file path (parent directory must already exist)
        """
        self.path = Path(path)
        self.lines_written = 0

    def section(self, message: str):
        """Write a divider, a timestamp line and a message."""
        logger.info(message)
        self._append([DIVIDER, self._timestamp(), message])

    def heading(self, title: str):
        """Write a block title followed by a short divider."""
        logger.info(title)
        self._append([title, SUB_DIVIDER])

    def line(self, message: str = '', level: int = logging.INFO):
        if message:
            logger.log(level, message)
        self._append([message])

    def variable(self, name: str, value: Any):
        text = f"{name} = '{'' if value is None else value}'"
        logger.info(text)
        self._append([text])

    def blank(self):
        self._append([''])

    def _timestamp(self) -> str:
        # Same shape as the output of `date`
        return datetime.now().astimezone().strftime('%a %b %d %H:%M:%S %Z %Y')

    def _append(self, lines):
        try:
            with open(self.path, 'a', encoding='utf-8') as f:
                for text in lines:
                    f.write(f"{text}\n")
            self.lines_written += len(lines)
        except OSError as e:
            logger.warning(f"Failed to write audit log {self.path}: {e}")
