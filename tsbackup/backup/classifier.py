"""
Run classification.

A run is Daily unless tomorrow is the first day of a month (end-of-month run)
or Monthly is forced from the command line.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional


class RunKind(Enum):
    """Backup mode, determines archive destination and retention."""

    DAILY = 'Daily'
    MONTHLY = 'Monthly'

    @property
    def label(self) -> str:
        return self.value


def is_end_of_month(now: datetime) -> bool:
    """Return True if the day after ``now`` is the 1st of a month."""
    return (now + timedelta(days=1)).day == 1


def classify_run(now: Optional[datetime] = None, force_monthly: bool = False) -> RunKind:
    """
    Decide whether this invocation is a daily or monthly run.

    Args:
        now: Current local time (default: datetime.now())
        force_monthly: True when --monthly/-M was given

    Returns:
        RunKind.MONTHLY if forced or at end of month, else RunKind.DAILY
    """
    if force_monthly:
        return RunKind.MONTHLY

    if now is None:
        now = datetime.now()

    if is_end_of_month(now):
        return RunKind.MONTHLY

    return RunKind.DAILY
