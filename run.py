#!/usr/bin/env python3
"""Cron entry point: daily backups, monthly at the end of the month or with -M"""
import sys
from tsbackup.cli import main

if __name__ == '__main__':
    sys.exit(main())
