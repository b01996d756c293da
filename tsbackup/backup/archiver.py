"""
Archiver: moves run artifacts into the local archive directory.
"""

import logging
import os
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import List


logger = logging.getLogger(__name__)


class ArchiveError(Exception):
    """Raised when an artifact cannot be copied into the archive."""
    pass


class Archiver:
    """
    Copies current-run artifacts and collects leftovers from tsm directories.
    """

    def __init__(self, archive_dir: Path):
        """
        Args:
            archive_dir: Local archive directory (must exist)
        """
        self.archive_dir = Path(archive_dir)
        self.errors = []

    def copy_in(self, source: Path) -> Path:
        """
        Copy a file into the archive directory.

        A file that already lives in the archive directory is left alone.

        Args:
            source: File to copy

        Returns:
            Path of the archived copy

        Raises:
            ArchiveError: If the source is missing or the copy fails
        """
        source = Path(source)
        dest = self.archive_dir / source.name

        if not source.is_file():
            raise ArchiveError(f"Source file not found: {source}")

        if dest.exists() and os.path.samefile(source, dest):
            return dest

        try:
            shutil.copy2(source, dest)
        except OSError as e:
            raise ArchiveError(f"Failed to copy {source} to {self.archive_dir}: {e}")

        return dest

    def collect_leftovers(self, directory: Path, pattern: str, keep_name: str) -> List[Path]:
        """
        Move older matching files from a tsm directory into the archive.

        Existing archive files with the same name are replaced. Per-file
        failures are recorded in ``errors`` and do not stop the collection.

        Args:
            directory: tsm output directory (not recursive)
            pattern: Glob matched against the file name
            keep_name: Current run's file name, left in place

        Returns:
            Archive paths of the moved files
        """
        directory = Path(directory)
        moved = []

        if not directory.is_dir():
            return moved

        try:
            candidates = sorted(directory.iterdir())
        except OSError as e:
            error_msg = f"Failed to list {directory}: {e}"
            logger.warning(error_msg)
            self.errors.append(error_msg)
            return moved

        for path in candidates:
            if path.name == keep_name or not fnmatch(path.name, pattern):
                continue
            if path.is_symlink() or not path.is_file():
                continue

            dest = self.archive_dir / path.name
            try:
                shutil.move(str(path), str(dest))
                moved.append(dest)
                logger.debug(f"Moved {path} to {dest}")
            except OSError as e:
                error_msg = f"Failed to move {path} to {self.archive_dir}: {e}"
                logger.warning(error_msg)
                self.errors.append(error_msg)

        return moved
