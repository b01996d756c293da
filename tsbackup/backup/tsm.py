"""
Tableau Services Manager (tsm) command wrapper.

Every call runs synchronously and returns a CommandResult; callers decide
what a non-zero exit status means for the run.
"""

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import List, Optional, Callable


logger = logging.getLogger(__name__)

# Exit statuses used when the command could not be run at all
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class TSMError(Exception):
    """Raised when a tsm query cannot be answered."""
    pass


class ConfigQueryError(TSMError):
    """Raised when `tsm configuration get` fails or returns nothing."""
    pass


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command."""

    command: List[str]
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def command_line(self) -> str:
        return ' '.join(shlex.quote(part) for part in self.command)

    @property
    def message(self) -> str:
        """Most useful captured output, for log lines."""
        return self.stderr.strip() or self.stdout.strip()


class TSMClient:
    """
    Thin wrapper around the tsm command line.

    Commands are executed without a shell and with captured output.
    """

    def __init__(self, executable: str = 'tsm', timeout: Optional[int] = None, runner: Optional[Callable] = None):
        """
        Initialize tsm client.

        Args:
            executable: tsm executable name or path
            timeout: Seconds to wait for a command; None waits for tsm's own
                request timeout
            runner: subprocess.run compatible callable (for tests)
        """
        self.executable = executable
        self.timeout = timeout
        self.runner = runner or subprocess.run

    def run(self, *args: str) -> CommandResult:
        """
        Run a tsm subcommand.

        Args:
            *args: Arguments after the executable name

        Returns:
            CommandResult, never raises for a failing command
        """
        cmd = [self.executable, *args]
        logger.debug(f"Running: {' '.join(cmd)}")

        try:
            completed = self.runner(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(cmd, EXIT_NOT_FOUND, stderr=f"tsm not found: {e}")
        except subprocess.TimeoutExpired:
            return CommandResult(cmd, EXIT_TIMEOUT, stderr=f"timed out after {self.timeout}s")
        except OSError as e:
            return CommandResult(cmd, EXIT_NOT_FOUND, stderr=f"failed to run tsm: {e}")

        result = CommandResult(
            cmd,
            completed.returncode,
            stdout=completed.stdout or '',
            stderr=completed.stderr or '',
        )
        if not result.ok:
            logger.warning(f"Command failed ({result.returncode}): {result.command_line}: {result.message}")
        return result

    def get_config(self, key: str) -> str:
        """
        Read a configuration value.

        Args:
            key: Configuration key, e.g. basefilepath.backuprestore

        Returns:
            Value with surrounding whitespace removed

        Raises:
            ConfigQueryError: If the command fails or prints nothing
        """
        result = self.run('configuration', 'get', '-k', key)
        if not result.ok:
            raise ConfigQueryError(f"tsm configuration get -k {key} failed ({result.returncode}): {result.message}")

        value = result.stdout.strip()
        if not value:
            raise ConfigQueryError(f"tsm configuration get -k {key} returned no value")

        return value

    def ziplogs(self, file_name: str, description: str, overwrite: bool = False) -> CommandResult:
        """
        Bundle server logs into the log archive directory.

        Includes PostgreSQL data, the latest dumps and netstat information.
        No --minimumdate is passed, so tsm's default window (two days) applies.

        Args:
            file_name: Output file name (no directory)
            description: Description shown on the TSM maintenance page
            overwrite: Replace an existing file with the same name
        """
        args = [
            'maintenance', 'ziplogs',
            '--with-postgresql-data',
            '--file', file_name,
            '--description', description,
            '--with-latest-dump',
            '--with-netstat-info',
        ]
        if overwrite:
            args.append('--overwrite')
        return self.run(*args)

    def backup(self, file_name: str) -> CommandResult:
        """Write a repository backup into the backuprestore directory."""
        return self.run('maintenance', 'backup', '-f', file_name)

    def export_settings(self, path: str) -> CommandResult:
        """Export the server configuration as JSON to a full path."""
        return self.run('settings', 'export', '-f', str(path))
