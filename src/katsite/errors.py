"""Fatal error categories for a katsite build.

Every exception here aborts the whole run. Each class carries the process
exit code the CLI terminates with, following the BSD ``sysexits`` values so
scripts can tell configuration problems apart from I/O or plugin problems.

Recoverable plugin failures (non-zero exit, broken pipe, timeout) are never
raised; the hook dispatcher logs them and keeps going.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path


class ExitCode(IntEnum):
    """Process exit codes (see sysexits.h)."""

    OK = 0
    DATAERR = 65
    NOINPUT = 66
    SOFTWARE = 70
    OSERR = 71
    CANTCREAT = 73
    IOERR = 74
    CONFIG = 78


class KatsiteError(Exception):
    """Base class for errors that abort a build."""

    exit_code: ExitCode = ExitCode.SOFTWARE
    category: str = "internal error"


class ConfigNotFoundError(KatsiteError):
    """The configuration file does not exist or cannot be read."""

    exit_code = ExitCode.NOINPUT
    category = "unable to read config file"

    def __init__(self, path: Path, reason: str | None = None) -> None:
        self.path = path
        message = f"{path}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ConfigError(KatsiteError):
    """The configuration file exists but is not valid."""

    exit_code = ExitCode.CONFIG
    category = "unable to parse config file"


class GlobPatternError(ConfigError):
    """The configured input glob cannot be resolved."""

    category = "invalid input glob"

    def __init__(self, pattern: str, reason: str) -> None:
        self.pattern = pattern
        super().__init__(f"{pattern!r}: {reason}")


class OutputDirectoryError(KatsiteError):
    """The output directory cannot be created."""

    exit_code = ExitCode.CANTCREAT
    category = "unable to create output directory"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"{path}: {reason}")


class PluginUnavailableError(KatsiteError):
    """A plugin executable is missing or could not be spawned."""

    exit_code = ExitCode.OSERR
    category = "unable to start plugin"

    def __init__(self, plugin: str, path: Path, reason: str) -> None:
        self.plugin = plugin
        self.path = path
        super().__init__(f"{plugin} ({path}): {reason}")


class BuildIOError(KatsiteError):
    """Reading a source file or writing its output failed."""

    exit_code = ExitCode.IOERR
    category = "file I/O failed"

    def __init__(self, path: Path, action: str, reason: str) -> None:
        self.path = path
        self.action = action
        super().__init__(f"unable to {action} {path}: {reason}")


class DocumentDecodeError(KatsiteError):
    """A document is not valid UTF-8 after the markdown hook."""

    exit_code = ExitCode.DATAERR
    category = "invalid document encoding"

    def __init__(self, path: Path, reason: str) -> None:
        self.path = path
        super().__init__(f"{path}: {reason}")
