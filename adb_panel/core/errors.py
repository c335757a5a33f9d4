"""
Exceptions and free-text error classification.

adb and the Android shell report failures as prose on stdout/stderr. The
table below turns that prose into an ErrorKind, which in turn carries a
POSIX errno for callers that speak errno.
"""
from typing import List, Tuple

from .models import ErrorKind


class AdbPanelError(Exception):
    """Base class for adb_panel errors."""


class ShellSessionError(AdbPanelError):
    """The persistent shell could not complete a command (not running, write failure, EOF)."""


class ShellTimeoutError(ShellSessionError):
    """The command's end marker did not arrive in time."""


class AdbNotFoundError(AdbPanelError):
    """No working adb executable could be located."""


# Ordered, most specific first. Matching is case-insensitive.
ERROR_TEXT_TABLE: List[Tuple[str, ErrorKind]] = [
    ("remote object", ErrorKind.NOT_FOUND),
    ("does not exist", ErrorKind.NOT_FOUND),
    ("No such file or directory", ErrorKind.NOT_FOUND),
    ("File exists", ErrorKind.ALREADY_EXISTS),
    ("Permission denied", ErrorKind.ACCESS_DENIED),
    ("insufficient permissions for device", ErrorKind.ACCESS_DENIED),
    ("No space left on device", ErrorKind.NO_SPACE),
    ("Read-only file system", ErrorKind.READ_ONLY_FILESYSTEM),
    ("Broken pipe", ErrorKind.BROKEN_PIPE),
    ("error: closed", ErrorKind.BROKEN_PIPE),
    ("Operation not permitted", ErrorKind.OPERATION_NOT_PERMITTED),
    ("Directory not empty", ErrorKind.DIRECTORY_NOT_EMPTY),
    ("Device not found", ErrorKind.DEVICE_NOT_FOUND),
    ("no devices/emulators found", ErrorKind.DEVICE_NOT_FOUND),
    ("more than one device/emulator", ErrorKind.INVALID_ARGUMENT),
]


def map_error_text(text: str) -> ErrorKind:
    """Classify adb/shell error output. Unrecognised text is GENERIC_IO, never success."""
    lowered = text.lower()
    for phrase, kind in ERROR_TEXT_TABLE:
        if phrase.lower() in lowered:
            return kind
    return ErrorKind.GENERIC_IO


def result_code(text: str) -> int:
    """errno-style code for a command's output: 0 when empty, else the mapped errno."""
    if not text:
        return 0
    return map_error_text(text).errno
