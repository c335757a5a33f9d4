"""
Data models and enums for the ADB panel.
"""
import errno
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional


class SessionState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class DeviceMode(Enum):
    ADB = "adb"
    RECOVERY = "recovery"
    SIDELOAD = "sideload"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK_TO_DIRECTORY = "symlink_to_directory"
    SYMLINK_TO_FILE = "symlink_to_file"
    BROKEN_SYMLINK = "broken_symlink"


class ErrorKind(Enum):
    """Normalized failure categories, each backed by a POSIX errno."""
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    ACCESS_DENIED = "access_denied"
    NO_SPACE = "no_space"
    READ_ONLY_FILESYSTEM = "read_only_filesystem"
    BROKEN_PIPE = "broken_pipe"
    OPERATION_NOT_PERMITTED = "operation_not_permitted"
    DIRECTORY_NOT_EMPTY = "directory_not_empty"
    DEVICE_NOT_FOUND = "device_not_found"
    INVALID_ARGUMENT = "invalid_argument"
    GENERIC_IO = "generic_io"

    @property
    def errno(self) -> int:
        return _ERRNO_BY_KIND[self]


_ERRNO_BY_KIND = {
    ErrorKind.NOT_FOUND: errno.ENOENT,
    ErrorKind.ALREADY_EXISTS: errno.EEXIST,
    ErrorKind.ACCESS_DENIED: errno.EACCES,
    ErrorKind.NO_SPACE: errno.ENOSPC,
    ErrorKind.READ_ONLY_FILESYSTEM: errno.EROFS,
    ErrorKind.BROKEN_PIPE: errno.EPIPE,
    ErrorKind.OPERATION_NOT_PERMITTED: errno.EPERM,
    ErrorKind.DIRECTORY_NOT_EMPTY: errno.ENOTEMPTY,
    ErrorKind.DEVICE_NOT_FOUND: errno.ENODEV,
    ErrorKind.INVALID_ARGUMENT: errno.EINVAL,
    ErrorKind.GENERIC_IO: errno.EIO,
}


@dataclass
class DeviceInfo:
    """Information about a connected Android device."""
    serial: str
    mode: DeviceMode
    product: Optional[str] = None
    model: Optional[str] = None
    device: Optional[str] = None
    transport_id: Optional[str] = None
    usb: Optional[str] = None
    name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.model or self.serial


@dataclass
class DirectoryEntry:
    """One row of a remote `ls -la`, with symlink kind resolved."""
    name: str
    kind: EntryKind = EntryKind.FILE
    size: int = 0
    owner: str = ""
    group: str = ""
    links: int = 1
    mtime: datetime = field(default_factory=datetime.now)
    target: Optional[str] = None
    permissions: str = ""

    @property
    def is_symlink(self) -> bool:
        return self.kind in (
            EntryKind.SYMLINK_TO_DIRECTORY,
            EntryKind.SYMLINK_TO_FILE,
            EntryKind.BROKEN_SYMLINK,
        )

    @property
    def is_directory(self) -> bool:
        return self.kind in (EntryKind.DIRECTORY, EntryKind.SYMLINK_TO_DIRECTORY)


@dataclass
class ListingResponse:
    """Shell cwd after the cd attempt, plus entries in ls order."""
    path: str
    entries: List[DirectoryEntry] = field(default_factory=list)


@dataclass
class CommandResult:
    """
    Outcome of a shell or adb command.

    `ok` separates "ran and printed nothing" from "the transport failed",
    which an empty string alone cannot.
    """
    output: str = ""
    ok: bool = True
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def code(self) -> int:
        """0 on success, otherwise the errno of `error`."""
        if self.ok:
            return 0
        return (self.error or ErrorKind.GENERIC_IO).errno


@dataclass
class ListingResult:
    """Outcome of a directory listing request."""
    listing: Optional[ListingResponse] = None
    ok: bool = True
    error: Optional[ErrorKind] = None
    message: str = ""

    @property
    def entries(self) -> List[DirectoryEntry]:
        return self.listing.entries if self.listing else []
