"""
Core module for the ADB panel.
Contains models, configuration, the shell session, the listing protocol,
the device facade and the device manager.
"""
from .models import (
    SessionState, ConnectionState, DeviceMode, DeviceInfo, EntryKind,
    ErrorKind, DirectoryEntry, ListingResponse, CommandResult, ListingResult
)
from .errors import (
    AdbPanelError, ShellSessionError, ShellTimeoutError, AdbNotFoundError,
    map_error_text, result_code
)
from .config import (
    AdbResolver, default_resolver, configure_logging, MARKER_PREFIX, MARKER_SUFFIX,
    LISTING_SEPARATOR, LISTING_ARROW, LISTING_END,
    COMMAND_TIMEOUT, ADB_COMMAND_TIMEOUT
)
from .markers import MarkerGenerator
from .shell import ShellSession
from .listing import (
    build_listing_command, parse_listing_response, parse_ls_line,
    parse_ls_datetime, apply_symlink_types
)
from .device import AdbDevice
from .manager import DeviceManager

__all__ = [
    # Models
    "SessionState",
    "ConnectionState",
    "DeviceMode",
    "DeviceInfo",
    "EntryKind",
    "ErrorKind",
    "DirectoryEntry",
    "ListingResponse",
    "CommandResult",
    "ListingResult",
    # Errors
    "AdbPanelError",
    "ShellSessionError",
    "ShellTimeoutError",
    "AdbNotFoundError",
    "map_error_text",
    "result_code",
    # Config
    "AdbResolver",
    "default_resolver",
    "configure_logging",
    "MARKER_PREFIX",
    "MARKER_SUFFIX",
    "LISTING_SEPARATOR",
    "LISTING_ARROW",
    "LISTING_END",
    "COMMAND_TIMEOUT",
    "ADB_COMMAND_TIMEOUT",
    # Protocol
    "MarkerGenerator",
    "ShellSession",
    "build_listing_command",
    "parse_listing_response",
    "parse_ls_line",
    "parse_ls_datetime",
    "apply_symlink_types",
    # Classes
    "AdbDevice",
    "DeviceManager",
]
