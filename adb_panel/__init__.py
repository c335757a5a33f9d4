"""
ADB Panel - browse an Android device's filesystem over a persistent adb shell.
"""
from .core.models import EntryKind, ErrorKind, DirectoryEntry, ListingResponse, CommandResult, ListingResult
from .core.shell import ShellSession
from .core.device import AdbDevice
from .core.manager import DeviceManager

__all__ = [
    "EntryKind",
    "ErrorKind",
    "DirectoryEntry",
    "ListingResponse",
    "CommandResult",
    "ListingResult",
    "ShellSession",
    "AdbDevice",
    "DeviceManager",
]
