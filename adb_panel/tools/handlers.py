"""
MCP tool definitions for the ADB panel.

Each tool is a thin text front end over DeviceManager/AdbDevice: it stands in
for a file-manager panel, so listings get a synthesized ".." row here and
nowhere below.
"""
from typing import List, Optional, Union

from mcp.server.fastmcp import FastMCP

from ..core.device import AdbDevice
from ..core.manager import DeviceManager
from ..core.models import CommandResult, DeviceMode, DirectoryEntry, EntryKind

# Global device manager instance
_manager = DeviceManager()

_KIND_MARKS = {
    EntryKind.FILE: "-",
    EntryKind.DIRECTORY: "d",
    EntryKind.SYMLINK_TO_DIRECTORY: "L",
    EntryKind.SYMLINK_TO_FILE: "l",
    EntryKind.BROKEN_SYMLINK: "!",
}


def set_manager(manager: DeviceManager):
    """Swap the manager the tools talk to."""
    global _manager
    _manager = manager


def _lookup(device_serial: str) -> Union[AdbDevice, str]:
    device = _manager.get(device_serial)
    if device is None:
        return (f"STATUS: ERROR\nDevice: {device_serial}\nReason: Not connected.\n"
                f"Action: Use connect_device('{device_serial}') first.")
    return device


def _result_text(result: CommandResult, device_serial: str, path: str, done: str) -> str:
    if result.ok:
        return f"STATUS: {done}\nDevice: {device_serial}\nPath: {path}"
    return (f"STATUS: ERROR\nDevice: {device_serial}\nPath: {path}\n"
            f"Error: {result.error.value if result.error else 'generic_io'} (errno {result.code})\n"
            f"Reason: {result.message or '(no output)'}")


def format_entry(entry: DirectoryEntry) -> str:
    """One panel row: kind, permissions, links, owner, group, size, mtime, name."""
    row = (f"{_KIND_MARKS[entry.kind]} {entry.permissions or '?':<10} {entry.links:>3} "
           f"{entry.owner:<8} {entry.group:<8} {entry.size:>12} "
           f"{entry.mtime:%Y-%m-%d %H:%M} {entry.name}")
    if entry.target:
        row += f" -> {entry.target}"
    return row


def format_listing(path: str, entries: List[DirectoryEntry], max_entries: Optional[int] = None) -> str:
    lines = [f"PATH: {path}", f"ENTRIES: {len(entries)}", "", "d .."]
    shown = entries[:max_entries] if max_entries is not None else entries
    lines.extend(format_entry(entry) for entry in shown)
    if len(shown) < len(entries):
        lines.append(f"... ({len(entries) - len(shown)} more entries truncated)")
    return "\n".join(lines)


def register_tools(mcp: FastMCP):
    """Register all MCP tools with the server."""

    # ==================== TOOL 1: list_devices ====================
    @mcp.tool()
    def list_devices() -> str:
        """
        List Android devices known to adb.

        Returns serial, state, model and the user-visible device name for
        each device, plus which ones already have an open connection.
        """
        devices = _manager.list_devices(with_names=True)
        if not devices:
            return ("STATUS: NO_DEVICES\nNo ADB devices found.\n"
                    "Action: Connect a device and enable USB debugging.")

        open_serials = set(_manager.serials())
        lines = [f"STATUS: FOUND_{len(devices)}_DEVICE(S)", ""]
        for d in devices:
            status_str = f"  {d.serial}: {d.mode.value.upper()} - {d.display_name}"
            if d.usb:
                status_str += f" [{d.usb}]"
            if d.serial in open_serials:
                status_str += " (connected)"
            if d.mode == DeviceMode.UNAUTHORIZED:
                status_str += " - Accept USB debugging prompt on device"
            elif d.mode == DeviceMode.OFFLINE:
                status_str += " - Reconnect device"
            lines.append(status_str)
        return "\n".join(lines)

    # ==================== TOOL 2: connect_device ====================
    @mcp.tool()
    def connect_device(device_serial: str) -> str:
        """
        Open a persistent shell on a device and report its starting directory.

        Args:
            device_serial: Device serial number (from list_devices)
        """
        result = _manager.open(device_serial)
        if not result.ok:
            return (f"STATUS: ERROR\nDevice: {device_serial}\n"
                    f"Error: {result.error.value if result.error else 'generic_io'}\n"
                    f"Reason: {result.message}")
        return f"STATUS: CONNECTED\nDevice: {device_serial}\nPath: {result.output}"

    # ==================== TOOL 3: disconnect_device ====================
    @mcp.tool()
    def disconnect_device(device_serial: Optional[str] = None) -> str:
        """
        Close the shell for one device, or for ALL devices when omitted.
        """
        if not device_serial or device_serial.lower() == "all":
            count = _manager.close_all()
            return f"STATUS: DISCONNECTED\nClosed {count} device(s)."
        if not _manager.close(device_serial):
            return f"STATUS: ERROR\nDevice: {device_serial}\nReason: Not connected."
        return f"STATUS: DISCONNECTED\nDevice: {device_serial}"

    # ==================== TOOL 4: list_directory ====================
    @mcp.tool()
    def list_directory(device_serial: str, path: Optional[str] = None, max_entries: Optional[int] = None) -> str:
        """
        List a directory on the device (one round trip; symlinks resolved).

        Args:
            device_serial: Connected device
            path: Directory to list; defaults to the current directory.
                  If it cannot be entered, the current directory is listed.
            max_entries: Limit the number of rows returned

        Row kinds: d=directory, -=file, L=symlink to directory,
        l=symlink to file, !=broken symlink.
        """
        device = _lookup(device_serial)
        if isinstance(device, str):
            return device
        result = device.list_directory(path)
        if not result.ok:
            return (f"STATUS: ERROR\nDevice: {device_serial}\nPath: {path or device.current_path}\n"
                    f"Reason: {result.message}")
        return "STATUS: SUCCESS\n" + format_listing(result.listing.path, result.entries, max_entries)

    # ==================== TOOL 5: change_directory ====================
    @mcp.tool()
    def change_directory(device_serial: str, path: str) -> str:
        """
        Change the device's current directory. Relative paths resolve against it.
        """
        device = _lookup(device_serial)
        if isinstance(device, str):
            return device
        if not device.set_directory(path):
            return (f"STATUS: ERROR\nDevice: {device_serial}\nPath: {path}\n"
                    f"Reason: Cannot enter directory.\nCurrent: {device.current_path}")
        return f"STATUS: SUCCESS\nDevice: {device_serial}\nPath: {device.current_path}"

    # ==================== TOOL 6: make_directory ====================
    @mcp.tool()
    def make_directory(device_serial: str, path: str) -> str:
        """
        Create a directory (and missing parents) on the device.
        """
        device = _lookup(device_serial)
        if isinstance(device, str):
            return device
        return _result_text(device.create_directory(path), device_serial, path, "CREATED")

    # ==================== TOOL 7: delete_path ====================
    @mcp.tool()
    def delete_path(device_serial: str, path: str, recursive: bool = False) -> str:
        """
        Delete a file, or a directory tree when recursive=True.
        """
        device = _lookup(device_serial)
        if isinstance(device, str):
            return device
        if recursive:
            result = device.delete_directory(path)
        else:
            result = device.delete_file(path)
        return _result_text(result, device_serial, path, "DELETED")

    # ==================== TOOL 8: file_transfer ====================
    @mcp.tool()
    def file_transfer(action: str, device_serial: str, remote_path: str, local_path: str,
                      directory: bool = False) -> str:
        """
        Copy between host and device with adb push/pull.

        Args:
            action: "pull" (device -> host) or "push" (host -> device)
            device_serial: Connected device
            remote_path: Path on the device
            local_path: Path on the host
            directory: True to copy a whole directory
        """
        device = _lookup(device_serial)
        if isinstance(device, str):
            return device
        action = action.lower()
        if action == "pull":
            op = device.pull_directory if directory else device.pull_file
            result = op(remote_path, local_path)
        elif action == "push":
            op = device.push_directory if directory else device.push_file
            result = op(local_path, remote_path)
        else:
            return f"STATUS: ERROR\nReason: Unknown action '{action}'. Use: pull, push"
        return _result_text(result, device_serial, remote_path, "TRANSFERRED")
