"""
DeviceManager: device discovery and one AdbDevice per serial.
"""
import subprocess
import threading
from typing import Callable, Dict, List, Optional

import structlog

from .config import AdbResolver, default_resolver
from .device import AdbDevice
from .errors import AdbNotFoundError
from .models import CommandResult, DeviceInfo, DeviceMode

logger = structlog.get_logger()

_MODES = {
    "device": DeviceMode.ADB,
    "unauthorized": DeviceMode.UNAUTHORIZED,
    "offline": DeviceMode.OFFLINE,
    "recovery": DeviceMode.RECOVERY,
    "sideload": DeviceMode.SIDELOAD,
}

# First words of adb's own chatter in `adb devices -l` output
_BANNER_WORDS = {"List", "daemon", "starting", "adb"}


def parse_devices_output(output: str) -> List[DeviceInfo]:
    """Parse `adb devices -l` into DeviceInfo records."""
    devices: List[DeviceInfo] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[0] in _BANNER_WORDS or parts[0].startswith("*"):
            continue
        serial, state = parts[0], parts[1]
        info = DeviceInfo(serial=serial, mode=_MODES.get(state, DeviceMode.UNKNOWN))

        for part in parts[2:]:
            if ':' not in part:
                continue
            key, val = part.split(':', 1)
            if key == "product":
                info.product = val
            elif key == "model":
                info.model = val
            elif key == "device":
                info.device = val
            elif key == "transport_id":
                info.transport_id = val
            elif key == "usb":
                info.usb = part

        devices.append(info)
    return devices


class DeviceManager:
    """
    Keeps one independent AdbDevice per serial.

    The registry is locked; the devices themselves share nothing but the
    resolver, so separate threads may drive separate devices.
    """

    def __init__(
        self,
        resolver: Optional[AdbResolver] = None,
        device_factory: Optional[Callable[[str], AdbDevice]] = None,
        timeout: float = 10.0,
    ):
        self._resolver = resolver or default_resolver
        self._device_factory = device_factory or (lambda serial: AdbDevice(serial, resolver=self._resolver))
        self._timeout = timeout
        self._devices: Dict[str, AdbDevice] = {}
        self._lock = threading.Lock()

    def _adb(self, *args: str) -> Optional[str]:
        """Run a global adb command; None if adb is missing or hangs."""
        try:
            adb = self._resolver.resolve()
        except AdbNotFoundError as e:
            logger.warning("adb_unavailable", error=str(e))
            return None
        try:
            result = subprocess.run(
                [adb, *args],
                capture_output=True, text=True, errors="replace", timeout=self._timeout
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.warning("adb_command_failed", args=args, error=str(e))
            return None
        return result.stdout

    def list_devices(self, with_names: bool = False) -> List[DeviceInfo]:
        """Devices adb knows about. `with_names` also asks each online device for its friendly name."""
        output = self._adb("devices", "-l")
        if not output:
            return []
        devices = parse_devices_output(output)
        if with_names:
            for info in devices:
                if info.mode == DeviceMode.ADB:
                    info.name = self.friendly_name(info.serial) or None
        return devices

    def friendly_name(self, serial: str) -> str:
        """The user-visible device name from settings, or "" when unset."""
        output = self._adb("-s", serial, "shell", "settings", "get", "global", "device_name")
        name = (output or "").strip()
        if name == "null":
            return ""
        return name

    def open(self, serial: str) -> CommandResult:
        """Connect to `serial`, reusing an existing connected device."""
        with self._lock:
            device = self._devices.get(serial)
            if device is None:
                device = self._device_factory(serial)
                self._devices[serial] = device

        result = device.connect()
        if not result.ok:
            with self._lock:
                if self._devices.get(serial) is device:
                    del self._devices[serial]
        return result

    def get(self, serial: str) -> Optional[AdbDevice]:
        with self._lock:
            return self._devices.get(serial)

    def serials(self) -> List[str]:
        with self._lock:
            return list(self._devices)

    def close(self, serial: str) -> bool:
        """Disconnect and forget `serial`. False if it was not open."""
        with self._lock:
            device = self._devices.pop(serial, None)
        if device is None:
            return False
        device.disconnect()
        return True

    def close_all(self) -> int:
        with self._lock:
            devices = list(self._devices.values())
            self._devices.clear()
        for device in devices:
            device.disconnect()
        return len(devices)
