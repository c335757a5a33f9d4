"""
AdbDevice: one device, one persistent shell, and the file operations a
panel needs on top of it.
"""
import shlex
import subprocess
from typing import Callable, List, Optional, Sequence, Union

import structlog

from .config import AdbResolver, default_resolver, COMMAND_TIMEOUT, ADB_COMMAND_TIMEOUT
from .errors import AdbNotFoundError, ShellSessionError, ShellTimeoutError, map_error_text, result_code
from .listing import build_listing_command, listing_complete, parse_listing_response, quote_path
from .models import CommandResult, ConnectionState, ErrorKind, ListingResult
from .shell import ShellSession

logger = structlog.get_logger()

# adb prints these on success; anything else on a transfer is an error message
PULL_SUCCESS_PHRASES = ("file pulled", "files pulled", "skipped")
PUSH_SUCCESS_PHRASES = ("file pushed", "files pushed", "skipped")


def _first_line(output: str) -> str:
    lines = [line.rstrip("\r") for line in output.splitlines() if line.strip()]
    return lines[0] if lines else ""


class AdbDevice:
    """
    Lifecycle and request routing for a single device.

    Directory browsing and shell-side file operations (mkdir, rm) go through
    the persistent ShellSession; transfers (push, pull) are one-shot adb
    invocations. Expected failures come back as CommandResult/ListingResult
    values rather than exceptions.
    """

    def __init__(
        self,
        device_serial: str = "",
        resolver: Optional[AdbResolver] = None,
        session_factory: Optional[Callable[[], ShellSession]] = None,
        command_timeout: float = COMMAND_TIMEOUT,
        adb_timeout: float = ADB_COMMAND_TIMEOUT,
    ):
        self.device_serial = device_serial
        self._resolver = resolver or default_resolver
        self._session_factory = session_factory or self._default_session
        self._command_timeout = command_timeout
        self._adb_timeout = adb_timeout
        self._session: Optional[ShellSession] = None
        self._state = ConnectionState.DISCONNECTED
        self._current_path = "/"
        self._last_error = ""

    def _default_session(self) -> ShellSession:
        return ShellSession(self.device_serial, resolver=self._resolver, timeout=self._command_timeout)

    def __enter__(self) -> "AdbDevice":
        self.connect()
        return self

    def __exit__(self, *exc_info):
        self.disconnect()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._session is not None

    @property
    def current_path(self) -> str:
        return self._current_path

    @property
    def last_error(self) -> str:
        return self._last_error

    # ==================== Connection ====================

    def connect(self) -> CommandResult:
        """Start the shell and read the initial cwd. On any failure the device stays disconnected."""
        if self.is_connected:
            return CommandResult(output=self._current_path)

        self._state = ConnectionState.CONNECTING
        session = self._session_factory()

        if not session.start():
            return self._connect_failed(session, session.last_error or "Failed to start ADB shell")

        try:
            pwd = session.execute("pwd")
        except ShellSessionError as e:
            return self._connect_failed(session, str(e))

        path = _first_line(pwd)
        if not path:
            return self._connect_failed(session, "Empty response to pwd")

        self._session = session
        self._current_path = path
        self._state = ConnectionState.CONNECTED
        self._last_error = ""
        logger.info("device_connected", serial=self.device_serial, path=path)
        return CommandResult(output=path)

    def _connect_failed(self, session: ShellSession, reason: str) -> CommandResult:
        session.stop()
        self._session = None
        self._state = ConnectionState.DISCONNECTED
        self._last_error = reason
        kind = map_error_text(reason)
        logger.warning("device_connect_failed", serial=self.device_serial, reason=reason, error=kind.value)
        return CommandResult(ok=False, error=kind, message=reason)

    def disconnect(self):
        """Tear down the shell. Safe to call when already disconnected."""
        session, self._session = self._session, None
        if session is not None:
            session.stop()
            logger.info("device_disconnected", serial=self.device_serial)
        self._state = ConnectionState.DISCONNECTED

    def _ensure_connected(self) -> Optional[CommandResult]:
        """Connect on demand. Returns a failure result, or None when connected."""
        if self.is_connected:
            return None
        result = self.connect()
        if result.ok:
            return None
        return CommandResult(ok=False, error=ErrorKind.GENERIC_IO, message=result.message)

    # ==================== Command routing ====================

    def run_shell_command(self, command: str, timeout: Optional[float] = None) -> CommandResult:
        """
        Run a command through the persistent shell.

        A transport failure returns empty output with ok=False; the session is
        gone at that point and the device is marked disconnected.
        """
        if not self.is_connected:
            return CommandResult(ok=False, error=ErrorKind.GENERIC_IO, message="Not connected")
        try:
            output = self._session.execute(command, timeout=timeout)
        except ShellTimeoutError as e:
            return self._session_lost(ErrorKind.GENERIC_IO, str(e))
        except ShellSessionError as e:
            return self._session_lost(ErrorKind.BROKEN_PIPE, str(e))
        return CommandResult(output=output)

    def _session_lost(self, kind: ErrorKind, reason: str) -> CommandResult:
        self._last_error = reason
        self.disconnect()
        return CommandResult(ok=False, error=kind, message=reason)

    def run_adb_command(self, args: Union[str, Sequence[str]], timeout: Optional[float] = None) -> CommandResult:
        """
        Run a one-shot `adb [-s serial] <args>` outside the persistent shell.

        stderr is folded into stdout. A non-zero exit status is classified
        from the output text.
        """
        try:
            adb = self._resolver.resolve()
        except AdbNotFoundError as e:
            return CommandResult(ok=False, error=ErrorKind.GENERIC_IO, message=str(e))

        argv: List[str] = [adb]
        if self.device_serial:
            argv += ["-s", self.device_serial]
        argv += shlex.split(args) if isinstance(args, str) else list(args)

        logger.debug("adb_command", serial=self.device_serial, argv=argv)
        try:
            result = subprocess.run(
                argv,
                stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
                text=True, errors="replace",
                timeout=self._adb_timeout if timeout is None else timeout
            )
        except subprocess.TimeoutExpired:
            return CommandResult(ok=False, error=ErrorKind.GENERIC_IO, message=f"Timeout running adb {argv[1:]}")
        except OSError as e:
            return CommandResult(ok=False, error=ErrorKind.GENERIC_IO, message=str(e))

        output = result.stdout.rstrip("\r\n")
        if result.returncode != 0:
            kind = map_error_text(output)
            return CommandResult(output=output, ok=False, error=kind, message=output or f"adb exited with {result.returncode}")
        return CommandResult(output=output)

    # ==================== Navigation ====================

    def set_directory(self, path: str) -> bool:
        """cd in the shell. On failure the cached path is left unchanged."""
        if not self.is_connected:
            return False
        result = self.run_shell_command(f"cd {quote_path(path)} 2>/dev/null && pwd")
        new_path = _first_line(result.output) if result.ok else ""
        if not new_path:
            logger.info("set_directory_failed", serial=self.device_serial, path=path)
            return False
        self._current_path = new_path
        return True

    def get_current_working_directory(self) -> str:
        if not self.is_connected:
            return "/"
        result = self.run_shell_command("pwd")
        return _first_line(result.output) or "/"

    def list_directory(self, path: Optional[str] = None) -> ListingResult:
        """
        List `path` (default: the cached current path) in one round trip.

        The shell's cwd after the cd becomes the new cached path. A response
        missing its end token means the command did not complete and is
        reported as a failure, never as an empty directory.
        """
        if not self.is_connected:
            return ListingResult(ok=False, error=ErrorKind.GENERIC_IO, message="Not connected")

        path = path or self._current_path
        result = self.run_shell_command(build_listing_command(path))
        if not result.ok:
            return ListingResult(ok=False, error=result.error, message=result.message)
        if not listing_complete(result.output):
            logger.warning("listing_incomplete", serial=self.device_serial, path=path)
            return ListingResult(ok=False, error=ErrorKind.GENERIC_IO, message="Incomplete listing response")

        listing = parse_listing_response(result.output, fallback_path=path)
        self._current_path = listing.path
        logger.debug("directory_listed", serial=self.device_serial, path=listing.path, entries=len(listing.entries))
        return ListingResult(listing=listing)

    # ==================== File operations ====================

    def _shell_operation(self, op: str, command: str) -> CommandResult:
        """Shell-side operations print nothing on success; any output is an error message."""
        failure = self._ensure_connected()
        if failure:
            return failure
        result = self.run_shell_command(command)
        if not result.ok:
            return result
        code = result_code(result.output)
        if code:
            kind = map_error_text(result.output)
            logger.warning(
                "operation_failed", op=op, serial=self.device_serial,
                error=kind.value, errno=code, output=result.output
            )
            return CommandResult(output=result.output, ok=False, error=kind, message=result.output)
        return result

    def _transfer(self, op: str, args: List[str], success_phrases: Sequence[str]) -> CommandResult:
        failure = self._ensure_connected()
        if failure:
            return failure
        result = self.run_adb_command(args)
        if result.ok and (not result.output or any(p in result.output for p in success_phrases)):
            logger.info("transfer_done", op=op, serial=self.device_serial, args=args[1:])
            return result
        kind = result.error if not result.ok else map_error_text(result.output)
        logger.warning("operation_failed", op=op, serial=self.device_serial, error=kind.value, output=result.output)
        return CommandResult(output=result.output, ok=False, error=kind, message=result.message or result.output)

    def pull_file(self, device_path: str, local_path: str) -> CommandResult:
        return self._transfer("pull_file", ["pull", device_path, local_path], PULL_SUCCESS_PHRASES)

    def pull_directory(self, device_path: str, local_path: str) -> CommandResult:
        return self._transfer("pull_directory", ["pull", device_path, local_path], PULL_SUCCESS_PHRASES)

    def push_file(self, local_path: str, device_path: str) -> CommandResult:
        return self._transfer("push_file", ["push", local_path, device_path], PUSH_SUCCESS_PHRASES)

    def push_directory(self, local_path: str, device_path: str) -> CommandResult:
        return self._transfer("push_directory", ["push", local_path, device_path], PUSH_SUCCESS_PHRASES)

    def delete_file(self, device_path: str) -> CommandResult:
        return self._shell_operation("delete_file", f"rm {quote_path(device_path)} 2>&1")

    def delete_directory(self, device_path: str) -> CommandResult:
        return self._shell_operation("delete_directory", f"rm -rf {quote_path(device_path)} 2>&1")

    def create_directory(self, device_path: str) -> CommandResult:
        return self._shell_operation("create_directory", f"mkdir -p {quote_path(device_path)} 2>&1")
