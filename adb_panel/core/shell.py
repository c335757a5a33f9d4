"""
Persistent `adb shell` session with marker-framed command/response.

The child only offers an unframed byte stream, so every command is sent as
`<command>; echo <marker>` and output is read until the marker shows up.
"""
import contextlib
import os
import re
import subprocess
import threading
from typing import List, Optional

import pexpect
import structlog
from pexpect.popen_spawn import PopenSpawn

from .config import (
    AdbResolver, default_resolver, SHELL_ENV, COMMAND_TIMEOUT,
    START_GRACE_PERIOD, STOP_WAIT_TIMEOUT, READ_CHUNK_SIZE
)
from .errors import AdbNotFoundError, ShellSessionError, ShellTimeoutError
from .markers import MarkerGenerator
from .models import SessionState

logger = structlog.get_logger()


class ShellSession:
    """
    One long-lived shell process on one device.

    Commands run strictly one at a time. `execute()` serialises callers with a
    lock, but the transport itself is not multiplexed: output is only ever
    attributed to the single command in flight.
    """

    def __init__(
        self,
        device_serial: str = "",
        resolver: Optional[AdbResolver] = None,
        command: Optional[List[str]] = None,
        timeout: float = COMMAND_TIMEOUT,
        start_grace: float = START_GRACE_PERIOD,
    ):
        self.device_serial = device_serial
        self.timeout = timeout
        self._resolver = resolver or default_resolver
        self._command = command
        self._start_grace = start_grace
        self._process: Optional[PopenSpawn] = None
        self._state = SessionState.NOT_STARTED
        self._markers = MarkerGenerator()
        self._command_count = 0
        self._last_error = ""
        self._lock = threading.Lock()
        self._stop_lock = threading.Lock()

    def __enter__(self) -> "ShellSession":
        if not self.start():
            raise ShellSessionError(self._last_error)
        return self

    def __exit__(self, *exc_info):
        self.stop()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> str:
        return self._last_error

    @property
    def command_count(self) -> int:
        return self._command_count

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process else None

    def is_running(self) -> bool:
        process = self._process
        if self._state != SessionState.RUNNING or process is None:
            return False
        return process.proc.poll() is None

    def _build_argv(self) -> List[str]:
        if self._command:
            return list(self._command)
        argv = [self._resolver.resolve()]
        if self.device_serial:
            argv += ["-s", self.device_serial]
        argv.append("shell")
        return argv

    def start(self) -> bool:
        """Launch the shell. Returns False (see `last_error`) if it cannot run."""
        with self._lock:
            if self.is_running():
                return True
            # Child died under us; release its pipes before relaunching
            stale, self._process = self._process, None
            if stale is not None:
                self._close_process(stale)
                logger.info("shell_reaped", serial=self.device_serial, pid=stale.pid)

            try:
                argv = self._build_argv()
            except AdbNotFoundError as e:
                return self._start_failed(str(e))

            env = dict(os.environ)
            env.update(SHELL_ENV)

            try:
                process = PopenSpawn(
                    argv,
                    timeout=self.timeout,
                    maxread=READ_CHUNK_SIZE,
                    env=env,
                    encoding="utf-8",
                    codec_errors="replace",
                )
            except OSError as e:
                return self._start_failed(f"Failed to launch {argv[0]}: {e}")

            # A child that dies right away (no device, bad serial) is a failed start
            exit_code = process.proc.poll()
            if exit_code is None and self._start_grace > 0:
                try:
                    exit_code = process.proc.wait(timeout=self._start_grace)
                except subprocess.TimeoutExpired:
                    exit_code = None
            if exit_code is not None:
                output = self._drain(process)
                self._close_process(process)
                reason = f"ADB shell terminated immediately (exit code {exit_code})"
                if output:
                    reason += f": {output}"
                return self._start_failed(reason)

            self._process = process
            self._state = SessionState.RUNNING
            self._last_error = ""
            logger.info("shell_started", serial=self.device_serial, pid=process.pid)
            return True

    def _start_failed(self, reason: str) -> bool:
        self._last_error = reason
        self._state = SessionState.STOPPED
        logger.warning("shell_start_failed", serial=self.device_serial, reason=reason)
        return False

    @staticmethod
    def _drain(process: PopenSpawn) -> str:
        """Collect whatever an exited child left in its pipe."""
        process.expect([pexpect.EOF, pexpect.TIMEOUT], timeout=0.5)
        return (process.before or "").strip()

    def execute(self, command: str, timeout: Optional[float] = None) -> str:
        """
        Run `command` and return its output with trailing CR/LF trimmed.

        Raises ShellSessionError when the session is not running, the write
        fails, or the shell hits EOF; ShellTimeoutError when the marker does
        not arrive within `timeout`. EOF and timeout stop the session.
        """
        with self._lock:
            process = self._process
            if self._state != SessionState.RUNNING or process is None:
                self._last_error = "Shell not running"
                raise ShellSessionError(self._last_error)

            marker = self._markers.next()
            logger.debug("shell_execute", serial=self.device_serial, command=command)

            try:
                process.send(f"{command}; echo {marker}\n")
            except (OSError, ValueError) as e:
                self._abort(f"Failed to write command to shell: {e}")
                raise ShellSessionError(self._last_error) from e

            # The marker line's own newline is consumed so it can't lead the next response
            index = process.expect(
                [re.escape(marker) + r"\r?\n", pexpect.EOF, pexpect.TIMEOUT],
                timeout=self.timeout if timeout is None else timeout,
            )
            if index == 1:
                self._abort("Unexpected EOF from ADB shell")
                raise ShellSessionError(self._last_error)
            if index == 2:
                self._abort(f"Timed out waiting for command output: {command[:100]}")
                raise ShellTimeoutError(self._last_error)

            self._command_count += 1
            return process.before.rstrip("\r\n")

    def _abort(self, reason: str):
        self._last_error = reason
        logger.error("shell_failed", serial=self.device_serial, reason=reason)
        self.stop()

    def stop(self):
        """Close pipes and end the child. Safe to call any number of times."""
        with self._stop_lock:
            process, self._process = self._process, None
            self._state = SessionState.STOPPED
            if process is None:
                return
            self._close_process(process)
            logger.info("shell_stopped", serial=self.device_serial, pid=process.pid)

    @staticmethod
    def _close_process(process: PopenSpawn):
        proc = process.proc
        # Closing stdin sends EOF; a healthy shell exits on its own
        if proc.stdin and not proc.stdin.closed:
            with contextlib.suppress(OSError):
                proc.stdin.close()
        if proc.poll() is None:
            proc.terminate()
            try:
                proc.wait(timeout=STOP_WAIT_TIMEOUT)
            except subprocess.TimeoutExpired:
                proc.kill()
                with contextlib.suppress(subprocess.TimeoutExpired):
                    proc.wait(timeout=STOP_WAIT_TIMEOUT)
        if proc.stdout and not proc.stdout.closed:
            with contextlib.suppress(OSError):
                proc.stdout.close()
