"""
Configuration and constants for the ADB panel.
"""
import logging
import os
import shutil
import subprocess
import sys
import threading
from typing import List, Optional, TextIO

import structlog

from .errors import AdbNotFoundError

logger = structlog.get_logger()


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("config_value_ignored", name=name, value=value)
        return default


# Explicit adb location, checked before anything on PATH
ADB_ENV_VAR = "ADB_PANEL_ADB"

# Fallback locations probed when adb is not on PATH
ADB_CANDIDATE_PATHS = [
    "/opt/homebrew/bin/adb",
    "/usr/local/bin/adb",
    "adb",
]

# Marker format: __MARK_<micros>_<seq>__
MARKER_PREFIX = "__MARK_"
MARKER_SUFFIX = "__"

# Directory listing protocol tokens
LISTING_SEPARATOR = "<<<SEP>>>"
LISTING_ARROW = "->"
LISTING_END = "<<<END>>>"

# Environment forced on the adb shell child so ls output parses predictably
SHELL_ENV = {
    "LANG": "en_US.UTF-8",
    "LC_ALL": "en_US.UTF-8",
    "TERM": "xterm",
}

# Max seconds to wait for a command's marker before the session is declared wedged
COMMAND_TIMEOUT = _env_float("ADB_PANEL_COMMAND_TIMEOUT", 30.0)

# Max seconds for one-shot adb invocations (push/pull can be slow)
ADB_COMMAND_TIMEOUT = _env_float("ADB_PANEL_ADB_TIMEOUT", 600.0)

# How long start() watches the child for an instant exit
START_GRACE_PERIOD = 0.1

# How long stop() waits for the child before killing it
STOP_WAIT_TIMEOUT = 2.0

# pexpect read tuning
READ_CHUNK_SIZE = 65536

# Log threshold for configure_logging()
LOG_LEVEL = os.environ.get("ADB_PANEL_LOG_LEVEL", "INFO")


def configure_logging(level: Optional[str] = None, stream: Optional[TextIO] = None):
    """
    Route structlog output to stderr at `level` and above.

    stdout belongs to the MCP stdio transport, so nothing may be logged there.
    """
    name = (level or LOG_LEVEL).upper()
    threshold = getattr(logging, name, None)
    if not isinstance(threshold, int):
        threshold = logging.INFO
    structlog.configure(
        logger_factory=structlog.PrintLoggerFactory(file=stream or sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
    )


class AdbResolver:
    """
    Locates a working adb executable.

    The lookup runs once, on first use, and the result is cached for the
    lifetime of the resolver. Pass one resolver to every device that should
    share the lookup.
    """

    def __init__(self, candidates: Optional[List[str]] = None, probe_timeout: float = 10.0):
        self._candidates = candidates
        self._probe_timeout = probe_timeout
        self._path: Optional[str] = None
        self._lock = threading.Lock()

    def candidates(self) -> List[str]:
        if self._candidates is not None:
            return list(self._candidates)
        paths = []
        override = os.environ.get(ADB_ENV_VAR)
        if override:
            paths.append(override)
        on_path = shutil.which("adb")
        if on_path:
            paths.append(on_path)
        paths.extend(ADB_CANDIDATE_PATHS)
        # dedupe, keep order
        return list(dict.fromkeys(paths))

    def _probe(self, path: str) -> bool:
        """Check that `path version` looks like adb."""
        try:
            result = subprocess.run(
                [path, "version"],
                capture_output=True, text=True, timeout=self._probe_timeout
            )
        except (OSError, subprocess.TimeoutExpired):
            return False
        output = result.stdout + result.stderr
        return "Android Debug Bridge" in output or "version" in output

    def resolve(self) -> str:
        """Return the adb path, raising AdbNotFoundError if no candidate works."""
        with self._lock:
            if self._path is None:
                for candidate in self.candidates():
                    if self._probe(candidate):
                        self._path = candidate
                        logger.info("adb_resolved", path=candidate)
                        break
                else:
                    raise AdbNotFoundError("ADB executable not found")
            return self._path

    def set_path(self, path: str):
        """Pin the adb path without probing."""
        with self._lock:
            self._path = path

    @property
    def resolved(self) -> bool:
        return self._path is not None


# Shared resolver for callers that don't inject their own
default_resolver = AdbResolver()
