"""
End-of-output markers for the persistent shell.
"""
import itertools
import threading
import time

from .config import MARKER_PREFIX, MARKER_SUFFIX


class MarkerGenerator:
    """
    Produces delimiter strings like __MARK_<micros>_<seq>__.

    The sequence number never repeats within one generator, so two markers
    from the same session are always distinct even if the clock stalls.
    """

    def __init__(self, start: int = 0):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next(self) -> str:
        micros = time.monotonic_ns() // 1000
        with self._lock:
            seq = next(self._counter)
        return f"{MARKER_PREFIX}{micros}_{seq}{MARKER_SUFFIX}"
