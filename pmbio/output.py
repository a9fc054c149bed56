"""Line-atomic console output shared by the reader threads."""

from __future__ import annotations

import sys
import threading
from typing import Optional, TextIO


class ConsoleSink:
    """Serialise whole lines onto a text stream.

    Every reader thread of a cycle writes through the same sink; the lock keeps
    one reading per line even when several threads finish together.
    """

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream
        self._lock = threading.Lock()

    @property
    def stream(self) -> TextIO:
        # Resolved late so a replaced sys.stdout (e.g. under capture) is honoured.
        return self._stream if self._stream is not None else sys.stdout

    def write_line(self, line: str = "") -> None:
        with self._lock:
            stream = self.stream
            stream.write(line + "\n")
            stream.flush()
