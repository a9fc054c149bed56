"""Non-blocking "press any key to stop" watcher.

A background thread polls the terminal every ``poll_interval`` seconds.  For
each poll the terminal is switched to non-canonical, no-echo mode just long
enough to ask :func:`select.select` whether a byte is waiting, and the original
attributes are restored before the poll returns, whatever happens.

The pending byte is only peeked at, never read, so anything downstream that
reads standard input still receives it.  If nothing in the process reads it,
it stays in the terminal's input queue after exit and the shell gets it:
the key that stopped the readings shows up on the next prompt, and stopping
with Enter runs an empty command line.
"""

from __future__ import annotations

import contextlib
import logging
import select
import sys
import termios
import threading
from typing import Iterator, Optional, TextIO

from .config import DEFAULT_POLL_INTERVAL

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def cbreak_mode(fd: int) -> Iterator[None]:
    """Put terminal ``fd`` in non-canonical, no-echo mode for the block."""

    old = termios.tcgetattr(fd)
    new = termios.tcgetattr(fd)
    new[3] &= ~(termios.ICANON | termios.ECHO)
    termios.tcsetattr(fd, termios.TCSANOW, new)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSANOW, old)


def key_pending(fd: int) -> bool:
    """Return ``True`` if a byte is waiting on terminal ``fd``.

    Any failure (not a terminal, closed descriptor, ...) reads as "no input".
    """

    try:
        with cbreak_mode(fd):
            ready, _, _ = select.select([fd], [], [], 0)
    except (termios.error, OSError, ValueError) as exc:
        logger.debug("Keyboard poll on fd %s failed: %s", fd, exc)
        return False
    return bool(ready)


class KeyboardWatcher:
    """Set ``stop`` as soon as a key is pressed on ``stream``."""

    def __init__(
        self,
        stop: threading.Event,
        stream: Optional[TextIO] = None,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ) -> None:
        self.stop = stop
        self.stream = stream
        self.poll_interval = float(poll_interval)
        self._thread: Optional[threading.Thread] = None

    def _fileno(self) -> Optional[int]:
        stream = self.stream if self.stream is not None else sys.stdin
        try:
            return stream.fileno()
        except (AttributeError, OSError, ValueError):
            logger.debug("Standard input has no usable file descriptor; key stop disabled")
            return None

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name="keyboard-watcher", daemon=True)
        self._thread.start()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        fd = self._fileno()
        while not self.stop.is_set():
            if fd is not None and key_pending(fd):
                logger.debug("Key press detected; stopping")
                self.stop.set()
                break
            self.stop.wait(self.poll_interval)
