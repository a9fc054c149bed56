"""Single-shot read of one MAX14001 channel from sysfs.

The IIO driver exposes each converter value as a text file holding a decimal
integer (e.g. ``"517\\n"``).  :func:`read_sample` opens the file, reads one
bounded chunk, parses the integer and applies the channel calibration.
:func:`read_and_report` wraps it for use inside a reader thread: failures are
logged and swallowed so that one missing driver never stalls the others.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional

from .calibration import ChannelKind
from .config import DEFAULT_READ_SIZE, ChannelSource
from .output import ConsoleSink

logger = logging.getLogger(__name__)

# Same prefix atoi() accepts: blanks, optional sign, digits.
_INT_PREFIX = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


class ChannelError(Exception):
    """Channel-local failure; never fatal to the cycle."""

    action = "access"

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"Failed to {self.action} {path}: {reason}")
        self.path = path
        self.reason = reason


class OpenError(ChannelError):
    action = "open"


class ReadError(ChannelError):
    action = "read"


class ParseError(ChannelError):
    action = "parse"


@dataclass(frozen=True)
class CalibratedReading:
    kind: ChannelKind
    path: str
    raw: int
    value: float

    @property
    def unit(self) -> str:
        return self.kind.unit

    def format(self) -> str:
        return f"({self.path}): Input {self.kind.label} = {self.value:f} ({self.unit})"


def parse_raw(text: str, *, strict: bool = False, path: str = "") -> int:
    """Parse ``text`` as a signed decimal integer.

    By default the parse is lenient: leading digits are used and anything
    unparseable reads as ``0``.  With ``strict=True`` the whole text (minus
    surrounding whitespace) must be an integer, otherwise :class:`ParseError`
    is raised.
    """

    if strict:
        try:
            return int(text.strip())
        except ValueError:
            raise ParseError(path, f"invalid integer {text.strip()!r}") from None
    match = _INT_PREFIX.match(text)
    if not match:
        return 0
    try:
        return int(match.group(1))
    except ValueError:
        # more digits than int() will convert
        return 0


def _reason(exc: OSError) -> str:
    return exc.strerror or str(exc)


def read_raw(channel: ChannelSource, *, read_size: int = DEFAULT_READ_SIZE) -> str:
    """Return up to ``read_size`` bytes of text from ``channel.path``."""

    try:
        fh = open(channel.path, "rb", buffering=0)
    except OSError as exc:
        raise OpenError(channel.path, _reason(exc)) from exc
    with fh:
        try:
            data = fh.read(read_size)
        except OSError as exc:
            raise ReadError(channel.path, _reason(exc)) from exc
    return (data or b"").decode("ascii", errors="replace")


def read_sample(
    channel: ChannelSource,
    *,
    read_size: int = DEFAULT_READ_SIZE,
    strict: bool = False,
) -> CalibratedReading:
    """Read and calibrate one sample from ``channel``.

    Raises
    ------
    OpenError
        The path could not be opened (driver not loaded, permissions, ...).
    ReadError
        The read call itself failed.
    ParseError
        Only with ``strict=True``: the text is not an integer.
    """

    text = read_raw(channel, read_size=read_size)
    raw = parse_raw(text, strict=strict, path=channel.path)
    value = channel.calibration.apply(raw)
    return CalibratedReading(channel.kind, channel.path, raw, float(value))


def read_and_report(
    channel: ChannelSource,
    sink: ConsoleSink,
    *,
    read_size: int = DEFAULT_READ_SIZE,
    strict: bool = False,
) -> Optional[CalibratedReading]:
    """Read ``channel`` and write the formatted reading to ``sink``.

    Returns the reading, or ``None`` when the channel failed this time round.
    """

    try:
        reading = read_sample(channel, read_size=read_size, strict=strict)
    except ChannelError as exc:
        logger.error("%s", exc)
        return None
    sink.write_line(reading.format())
    return reading


__all__ = [
    "ChannelError",
    "OpenError",
    "ReadError",
    "ParseError",
    "CalibratedReading",
    "parse_raw",
    "read_raw",
    "read_sample",
    "read_and_report",
]
