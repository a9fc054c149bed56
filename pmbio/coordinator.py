"""Cycle-by-cycle fan-out of channel reads.

Each cycle starts one reader thread per channel, joins them all and then
sleeps for the pacing interval.  Cycles never overlap and a cycle that has
started always runs to completion: the stop signal is only looked at between
cycles.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from threading import Thread
from typing import Iterable, List, Optional, Tuple

from .config import DEFAULT_INTERVAL, DEFAULT_READ_SIZE, ChannelSource
from .output import ConsoleSink
from .sample_reader import CalibratedReading, read_and_report

logger = logging.getLogger(__name__)


class LaunchError(RuntimeError):
    """A reader thread could not be started."""


class CycleState(str, Enum):
    IDLE = "idle"
    DISPATCHING = "dispatching"
    AWAITING = "awaiting"
    PACING = "pacing"
    TERMINATING = "terminating"


@dataclass(frozen=True)
class CycleReport:
    index: int
    readings: Tuple[CalibratedReading, ...]
    failures: int


class CycleCoordinator:
    """
    Run reading cycles over a fixed set of channels.

    Usage:
        stop = threading.Event()
        coordinator = CycleCoordinator(REFERENCE_CHANNELS)
        coordinator.run(stop)           # returns once stop is set between cycles
    """

    def __init__(
        self,
        channels: Iterable[ChannelSource],
        *,
        interval: float = DEFAULT_INTERVAL,
        sink: Optional[ConsoleSink] = None,
        read_size: int = DEFAULT_READ_SIZE,
        strict: bool = False,
    ) -> None:
        self.channels: Tuple[ChannelSource, ...] = tuple(channels)
        self.interval = float(interval)
        self.sink = sink if sink is not None else ConsoleSink()
        self.read_size = int(read_size)
        self.strict = bool(strict)

        self.state = CycleState.IDLE
        self._cycle = 0

    @property
    def cycles_completed(self) -> int:
        return self._cycle

    # ---------- one cycle ----------
    def _read_into(self, slots: List[Optional[CalibratedReading]], idx: int) -> None:
        slots[idx] = read_and_report(
            self.channels[idx], self.sink, read_size=self.read_size, strict=self.strict
        )

    def run_cycle(self) -> CycleReport:
        """Read every channel once, concurrently, and wait for all of them.

        Raises
        ------
        LaunchError
            If any reader thread fails to start.  Readers already started are
            not waited for.
        """

        index = self._cycle
        self.sink.write_line(f"Reading.. loop({index})")

        self.state = CycleState.DISPATCHING
        slots: List[Optional[CalibratedReading]] = [None] * len(self.channels)
        threads: List[Thread] = []
        for idx, channel in enumerate(self.channels):
            t = Thread(
                target=self._read_into,
                args=(slots, idx),
                name=f"reader-{index}-{idx}",
                daemon=True,
            )
            try:
                t.start()
            except RuntimeError as exc:
                self.state = CycleState.TERMINATING
                raise LaunchError(f"Failed to start reader thread for {channel.path}: {exc}") from exc
            threads.append(t)

        self.state = CycleState.AWAITING
        for t in threads:
            t.join()

        self._cycle += 1
        self.sink.write_line("\n")

        readings = tuple(r for r in slots if r is not None)
        report = CycleReport(index, readings, len(slots) - len(readings))
        if report.failures:
            logger.debug("Cycle %d: %d of %d channels failed", index, report.failures, len(slots))
        return report

    # ---------- loop ----------
    def run(self, stop: threading.Event, max_cycles: Optional[int] = None) -> int:
        """Run cycles until ``stop`` is set (or ``max_cycles`` have run).

        Returns the number of cycles completed by this call.
        """

        done = 0
        while not stop.is_set():
            self.run_cycle()
            done += 1
            if max_cycles is not None and done >= max_cycles:
                break
            self.state = CycleState.PACING
            time.sleep(self.interval)
        self.state = CycleState.TERMINATING
        return done
