"""Command-line entry point for the MAX14001PMB reader.

Run the module from the command line::

    python -m pmbio.runner
    python -m pmbio.runner --config configs/max14001pmb.yml --cycles 10

Readings from both MAX14001 devices are printed every half second until any
key is pressed.  The exit status is ``0`` on a clean stop and ``1`` when a
reader thread could not be started.
"""

from __future__ import annotations

import logging
import sys
import threading
from typing import Iterable, Optional, TextIO

from .config import ReaderConfig, parse_args_with_config
from .coordinator import CycleCoordinator, LaunchError
from .output import ConsoleSink
from .watcher import KeyboardWatcher

logger = logging.getLogger(__name__)

USAGE_HINT = "Press any key to stop the MAX14001 readings"
TERMINATED = "MAX14001PMB Reader Program terminated."


def run(
    cfg: ReaderConfig,
    *,
    stdin: Optional[TextIO] = None,
    sink: Optional[ConsoleSink] = None,
) -> int:
    """Run the sampling loop described by ``cfg`` and return the exit status."""

    sink = sink if sink is not None else ConsoleSink()
    stop = threading.Event()

    sink.write_line(USAGE_HINT)
    watcher = KeyboardWatcher(stop, stdin, poll_interval=cfg.poll_interval)
    coordinator = CycleCoordinator(
        cfg.channels,
        interval=cfg.interval,
        sink=sink,
        read_size=cfg.read_size,
        strict=cfg.strict_parse,
    )

    try:
        try:
            watcher.start()
        except RuntimeError as exc:
            raise LaunchError(f"Failed to start keyboard watcher: {exc}") from exc
        coordinator.run(stop, max_cycles=cfg.max_cycles)
    except LaunchError as exc:
        logger.critical("%s", exc)
        stop.set()
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")

    # Releases the watcher when the loop ended on its own (interrupt, cycle limit).
    stop.set()
    watcher.join()
    sink.write_line(TERMINATED)
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    """CLI entry point for ``python -m pmbio.runner``."""

    cfg = parse_args_with_config(argv)
    logging.basicConfig(
        level=getattr(logging, cfg.log_level, logging.INFO),
        format="%(levelname)s %(name)s: %(message)s",
    )
    return run(cfg)


if __name__ == "__main__":  # pragma: no cover - CLI use
    sys.exit(main())
