"""Configuration helpers for the MAX14001PMB reader.

Channels, pacing and parser behaviour are described by a small YAML file.  The
reader settings may sit at the top level or inside a dedicated ``reader``
section so that one file can host several tools' settings.

Example YAML configuration::

    reader:
      interval: 0.5         # seconds between cycles
      poll_interval: 0.1    # keyboard poll period in seconds
      read_size: 64         # bytes read per sample
      strict_parse: false   # true: malformed text is a channel error
      channels:
        - kind: voltage
          path: /sys/bus/iio/devices/iio:device0/in_voltage0_raw
        - kind: current
          path: /sys/bus/iio/devices/iio:device1/in_voltage0_raw
          calibration: {lsb: 0.001220703125, offset: 0.625, scale: 10}

When ``channels`` is omitted the four reference channels of the evaluation
board are used.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

import yaml

from .calibration import Calibration, ChannelKind, default_calibration

IIO_ROOT = "/sys/bus/iio/devices"

# U11 measures voltage, U51 measures current.  Each exposes an instantaneous
# and a time-averaged raw value.
U11_ADC = f"{IIO_ROOT}/iio:device0/in_voltage0_raw"
U11_FADC = f"{IIO_ROOT}/iio:device0/in_voltage0_mean_raw"
U51_ADC = f"{IIO_ROOT}/iio:device1/in_voltage0_raw"
U51_FADC = f"{IIO_ROOT}/iio:device1/in_voltage0_mean_raw"

DEFAULT_INTERVAL = 0.5
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_READ_SIZE = 64
# sysfs attributes never exceed one page
MAX_READ_SIZE = 4096


@dataclass(frozen=True)
class ChannelSource:
    """One raw-value endpoint and the calibration applied to it."""

    kind: ChannelKind
    path: str
    calibration: Optional[Calibration] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", ChannelKind(self.kind))
        if self.calibration is None:
            object.__setattr__(self, "calibration", default_calibration(self.kind))


REFERENCE_CHANNELS: Tuple[ChannelSource, ...] = (
    ChannelSource(ChannelKind.VOLTAGE, U11_ADC),
    ChannelSource(ChannelKind.VOLTAGE, U11_FADC),
    ChannelSource(ChannelKind.CURRENT, U51_ADC),
    ChannelSource(ChannelKind.CURRENT, U51_FADC),
)


@dataclass
class ReaderConfig:
    """Runtime parameters for the sampling loop."""

    channels: Tuple[ChannelSource, ...] = REFERENCE_CHANNELS
    interval: float = DEFAULT_INTERVAL
    poll_interval: float = DEFAULT_POLL_INTERVAL
    read_size: int = DEFAULT_READ_SIZE
    strict_parse: bool = False
    max_cycles: Optional[int] = None
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Configuration loading
# ---------------------------------------------------------------------------


def load_yaml(path: str | Path) -> Dict[str, Any]:
    """Load a YAML file from ``path``.

    An empty file yields an empty dictionary.

    Raises
    ------
    ValueError
        If the document is not a mapping.
    """

    with open(Path(path), "r", encoding="utf-8") as fh:
        data: Any = yaml.safe_load(fh)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE | _FALSE:
        return value.strip().lower() in _TRUE
    raise ValueError(f"{key} must be true or false, got {value!r}")


def _as_int(value: Any, key: str) -> int:
    # bool is an int subclass; a YAML "yes" is not a size
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    return value


def _as_float(value: Any, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number, got {value!r}")
    return float(value)


def _parse_channel(entry: Any, index: int) -> ChannelSource:
    if not isinstance(entry, dict):
        raise ValueError(f"Channel #{index} must be a mapping, got {type(entry).__name__}")
    path = entry.get("path")
    if not path:
        raise ValueError(f"Channel #{index} is missing 'path'")
    try:
        kind = ChannelKind(str(entry.get("kind", "")).lower())
    except ValueError:
        raise ValueError(
            f"Channel #{index} has unknown kind {entry.get('kind')!r} "
            f"(expected one of: {', '.join(k.value for k in ChannelKind)})"
        ) from None
    calibration = None
    raw_cal = entry.get("calibration")
    if raw_cal is not None:
        if not isinstance(raw_cal, dict):
            raise ValueError(
                f"Channel #{index} calibration must be a mapping, got {type(raw_cal).__name__}"
            )
        for key, value in raw_cal.items():
            _as_float(value, f"Channel #{index} calibration {key}")
        calibration = Calibration.from_mapping(raw_cal, default_calibration(kind))
    return ChannelSource(kind, str(path), calibration)


def load_config(data_or_path: Dict[str, Any] | str | Path | None = None) -> ReaderConfig:
    """Load reader configuration from ``data_or_path``.

    Parameters
    ----------
    data_or_path:
        A mapping of configuration values, a path to a YAML file, or ``None``
        for the reference configuration.  Values may be nested under a
        ``reader`` section.

    Returns
    -------
    ReaderConfig
        Validated configuration.

    Raises
    ------
    ValueError
        If the document, a channel entry or a setting has the wrong shape,
        type or range.
    """

    if data_or_path is None:
        data: Dict[str, Any] = {}
    elif isinstance(data_or_path, (str, Path)):
        data = load_yaml(data_or_path)
    elif isinstance(data_or_path, dict):
        data = dict(data_or_path)
    else:
        raise ValueError(f"Config must be a mapping, got {type(data_or_path).__name__}")
    if isinstance(data.get("reader"), dict):
        data = data["reader"]

    raw_channels = data.get("channels")
    if raw_channels is None:
        channels = REFERENCE_CHANNELS
    elif not isinstance(raw_channels, list):
        raise ValueError(f"channels must be a list, got {type(raw_channels).__name__}")
    else:
        channels = tuple(_parse_channel(c, i) for i, c in enumerate(raw_channels))
        if not channels:
            raise ValueError("Config must list at least one channel")

    max_cycles = data.get("max_cycles")
    cfg = ReaderConfig(
        channels=channels,
        interval=_as_float(data.get("interval", DEFAULT_INTERVAL), "interval"),
        poll_interval=_as_float(data.get("poll_interval", DEFAULT_POLL_INTERVAL), "poll_interval"),
        read_size=_as_int(data.get("read_size", DEFAULT_READ_SIZE), "read_size"),
        strict_parse=_as_bool(data.get("strict_parse", False), "strict_parse"),
        max_cycles=None if max_cycles is None else _as_int(max_cycles, "max_cycles"),
        log_level=str(data.get("log_level", "INFO")).upper(),
    )

    if cfg.interval <= 0:
        raise ValueError("interval must be > 0")
    if cfg.poll_interval <= 0:
        raise ValueError("poll_interval must be > 0")
    if not 0 < cfg.read_size <= MAX_READ_SIZE:
        raise ValueError(f"read_size must be between 1 and {MAX_READ_SIZE}")
    if cfg.max_cycles is not None and cfg.max_cycles < 1:
        raise ValueError("max_cycles must be >= 1")
    return cfg


def parse_args_with_config(argv: Optional[Iterable[str]] = None) -> ReaderConfig:
    """Parse CLI arguments and an optional YAML configuration.

    Command-line options override values loaded from ``--config``.  With no
    arguments at all the reference board configuration is returned.
    """

    parser = argparse.ArgumentParser(
        description="Read MAX14001PMB voltage and current channels until a key is pressed",
    )
    parser.add_argument("--config", help="Path to YAML configuration file")
    parser.add_argument("--interval", type=float, help="Seconds between reading cycles")
    parser.add_argument("--cycles", type=int, dest="max_cycles", help="Stop after N cycles")
    parser.add_argument(
        "--strict",
        action="store_true",
        default=None,
        dest="strict_parse",
        help="Report malformed sensor text as an error instead of reading 0",
    )
    parser.add_argument("--log-level", dest="log_level", help="Logging level (e.g. DEBUG)")
    args = parser.parse_args(argv)

    try:
        data: Dict[str, Any] = {}
        if args.config:
            loaded = load_yaml(args.config)
            data.update(loaded["reader"] if isinstance(loaded.get("reader"), dict) else loaded)

        for key, value in vars(args).items():
            if key == "config" or value is None:
                continue
            data[key] = value

        return load_config(data)
    except (ValueError, yaml.YAMLError) as exc:
        parser.error(str(exc))
        raise  # pragma: no cover - parser.error exits


__all__ = [
    "ChannelSource",
    "ReaderConfig",
    "REFERENCE_CHANNELS",
    "load_yaml",
    "load_config",
    "parse_args_with_config",
]
