"""Calibration of MAX14001 raw ADC codes into physical units.

The MAX14001PMB evaluation board wires its two converters with an offset so
that both can report negative values:

* ``U11`` measures the input voltage,
* ``U51`` measures the input current through a shunt.

Both transfer functions are affine and share one representation::

    value = (raw * lsb - offset) * scale / divisor

The coefficients below come from the board's circuit analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Union

import numpy as np

ArrayLike = Union[int, float, np.ndarray, list]


class ChannelKind(str, Enum):
    """Physical quantity measured by a channel."""

    VOLTAGE = "voltage"
    CURRENT = "current"

    @property
    def label(self) -> str:
        return "Voltage" if self is ChannelKind.VOLTAGE else "Current"

    @property
    def unit(self) -> str:
        return "V" if self is ChannelKind.VOLTAGE else "A"


@dataclass(frozen=True)
class Calibration:
    """Affine map from a raw ADC code to volts or amperes."""

    lsb: float = 1.0
    offset: float = 0.0
    scale: float = 1.0
    divisor: float = 1.0

    def __post_init__(self) -> None:
        if float(self.divisor) == 0.0:
            raise ValueError("Calibration divisor must be non-zero")

    @classmethod
    def from_mapping(cls, data: Dict[str, Any], default: "Calibration") -> "Calibration":
        """Build a calibration from ``data``, filling gaps from ``default``."""

        unknown = set(data) - {"lsb", "offset", "scale", "divisor"}
        if unknown:
            raise ValueError(f"Unknown calibration keys: {', '.join(sorted(unknown))}")
        return cls(
            lsb=float(data.get("lsb", default.lsb)),
            offset=float(data.get("offset", default.offset)),
            scale=float(data.get("scale", default.scale)),
            divisor=float(data.get("divisor", default.divisor)),
        )

    def apply(self, raw: ArrayLike) -> Union[float, np.ndarray]:
        """Convert ``raw`` codes to physical values.

        Scalars return a plain ``float``; sequences and arrays return a
        ``numpy.ndarray`` of the same shape.
        """

        arr = np.asarray(raw, dtype=float)
        value = (arr * self.lsb - self.offset) * self.scale / self.divisor
        if value.ndim == 0:
            return float(value)
        return value


# U11: (raw - 511.06305173) / 1.499118283  [V]
VOLTAGE_CALIBRATION = Calibration(offset=511.06305173, divisor=1.499118283)

# U51: ((raw * 0.001220703125) - 0.625) * 10  [A]
CURRENT_CALIBRATION = Calibration(lsb=0.001220703125, offset=0.625, scale=10.0)


def default_calibration(kind: ChannelKind) -> Calibration:
    """Return the board calibration for ``kind``."""

    if kind is ChannelKind.VOLTAGE:
        return VOLTAGE_CALIBRATION
    return CURRENT_CALIBRATION


__all__ = [
    "ChannelKind",
    "Calibration",
    "VOLTAGE_CALIBRATION",
    "CURRENT_CALIBRATION",
    "default_calibration",
]
