"""Sensor reading model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ReadingKind(str, Enum):
    """Physical quantities reported by the monitor."""

    TEMPERATURE = "temperature"
    CO2 = "co2"
    HUMIDITY = "humidity"

    @property
    def unit(self) -> str:
        return _UNITS[self]


_UNITS = {
    ReadingKind.TEMPERATURE: "°C",
    ReadingKind.CO2: "ppm",
    ReadingKind.HUMIDITY: "%",
}


@dataclass(frozen=True)
class Reading:
    """One decoded measurement.

    ``value`` is a float for temperature (°C) and humidity (% RH) and an
    int for CO2 (relative ppm).
    """

    kind: ReadingKind
    value: float | int

    def __repr__(self) -> str:
        return f"Reading({self.kind.value}={self.value}{self.kind.unit})"

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "value": self.value, "unit": self.kind.unit}
