"""Interpretation of validated frames as typed readings."""

from __future__ import annotations

import threading
from enum import IntEnum

from ..models.readings import Reading, ReadingKind
from .cipher import DecodedFrame


class Opcode(IntEnum):
    """Frame opcodes carrying a measurement."""

    HUMIDITY = 0x41
    TEMPERATURE = 0x42
    CO2 = 0x50


def _temperature(value: int) -> float:
    # Sixteenths of a kelvin
    return round(value / 16 - 273.15, 2)


def _co2(value: int) -> int:
    return value


def _humidity(value: int) -> float:
    return value / 100


_INTERPRETERS = {
    Opcode.TEMPERATURE: (ReadingKind.TEMPERATURE, _temperature),
    Opcode.CO2: (ReadingKind.CO2, _co2),
    Opcode.HUMIDITY: (ReadingKind.HUMIDITY, _humidity),
}


def interpret(frame: DecodedFrame) -> Reading | None:
    """Map a frame to a :class:`Reading`, or ``None`` for unknown opcodes.

    The monitor also emits several opcodes without a documented meaning;
    they are ignored rather than treated as errors.
    """
    try:
        kind, convert = _INTERPRETERS[Opcode(frame.opcode)]
    except ValueError:
        return None
    return Reading(kind=kind, value=convert(frame.value))


class FrameDecoder:
    """Tracks the most recent reading of each kind.

    ``update`` is called from the polling threads; writes and snapshots
    take ``_lock``. Single-attribute reads need no lock.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._latest: dict[ReadingKind, float | int | None] = {kind: None for kind in ReadingKind}

    def update(self, frame: DecodedFrame) -> Reading | None:
        """Interpret ``frame`` and overwrite the cached value of its kind."""
        reading = interpret(frame)
        if reading is None:
            return None
        with self._lock:
            self._latest[reading.kind] = reading.value
        return reading

    def latest(self, kind: ReadingKind) -> float | int | None:
        return self._latest[ReadingKind(kind)]

    def snapshot(self) -> dict[ReadingKind, float | int | None]:
        with self._lock:
            return dict(self._latest)

    @property
    def temperature(self) -> float | None:
        return self._latest[ReadingKind.TEMPERATURE]

    @property
    def co2(self) -> int | None:
        return self._latest[ReadingKind.CO2]

    @property
    def humidity(self) -> float | None:
        return self._latest[ReadingKind.HUMIDITY]
