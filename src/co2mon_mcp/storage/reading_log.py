"""Append-only daily log of decoded readings.

One file per UTC day, ``<directory>/<YYYY-MM-DD>.log``, one line per
reading::

    <epoch milliseconds>;<kind>;<value>
"""

from __future__ import annotations

import datetime as dt
import logging
import threading
import time
from pathlib import Path
from typing import Callable

from ..events import READING_EVENTS, Event
from ..models.readings import ReadingKind

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = "log"


class ReadingLog:
    """Writes readings to dated files under ``directory``."""

    def __init__(self, directory: str | Path = DEFAULT_LOG_DIR) -> None:
        self._directory = Path(directory)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, day: dt.date) -> Path:
        return self._directory / f"{day.isoformat()}.log"

    def record(self, kind: ReadingKind | str, value: float | int, timestamp: float | None = None) -> Path:
        """Append one reading.

        Args:
            kind: Reading kind.
            value: Decoded value.
            timestamp: Seconds since the epoch; defaults to now.

        Returns:
            The file the line was appended to.
        """
        kind = ReadingKind(kind)
        if timestamp is None:
            timestamp = time.time()
        day = dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc).date()
        path = self.path_for(day)
        line = f"{int(timestamp * 1000)};{kind.value};{value}\n"

        with self._lock:
            self._directory.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(line)
        return path

    def attach(self, session) -> list[Callable[[], None]]:
        """Subscribe to every reading event of ``session``.

        Returns:
            Unsubscribe callables, one per reading kind.
        """
        unsubscribers = []
        for kind, event_type in READING_EVENTS.items():
            unsubscribers.append(session.subscribe(event_type, self._handler(kind)))
        logger.info("Logging readings to %s", self._directory)
        return unsubscribers

    def _handler(self, kind: ReadingKind) -> Callable[[Event], None]:
        def handle(event: Event) -> None:
            self.record(kind, event.payload)

        return handle
