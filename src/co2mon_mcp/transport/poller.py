"""Continuous polling of the monitor's interrupt IN endpoint.

pyusb exposes only blocking transfers, so each outstanding read is a
worker thread looping on ``read``. ``depth`` threads keep that many reads
in flight at once.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable

import usb.core

from ..errors import PollError
from ..protocol.cipher import FRAME_SIZE

logger = logging.getLogger(__name__)

POLL_DEPTH = 8
READ_TIMEOUT_MS = 1000
ERROR_BACKOFF_S = 0.5


class EndpointPoller:
    """Keeps ``depth`` reads outstanding on an endpoint until stopped.

    Usage::

        poller = EndpointPoller(endpoint.read, on_frame, on_error)
        poller.start()
        ...
        poller.stop()
    """

    def __init__(
        self,
        read: Callable[..., bytes],
        on_data: Callable[[bytes], None],
        on_error: Callable[[PollError], None],
        depth: int = POLL_DEPTH,
        size: int = FRAME_SIZE,
        timeout_ms: int = READ_TIMEOUT_MS,
    ) -> None:
        if depth < 1:
            raise ValueError(f"Poll depth must be at least 1, got {depth}")
        self._read = read
        self._on_data = on_data
        self._on_error = on_error
        self._depth = depth
        self._size = size
        self._timeout_ms = timeout_ms
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    def start(self) -> None:
        if self._threads:
            raise RuntimeError("Poller already started")
        self._stop.clear()
        for i in range(self._depth):
            thread = threading.Thread(
                target=self._run, name=f"co2mon-poll-{i}", daemon=True
            )
            self._threads.append(thread)
            thread.start()
        logger.debug("Started %d poll threads", self._depth)

    def stop(self, timeout: float | None = None) -> None:
        """Signal all workers to stop and wait for in-flight reads to finish.

        Each worker exits after its current read returns, so this blocks
        for at most about one read timeout.
        """
        self._stop.set()
        # May be called from a handler running on one of the workers
        others = [t for t in self._threads if t is not threading.current_thread()]
        for thread in others:
            thread.join(timeout)
        alive = [t.name for t in others if t.is_alive()]
        self._threads = []
        if alive:
            raise PollError(f"Poll threads did not stop: {', '.join(alive)}")
        logger.debug("Poll threads stopped")

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                data = self._read(self._size, timeout=self._timeout_ms)
            except usb.core.USBTimeoutError:
                continue
            except usb.core.USBError as e:
                if self._stop.is_set():
                    break
                error = PollError(f"Endpoint read failed: {e}")
                error.__cause__ = e
                self._on_error(error)
                self._stop.wait(ERROR_BACKOFF_S)
                continue

            if self._stop.is_set():
                break
            try:
                self._on_data(bytes(data))
            except Exception:
                logger.exception("Frame handler failed on %s", bytes(data).hex(" "))
