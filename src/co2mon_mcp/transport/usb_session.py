"""USB session with a 04d9:a052 CO2 monitor.

The monitor is a HID-class device with a single interface and a single
interrupt IN endpoint. Before it reports anything it must receive an
8-byte SET_REPORT control transfer carrying the key that legacy firmware
then uses to obfuscate every frame.

Session lifecycle::

    DISCONNECTED --connect()--> CONNECTED --transfer()--> POLLING
         ^                                                   |
         +------------ DISCONNECTING <----disconnect()-------+
"""

from __future__ import annotations

import logging
import sys
import threading
from enum import Enum
from typing import Callable, NoReturn

import usb.core
import usb.util

from ..errors import (
    Co2MonitorError,
    DeviceNotFound,
    FrameError,
    HandshakeFailed,
    InterfaceUnavailable,
    PollError,
    SessionStateError,
    TeardownError,
    TransferFailed,
)
from ..events import READING_EVENTS, EventChannel, EventType, Handler
from ..models.device import DeviceIdentity
from ..protocol.cipher import FIXED_KEY, FRAME_SIZE, decode_frame
from ..protocol.decoder import FrameDecoder
from .poller import POLL_DEPTH, EndpointPoller

logger = logging.getLogger(__name__)

# HID SET_REPORT (feature report 0) parameters for the activation handshake
HANDSHAKE_REQUEST_TYPE = 0x21
HANDSHAKE_REQUEST = 0x09
HANDSHAKE_VALUE = 0x0300
HANDSHAKE_INDEX = 0x00

CONTROL_TIMEOUT_MS = 1000
INITIAL_READ_TIMEOUT_MS = 5000


class SessionState(Enum):
    """Lifecycle states of a :class:`DeviceSession`."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    POLLING = "polling"
    DISCONNECTING = "disconnecting"


def _kernel_driver_platform() -> bool:
    """Only Linux binds usbhid to the interface and needs a detach."""
    return sys.platform.startswith("linux")


class DeviceSession:
    """Owns the device handle and drives it from handshake to polling.

    Usage::

        session = DeviceSession()
        session.subscribe(EventType.CO2_READING, lambda e: print(e.payload))
        session.connect()
        session.transfer()
        ...
        session.disconnect()

    or, with guaranteed teardown::

        with DeviceSession() as session:
            session.transfer()
            ...

    The cached readings are written only by the poll threads through
    :class:`FrameDecoder` and may be read from any thread.
    """

    def __init__(
        self,
        identity: DeviceIdentity | None = None,
        events: EventChannel | None = None,
    ) -> None:
        self._identity = identity or DeviceIdentity()
        self._events = events or EventChannel()
        self._decoder = FrameDecoder()
        self._state = SessionState.DISCONNECTED

        self._device = None
        self._interface = None
        self._endpoint = None
        self._driver_detached = False
        self._poller: EndpointPoller | None = None
        # Guards the DISCONNECTING transition; held only for the state check
        self._teardown_lock = threading.Lock()
        self._released = False

    # -- Accessors ---------------------------------------------------------

    @property
    def identity(self) -> DeviceIdentity:
        return self._identity

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def temperature(self) -> float | None:
        """Latest ambient temperature in °C, ``None`` until first reported."""
        return self._decoder.temperature

    @property
    def co2(self) -> int | None:
        """Latest relative CO2 concentration in ppm."""
        return self._decoder.co2

    @property
    def humidity(self) -> float | None:
        """Latest relative humidity in %."""
        return self._decoder.humidity

    def readings(self) -> dict:
        return {kind.value: value for kind, value in self._decoder.snapshot().items()}

    def subscribe(self, event_type: EventType, handler: Handler) -> Callable[[], None]:
        return self._events.subscribe(event_type, handler)

    # -- Connect -----------------------------------------------------------

    def connect(self) -> None:
        """Find, open and activate the monitor.

        Raises:
            SessionStateError: If the session is not disconnected.
            DeviceNotFound: If no device matches the identity.
            InterfaceUnavailable: If the interface cannot be detached or claimed.
            HandshakeFailed: If the activation control transfer fails.
        """
        if self._state is not SessionState.DISCONNECTED:
            self._fail(SessionStateError(f"Cannot connect while {self._state.value}"))

        self._state = SessionState.CONNECTING
        try:
            self._open()
        except Co2MonitorError as e:
            self._abandon()
            self._state = SessionState.DISCONNECTED
            self._fail(e)

        self._released = False
        self._state = SessionState.CONNECTED
        logger.info(
            "Connected to %s, endpoint 0x%02X",
            self._identity,
            self._endpoint.bEndpointAddress,
        )
        self._events.emit(EventType.CONNECT, self._endpoint.bEndpointAddress)

    def _open(self) -> None:
        dev = usb.core.find(
            idVendor=self._identity.vendor_id, idProduct=self._identity.product_id
        )
        if dev is None:
            raise DeviceNotFound(f"No CO2 monitor found with id {self._identity}")
        self._device = dev

        try:
            intf = dev.get_active_configuration()[(0, 0)]
        except (usb.core.USBError, LookupError) as e:
            raise InterfaceUnavailable(f"Interface 0 not available: {e}") from e
        self._interface = intf
        number = intf.bInterfaceNumber

        if _kernel_driver_platform():
            try:
                if dev.is_kernel_driver_active(number):
                    dev.detach_kernel_driver(number)
                    self._driver_detached = True
            except (usb.core.USBError, NotImplementedError) as e:
                raise InterfaceUnavailable(f"Cannot detach kernel driver: {e}") from e

        try:
            written = dev.ctrl_transfer(
                HANDSHAKE_REQUEST_TYPE,
                HANDSHAKE_REQUEST,
                HANDSHAKE_VALUE,
                HANDSHAKE_INDEX,
                FIXED_KEY,
                timeout=CONTROL_TIMEOUT_MS,
            )
        except usb.core.USBError as e:
            raise HandshakeFailed(f"Activation control transfer failed: {e}") from e
        if written != len(FIXED_KEY):
            raise HandshakeFailed(
                f"Activation control transfer wrote {written} of {len(FIXED_KEY)} bytes"
            )

        try:
            usb.util.claim_interface(dev, number)
        except usb.core.USBError as e:
            raise InterfaceUnavailable(f"Cannot claim interface {number}: {e}") from e
        self._endpoint = intf[0]

    def _abandon(self) -> None:
        """Undo a partially completed connect()."""
        dev = self._device
        if dev is not None:
            if self._driver_detached:
                try:
                    dev.attach_kernel_driver(self._interface.bInterfaceNumber)
                except (usb.core.USBError, NotImplementedError) as e:
                    logger.warning("Could not reattach kernel driver: %s", e)
            usb.util.dispose_resources(dev)
        self._reset_handles()

    def _reset_handles(self) -> None:
        self._device = None
        self._interface = None
        self._endpoint = None
        self._driver_detached = False
        self._poller = None

    # -- Transfer ----------------------------------------------------------

    def transfer(self) -> None:
        """Confirm the endpoint responds, then start continuous polling.

        Raises:
            SessionStateError: If the session is not connected.
            TransferFailed: If the initial read fails.
        """
        if self._state is not SessionState.CONNECTED:
            self._fail(SessionStateError(f"Cannot start transfer while {self._state.value}"))

        try:
            data = self._endpoint.read(FRAME_SIZE, timeout=INITIAL_READ_TIMEOUT_MS)
        except usb.core.USBError as e:
            self._fail(TransferFailed(f"Initial endpoint read failed: {e}"), cause=e)
        self._handle_frame(data)
        if self._state is not SessionState.CONNECTED:
            # A subscriber tore the session down on the initial frame
            logger.info("Session %s before polling started", self._state.value)
            return

        self._poller = EndpointPoller(
            self._endpoint.read, self._handle_frame, self._handle_poll_error
        )
        self._poller.start()
        self._state = SessionState.POLLING
        logger.info("Polling endpoint with %d outstanding reads", POLL_DEPTH)

    def _handle_frame(self, raw: bytes) -> None:
        try:
            frame = decode_frame(raw)
        except FrameError as e:
            logger.debug("Dropped frame: %s", e)
            self._events.emit(EventType.ERROR, e)
            return

        reading = self._decoder.update(frame)
        if reading is None:
            logger.debug("Ignored %r", frame)
            return
        logger.debug("Decoded %r", reading)
        self._events.emit(READING_EVENTS[reading.kind], reading.value)

    def _handle_poll_error(self, error: PollError) -> None:
        logger.debug("Poll error: %s", error)
        self._events.emit(EventType.ERROR, error)

    # -- Disconnect --------------------------------------------------------

    def disconnect(self) -> list[TeardownError]:
        """Stop polling and release the device.

        Every step is attempted even if an earlier one fails. Failures are
        emitted as error events and returned; the session always ends up
        DISCONNECTED and a disconnect event is always emitted.

        Safe to call from event handlers on the poll threads: a call made
        while another teardown is in progress, or after the device was
        already released, returns an empty list without doing anything.
        """
        with self._teardown_lock:
            if self._state is SessionState.DISCONNECTING or self._released:
                return []
            self._state = SessionState.DISCONNECTING
        failures: list[TeardownError] = []

        if self._device is None:
            failures.append(TeardownError("Session holds no device handle"))
        else:
            self._released = True
            for step in (
                self._stop_polling,
                self._reattach_driver,
                self._release_interface,
                self._close_device,
            ):
                try:
                    step()
                except (usb.core.USBError, NotImplementedError, PollError) as e:
                    error = TeardownError(f"{step.__name__.lstrip('_')} failed: {e}")
                    error.__cause__ = e
                    failures.append(error)

        for error in failures:
            logger.warning("Teardown: %s", error)
            self._events.emit(EventType.ERROR, error)

        self._reset_handles()
        self._state = SessionState.DISCONNECTED
        logger.info("Disconnected from %s", self._identity)
        self._events.emit(EventType.DISCONNECT)
        return failures

    def _stop_polling(self) -> None:
        if self._poller is not None:
            self._poller.stop()

    def _reattach_driver(self) -> None:
        if self._driver_detached:
            self._device.attach_kernel_driver(self._interface.bInterfaceNumber)

    def _release_interface(self) -> None:
        if self._interface is not None:
            usb.util.release_interface(self._device, self._interface.bInterfaceNumber)

    def _close_device(self) -> None:
        usb.util.dispose_resources(self._device)

    # -- Helpers -----------------------------------------------------------

    def _fail(self, error: Co2MonitorError, cause: Exception | None = None) -> NoReturn:
        """Report a fatal condition as an error event, then raise it."""
        logger.error("%s", error)
        self._events.emit(EventType.ERROR, error)
        if cause is not None:
            raise error from cause
        raise error

    def __enter__(self) -> DeviceSession:
        self.connect()
        return self

    def __exit__(self, *exc_info) -> None:
        self.disconnect()
