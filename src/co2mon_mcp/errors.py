"""Exceptions raised by the CO2 monitor driver."""


class Co2MonitorError(Exception):
    """Base exception for the CO2 monitor driver."""

    pass


class DeviceNotFound(Co2MonitorError):
    """No attached device matches the requested vendor/product id."""

    pass


class InterfaceUnavailable(Co2MonitorError):
    """The device interface could not be detached, selected or claimed."""

    pass


class HandshakeFailed(Co2MonitorError):
    """The activation control transfer was rejected or incomplete."""

    pass


class TransferFailed(Co2MonitorError):
    """The initial read from the data endpoint failed."""

    pass


class SessionStateError(Co2MonitorError):
    """Operation is not valid in the session's current state."""

    pass


class FrameError(Co2MonitorError):
    """A frame read from the device could not be trusted."""

    pass


class FrameSizeError(FrameError):
    """A read returned something other than exactly 8 bytes."""

    pass


class ChecksumError(FrameError):
    """Marker byte or checksum mismatch after decryption."""

    pass


class PollError(Co2MonitorError):
    """A single in-flight read failed while polling."""

    pass


class TeardownError(Co2MonitorError):
    """A step of disconnect() failed; the remaining steps still ran."""

    pass
