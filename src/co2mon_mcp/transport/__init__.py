"""Transport layer: USB device session and endpoint polling."""

from .usb_session import DeviceSession, SessionState
