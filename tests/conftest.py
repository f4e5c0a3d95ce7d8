"""Shared fakes for the pyusb device tree."""

from __future__ import annotations

import queue
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
import usb.core

# Plaintext frames as sent by current firmware
CO2_600 = bytes([0x50, 0x02, 0x58, 0xAA, 0x0D, 0x00, 0x00, 0x00])
HUMIDITY_4900 = bytes([0x41, 0x13, 0x24, 0x78, 0x0D, 0x00, 0x00, 0x00])
TEMPERATURE_4500 = bytes([0x42, 0x11, 0x94, 0xE7, 0x0D, 0x00, 0x00, 0x00])

# TEMPERATURE_4500 as obfuscated by legacy firmware
TEMPERATURE_4500_ENCRYPTED = bytes([0x95, 0xE4, 0xF6, 0x20, 0x01, 0x46, 0xBF, 0x7A])


class FakeEndpoint:
    """Interrupt IN endpoint fed from a queue; empty reads time out."""

    bEndpointAddress = 0x81

    def __init__(self) -> None:
        self._frames: queue.Queue = queue.Queue()
        self.error: Exception | None = None

    def push(self, *frames: bytes) -> None:
        for frame in frames:
            self._frames.put(frame)

    def read(self, size, timeout=None):
        if self.error is not None:
            raise self.error
        try:
            return bytearray(self._frames.get(timeout=0.02))
        except queue.Empty:
            raise usb.core.USBTimeoutError("Operation timed out") from None


@pytest.fixture
def endpoint():
    return FakeEndpoint()


@pytest.fixture
def usb_device(endpoint):
    intf = MagicMock()
    intf.bInterfaceNumber = 0
    intf.__getitem__.return_value = endpoint
    cfg = MagicMock()
    cfg.__getitem__.return_value = intf
    dev = MagicMock()
    dev.get_active_configuration.return_value = cfg
    dev.is_kernel_driver_active.return_value = True
    dev.ctrl_transfer.return_value = 8
    return dev


@pytest.fixture
def fake_usb(usb_device):
    """Patch pyusb lookup and interface helpers to use ``usb_device``."""
    with patch("usb.core.find", return_value=usb_device) as find, \
            patch("usb.util.claim_interface") as claim, \
            patch("usb.util.release_interface") as release, \
            patch("usb.util.dispose_resources") as dispose, \
            patch(
                "co2mon_mcp.transport.usb_session._kernel_driver_platform",
                return_value=True,
            ):
        yield SimpleNamespace(
            find=find,
            claim=claim,
            release=release,
            dispose=dispose,
            device=usb_device,
        )
