"""Data models for device identity and sensor readings."""

from .device import DeviceIdentity
from .readings import Reading, ReadingKind
