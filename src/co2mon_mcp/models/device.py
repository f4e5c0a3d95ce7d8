"""Device identity model."""

from __future__ import annotations

from dataclasses import dataclass

VENDOR_ID = 0x04D9
PRODUCT_ID = 0xA052


@dataclass(frozen=True)
class DeviceIdentity:
    """USB vendor/product pair selecting which monitor to open."""

    vendor_id: int = VENDOR_ID
    product_id: int = PRODUCT_ID

    def __post_init__(self) -> None:
        for name in ("vendor_id", "product_id"):
            value = getattr(self, name)
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"{name} must be a 16-bit value, got {value:#x}")

    def __str__(self) -> str:
        return f"{self.vendor_id:04x}:{self.product_id:04x}"

    def to_dict(self) -> dict:
        return {
            "vendor_id": f"{self.vendor_id:#06x}",
            "product_id": f"{self.product_id:#06x}",
        }
