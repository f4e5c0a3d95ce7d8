"""Decryption and validation of the monitor's 8-byte frames.

Frame layout after decryption::

    +--------+----------+----------+----------+--------+-------------+
    | Opcode | Value hi | Value lo | Checksum | Marker |   Unused    |
    | 1 byte |  1 byte  |  1 byte  |  1 byte  |  0x0D  |   3 bytes   |
    +--------+----------+----------+----------+--------+-------------+

- Checksum: low byte of the sum of bytes 0-2
- Marker: 0x0D on every well-formed frame

Legacy firmware obfuscates each frame with a fixed key (the same key sent
in the activation handshake). Newer firmware sends plaintext frames, which
are recognised by the marker already being present on the wire.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import ChecksumError, FrameSizeError

FRAME_SIZE = 8
MARKER_INDEX = 4
FRAME_MARKER = 0x0D
CHECKSUM_INDEX = 3

FIXED_KEY = bytes([0xC4, 0xC6, 0xC0, 0x92, 0x40, 0x23, 0xDC, 0x96])

# Wire position i carries frame byte SHUFFLE[i]
SHUFFLE = (2, 4, 0, 7, 1, 6, 5, 3)

# Additive offsets: nibble-swapped "Htemp99e"
_CSTATE = b"Htemp99e"
OFFSETS = bytes(((c >> 4) | (c << 4)) & 0xFF for c in _CSTATE)


@dataclass(frozen=True)
class DecodedFrame:
    """A validated frame: opcode plus 16-bit big-endian value."""

    opcode: int
    value: int

    def __repr__(self) -> str:
        return f"DecodedFrame(opcode=0x{self.opcode:02X}, value=0x{self.value:04X})"

    @classmethod
    def from_bytes(cls, data: bytes) -> DecodedFrame:
        return cls(opcode=data[0], value=(data[1] << 8) | data[2])


def is_plaintext(raw: bytes) -> bool:
    """True if the frame already carries the marker byte and skips decryption."""
    return raw[MARKER_INDEX] == FRAME_MARKER


def decrypt(raw: bytes, key: bytes = FIXED_KEY) -> bytes:
    """Undo the legacy firmware obfuscation of one frame.

    Args:
        raw: 8 bytes as read from the endpoint.
        key: 8-byte key sent during the handshake.

    Returns:
        The 8 decrypted bytes (not yet validated).
    """
    if len(raw) != FRAME_SIZE or len(key) != FRAME_SIZE:
        raise FrameSizeError(
            f"Frame and key must be {FRAME_SIZE} bytes, got {len(raw)} and {len(key)}"
        )

    unshuffled = bytearray(FRAME_SIZE)
    for i, pos in enumerate(SHUFFLE):
        unshuffled[pos] = raw[i] ^ key[pos]

    mixed = [
        ((unshuffled[i] >> 3) | (unshuffled[(i - 1) % FRAME_SIZE] << 5)) & 0xFF
        for i in range(FRAME_SIZE)
    ]

    return bytes((0x100 + mixed[i] - OFFSETS[i]) & 0xFF for i in range(FRAME_SIZE))


def checksum(frame: bytes) -> int:
    return sum(frame[:CHECKSUM_INDEX]) & 0xFF


def verify(frame: bytes) -> None:
    """Raise :class:`ChecksumError` unless ``frame`` is a well-formed frame."""
    if frame[MARKER_INDEX] != FRAME_MARKER:
        raise ChecksumError(
            f"Marker mismatch: expected 0x{FRAME_MARKER:02X}, "
            f"got 0x{frame[MARKER_INDEX]:02X} in {bytes(frame).hex(' ')}"
        )
    expected = checksum(frame)
    if frame[CHECKSUM_INDEX] != expected:
        raise ChecksumError(
            f"Checksum mismatch: expected 0x{expected:02X}, "
            f"got 0x{frame[CHECKSUM_INDEX]:02X} in {bytes(frame).hex(' ')}"
        )


def decode_frame(raw: bytes, key: bytes = FIXED_KEY) -> DecodedFrame:
    """Turn one raw endpoint read into a validated :class:`DecodedFrame`.

    Plaintext frames bypass decryption but are still verified.

    Raises:
        FrameSizeError: If ``raw`` is not exactly 8 bytes.
        ChecksumError: If the marker or checksum does not match.
    """
    raw = bytes(raw)
    if len(raw) != FRAME_SIZE:
        raise FrameSizeError(f"Frame must be {FRAME_SIZE} bytes, got {len(raw)}")

    frame = raw if is_plaintext(raw) else decrypt(raw, key)
    verify(frame)
    return DecodedFrame.from_bytes(frame)
