"""Protocol layer: frame decryption, validation and reading interpretation."""

from .cipher import FIXED_KEY, DecodedFrame, decode_frame, decrypt
from .decoder import FrameDecoder, Opcode, interpret
