"""Bit and byte level field readers for fixed-width TDB records.

Bit addressing: for result bit ``i`` the source bit is ``bit_offset + i``,
living in byte ``index >> 3`` at position ``index & 7``. In ``lsb`` mode that
position counts from the least significant bit of the byte, in ``msb`` mode
from the most significant one. Either way result bit 0 is the least
significant bit of the returned value. Bytes past the end of the record read
as zero.
"""
from __future__ import annotations

import struct

BIT_MODES = ("lsb", "msb")

_FLOAT32 = struct.Struct("<f")

# Byte with its 8 bits mirrored; lets msb reads reuse the lsb arithmetic
_BIT_REVERSED = bytes(int(f"{i:08b}"[::-1], 2) for i in range(256))


def _check_mode(mode: str) -> None:
    if mode not in BIT_MODES:
        raise ValueError(f"Unknown bit mode: {mode!r}")


def read_bits(data, bit_offset: int, bit_length: int, mode: str = "lsb") -> int:
    """Read ``bit_length`` bits at ``bit_offset`` as an unsigned integer."""
    _check_mode(mode)
    if bit_length <= 0:
        return 0
    start = bit_offset >> 3
    end = (bit_offset + bit_length + 7) >> 3
    chunk = bytes(data[start:end])
    if mode == "msb":
        chunk = chunk.translate(_BIT_REVERSED)
    return (int.from_bytes(chunk, "little") >> (bit_offset & 7)) & ((1 << bit_length) - 1)


def to_signed(raw: int, bit_length: int) -> int:
    """Two's complement conversion. Widths of 32 bits and up are returned unchanged."""
    if bit_length <= 0 or bit_length >= 32:
        return raw
    sign_bit = 1 << (bit_length - 1)
    return raw - (1 << bit_length) if raw & sign_bit else raw


def decode_string(data, byte_offset: int, byte_len: int) -> str:
    """Decode a fixed-width Latin-1 string, dropping trailing NULs and whitespace."""
    raw = bytes(data[byte_offset:byte_offset + byte_len])
    return raw.decode("latin-1").rstrip("\x00").rstrip()


def read_float32(data, byte_offset: int) -> float:
    """Little-endian IEEE-754 single at ``byte_offset``."""
    return _FLOAT32.unpack_from(data, byte_offset)[0]


class PackedRecord:
    """One record packed into two big integers, one per bit mode.

    Discovery reads the same record at thousands of candidate offsets;
    packing once turns each read into a shift and a mask.
    """

    __slots__ = ("data", "size_bits", "_lsb", "_msb")

    def __init__(self, data):
        self.data = data
        raw = bytes(data)
        self.size_bits = len(raw) * 8
        self._lsb = int.from_bytes(raw, "little")
        self._msb = int.from_bytes(raw.translate(_BIT_REVERSED), "little")

    def read(self, bit_offset: int, bit_length: int, mode: str = "lsb") -> int:
        if mode == "lsb":
            packed = self._lsb
        elif mode == "msb":
            packed = self._msb
        else:
            raise ValueError(f"Unknown bit mode: {mode!r}")
        return (packed >> bit_offset) & ((1 << bit_length) - 1)
