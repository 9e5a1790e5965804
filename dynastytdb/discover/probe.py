"""Manual investigation aid: find where known values hide in one record.

Tries each byte-order transform of the record with both bit modes, reading
values either first-bit-low or first-bit-high, and lists every bit offset
reproducing each expected value. Lower confidence than
oracle discovery; meant for eyeballing a table that discovery could not
crack.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from dynastytdb.tdb.bits import BIT_MODES, PackedRecord


def _swap16(data: bytes) -> bytes:
    out = bytearray(len(data))
    for i in range(0, len(data), 2):
        chunk = data[i:i + 2].ljust(2, b"\x00")
        out[i:i + 2] = chunk[::-1][:len(data) - i]
    return bytes(out)


def _swap32(data: bytes) -> bytes:
    out = bytearray(len(data))
    for i in range(0, len(data), 4):
        chunk = data[i:i + 4].ljust(4, b"\x00")
        out[i:i + 4] = chunk[::-1][:len(data) - i]
    return bytes(out)


def _swap32_words(data: bytes) -> bytes:
    out = bytearray(len(data))
    for i in range(0, len(data), 4):
        chunk = data[i:i + 4].ljust(4, b"\x00")
        out[i:i + 4] = (chunk[2:4] + chunk[0:2])[:len(data) - i]
    return bytes(out)


def reverse_bits(value: int, bits: int) -> int:
    """Mirror the low ``bits`` bits. Values that do not fit are returned as is."""
    if bits <= 0 or not 0 <= value < (1 << bits):
        return value
    return int(f"{value:0{bits}b}"[::-1], 2)


TRANSFORMS: dict[str, Callable[[bytes], bytes]] = {
    "orig": lambda data: data,
    "swap16": _swap16,
    "swap32": _swap32,
    "swap32Words": _swap32_words,
    "reverse": lambda data: data[::-1],
}


@dataclass(slots=True)
class ExpectedValue:
    name: str
    bits: int
    value: int

    @classmethod
    def parse(cls, text: str) -> ExpectedValue:
        """Parse ``NAME:BITS:VALUE`` (e.g. ``BMFD:10:178``)."""
        try:
            name, bits, value = text.split(":")
            return cls(name.strip(), int(bits), int(value, 0))
        except ValueError as e:
            raise ValueError(f"Expected NAME:BITS:VALUE, got {text!r}") from e


@dataclass
class ProbeResult:
    transform: str
    mode: str
    reverse_value: bool = False   # First bit read is the value's most significant
    hits: dict[str, list[int]] = field(default_factory=dict)

    @property
    def hit_count(self) -> int:
        """Number of expected values found at least once."""
        return sum(1 for offsets in self.hits.values() if offsets)


def probe_record(record, expected: Sequence[ExpectedValue],
                 max_hits: Optional[int] = None) -> list[ProbeResult]:
    """Probe every transform x bit mode x value order; best combinations first."""
    raw = bytes(record)
    results = []
    for transform_name, transform in TRANSFORMS.items():
        packed = PackedRecord(transform(raw))
        for mode in BIT_MODES:
            for reverse_value in (False, True):
                results.append(_probe_packed(packed, expected, transform_name, mode,
                                             reverse_value, max_hits))

    # Stable: ties keep transform/mode/order sequence
    results.sort(key=lambda r: r.hit_count, reverse=True)
    return results


def _probe_packed(packed: PackedRecord, expected: Sequence[ExpectedValue], transform_name: str,
                  mode: str, reverse_value: bool, max_hits: Optional[int]) -> ProbeResult:
    result = ProbeResult(transform_name, mode, reverse_value)
    for ev in expected:
        # Reading first-bit-high equals the bit-reversed first-bit-low read
        target = reverse_bits(ev.value, ev.bits) if reverse_value else ev.value
        found = []
        for bit_off in range(0, packed.size_bits - ev.bits + 1):
            if packed.read(bit_off, ev.bits, mode) == target:
                found.append(bit_off)
                if max_hits is not None and len(found) >= max_hits:
                    break
        if found:
            result.hits[ev.name] = found
    return result
