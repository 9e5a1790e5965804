"""Structural inference of the level -> value lookup table embedded in PRLU.

No oracle covers this table, so its layout is recovered from shape alone:

1. An *index* field must decode to exactly 0..59 across the first 60
   records (each value once). Every bit offset x mode x length in {6, 7, 8}
   is tried.
2. For each index candidate, a *value* field (length 7 or 8, not overlapping
   the index bits) must decode to 0..99 in every record and fill all 60
   slots.
3. Among survivors the mapping is expected to be non-decreasing in index.
   That is a preference, not a filter: candidates are ranked by fewest
   adjacent decreases, then by most distinct values (constant regions are
   trivially monotonic), then by search order.

The monotonic preference can pick a wrong but plausible field if real data
ever holds a genuinely non-monotonic mapping.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

from dynastytdb.config import LOOKUP_INDEX_BITS, LOOKUP_SIZE, LOOKUP_VALUE_BITS, LOOKUP_VALUE_MAX
from dynastytdb.errors import AmbiguousLookupInference
from dynastytdb.tdb.bits import BIT_MODES, PackedRecord
from dynastytdb.tdb.decoder import iter_records, parse_table_meta

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BitField:
    bit_offset: int
    bit_length: int
    mode: str

    def physical_bits(self) -> frozenset[int]:
        """Record bits touched, as byte * 8 + lsb-based position in the byte."""
        bits = range(self.bit_offset, self.bit_offset + self.bit_length)
        if self.mode == "msb":
            return frozenset((b & ~7) | (7 - (b & 7)) for b in bits)
        return frozenset(bits)

    def overlaps(self, other: BitField) -> bool:
        return not self.physical_bits().isdisjoint(other.physical_bits())

    def to_dict(self) -> dict:
        return {"bitOffset": self.bit_offset, "sizeBits": self.bit_length, "bitMode": self.mode}


@dataclass(slots=True)
class LookupTable:
    """Inferred index -> value mapping and the fields it was read from."""
    values: list[int]
    index_field: BitField
    value_field: BitField
    violations: int = 0
    candidates: int = 0   # Index/value pairs that passed the hard constraints

    def value_for(self, index) -> Optional[int]:
        try:
            idx = int(index)
        except (TypeError, ValueError):
            return None
        if 0 <= idx < len(self.values):
            return self.values[idx]
        return None

    def to_dict(self) -> dict:
        return {
            "values": list(self.values),
            "index": self.index_field.to_dict(),
            "value": self.value_field.to_dict(),
            "violations": self.violations,
        }


@dataclass(slots=True)
class _Candidate:
    values: list[int]
    violations: int
    distinct: int
    index_field: BitField
    value_field: BitField
    order: int = field(default=0)

    @property
    def key(self) -> tuple:
        return (self.violations, -self.distinct, self.order)


def count_decreases(values: Sequence[int]) -> int:
    return sum(1 for a, b in zip(values, values[1:]) if b < a)


def find_index_candidates(records: Sequence[PackedRecord], size: int = LOOKUP_SIZE) -> list[BitField]:
    """Fields decoding to a permutation of 0..size-1 across the records."""
    expected = set(range(size))
    record_bits = min(r.size_bits for r in records)
    out = []
    for mode in BIT_MODES:
        for length in LOOKUP_INDEX_BITS:
            for off in range(0, record_bits - length + 1):
                decoded = [r.read(off, length, mode) for r in records]
                if len(set(decoded)) == size and set(decoded) == expected:
                    out.append(BitField(off, length, mode))
    return out


def _fill_slots(indices: Sequence[int], values: Sequence[int], size: int) -> Optional[list[int]]:
    slots: list[Optional[int]] = [None] * size
    for idx, value in zip(indices, values):
        if slots[idx] is not None:
            return None
        slots[idx] = value
    if any(v is None for v in slots):
        return None
    return slots  # type: ignore[return-value]


def infer_from_records(records: Sequence[PackedRecord], size: int = LOOKUP_SIZE) -> LookupTable:
    """Infer the lookup table from the first ``size`` records."""
    if len(records) < size:
        raise AmbiguousLookupInference(f"Need {size} records, table has {len(records)}")
    records = records[:size]
    record_bits = min(r.size_bits for r in records)

    index_fields = find_index_candidates(records, size)
    if not index_fields:
        raise AmbiguousLookupInference(f"No field decodes to the indices 0..{size - 1}")
    log.debug("%d index candidates", len(index_fields))

    best: Optional[_Candidate] = None
    order = 0
    for index_field in index_fields:
        indices = [r.read(index_field.bit_offset, index_field.bit_length, index_field.mode)
                   for r in records]
        for mode in BIT_MODES:
            for length in LOOKUP_VALUE_BITS:
                for off in range(0, record_bits - length + 1):
                    value_field = BitField(off, length, mode)
                    if value_field.overlaps(index_field):
                        continue
                    decoded = [r.read(off, length, mode) for r in records]
                    if any(v > LOOKUP_VALUE_MAX for v in decoded):
                        continue
                    slots = _fill_slots(indices, decoded, size)
                    if slots is None:
                        continue
                    cand = _Candidate(slots, count_decreases(slots), len(set(slots)),
                                      index_field, value_field, order)
                    order += 1
                    if best is None or cand.key < best.key:
                        best = cand

    if best is None:
        raise AmbiguousLookupInference(
            f"No value field in 0..{LOOKUP_VALUE_MAX} fills all {size} index slots"
        )

    log.info("Lookup table: index %s, value %s, %d decreases (%d candidates)",
             best.index_field, best.value_field, best.violations, order)
    return LookupTable(
        values=best.values,
        index_field=best.index_field,
        value_field=best.value_field,
        violations=best.violations,
        candidates=order,
    )


def infer_lookup_table(table, size: int = LOOKUP_SIZE) -> LookupTable:
    """Infer the lookup table from a table's raw bytes."""
    meta = parse_table_meta(table)
    records = [PackedRecord(rec) for _, rec in iter_records(table, meta, size)]
    return infer_from_records(records, size)
