"""Candidate scoring for layout discovery.

Each search walks candidate positions in a fixed order (hinted offsets
first, then a full scan) and keeps the first candidate with the strictly best
score key, so identical input always yields the identical pick.

Integer scoring has two tiers. When the oracle holds any nonzero expected
value the primary tier counts only those matches; an always-zero region
otherwise "matches" sparse flag fields at many wrong offsets. Ties fall
through to the all-values tier. Score keys, in priority order:

    strings/floats:  (matched, ratio)
    integers:        (primary_score, primary_ratio, matched_all, ratio_all)
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional, Sequence

from dynastytdb.discover.oracle import OracleValue, normalize_oracle_value
from dynastytdb.tdb.bits import BIT_MODES, PackedRecord, decode_string, read_float32, to_signed

log = logging.getLogger(__name__)

FLOAT_TOLERANCE = 1e-5


@dataclass(slots=True)
class Sample:
    """One oracle record paired with its raw bytes."""
    rec_no: int
    record: PackedRecord
    expected: OracleValue

    @classmethod
    def build(cls, rec_no: int, record: PackedRecord, raw_expected) -> "Sample":
        return cls(rec_no, record, normalize_oracle_value(raw_expected))


def _is_number(value: OracleValue) -> bool:
    return value is not None and not isinstance(value, str)


@dataclass(slots=True)
class ByteMatch:
    """Best byte-aligned candidate for a string or float field."""
    byte_offset: int
    matched: int
    total: int

    @property
    def ratio(self) -> float:
        return self.matched / self.total

    @property
    def key(self) -> tuple:
        return (self.matched, self.ratio)

    @property
    def perfect(self) -> bool:
        return self.matched == self.total


@dataclass(slots=True)
class NumericMatch:
    """Score of one (bit offset, bit mode) candidate for an integer field."""
    bit_offset: int
    mode: str
    matched_all: int
    total_all: int
    matched_nonzero: int
    total_nonzero: int

    @property
    def ratio_all(self) -> float:
        return self.matched_all / self.total_all if self.total_all else 0.0

    @property
    def ratio_nonzero(self) -> float:
        return self.matched_nonzero / self.total_nonzero if self.total_nonzero else 0.0

    @property
    def primary_score(self) -> int:
        return self.matched_nonzero if self.total_nonzero else self.matched_all

    @property
    def primary_ratio(self) -> float:
        return self.ratio_nonzero if self.total_nonzero else self.ratio_all

    @property
    def key(self) -> tuple:
        return (self.primary_score, self.primary_ratio, self.matched_all, self.ratio_all)

    @property
    def perfect(self) -> bool:
        perfect_nonzero = self.total_nonzero == 0 or self.matched_nonzero == self.total_nonzero
        return self.matched_all == self.total_all and perfect_nonzero


def _bounded(offsets: Iterable[int], width: int, limit: int) -> Iterator[int]:
    for off in offsets:
        if off >= 0 and off + width <= limit:
            yield off


# -- Strings --

def score_string(samples: Sequence[Sample], byte_offset: int, byte_len: int) -> tuple[int, int]:
    """(matched, total) over samples with a nonempty expected string."""
    matched = total = 0
    for s in samples:
        if not isinstance(s.expected, str) or not s.expected:
            continue
        total += 1
        if decode_string(s.record.data, byte_offset, byte_len) == s.expected:
            matched += 1
    return matched, total


def find_string_offset(samples: Sequence[Sample], record_size_bytes: int, byte_len: int,
                       preferred: Sequence[int] = ()) -> Optional[ByteMatch]:
    candidates = list(_bounded(preferred, byte_len, record_size_bytes))
    candidates.extend(range(0, record_size_bytes - byte_len + 1))

    best: Optional[ByteMatch] = None
    for off in candidates:
        matched, total = score_string(samples, off, byte_len)
        if not total:
            continue
        cand = ByteMatch(off, matched, total)
        if best is None or cand.key > best.key:
            best = cand
            if best.perfect:
                break
    return best


# -- Floats --

def score_float(samples: Sequence[Sample], byte_offset: int) -> tuple[int, int]:
    matched = total = 0
    for s in samples:
        if not _is_number(s.expected):
            continue
        total += 1
        if abs(read_float32(s.record.data, byte_offset) - s.expected) < FLOAT_TOLERANCE:
            matched += 1
    return matched, total


def find_float_offset(samples: Sequence[Sample], record_size_bytes: int,
                      preferred: Sequence[int] = ()) -> Optional[ByteMatch]:
    candidates = list(_bounded(preferred, 4, record_size_bytes))
    candidates.extend(range(0, record_size_bytes - 3))

    best: Optional[ByteMatch] = None
    for off in candidates:
        matched, total = score_float(samples, off)
        if not total:
            continue
        cand = ByteMatch(off, matched, total)
        if best is None or cand.key > best.key:
            best = cand
            if best.perfect:
                break
    return best


# -- Integers --

def score_numeric(samples: Sequence[Sample], bit_offset: int, size_bits: int,
                  mode: str, signed: bool) -> NumericMatch:
    matched_all = total_all = matched_nonzero = total_nonzero = 0
    for s in samples:
        if not _is_number(s.expected):
            continue
        got = s.record.read(bit_offset, size_bits, mode)
        if signed:
            got = to_signed(got, size_bits)
        hit = got == s.expected
        total_all += 1
        matched_all += hit
        if s.expected != 0:
            total_nonzero += 1
            matched_nonzero += hit
    return NumericMatch(bit_offset, mode, matched_all, total_all, matched_nonzero, total_nonzero)


def numeric_candidates(record_size_bits: int, size_bits: int,
                       preferred: Sequence[int] = ()) -> list[int]:
    """Hinted offsets, then byte-aligned offsets for whole-byte fields, then every bit."""
    last = record_size_bits - size_bits
    candidates = list(_bounded(preferred, size_bits, record_size_bits))
    if size_bits % 8 == 0:
        candidates.extend(range(0, last + 1, 8))
    candidates.extend(range(0, last + 1))
    return candidates


def find_numeric_offset(samples: Sequence[Sample], record_size_bits: int, size_bits: int,
                        preferred: Sequence[int] = (), signed: bool = False) -> Optional[NumericMatch]:
    """Best (bit offset, mode) for an integer field; stops at the first perfect match."""
    best: Optional[NumericMatch] = None
    evaluated = 0
    for bit_offset in numeric_candidates(record_size_bits, size_bits, preferred):
        for mode in BIT_MODES:
            cand = score_numeric(samples, bit_offset, size_bits, mode, signed)
            evaluated += 1
            if not cand.total_all:
                continue
            if best is None or cand.key > best.key:
                best = cand
                if best.perfect:
                    log.debug("Perfect match at bit %d (%s) after %d candidates",
                              bit_offset, mode, evaluated)
                    return best
    return best
