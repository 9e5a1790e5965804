"""Low-level field definitions stored between a table header and its records.

Entries start at 0x30 and are either 8 bytes (name + size in bits) or 16
bytes with two extra words, the second of which looks like the bit index
where the field ends. Only used as hints to order discovery candidates.
"""
from __future__ import annotations

import re
import struct
from dataclasses import dataclass
from typing import Optional

from dynastytdb.config import TABLE_FIELD_DEFS_OFFSET

_NAME_RE = re.compile(rb"^[A-Z0-9]{4}$")
_DEF_FMT = struct.Struct("<4sI")
_EXT_FMT = struct.Struct("<II")


@dataclass(slots=True)
class FieldDef:
    name: str
    size_bits: int
    a: Optional[int] = None   # Small enum in extended entries
    b: Optional[int] = None   # Candidate end bit; 0 means "end of record"

    def preferred_bit_offsets(self, record_size_bits: int) -> list[int]:
        if self.b is None:
            return []
        end = record_size_bits if self.b == 0 else self.b
        return [end - self.size_bits, self.b]

    def preferred_byte_offsets(self, record_size_bits: int) -> list[int]:
        if self.size_bits % 8:
            return []
        return [off // 8 for off in self.preferred_bit_offsets(record_size_bits)]


def parse_field_defs(table, record_data_offset: int) -> dict[str, FieldDef]:
    """Parse definitions until the first entry that is not a plausible name."""
    defs: dict[str, FieldDef] = {}
    p = TABLE_FIELD_DEFS_OFFSET

    while p + 8 <= record_data_offset:
        name_bytes, size_bits = _DEF_FMT.unpack_from(table, p)
        if not _NAME_RE.match(name_bytes) or not size_bits:
            break
        name = name_bytes.decode("ascii")

        if p + 16 <= record_data_offset:
            a, b = _EXT_FMT.unpack_from(table, p + 8)
            if a <= 64 and b <= 0x00FFFFFF:
                defs[name] = FieldDef(name, size_bits, a, b)
                p += 16
                continue

        defs[name] = FieldDef(name, size_bits)
        p += 8

    return defs
