"""Locate the DB08 containers embedded in a dynasty save file.

Saves carry a platform wrapper of variable length in front of the first
container, so DB1 is found by scanning for the ``DB\\0\\x08`` signature. An
optional DB2 starts exactly where DB1's declared length ends.
"""
from __future__ import annotations

import hashlib
import logging
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dynastytdb.config import DB_ENDIAN_FLAG_OFFSET, DB_LENGTH_OFFSET, DB_MAGIC, HASH_PREFIX_SIZE
from dynastytdb.errors import CorruptContainerError, MissingMagicError

log = logging.getLogger(__name__)

_UINT32 = struct.Struct("<I")


@dataclass(slots=True)
class ExtractedContainers:
    """Zero-copy views of the containers found in a save."""
    db1: memoryview
    db1_offset: int
    db1_length: int          # Declared length (may exceed len(db1) when truncated)
    big_endian: bool
    db2: Optional[memoryview] = None
    db2_offset: Optional[int] = None
    db2_length: Optional[int] = None

    @property
    def prefix_size(self) -> int:
        """Size of the opaque wrapper in front of DB1."""
        return self.db1_offset

    @property
    def has_db2(self) -> bool:
        return self.db2 is not None

    @property
    def db1_truncated(self) -> bool:
        return len(self.db1) < self.db1_length


def has_magic_at(data, offset: int) -> bool:
    return 0 <= offset and offset + 4 <= len(data) and data[offset:offset + 4] == DB_MAGIC


def find_magic(data, start: int = 0) -> int:
    """Offset of the first container signature at or after ``start``, or -1."""
    start = max(0, start)
    if isinstance(data, (bytes, bytearray)):
        return data.find(DB_MAGIC, start)
    for i in range(start, len(data) - 3):
        if has_magic_at(data, i):
            return i
    return -1


def _declared_length(view: memoryview, offset: int) -> int:
    if offset + DB_LENGTH_OFFSET + 4 > len(view):
        raise CorruptContainerError(f"Truncated DB08 header at offset 0x{offset:X}")
    length = _UINT32.unpack_from(view, offset + DB_LENGTH_OFFSET)[0]
    if not length:
        raise CorruptContainerError(f"DB08 length is zero at offset 0x{offset:X}")
    return length


def _container_view(view: memoryview, offset: int, length: int) -> memoryview:
    end = offset + length
    if end > len(view):
        # Lenient: a container overrunning the save is taken as the rest of it.
        log.debug("DB08 at 0x%X declares %d bytes, only %d left; truncating",
                  offset, length, len(view) - offset)
        return view[offset:]
    return view[offset:end]


def extract_containers(data) -> ExtractedContainers:
    """Find DB1 (required) and DB2 (optional) inside a save buffer.

    Raises MissingMagicError when no signature exists and CorruptContainerError
    when DB1's header is truncated or declares a zero length.
    """
    view = memoryview(data)
    db1_offset = find_magic(data)
    if db1_offset < 0:
        raise MissingMagicError("No DB08 header (DB\\0\\x08) found in save file")

    db1_length = _declared_length(view, db1_offset)
    big_endian = view[db1_offset + DB_ENDIAN_FLAG_OFFSET] == 1
    result = ExtractedContainers(
        db1=_container_view(view, db1_offset, db1_length),
        db1_offset=db1_offset,
        db1_length=db1_length,
        big_endian=big_endian,
    )

    db2_offset = db1_offset + db1_length
    if has_magic_at(view, db2_offset):
        try:
            db2_length = _declared_length(view, db2_offset)
        except CorruptContainerError as e:
            log.warning("Ignoring DB2: %s", e)
        else:
            result.db2 = _container_view(view, db2_offset, db2_length)
            result.db2_offset = db2_offset
            result.db2_length = db2_length

    return result


def content_hash(data) -> str:
    """SHA-256 of the first megabyte, enough to tell saves apart."""
    return hashlib.sha256(bytes(memoryview(data)[:HASH_PREFIX_SIZE])).hexdigest()


def read_save(path: Path) -> bytes:
    with open(path, "rb") as f:
        return f.read()
