"""DB08 container header and table directory parser."""
from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import Iterator, Optional

from dynastytdb.config import (
    DB_ENDIAN_FLAG_OFFSET,
    DB_HEADER_SIZE,
    DB_LENGTH_OFFSET,
    DB_MAGIC,
    DB_TABLE_COUNT_OFFSET,
    DIRECTORY_ENTRY_SIZE,
)
from dynastytdb.errors import CorruptContainerError, MissingMagicError

_ENTRY_FMT = struct.Struct("<4sI")   # name(4) + relative offset(4)
_UINT32 = struct.Struct("<I")


@dataclass(slots=True)
class ContainerHeader:
    big_endian: bool        # Informational; the directory is always little-endian
    db_length: int          # Declared container length
    table_count: int
    directory_offset: int
    data_start: int         # First byte after the directory


@dataclass(slots=True)
class TableEntry:
    """A table directory entry with its computed absolute range."""
    name: str
    rel: int       # Offset relative to data_start
    abs: int       # Offset within the container
    index: int     # Position in the directory
    size: int = 0

    @property
    def end(self) -> int:
        return self.abs + self.size


@dataclass
class TableDirectory:
    header: ContainerHeader
    tables: list[TableEntry] = field(default_factory=list)   # File order
    by_name: dict[str, TableEntry] = field(default_factory=dict)

    def get(self, name: str) -> Optional[TableEntry]:
        return self.by_name.get(name)

    def names(self) -> list[str]:
        return [t.name for t in self.tables]

    def __contains__(self, name: str) -> bool:
        return name in self.by_name

    def __iter__(self) -> Iterator[TableEntry]:
        return iter(self.tables)

    def __len__(self) -> int:
        return len(self.tables)


def parse_header(container) -> ContainerHeader:
    """Parse the fixed 0x18-byte container header."""
    if len(container) < DB_HEADER_SIZE:
        raise CorruptContainerError("DB too small for a DB08 header")
    if container[0:4] != DB_MAGIC:
        raise MissingMagicError("Not a DB08 container (missing DB\\0\\x08 header)")

    table_count = _UINT32.unpack_from(container, DB_TABLE_COUNT_OFFSET)[0]
    data_start = DB_HEADER_SIZE + table_count * DIRECTORY_ENTRY_SIZE
    if data_start > len(container):
        raise CorruptContainerError(
            f"Corrupt DB08: table directory ({table_count} entries) exceeds container length"
        )

    return ContainerHeader(
        big_endian=container[DB_ENDIAN_FLAG_OFFSET] == 1,
        db_length=_UINT32.unpack_from(container, DB_LENGTH_OFFSET)[0],
        table_count=table_count,
        directory_offset=DB_HEADER_SIZE,
        data_start=data_start,
    )


def parse_directory(container) -> TableDirectory:
    """Parse the table directory and size each table by the gap to the next one."""
    hdr = parse_header(container)

    entries = []
    for i in range(hdr.table_count):
        name_bytes, rel = _ENTRY_FMT.unpack_from(container, hdr.directory_offset + i * DIRECTORY_ENTRY_SIZE)
        name = name_bytes.decode("ascii", errors="replace")
        entries.append(TableEntry(name=name, rel=rel, abs=hdr.data_start + rel, index=i))

    # The last table runs to the declared length, or to the buffer end when
    # the declared length is missing or overruns a truncated container.
    container_end = hdr.db_length if 0 < hdr.db_length <= len(container) else len(container)

    by_abs = sorted(entries, key=lambda t: (t.abs, t.index))
    for idx, entry in enumerate(by_abs):
        end = by_abs[idx + 1].abs if idx + 1 < len(by_abs) else container_end
        entry.size = max(0, end - entry.abs)

    return TableDirectory(
        header=hdr,
        tables=by_abs,
        by_name={t.name: t for t in by_abs},
    )


def table_bytes(container, entry: TableEntry) -> memoryview:
    """Zero-copy view of one table's bytes."""
    start, end = entry.abs, entry.end
    if start < 0 or end < start or end > len(container):
        raise CorruptContainerError(
            f"Table {entry.name} range 0x{start:X}-0x{end:X} is out of bounds"
        )
    return memoryview(container)[start:end]
