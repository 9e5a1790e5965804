"""Decode table records with a layout artifact.

Decoding is a pure function of (table bytes, layout): the table header gives
the live record geometry, the layout gives each field's position.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from dynastytdb.config import (
    MAX_RECORD_SIZE,
    TABLE_CAPACITY_OFFSET,
    TABLE_RECORD_COUNT_OFFSET,
    TABLE_RECORD_SIZE_OFFSET,
)
from dynastytdb.errors import (
    CorruptContainerError,
    InvalidLayoutError,
    MissingLayoutError,
    MissingTableError,
    TdbError,
)
from dynastytdb.tdb.bits import decode_string, read_bits, read_float32, to_signed
from dynastytdb.tdb.container import extract_containers
from dynastytdb.tdb.directory import TableDirectory, parse_directory, table_bytes
from dynastytdb.tdb.names import decode_player_name
from dynastytdb.tdb.records import DecodedRow, FieldSpec, Layout, TableLayout, TableMeta

log = logging.getLogger(__name__)

_UINT16 = struct.Struct("<H")
_UINT32 = struct.Struct("<I")


@dataclass(slots=True)
class DecodedTable:
    name: str
    meta: TableMeta
    rows: list[DecodedRow] = field(default_factory=list)
    fields: list[str] = field(default_factory=list)   # Layout field order


@dataclass
class SaveDecodeResult:
    """Per-table outcome of decoding a save. Failed tables land in ``errors``."""
    tables: dict[str, DecodedTable] = field(default_factory=dict)
    errors: dict[str, TdbError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def parse_table_meta(table) -> TableMeta:
    """Read record size, capacity and count from a table header."""
    if len(table) < TABLE_RECORD_COUNT_OFFSET + 2:
        raise InvalidLayoutError(f"Table too small for a header ({len(table)} bytes)")

    record_size = _UINT32.unpack_from(table, TABLE_RECORD_SIZE_OFFSET)[0]
    capacity = _UINT16.unpack_from(table, TABLE_CAPACITY_OFFSET)[0]
    record_count = _UINT16.unpack_from(table, TABLE_RECORD_COUNT_OFFSET)[0]

    if not record_size or record_size > MAX_RECORD_SIZE:
        raise InvalidLayoutError(f"Invalid recordSizeBytes: {record_size}")
    if not capacity:
        raise InvalidLayoutError("Invalid capacity: 0")
    record_data_offset = len(table) - record_size * capacity
    if record_data_offset < 0:
        raise InvalidLayoutError(
            f"Invalid recordDataOffset: {record_size} x {capacity} records exceed {len(table)} bytes"
        )

    return TableMeta(
        record_size_bytes=record_size,
        capacity=capacity,
        record_count=record_count,
        record_data_offset=record_data_offset,
    )


def iter_records(table, meta: TableMeta, limit: Optional[int] = None):
    """Yield (rec_no, record view) for populated records."""
    count = meta.record_count if limit is None else min(limit, meta.record_count)
    view = memoryview(table)
    for rec_no in range(count):
        start = meta.record_data_offset + rec_no * meta.record_size_bytes
        end = start + meta.record_size_bytes
        if end > len(view):
            break
        yield rec_no, view[start:end]


def decode_field(record, spec: FieldSpec) -> Any:
    if spec.type == "string":
        return decode_string(record, spec.byte_offset, spec.byte_len)
    if spec.type == "float32":
        return read_float32(record, spec.byte_offset)
    raw = read_bits(record, spec.bit_offset, spec.size_bits, spec.bit_mode)
    return to_signed(raw, spec.size_bits) if spec.type == "sint" else raw


def decode_record(record, fields: Mapping[str, FieldSpec]) -> dict[str, Any]:
    return {name: decode_field(record, spec) for name, spec in fields.items()}


def decode_table(table, table_layout: TableLayout, max_rows: Optional[int] = None,
                 name: str = "") -> DecodedTable:
    """Decode up to ``max_rows`` populated records of one table."""
    meta = parse_table_meta(table)
    for spec in table_layout.fields.values():
        spec.check_fits(meta.record_size_bytes)

    result = DecodedTable(name=name, meta=meta, fields=list(table_layout.fields))
    for rec_no, record in iter_records(table, meta, max_rows):
        result.rows.append(DecodedRow(rec_no, decode_record(record, table_layout.fields)))
    return result


def decorate_rows(decoded: DecodedTable) -> list[str]:
    """Add derived columns (player names for PLAY). Returns the added column names."""
    if decoded.name != "PLAY":
        return []
    for row in decoded.rows:
        row.values.update(decode_player_name(row.values))
    return ["FirstName", "LastName"]


def decode_directory_tables(container, directory: TableDirectory, layout: Layout,
                            tables: Iterable[str], max_rows: Optional[int] = None) -> SaveDecodeResult:
    """Decode the named tables; a failing table does not stop the others."""
    result = SaveDecodeResult()
    for name in tables:
        try:
            entry = directory.get(name)
            if entry is None:
                raise MissingTableError(name)
            table_layout = layout.get(name)
            if table_layout is None:
                raise layout.error_for(name) or MissingLayoutError(name)
            decoded = decode_table(table_bytes(container, entry), table_layout, max_rows, name=name)
        except (MissingTableError, MissingLayoutError, InvalidLayoutError, CorruptContainerError) as e:
            log.warning("Table %s: %s", name, e)
            result.errors[name] = e
            continue
        log.info("Table %s: %d of %d records decoded", name, len(decoded.rows), decoded.meta.record_count)
        result.tables[name] = decoded
    return result


def decode_save_tables(save, layout: Layout, tables: Iterable[str],
                       max_rows: Optional[int] = None) -> SaveDecodeResult:
    """Extract DB1 from a save and decode the named tables.

    MissingMagicError and a corrupt DB1 header abort; everything else is
    reported per table.
    """
    extracted = extract_containers(save)
    directory = parse_directory(extracted.db1)
    return decode_directory_tables(extracted.db1, directory, layout, tables, max_rows)
