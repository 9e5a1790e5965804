"""Layout discovery: infer per-field bit positions by scoring against oracle rows.

Every field is searched independently. A field whose best candidate matches
nothing, or that has no usable oracle value, is left out of the layout and
reported in ``TableDiscovery.omitted``; it is never guessed. Tables with no
oracle rows at all fall back to packing the declared fields contiguously.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional

from dynastytdb.config import LAYOUT_FORMAT
from dynastytdb.discover.fielddefs import parse_field_defs
from dynastytdb.discover.oracle import OracleField, OracleTable
from dynastytdb.discover.search import (
    ByteMatch,
    NumericMatch,
    Sample,
    find_float_offset,
    find_numeric_offset,
    find_string_offset,
)
from dynastytdb.errors import CorruptContainerError, InvalidLayoutError, MissingTableError, TdbError
from dynastytdb.tdb.bits import PackedRecord
from dynastytdb.tdb.decoder import parse_table_meta
from dynastytdb.tdb.directory import TableDirectory, parse_directory, table_bytes
from dynastytdb.tdb.records import FieldSpec, Layout, TableLayout

log = logging.getLogger(__name__)


@dataclass
class TableDiscovery:
    """Discovered layout of one table plus how each field fared."""
    name: str
    layout: TableLayout
    matches: dict[str, ByteMatch | NumericMatch] = field(default_factory=dict)
    omitted: list[str] = field(default_factory=list)
    sequential: bool = False   # Built by the no-oracle fallback, unverified


@dataclass
class LayoutDiscovery:
    layout: Layout
    tables: dict[str, TableDiscovery] = field(default_factory=dict)
    errors: dict[str, TdbError] = field(default_factory=dict)


def _record_samples(table, meta, oracle: OracleTable) -> dict[int, PackedRecord]:
    """Pack the records the oracle has rows for."""
    view = memoryview(table)
    samples: dict[int, PackedRecord] = {}
    for rec in oracle.records:
        start = meta.record_data_offset + rec.rec_no * meta.record_size_bytes
        end = start + meta.record_size_bytes
        if end > len(view) or rec.rec_no in samples:
            continue
        samples[rec.rec_no] = PackedRecord(view[start:end])
    return samples


def sequential_layout(fields: Iterable[OracleField], record_size_bytes: int) -> dict[str, FieldSpec]:
    """Assign contiguous bit positions in declared order.

    Strings and floats are only placed on byte boundaries. A field that does
    not fit in the record is skipped and the cursor stays put.
    """
    record_size_bits = record_size_bytes * 8
    cursor = 0
    out: dict[str, FieldSpec] = {}

    for f in fields:
        if cursor + f.size_bits > record_size_bits:
            continue
        kind = f.kind

        if kind == "string":
            if f.size_bits % 8 or cursor % 8:
                continue
            out[f.name] = FieldSpec(f.name, "string", f.size_bits,
                                    byte_offset=cursor // 8, byte_len=f.size_bits // 8)
        elif kind == "float32":
            if f.size_bits != 32 or cursor % 8:
                continue
            out[f.name] = FieldSpec(f.name, "float32", 32, byte_offset=cursor // 8)
        else:
            out[f.name] = FieldSpec(f.name, kind, f.size_bits, bit_offset=cursor, bit_mode="lsb")

        cursor += f.size_bits

    return out


def discover_field(f: OracleField, samples: list[Sample], record_size_bytes: int,
                   preferred_bits: list[int], preferred_bytes: list[int]):
    """Search one field. Returns (FieldSpec, match) or (None, best-or-None)."""
    kind = f.kind

    if kind == "string":
        if f.size_bits % 8:
            return None, None
        byte_len = f.size_bits // 8
        best = find_string_offset(samples, record_size_bytes, byte_len, preferred_bytes)
        if best is None or best.matched == 0:
            return None, best
        return FieldSpec(f.name, "string", f.size_bits,
                         byte_offset=best.byte_offset, byte_len=byte_len), best

    if kind == "float32":
        if f.size_bits != 32:
            return None, None
        best = find_float_offset(samples, record_size_bytes, preferred_bytes)
        if best is None or best.matched == 0:
            return None, best
        return FieldSpec(f.name, "float32", 32, byte_offset=best.byte_offset), best

    best = find_numeric_offset(samples, record_size_bytes * 8, f.size_bits,
                               preferred_bits, signed=f.signed)
    if best is None or best.matched_all == 0:
        return None, best
    return FieldSpec(f.name, kind, f.size_bits,
                     bit_offset=best.bit_offset, bit_mode=best.mode), best


def discover_table_layout(table, oracle: OracleTable) -> TableDiscovery:
    """Discover the layout of one table from its bytes and oracle rows."""
    meta = parse_table_meta(table)
    fields: dict[str, FieldSpec] = {}
    matches: dict[str, ByteMatch | NumericMatch] = {}
    omitted: list[str] = []
    sequential = False

    if not oracle.records and oracle.fields:
        fields = sequential_layout(oracle.fields, meta.record_size_bytes)
        sequential = True
        omitted = [f.name for f in oracle.fields if f.name not in fields]
        log.info("%s: no oracle rows, sequential layout for %d of %d fields",
                 oracle.name, len(fields), len(oracle.fields))
    else:
        defs = parse_field_defs(table, meta.record_data_offset)
        packed = _record_samples(table, meta, oracle)
        record_size_bits = meta.record_size_bytes * 8

        for f in oracle.fields:
            samples = [
                Sample.build(rec.rec_no, packed[rec.rec_no], rec.expected.get(f.name))
                for rec in oracle.records
                if rec.rec_no in packed
            ]
            if not samples:
                omitted.append(f.name)
                continue

            hint = defs.get(f.name)
            preferred_bits = hint.preferred_bit_offsets(record_size_bits) if hint else []
            preferred_bytes = hint.preferred_byte_offsets(record_size_bits) if hint else []

            spec, best = discover_field(f, samples, meta.record_size_bytes,
                                        preferred_bits, preferred_bytes)
            if spec is None:
                log.warning("%s.%s: no matching position, omitted", oracle.name, f.name)
                omitted.append(f.name)
                continue
            fields[f.name] = spec
            matches[f.name] = best

        log.info("%s: %d of %d fields located", oracle.name, len(fields), len(oracle.fields))

    layout = TableLayout(
        record_size_bytes=meta.record_size_bytes,
        record_count=meta.record_count,
        capacity=meta.capacity,
        record_data_offset=meta.record_data_offset,
        fields=fields,
    )
    return TableDiscovery(oracle.name, layout, matches, omitted, sequential)


def discover_directory_layout(container, directory: TableDirectory,
                              oracle: Mapping[str, OracleTable], tables: Iterable[str],
                              source: Optional[dict] = None) -> LayoutDiscovery:
    """Discover layouts for the named tables. Per-table failures are collected."""
    discovered: dict[str, TableDiscovery] = {}
    errors: dict[str, TdbError] = {}

    for name in tables:
        oracle_table = oracle.get(name)
        if oracle_table is None:
            log.warning("%s: not in oracle dump, skipped", name)
            continue
        try:
            entry = directory.get(name)
            if entry is None:
                raise MissingTableError(name)
            discovered[name] = discover_table_layout(table_bytes(container, entry), oracle_table)
        except (MissingTableError, InvalidLayoutError, CorruptContainerError) as e:
            log.warning("%s: %s", name, e)
            errors[name] = e

    layout = Layout(
        tables={name: d.layout for name, d in discovered.items()},
        format=LAYOUT_FORMAT,
        source=dict(source or {}),
    )
    return LayoutDiscovery(layout=layout, tables=discovered, errors=errors)


def discover_layout(container, oracle: Mapping[str, OracleTable], tables: Iterable[str],
                    source: Optional[dict] = None) -> LayoutDiscovery:
    """Parse a container's directory and discover layouts for the named tables."""
    return discover_directory_layout(container, parse_directory(container), oracle, tables, source)
