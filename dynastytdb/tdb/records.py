"""Layout and decoded-row dataclasses shared by the decoder and discovery."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dynastytdb.config import LAYOUT_FORMAT
from dynastytdb.errors import InvalidLayoutError
from dynastytdb.tdb.bits import BIT_MODES

FIELD_TYPES = ("uint", "sint", "string", "float32")


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """Position and type of one field inside a record."""
    name: str
    type: str                          # uint, sint, string, float32
    size_bits: int
    bit_offset: Optional[int] = None   # uint/sint
    bit_mode: Optional[str] = None     # lsb/msb
    byte_offset: Optional[int] = None  # string/float32
    byte_len: Optional[int] = None     # string

    @property
    def is_numeric(self) -> bool:
        return self.type in ("uint", "sint")

    def end_bit(self) -> int:
        """One past the last record bit this field touches."""
        if self.is_numeric:
            return self.bit_offset + self.size_bits
        if self.type == "string":
            return (self.byte_offset + self.byte_len) * 8
        return (self.byte_offset + 4) * 8

    def check_fits(self, record_size_bytes: int) -> None:
        """Raise InvalidLayoutError unless the field lies inside one record."""
        start = self.bit_offset if self.is_numeric else self.byte_offset
        if start is None or start < 0 or self.end_bit() > record_size_bytes * 8:
            raise InvalidLayoutError(
                f"Field {self.name} ({self.type}) does not fit in a "
                f"{record_size_bytes}-byte record"
            )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"sizeBits": self.size_bits, "type": self.type}
        if self.is_numeric:
            out["bitOffset"] = self.bit_offset
            out["bitMode"] = self.bit_mode
        elif self.type == "string":
            out["byteOffset"] = self.byte_offset
            out["byteLen"] = self.byte_len
        else:
            out["byteOffset"] = self.byte_offset
            out["endian"] = "le"
        return out

    @classmethod
    def from_dict(cls, name: str, data: dict[str, Any]) -> FieldSpec:
        if not isinstance(data, dict):
            raise InvalidLayoutError(f"Field {name}: spec must be an object, got {type(data).__name__}")
        ftype = data.get("type")
        if ftype not in FIELD_TYPES:
            raise InvalidLayoutError(f"Field {name}: unknown type {ftype!r}")
        try:
            if ftype in ("uint", "sint"):
                spec = cls(name, ftype, int(data["sizeBits"]),
                           bit_offset=int(data["bitOffset"]),
                           bit_mode=data.get("bitMode", "lsb"))
            elif ftype == "string":
                byte_len = int(data["byteLen"])
                spec = cls(name, ftype, int(data.get("sizeBits", byte_len * 8)),
                           byte_offset=int(data["byteOffset"]), byte_len=byte_len)
            else:
                spec = cls(name, ftype, int(data.get("sizeBits", 32)),
                           byte_offset=int(data["byteOffset"]))
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidLayoutError(f"Field {name}: malformed spec ({e})") from e

        if spec.is_numeric and spec.bit_mode not in BIT_MODES:
            raise InvalidLayoutError(f"Field {name}: unknown bitMode {spec.bit_mode!r}")
        return spec


@dataclass(frozen=True, slots=True)
class TableLayout:
    """Field layout of one table. Read-only once built."""
    record_size_bytes: int
    record_count: int
    capacity: int
    record_data_offset: int
    fields: dict[str, FieldSpec] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "recordSizeBytes": self.record_size_bytes,
            "recordCount": self.record_count,
            "capacity": self.capacity,
            "recordDataOffset": self.record_data_offset,
            "fields": {name: spec.to_dict() for name, spec in self.fields.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TableLayout:
        if not isinstance(data, dict):
            raise InvalidLayoutError(f"Table layout must be an object, got {type(data).__name__}")
        raw_fields = data.get("fields") or {}
        if not isinstance(raw_fields, dict):
            raise InvalidLayoutError("Table layout 'fields' must be an object")
        fields = {
            name: FieldSpec.from_dict(name, spec)
            for name, spec in raw_fields.items()
            if spec
        }
        try:
            return cls(
                record_size_bytes=int(data["recordSizeBytes"]),
                record_count=int(data.get("recordCount", 0)),
                capacity=int(data.get("capacity", 0)),
                record_data_offset=int(data.get("recordDataOffset", 0)),
                fields=fields,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidLayoutError(f"Malformed table layout ({e})") from e


@dataclass(frozen=True, slots=True)
class Layout:
    """A layout artifact: table name -> TableLayout."""
    tables: dict[str, TableLayout] = field(default_factory=dict)
    format: str = LAYOUT_FORMAT
    source: dict[str, Any] = field(default_factory=dict)
    # Tables whose entry failed to parse; reported when that table is decoded
    errors: dict[str, InvalidLayoutError] = field(default_factory=dict, compare=False)

    def get(self, table: str) -> Optional[TableLayout]:
        return self.tables.get(table)

    def error_for(self, table: str) -> Optional[InvalidLayoutError]:
        return self.errors.get(table)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"format": self.format}
        if self.source:
            out["source"] = dict(self.source)
        out["tables"] = {name: t.to_dict() for name, t in self.tables.items()}
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Layout:
        if not isinstance(data, dict) or not isinstance(data.get("tables"), dict):
            raise InvalidLayoutError("Layout artifact has no 'tables' object")
        tables: dict[str, TableLayout] = {}
        errors: dict[str, InvalidLayoutError] = {}
        for name, raw in data["tables"].items():
            try:
                tables[name] = TableLayout.from_dict(raw)
            except InvalidLayoutError as e:
                errors[name] = e

        source = data.get("source")
        return cls(
            tables=tables,
            format=str(data.get("format", LAYOUT_FORMAT)),
            source=dict(source) if isinstance(source, dict) else {},
            errors=errors,
        )


@dataclass(slots=True)
class TableMeta:
    """Record geometry read from a table header."""
    record_size_bytes: int
    capacity: int
    record_count: int
    record_data_offset: int


@dataclass(slots=True)
class DecodedRow:
    """One decoded record and its index in the record array."""
    rec_no: int
    values: dict[str, Any] = field(default_factory=dict)

    def as_flat(self) -> dict[str, Any]:
        """Values plus ``__recNo``, the shape the exporters consume."""
        return {**self.values, "__recNo": self.rec_no}


def dump_layout(layout: Layout) -> str:
    """Serialize a layout artifact. Same layout in, same text out."""
    return json.dumps(layout.to_dict(), indent=2) + "\n"


def load_layout(path: Path) -> Layout:
    """Read a layout artifact written by ``dump_layout``."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidLayoutError(f"Layout {path} is not valid JSON: {e}") from e
    return Layout.from_dict(data)
