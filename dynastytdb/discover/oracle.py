"""Oracle dump model: trusted field values used only to calibrate layouts.

The dump is the JSON written by the external reference decoder::

    {"Tables": [{"Name": "BOWL",
                 "Fields": [{"Name": "BMFD", "SizeBits": 10, "FieldType": "tdbUInt"}],
                 "Rows": [{"BMFD": 178, "__recNo": 0}]}]}
"""
from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

OracleValue = Union[int, float, str, None]


@dataclass(slots=True)
class OracleField:
    """A declared field of the reference schema."""
    name: str
    size_bits: int
    field_type: str

    @property
    def kind(self) -> str:
        """One of ``string``, ``float32``, ``sint``, ``uint``."""
        ft = self.field_type.lower()
        if "string" in ft or "varchar" in ft:
            return "string"
        if "float" in ft:
            return "float32"
        if "sint" in ft or (ft.endswith("int") and "uint" not in ft):
            return "sint"
        return "uint"

    @property
    def signed(self) -> bool:
        return self.kind == "sint"


@dataclass(slots=True)
class OracleRecord:
    """Expected field values for one record index."""
    rec_no: int
    expected: dict[str, Any] = field(default_factory=dict)


@dataclass
class OracleTable:
    name: str
    fields: list[OracleField] = field(default_factory=list)
    records: list[OracleRecord] = field(default_factory=list)


def normalize_oracle_value(value: Any) -> OracleValue:
    """Map a raw oracle value to a number, a string, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value if math.isfinite(value) else None
    text = str(value).strip()
    if not text:
        return ""
    try:
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return text
    return number if math.isfinite(number) else text


def _entries(value: Any) -> list[dict]:
    """Objects of a JSON list; anything else yields nothing."""
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _parse_rec_no(raw: Any) -> Optional[int]:
    try:
        rec_no = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(rec_no) or rec_no < 0 or rec_no != int(rec_no):
        return None
    return int(rec_no)


def parse_oracle(data: dict[str, Any]) -> dict[str, OracleTable]:
    """Parse an oracle dump into tables keyed by name. Malformed entries are skipped."""
    tables = data.get("Tables") if isinstance(data, dict) else None
    if not isinstance(tables, list):
        raise ValueError("Expected oracle dump with a 'Tables' list")

    out: dict[str, OracleTable] = {}
    for t in _entries(tables):
        name = str(t.get("Name") or "").strip()
        if not name:
            continue

        fields = []
        for f in _entries(t.get("Fields")):
            field_name = str(f.get("Name") or "").strip()
            try:
                size_bits = int(f.get("SizeBits"))
            except (TypeError, ValueError):
                continue
            if not field_name or size_bits <= 0:
                continue
            fields.append(OracleField(field_name, size_bits, str(f.get("FieldType") or "")))

        records = []
        for row in _entries(t.get("Rows")):
            rec_no = _parse_rec_no(row.get("__recNo"))
            if rec_no is None:
                continue
            expected = {k: v for k, v in row.items() if k != "__recNo"}
            records.append(OracleRecord(rec_no, expected))

        out[name] = OracleTable(name=name, fields=fields, records=records)
    return out


def load_oracle(path: Path) -> dict[str, OracleTable]:
    """Read an oracle dump from disk."""
    return parse_oracle(json.loads(path.read_text(encoding="utf-8")))
