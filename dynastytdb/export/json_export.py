"""Export decoded tables as JSON."""
from __future__ import annotations

import json
from typing import Iterable

from dynastytdb.tdb.decoder import DecodedTable


def table_to_dict(table: DecodedTable) -> dict:
    return {
        "name": table.name,
        "recordSizeBytes": table.meta.record_size_bytes,
        "capacity": table.meta.capacity,
        "recordCount": table.meta.record_count,
        "rows": [row.as_flat() for row in table.rows],
    }


def export_json(tables: Iterable[DecodedTable]) -> str:
    """Export decoded tables as a JSON string keyed by table name."""
    data = {t.name: table_to_dict(t) for t in tables}
    return json.dumps(data, indent=2, ensure_ascii=False)
