"""Export decoded tables as CSV."""
from __future__ import annotations

import csv
import io
from typing import Any, Sequence

from dynastytdb.tdb.decoder import DecodedTable


def _cell(value: Any) -> Any:
    return "" if value is None else value


def export_csv(table: DecodedTable, extra_columns: Sequence[str] = ()) -> str:
    """Export one decoded table as a CSV string, columns in layout order."""
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")

    # Header
    columns = [*table.fields, *extra_columns]
    writer.writerow(columns)

    for row in table.rows:
        writer.writerow([_cell(row.values.get(c)) for c in columns])

    return output.getvalue()
