import json

from dynastytdb.export.csv_export import export_csv
from dynastytdb.export.json_export import export_json
from dynastytdb.tdb.decoder import DecodedTable
from dynastytdb.tdb.records import DecodedRow, TableMeta


def _table():
    meta = TableMeta(record_size_bytes=8, capacity=4, record_count=2, record_data_offset=48)
    rows = [
        DecodedRow(0, {"PGID": 7, "PF01": 13, "FirstName": "Mo", "LastName": None}),
        DecodedRow(1, {"PGID": 8, "PF01": 0, "FirstName": "", "LastName": "Peña, Jr"}),
    ]
    return DecodedTable("PLAY", meta, rows, fields=["PGID", "PF01"])


def test_csv_layout_columns_then_extras():
    text = export_csv(_table(), ["FirstName", "LastName"])
    assert text.splitlines() == [
        "PGID,PF01,FirstName,LastName",
        "7,13,Mo,",
        '8,0,,"Peña, Jr"',
    ]


def test_json_keyed_by_table():
    data = json.loads(export_json([_table()]))
    assert data["PLAY"]["recordCount"] == 2
    assert data["PLAY"]["rows"][0]["__recNo"] == 0
    assert data["PLAY"]["rows"][1]["LastName"] == "Peña, Jr"
