import pytest

from dynastytdb.discover.engine import discover_layout, discover_table_layout, sequential_layout
from dynastytdb.discover.fielddefs import parse_field_defs
from dynastytdb.discover.oracle import OracleField, normalize_oracle_value, parse_oracle
from dynastytdb.discover.search import Sample, find_numeric_offset, numeric_candidates
from dynastytdb.errors import MissingTableError
from dynastytdb.tdb.bits import PackedRecord
from dynastytdb.tdb.decoder import decode_table
from dynastytdb.tdb.records import FieldSpec, dump_layout
from synth import build_table, field_def, record_with


def test_recovers_bit_offset_and_mode(bowl_table, bowl_oracle_data):
    oracle = parse_oracle(bowl_oracle_data)["BOWL"]
    result = discover_table_layout(bowl_table, oracle)

    bmfd = result.layout.fields["BMFD"]
    assert (bmfd.bit_offset, bmfd.bit_mode, bmfd.size_bits) == (53, "lsb", 10)
    assert result.matches["BMFD"].perfect
    assert not result.sequential


def test_recovers_string_and_float(bowl_table, bowl_oracle_data):
    oracle = parse_oracle(bowl_oracle_data)["BOWL"]
    fields = discover_table_layout(bowl_table, oracle).layout.fields

    assert fields["NAME"] == FieldSpec("NAME", "string", 32, byte_offset=20, byte_len=4)
    assert fields["RATE"] == FieldSpec("RATE", "float32", 32, byte_offset=8)


def test_unmatched_field_is_omitted_not_guessed(bowl_table, bowl_oracle_data):
    oracle = parse_oracle(bowl_oracle_data)["BOWL"]
    result = discover_table_layout(bowl_table, oracle)

    assert "GONE" not in result.layout.fields
    assert result.omitted == ["GONE"]

    decoded = decode_table(bowl_table, result.layout, name="BOWL")
    assert decoded.fields == ["BMFD", "NAME", "RATE"]
    assert decoded.rows[0].values == {"BMFD": 178, "NAME": "Bama", "RATE": 12.5}
    assert decoded.rows[1].values == {"BMFD": 1, "NAME": "Ohio", "RATE": -3.0}
    assert all("GONE" not in row.values for row in decoded.rows)


def test_discovery_is_deterministic(bowl_db1, bowl_oracle_data):
    oracle = parse_oracle(bowl_oracle_data)
    source = {"saveFile": "slot1.sav", "sha256": "abc"}
    first = discover_layout(bowl_db1, oracle, ["BOWL"], source=source)
    second = discover_layout(bowl_db1, parse_oracle(bowl_oracle_data), ["BOWL"], source=source)
    assert dump_layout(first.layout) == dump_layout(second.layout)
    assert first.layout.source == source


def test_missing_table_is_reported(bowl_db1, bowl_oracle_data):
    data = dict(bowl_oracle_data)
    data["Tables"] = data["Tables"] + [{"Name": "TEAM", "Fields": [], "Rows": []}]
    result = discover_layout(bowl_db1, parse_oracle(data), ["BOWL", "TEAM", "COCH"])

    assert list(result.layout.tables) == ["BOWL"]
    assert isinstance(result.errors["TEAM"], MissingTableError)
    # Not in the oracle at all: skipped without an error
    assert "COCH" not in result.errors


def test_nonzero_matches_outrank_zero_regions():
    records = [bytes(8)] * 3 + [
        record_with(8, (20, 5, 1, "lsb")),
        record_with(8, (20, 5, 13, "lsb")),
    ]
    samples = [Sample.build(i, PackedRecord(r), v) for i, (r, v) in enumerate(zip(records, [0, 0, 0, 0, 13]))]

    best = find_numeric_offset(samples, 64, 5)
    assert (best.bit_offset, best.mode) == (20, "lsb")
    assert best.matched_all == 4
    assert best.matched_nonzero == 1


def test_field_def_hint_breaks_ambiguity():
    record = record_with(8, (8, 8, 77, "lsb"), (40, 8, 77, "lsb"))
    oracle = parse_oracle({"Tables": [{
        "Name": "HINT",
        "Fields": [{"Name": "TEST", "SizeBits": 8, "FieldType": "tdbUInt"}],
        "Rows": [{"TEST": 77, "__recNo": 0}],
    }]})["HINT"]

    hinted = build_table([record], 8, field_defs=field_def("TEST", 8, 0, 48))
    plain = build_table([record], 8)

    assert discover_table_layout(hinted, oracle).layout.fields["TEST"].bit_offset == 40
    assert discover_table_layout(plain, oracle).layout.fields["TEST"].bit_offset == 8


def test_parse_field_defs_short_and_extended():
    defs_bytes = field_def("AAAA", 8, 1, 48) + field_def("BBBB", 5) + b"\xff" * 8
    table = build_table([bytes(8)], 8, field_defs=defs_bytes)
    defs = parse_field_defs(table, len(table) - 8)

    assert list(defs) == ["AAAA", "BBBB"]
    assert (defs["AAAA"].a, defs["AAAA"].b) == (1, 48)
    assert defs["AAAA"].preferred_bit_offsets(64) == [40, 48]
    assert defs["AAAA"].preferred_byte_offsets(64) == [5, 6]
    # BBBB's following words are not a plausible (a, b) pair
    assert defs["BBBB"].b is None


def test_field_def_zero_end_means_record_end():
    defs = parse_field_defs(build_table([bytes(8)], 8, field_defs=field_def("LAST", 4, 0, 0)), 0x40)
    assert defs["LAST"].preferred_bit_offsets(64) == [60, 0]


def test_numeric_candidate_order():
    assert numeric_candidates(32, 8, preferred=[12, 30]) == [12, 0, 8, 16, 24] + list(range(25))
    assert numeric_candidates(16, 3)[:3] == [0, 1, 2]


def test_sequential_fallback_without_rows():
    oracle = parse_oracle({"Tables": [{
        "Name": "SEQT",
        "Fields": [
            {"Name": "A", "SizeBits": 5, "FieldType": "tdbUInt"},
            {"Name": "B", "SizeBits": 3, "FieldType": "tdbSInt"},
            {"Name": "NAME", "SizeBits": 16, "FieldType": "tdbString"},
            {"Name": "C", "SizeBits": 48, "FieldType": "tdbUInt"},
            {"Name": "D", "SizeBits": 8, "FieldType": "tdbUInt"},
        ],
        "Rows": [],
    }]})["SEQT"]
    result = discover_table_layout(build_table([bytes(8)], 8), oracle)
    fields = result.layout.fields

    assert result.sequential
    assert fields["A"] == FieldSpec("A", "uint", 5, bit_offset=0, bit_mode="lsb")
    assert fields["B"] == FieldSpec("B", "sint", 3, bit_offset=5, bit_mode="lsb")
    assert fields["NAME"] == FieldSpec("NAME", "string", 16, byte_offset=1, byte_len=2)
    assert fields["D"] == FieldSpec("D", "uint", 8, bit_offset=24, bit_mode="lsb")
    assert result.omitted == ["C"]


def test_sequential_layout_keeps_strings_byte_aligned():
    fields = [OracleField("F", 3, "tdbUInt"), OracleField("S", 16, "tdbString"), OracleField("G", 4, "tdbUInt")]
    layout = sequential_layout(fields, 4)
    assert "S" not in layout
    assert layout["G"].bit_offset == 3


def test_signed_field_discovery():
    record = record_with(4, (9, 6, 0b111101, "msb"))
    oracle = parse_oracle({"Tables": [{
        "Name": "SGND",
        "Fields": [{"Name": "DELT", "SizeBits": 6, "FieldType": "tdbSInt"}],
        "Rows": [{"DELT": -3, "__recNo": 0}],
    }]})["SGND"]
    table = build_table([record], 4)
    layout = discover_table_layout(table, oracle).layout
    assert layout.fields["DELT"].type == "sint"
    decoded = decode_table(table, layout)
    assert decoded.rows[0].values["DELT"] == -3


@pytest.mark.parametrize("raw,expected", [
    (12, 12),
    ("12", 12),
    (" 7 ", 7),
    ("2.5", 2.5),
    ("Bama", "Bama"),
    ("", ""),
    (None, None),
    (True, None),
    (float("nan"), None),
])
def test_normalize_oracle_value(raw, expected):
    assert normalize_oracle_value(raw) == expected


@pytest.mark.parametrize("field_type,kind", [
    ("tdbUInt", "uint"),
    ("tdbSInt", "sint"),
    ("tdbInt", "sint"),
    ("tdbString", "string"),
    ("tdbVarchar", "string"),
    ("tdbFloat", "float32"),
    ("", "uint"),
])
def test_oracle_field_kind(field_type, kind):
    assert OracleField("X", 8, field_type).kind == kind


def test_parse_oracle_skips_malformed_entries():
    tables = parse_oracle({"Tables": [
        {"Name": ""},
        {"Name": "TEAM",
         "Fields": [{"Name": "TGID", "SizeBits": "10"}, {"Name": "BAD", "SizeBits": "x"},
                    {"Name": "ZERO", "SizeBits": 0}],
         "Rows": [{"TGID": 1, "__recNo": 0}, {"TGID": 2, "__recNo": -1},
                  {"TGID": 3, "__recNo": 1.5}, {"TGID": 4, "__recNo": "2"}]},
    ]})
    team = tables["TEAM"]
    assert list(tables) == ["TEAM"]
    assert [f.name for f in team.fields] == ["TGID"]
    assert [(r.rec_no, r.expected) for r in team.records] == [(0, {"TGID": 1}), (2, {"TGID": 4})]


def test_parse_oracle_requires_tables_list():
    with pytest.raises(ValueError):
        parse_oracle({"tables": []})


@pytest.mark.parametrize("table", [
    {"Name": "TEAM", "Fields": ["TGID", {"Name": "TGID", "SizeBits": 10}], "Rows": [{"TGID": 4, "__recNo": 0}]},
    {"Name": "TEAM", "Fields": [{"Name": "TGID", "SizeBits": 10}, None, 7], "Rows": [{"TGID": 4, "__recNo": 0}, "row", None]},
    {"Name": "TEAM", "Fields": [{"Name": "TGID", "SizeBits": 10}], "Rows": [[0, 4], {"TGID": 4, "__recNo": 0}]},
])
def test_parse_oracle_skips_non_object_entries(table):
    tables = parse_oracle({"Tables": ["TEAM", None, table]})
    team = tables["TEAM"]
    assert [f.name for f in team.fields] == ["TGID"]
    assert [(r.rec_no, r.expected) for r in team.records] == [(0, {"TGID": 4})]


@pytest.mark.parametrize("fields,rows", [("TGID", []), ({"Name": "TGID"}, 5)])
def test_parse_oracle_ignores_non_list_sections(fields, rows):
    team = parse_oracle({"Tables": [{"Name": "TEAM", "Fields": fields, "Rows": rows}]})["TEAM"]
    assert team.fields == []
    assert team.records == []
