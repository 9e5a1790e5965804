import struct

import pytest

from synth import build_container, build_save, build_table, record_with

BOWL_RECORD_SIZE = 40

# (BMFD, NAME, RATE) per record
BOWL_ROWS = [
    (178, "Bama", 12.5),
    (1, "Ohio", -3.0),
    (0, "", 0.0),
]


def bowl_record(bmfd: int, name: str, rate: float) -> bytes:
    buf = bytearray(record_with(BOWL_RECORD_SIZE, (53, 10, bmfd, "lsb")))
    struct.pack_into("<f", buf, 8, rate)
    encoded = name.encode("latin-1")
    buf[20:20 + len(encoded)] = encoded
    return bytes(buf)


@pytest.fixture
def bowl_table():
    return build_table([bowl_record(*row) for row in BOWL_ROWS], BOWL_RECORD_SIZE)


@pytest.fixture
def bowl_oracle_data():
    return {
        "Tables": [{
            "Name": "BOWL",
            "Fields": [
                {"Name": "BMFD", "SizeBits": 10, "FieldType": "tdbUInt"},
                {"Name": "NAME", "SizeBits": 32, "FieldType": "tdbString"},
                {"Name": "RATE", "SizeBits": 32, "FieldType": "tdbFloat"},
                {"Name": "GONE", "SizeBits": 8, "FieldType": "tdbUInt"},
            ],
            "Rows": [
                {"BMFD": bmfd, "NAME": name, "RATE": rate, "GONE": 255, "__recNo": i}
                for i, (bmfd, name, rate) in enumerate(BOWL_ROWS)
            ],
        }],
    }


@pytest.fixture
def bowl_db1(bowl_table):
    return build_container({"BOWL": bowl_table})


@pytest.fixture
def bowl_save(bowl_db1):
    return build_save(bowl_db1)
