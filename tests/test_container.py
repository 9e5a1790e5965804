import struct

import pytest

from dynastytdb.errors import CorruptContainerError, MissingMagicError
from dynastytdb.tdb.container import content_hash, extract_containers, find_magic
from dynastytdb.tdb.directory import parse_directory, parse_header, table_bytes
from synth import MAGIC, build_container, build_save, build_table


@pytest.fixture
def db1():
    return build_container({
        "TEAM": build_table([b"\x01" * 8, b"\x02" * 8], 8),
        "PLAY": build_table([b"\x03" * 4], 4),
    })


def test_finds_db1_after_prefix(db1):
    save = build_save(db1, prefix=b"\xAA" * 37)
    extracted = extract_containers(save)
    assert extracted.db1_offset == 37
    assert extracted.prefix_size == 37
    assert extracted.db1_length == len(db1)
    assert bytes(extracted.db1) == db1
    assert not extracted.has_db2
    assert not extracted.db1_truncated


def test_containers_are_views_over_the_save(db1):
    save = build_save(db1)
    extracted = extract_containers(save)
    assert isinstance(extracted.db1, memoryview)
    assert extracted.db1.obj is save


def test_missing_magic():
    with pytest.raises(MissingMagicError):
        extract_containers(b"\x00" * 64)
    assert find_magic(b"\x00" * 64) == -1


def test_find_magic_on_memoryview(db1):
    save = build_save(db1, prefix=b"xyz")
    assert find_magic(memoryview(save)) == 3
    assert find_magic(save, 4) == -1


def test_zero_length_is_corrupt(db1):
    broken = bytearray(db1)
    struct.pack_into("<I", broken, 8, 0)
    with pytest.raises(CorruptContainerError):
        extract_containers(build_save(bytes(broken)))


def test_truncated_header_is_corrupt():
    with pytest.raises(CorruptContainerError):
        extract_containers(b"junk" + MAGIC + b"\x00\x00")


def test_overrunning_db1_takes_rest_of_buffer(db1):
    save = build_save(db1[:-10], prefix=b"")
    extracted = extract_containers(save)
    assert len(extracted.db1) == len(db1) - 10
    assert extracted.db1_truncated


def test_db2_immediately_after_db1(db1):
    db2 = build_container({"XTRA": build_table([b"\x09" * 4], 4)})
    save = build_save(db1, db2, prefix=b"p" * 5, trailer=b"tail")
    extracted = extract_containers(save)
    assert extracted.has_db2
    assert extracted.db2_offset == 5 + len(db1)
    assert bytes(extracted.db2) == db2
    assert parse_directory(extracted.db2).names() == ["XTRA"]


def test_db2_not_adjacent_is_ignored(db1):
    db2 = build_container({"XTRA": build_table([b"\x09" * 4], 4)})
    save = build_save(db1 + b"\x00", db2)
    assert not extract_containers(save).has_db2


def test_corrupt_db2_is_dropped(db1):
    db2 = bytearray(build_container({"XTRA": build_table([b"\x09" * 4], 4)}))
    struct.pack_into("<I", db2, 8, 0)
    extracted = extract_containers(build_save(db1, bytes(db2)))
    assert extracted.db2 is None
    assert bytes(extracted.db1) == db1


def test_endian_flag_is_informational():
    db1 = build_container({"TEAM": build_table([b"\x01" * 8], 8)}, big_endian=True)
    extracted = extract_containers(build_save(db1))
    assert extracted.big_endian
    directory = parse_directory(extracted.db1)
    assert directory.header.big_endian
    assert directory.names() == ["TEAM"]


def test_two_tables_at_0_and_40_slice_exactly():
    count = 2
    data_start = 0x18 + 8 * count
    total = data_start + 100
    container = bytearray(total)
    container[0:4] = MAGIC
    struct.pack_into("<I", container, 0x08, total)
    struct.pack_into("<I", container, 0x10, count)
    struct.pack_into("<4sI", container, 0x18, b"AAAA", 0)
    struct.pack_into("<4sI", container, 0x20, b"BBBB", 40)

    directory = parse_directory(bytes(container))
    a, b = directory.get("AAAA"), directory.get("BBBB")
    assert a.abs == data_start
    assert b.abs == data_start + 40
    assert (a.size, b.size) == (40, 60)
    assert a.size + b.size == directory.header.db_length - directory.header.data_start
    assert bytes(table_bytes(container, b)) == bytes(container[data_start + 40:total])


def test_sizes_follow_file_order_not_directory_order():
    count = 3
    data_start = 0x18 + 8 * count
    total = data_start + 90
    container = bytearray(total)
    container[0:4] = MAGIC
    struct.pack_into("<I", container, 0x08, total)
    struct.pack_into("<I", container, 0x10, count)
    struct.pack_into("<4sI", container, 0x18, b"LAST", 60)
    struct.pack_into("<4sI", container, 0x20, b"FRST", 0)
    struct.pack_into("<4sI", container, 0x28, b"MIDL", 25)

    directory = parse_directory(bytes(container))
    assert directory.names() == ["FRST", "MIDL", "LAST"]
    assert [t.size for t in directory] == [25, 35, 30]
    assert directory.get("LAST").index == 0
    assert "MIDL" in directory and "NOPE" not in directory


def test_directory_past_end_is_corrupt():
    container = bytearray(0x18 + 8)
    container[0:4] = MAGIC
    struct.pack_into("<I", container, 0x10, 50)
    with pytest.raises(CorruptContainerError):
        parse_header(bytes(container))


def test_header_requires_magic():
    with pytest.raises(MissingMagicError):
        parse_header(b"XX\x00\x08" + b"\x00" * 0x20)


def test_table_bytes_out_of_bounds(db1):
    directory = parse_directory(db1)
    entry = directory.get("PLAY")
    with pytest.raises(CorruptContainerError):
        table_bytes(db1[:-1], entry)


def test_last_table_ends_at_buffer_when_declared_length_overruns(db1):
    truncated = db1[:-4]
    directory = parse_directory(truncated)
    assert directory.tables[-1].end == len(truncated)


def test_content_hash_is_stable(db1):
    save = build_save(db1)
    assert content_hash(save) == content_hash(bytearray(save))
    assert content_hash(save) != content_hash(build_save(db1, prefix=b"other"))


def test_overrunning_db2_takes_rest_of_buffer(db1):
    db2 = build_container({"XTRA": build_table([b"\x09" * 4], 4)})
    extracted = extract_containers(build_save(db1, db2[:-3]))

    assert extracted.has_db2
    assert extracted.db2_length == len(db2)
    assert bytes(extracted.db2) == db2[:-3]
    assert bytes(extracted.db1) == db1
