import os

import pytest

from secpcurve.entries import (
    ENTRY_SIZE,
    Entry,
    merge_sorted_files,
    read_entries,
    sort_database,
    write_entries,
)
from secpcurve.field import FieldElement
from secpcurve.point import Scalar, scalar_mul_generator

GX_HEX = "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"


def _point_entries(count, start=1):
    return [
        Entry.from_point(scalar_mul_generator(Scalar(j)).x(), j)
        for j in range(start, start + count)
    ]


def test_record_layout_is_little_endian_limbs_then_j():
    entry = Entry.from_point(FieldElement.one(), 1)
    assert entry.to_bytes() == b"\x01" + b"\x00" * 31 + b"\x01" + b"\x00" * 7
    assert len(entry.to_bytes()) == ENTRY_SIZE


def test_from_point_keeps_generator_x():
    entry = Entry.from_point(FieldElement.from_hex(GX_HEX), 1)
    assert entry.x == int(GX_HEX, 16)
    assert entry.x_limbs == FieldElement.from_hex(GX_HEX).limbs()
    assert entry.to_bytes()[:32] == bytes.fromhex(GX_HEX)[::-1]


def test_bytes_round_trip():
    for entry in _point_entries(5):
        decoded = Entry.from_bytes(entry.to_bytes())
        assert decoded.x == entry.x
        assert decoded.j == entry.j


def test_from_bytes_rejects_wrong_length():
    with pytest.raises(ValueError):
        Entry.from_bytes(b"\x00" * 39)


def test_out_of_range_fields_rejected():
    with pytest.raises(ValueError):
        Entry(1 << 256, 0)
    with pytest.raises(ValueError):
        Entry(0, 1 << 64)


def test_ordering_uses_x_only():
    assert Entry(5, 100) == Entry(5, 1)
    assert Entry(4, 100) < Entry(5, 1)
    assert Entry(1 << 200, 0) > Entry((1 << 200) - 1, 9)
    assert Entry(7, 3).sort_key() == 7


def test_write_then_read_round_trip(tmp_path):
    entries = _point_entries(6)
    path = tmp_path / "db.dat"
    assert write_entries(path, entries) == 6
    assert os.path.getsize(path) == 6 * ENTRY_SIZE
    back = list(read_entries(path))
    assert [(e.x, e.j) for e in back] == [(e.x, e.j) for e in entries]


def test_read_entries_rejects_truncated_file(tmp_path):
    path = tmp_path / "bad.dat"
    path.write_bytes(Entry(1, 1).to_bytes() + b"\x00" * 10)
    with pytest.raises(ValueError):
        list(read_entries(path))


def test_merge_sorted_files_yields_sorted_union(tmp_path):
    entries = _point_entries(12)
    paths = []
    for i in range(3):
        part = sorted(entries[i::3], key=Entry.sort_key)
        p = tmp_path / f"part{i}"
        write_entries(p, part)
        paths.append(p)
    merged = list(merge_sorted_files(paths))
    keys = [e.x for e in merged]
    assert keys == sorted(keys)
    assert sorted(e.j for e in merged) == list(range(1, 13))


def test_sort_database_in_memory(tmp_path):
    entries = _point_entries(3)
    path = tmp_path / "db.dat"
    write_entries(path, entries)
    messages = []
    count = sort_database(path, 1, messages.append)
    assert count == 3
    result = list(read_entries(path))
    assert [e.x for e in result] == sorted(e.x for e in entries)
    assert sorted(e.j for e in result) == [1, 2, 3]
    assert messages[0] == "Loading 3 entries into memory..."
    assert messages[-1] == "Sort complete"


def test_sort_database_external_merge(tmp_path):
    entries = _point_entries(23)
    path = tmp_path / "big.dat"
    write_entries(path, entries)
    messages = []
    # About five records fit in this limit, so several chunks are needed.
    count = sort_database(path, 0.0002, messages.append)
    assert count == 23
    result = list(read_entries(path))
    assert [e.x for e in result] == sorted(e.x for e in entries)
    assert sorted(e.j for e in result) == list(range(1, 24))
    assert messages[-1] == "Sort complete: 23 entries"
    assert sorted(os.listdir(tmp_path)) == ["big.dat"]


def test_sort_database_rejects_bad_size(tmp_path):
    path = tmp_path / "odd.dat"
    path.write_bytes(b"\x00" * (ENTRY_SIZE + 1))
    with pytest.raises(ValueError):
        sort_database(path, 1)


def test_sort_database_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        sort_database(tmp_path / "absent.dat", 1)