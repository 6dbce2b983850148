import os
import struct

import pytest

from secpcurve.entries import Entry, write_entries
from secpcurve.field import FieldElement
from secpcurve.point import Point
from secpcurve.sorted_db import (
    INDEX_FILE_SIZE,
    SortedEccDB,
    ValidationResult,
    VerifyResult,
)

N_POINTS = 24


@pytest.fixture(scope="module")
def multiples():
    out = []
    point = Point.generator()
    for j in range(1, N_POINTS + 1):
        out.append(Entry.from_point(point.x(), j))
        point = point.next()
    return out


@pytest.fixture
def sorted_entries(multiples):
    return sorted(multiples, key=Entry.sort_key)


@pytest.fixture
def unsorted_path(tmp_path, multiples):
    path = tmp_path / "unsorted.dat"
    write_entries(path, multiples)
    return path


@pytest.fixture
def sorted_path(tmp_path, sorted_entries):
    path = tmp_path / "sorted.dat"
    write_entries(path, sorted_entries)
    return path


def _limbs(x):
    return [(x >> (64 * i)) & ((1 << 64) - 1) for i in range(4)]


def _write_sparse_index(path, entries, skip=None):
    with open(path, "wb") as handle:
        handle.truncate(INDEX_FILE_SIZE)
        for pos, entry in enumerate(entries):
            if pos == skip:
                continue
            handle.seek((entry.x >> 232) * 8)
            handle.write(struct.pack("<QQ", pos, pos + 1))


def test_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        SortedEccDB(tmp_path / "absent.dat")


def test_size_not_multiple_raises(tmp_path):
    path = tmp_path / "bad.dat"
    path.write_bytes(b"\x01" * 41)
    with pytest.raises(ValueError):
        SortedEccDB(path)


def test_len_counts_records(sorted_path):
    with SortedEccDB(sorted_path) as db:
        assert len(db) == N_POINTS
        assert db.record_size == 40
        assert db.is_xonly is False
        assert db.header_size == 0


def test_bin_extension_is_xonly(tmp_path):
    path = tmp_path / "keys.bin"
    path.write_bytes(b"\x00" * 64)
    with SortedEccDB(path) as db:
        assert db.is_xonly is True
        assert len(db) == 2


def test_xonly_lookup_reports_zero(tmp_path, sorted_entries):
    path = tmp_path / "keys_xonly.dat"
    path.write_bytes(b"".join(e.x.to_bytes(32, "little") for e in sorted_entries))
    with SortedEccDB(path) as db:
        assert db.record_size == 32
        assert len(db) == N_POINTS
        for entry in sorted_entries:
            assert db.lookup(entry.x) == 0
        assert db.lookup(1) is None


def test_header_is_skipped(tmp_path, sorted_entries):
    path = tmp_path / "header.dat"
    body = b"".join(e.to_bytes() for e in sorted_entries)
    path.write_bytes(b"SOTSDBA\x00" + b"\x00" * 8 + body)
    with SortedEccDB(path) as db:
        assert db.header_size == 16
        assert len(db) == N_POINTS
        for entry in sorted_entries:
            assert db.lookup(entry.x) == entry.j


def test_lookup_accepts_every_form(sorted_path, sorted_entries):
    with SortedEccDB(sorted_path) as db:
        for entry in sorted_entries:
            assert db.lookup(entry.x) == entry.j
            assert db.lookup(FieldElement(entry.x)) == entry.j
            assert db.lookup(_limbs(entry.x)) == entry.j


def test_lookup_missing_returns_none(sorted_path, sorted_entries):
    with SortedEccDB(sorted_path) as db:
        assert db.lookup(0) is None
        assert db.lookup(2**256 - 1) is None
        assert db.lookup(sorted_entries[3].x + 1) is None


def test_lookup_rejects_out_of_range(sorted_path):
    with SortedEccDB(sorted_path) as db:
        with pytest.raises(ValueError):
            db.lookup(2**256)
        with pytest.raises(ValueError):
            db.lookup([1, 2, 3])


def test_lookup_after_close_raises(sorted_path, sorted_entries):
    db = SortedEccDB(sorted_path)
    db.close()
    with pytest.raises(ValueError):
        db.lookup(sorted_entries[0].x)


def test_validate_sort_on_sorted(sorted_path):
    with SortedEccDB(sorted_path) as db:
        assert db.validate_sort() == ValidationResult(
            is_sorted=True, total_checked=N_POINTS, sort_errors=0, first_error_index=0
        )


def test_validate_sort_reports_errors(tmp_path):
    path = tmp_path / "mixed.dat"
    write_entries(path, [Entry(5, 1), Entry(3, 2), Entry(7, 3), Entry(1, 4)])
    with SortedEccDB(path) as db:
        result = db.validate_sort()
    assert result.is_sorted is False
    assert result.total_checked == 4
    assert result.sort_errors == 2
    assert result.first_error_index == 1


def test_validate_sort_duplicate_is_error(tmp_path):
    path = tmp_path / "dup.dat"
    write_entries(path, [Entry(1, 1), Entry(1, 2)])
    with SortedEccDB(path) as db:
        result = db.validate_sort()
    assert result.is_sorted is False
    assert result.sort_errors == 1
    assert result.first_error_index == 1


def test_validate_sort_empty(tmp_path):
    path = tmp_path / "empty.dat"
    path.write_bytes(b"")
    with SortedEccDB(path) as db:
        assert len(db) == 0
        assert db.validate_sort() == ValidationResult()


@pytest.mark.parametrize("threads", [1, 3])
def test_verify_unsorted_valid(unsorted_path, threads):
    with SortedEccDB(unsorted_path) as db:
        result = db.verify_unsorted(threads)
    assert result.is_valid is True
    assert result.total_tested == N_POINTS
    assert result.found_correct == N_POINTS
    assert result.not_found == 0
    assert result.value_mismatch == 0


@pytest.mark.parametrize("threads", [1, 2])
def test_verify_unsorted_detects_corruption(tmp_path, multiples, threads):
    entries = list(multiples)
    entries[4] = Entry(entries[4].x, 99)
    entries[7] = Entry(entries[8].x, entries[7].j)
    path = tmp_path / "corrupt.dat"
    write_entries(path, entries)
    with SortedEccDB(path) as db:
        result = db.verify_unsorted(threads)
    assert result.value_mismatch == 1
    assert result.not_found == 1
    assert result.found_correct == N_POINTS - 2
    assert result.is_valid is False


def test_verify_unsorted_progress_ends_complete(unsorted_path):
    calls = []
    with SortedEccDB(unsorted_path) as db:
        db.verify_unsorted(1, lambda done, total: calls.append((done, total)))
    assert calls[-1] == (N_POINTS, N_POINTS)


@pytest.mark.parametrize("threads", [1, 2, 0])
def test_verify_sorted_valid(sorted_path, threads):
    with SortedEccDB(sorted_path) as db:
        result = db.verify_sorted(threads)
    assert result.is_valid is True
    assert result.found_correct == N_POINTS
    assert result.not_found == 0
    assert result.value_mismatch == 0


def test_verify_sorted_detects_wrong_j(tmp_path, sorted_entries):
    entries = list(sorted_entries)
    entries[5] = Entry(entries[5].x, entries[5].j + 1000)
    path = tmp_path / "wrongj.dat"
    write_entries(path, entries)
    with SortedEccDB(path) as db:
        result = db.verify_sorted(2)
    assert result.value_mismatch == 1
    assert result.found_correct == N_POINTS - 1
    assert result.is_valid is False


def test_verify_sorted_detects_missing(tmp_path, sorted_entries):
    entries = list(sorted_entries)
    entries[0] = Entry(1, entries[0].j)
    path = tmp_path / "missing.dat"
    write_entries(path, entries)
    with SortedEccDB(path) as db:
        result = db.verify_sorted(1)
    assert result.not_found == 1
    assert result.found_correct == N_POINTS - 1
    assert result.is_valid is False


def test_verify_sorted_progress_ends_complete(sorted_path):
    calls = []
    with SortedEccDB(sorted_path) as db:
        db.verify_sorted(1, lambda done, total: calls.append((done, total)))
    assert calls[-1] == (N_POINTS, N_POINTS)


def test_verify_sorted_stream_path(tmp_path, sorted_path):
    with SortedEccDB(sorted_path) as db:
        db.stream_threshold = 0
        result = db.verify_sorted(1)
    assert result.is_valid is True
    assert result.found_correct == N_POINTS
    assert result.value_mismatch == 0
    assert [n for n in os.listdir(tmp_path) if n.startswith("verify_temp_")] == []


def test_verify_sorted_stream_detects_mismatch(tmp_path, sorted_entries):
    entries = list(sorted_entries)
    entries[0] = Entry(1, entries[0].j)
    path = tmp_path / "stream_bad.dat"
    write_entries(path, entries)
    with SortedEccDB(path) as db:
        db.stream_threshold = 0
        result = db.verify_sorted(1)
    assert result.value_mismatch == 1
    assert result.found_correct == N_POINTS - 1
    assert result.is_valid is False


def test_verify_dispatches_on_first_record(unsorted_path, sorted_path, sorted_entries):
    assert sorted_entries[0].j != 1
    with SortedEccDB(unsorted_path) as db:
        assert db.verify().is_valid is True
    with SortedEccDB(sorted_path) as db:
        result = db.verify()
    assert result.is_valid is True
    assert result.found_correct == N_POINTS


def test_verify_empty_is_valid(tmp_path):
    path = tmp_path / "empty.dat"
    path.write_bytes(b"")
    with SortedEccDB(path) as db:
        result = db.verify()
    assert result == VerifyResult(is_valid=True)


def test_load_index_missing_raises(sorted_path, tmp_path):
    with SortedEccDB(sorted_path) as db:
        with pytest.raises(FileNotFoundError):
            db.load_index(tmp_path / "absent.idx")


def test_load_index_wrong_size_raises(sorted_path, tmp_path):
    idx = tmp_path / "small.idx"
    idx.write_bytes(b"\x00" * 64)
    with SortedEccDB(sorted_path) as db:
        with pytest.raises(ValueError):
            db.load_index(idx)
        assert db.has_index is False