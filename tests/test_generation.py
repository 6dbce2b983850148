import os

import pytest

from secpcurve import generation
from secpcurve.entries import read_entries
from secpcurve.generation import generate, merge, range_gen
from secpcurve.point import Scalar, scalar_mul_generator

G_X = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798
THREE_G_X = 0xF9308A019258C31049344F85F89D5229B531C845836F99B08601F113BCE036F9


def _expected_x(j):
    return int(scalar_mul_generator(Scalar(j)).x())


def _is_sorted(entries):
    return all(a.x <= b.x for a, b in zip(entries, entries[1:]))


def test_range_gen_from_one(tmp_path):
    out = tmp_path / "chunk.bin"
    written = range_gen(out, 1, 10)
    entries = list(read_entries(out))
    assert written == 10
    assert len(entries) == 10
    assert _is_sorted(entries)
    assert sorted(e.j for e in entries) == list(range(1, 11))
    by_j = {e.j: e.x for e in entries}
    assert by_j[1] == G_X
    assert by_j[3] == THREE_G_X
    for j in (2, 7, 10):
        assert by_j[j] == _expected_x(j)


def test_range_gen_with_offset(tmp_path):
    out = tmp_path / "chunk.bin"
    assert range_gen(out, 5, 3) == 3
    entries = list(read_entries(out))
    assert sorted(e.j for e in entries) == [5, 6, 7]
    for e in entries:
        assert e.x == _expected_x(e.j)


def test_range_gen_file_size(tmp_path):
    out = tmp_path / "chunk.bin"
    range_gen(out, 1, 6)
    assert os.path.getsize(out) == 6 * 40


def test_range_gen_crosses_batch_boundary(tmp_path):
    out = tmp_path / "chunk.bin"
    count = generation.BATCH_SIZE + 6
    assert range_gen(out, 1, count) == count
    entries = list(read_entries(out))
    assert _is_sorted(entries)
    by_j = {e.j: e.x for e in entries}
    assert set(by_j) == set(range(1, count + 1))
    for j in (generation.BATCH_SIZE, generation.BATCH_SIZE + 1, count):
        assert by_j[j] == _expected_x(j)


def test_range_gen_zero_count_writes_nothing(tmp_path):
    out = tmp_path / "chunk.bin"
    assert range_gen(out, 1, 0) == 0
    assert not out.exists()


def test_range_gen_progress_ends_complete(tmp_path):
    calls = []
    range_gen(tmp_path / "c.bin", 1, 4, lambda done, total: calls.append((done, total)))
    assert calls[-1] == (4, 4)


def test_range_gen_rejects_zero_start(tmp_path):
    with pytest.raises(ValueError):
        range_gen(tmp_path / "c.bin", 0, 3)


def test_generate_writes_chunks(tmp_path, monkeypatch):
    monkeypatch.setattr(generation, "ENTRIES_PER_CHUNK", 4)
    chunk_dir = tmp_path / "chunks"
    calls = []
    paths = generate(
        tmp_path / "db.dat", 10, chunk_dir, 1, 2, lambda d, t: calls.append((d, t))
    )
    assert [os.path.basename(p) for p in paths] == [
        "db.dat.chunk.0",
        "db.dat.chunk.1",
        "db.dat.chunk.2",
    ]
    assert chunk_dir.is_dir()
    all_j = []
    for p in paths:
        entries = list(read_entries(p))
        assert _is_sorted(entries)
        all_j.extend(e.j for e in entries)
    assert sorted(all_j) == list(range(1, 11))
    assert [len(list(read_entries(p))) for p in paths] == [4, 4, 2]
    assert calls[-1] == (10, 10)


def test_generate_zero_count(tmp_path):
    paths = generate(tmp_path / "db.dat", 0, tmp_path / "chunks")
    assert paths == []
    assert os.listdir(tmp_path / "chunks") == []


def test_generate_then_merge(tmp_path, monkeypatch):
    monkeypatch.setattr(generation, "ENTRIES_PER_CHUNK", 3)
    chunk_dir = tmp_path / "chunks"
    db = tmp_path / "db.dat"
    generate(db, 8, chunk_dir, 1, 3)
    (chunk_dir / "other.dat.chunk.0").write_bytes(b"unrelated")
    calls = []
    merged = merge(db, chunk_dir, lambda d, t: calls.append((d, t)))
    assert merged == 8
    entries = list(read_entries(db))
    assert _is_sorted(entries)
    assert sorted(e.j for e in entries) == list(range(1, 9))
    for e in entries:
        assert e.x == _expected_x(e.j)
    assert os.listdir(chunk_dir) == ["other.dat.chunk.0"]
    assert calls[-1] == (8, 8)


def test_merge_without_chunks(tmp_path):
    with pytest.raises(FileNotFoundError):
        merge(tmp_path / "db.dat", tmp_path)


def test_merge_missing_directory(tmp_path):
    with pytest.raises(FileNotFoundError):
        merge(tmp_path / "db.dat", tmp_path / "absent")