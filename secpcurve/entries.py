"""Fixed-size database records of (affine x, j) and on-disk sorting of them.

A record is 40 bytes: the x coordinate as four little-endian 64-bit limbs
(least significant limb first, which is the whole 256-bit value in
little-endian byte order), followed by j as a little-endian 64-bit integer.
Records are ordered and compared by x alone.
"""

from __future__ import annotations

import functools
import heapq
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Iterator, List, Optional, Sequence, Union

from secpcurve.field import FieldElement

ENTRY_SIZE = 40
"""Size in bytes of one full record."""

X_SIZE = 32
"""Size in bytes of the x coordinate within a record."""

_X_LIMIT = 1 << 256
_J_LIMIT = 1 << 64
_MASK64 = (1 << 64) - 1
_MERGE_BUFFER = 4096
_MERGE_REPORT_EVERY = 1_000_000

PathLike = Union[str, os.PathLike]
Progress = Optional[Callable[[str], None]]


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Entry:
    """One record: the affine x coordinate of j*G and the multiplier j."""

    x: int
    j: int

    def __post_init__(self) -> None:
        if not 0 <= self.x < _X_LIMIT:
            raise ValueError("x must fit in 256 unsigned bits")
        if not 0 <= self.j < _J_LIMIT:
            raise ValueError("j must fit in 64 unsigned bits")

    @classmethod
    def from_point(cls, x_affine: FieldElement, j: int) -> "Entry":
        """Build a record from an affine x coordinate and its multiplier."""
        return cls(int(x_affine), j)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Entry":
        """Decode one 40-byte record."""
        data = bytes(data)
        if len(data) != ENTRY_SIZE:
            raise ValueError(f"a record is {ENTRY_SIZE} bytes, got {len(data)}")
        return cls(
            int.from_bytes(data[:X_SIZE], "little"),
            int.from_bytes(data[X_SIZE:], "little"),
        )

    def to_bytes(self) -> bytes:
        return self.x.to_bytes(X_SIZE, "little") + self.j.to_bytes(8, "little")

    @property
    def x_limbs(self) -> tuple:
        """The four little-endian 64-bit limbs of x."""
        return tuple((self.x >> (64 * i)) & _MASK64 for i in range(4))

    def sort_key(self) -> int:
        """Key that orders records by x, most significant limb first."""
        return self.x

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.x == other.x

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Entry):
            return NotImplemented
        return self.x < other.x

    def __hash__(self) -> int:
        return hash(("Entry", self.x))


def _decode(blob: bytes) -> List[Entry]:
    return [
        Entry.from_bytes(blob[offset : offset + ENTRY_SIZE])
        for offset in range(0, len(blob), ENTRY_SIZE)
    ]


def read_entries(path: PathLike) -> Iterator[Entry]:
    """Yield every record of a file in file order.

    Raises ValueError if the file ends in a partial record.
    """
    with open(path, "rb") as handle:
        while True:
            chunk = handle.read(ENTRY_SIZE)
            if not chunk:
                return
            if len(chunk) < ENTRY_SIZE:
                raise ValueError(f"{os.fspath(path)}: truncated record at end of file")
            yield Entry.from_bytes(chunk)


def write_entries(path: PathLike, entries: Iterable[Entry]) -> int:
    """Write records to a file, replacing it; return how many were written."""
    count = 0
    with open(path, "wb") as handle:
        for entry in entries:
            handle.write(entry.to_bytes())
            count += 1
    return count


def merge_sorted_files(paths: Sequence[PathLike]) -> Iterator[Entry]:
    """K-way merge of files whose records are each sorted by x."""
    return heapq.merge(*(read_entries(p) for p in paths), key=Entry.sort_key)


def sort_database(path: PathLike, memory_limit_mb: float = 1024, progress: Progress = None) -> int:
    """Sort a database file by x in place; return the number of records.

    When the file fits in ``memory_limit_mb`` (which may be fractional) it is
    sorted in memory; otherwise sorted chunks are written next to it and merged.
    """
    path = os.fspath(path)

    def report(message: str) -> None:
        if progress is not None:
            progress(message)

    if not os.path.exists(path):
        raise FileNotFoundError(f"Database file does not exist: {path}")
    file_size = os.path.getsize(path)
    if file_size % ENTRY_SIZE != 0:
        raise ValueError("Invalid database file size")
    entry_count = file_size // ENTRY_SIZE
    entries_fit_memory = int(memory_limit_mb * 1024 * 1024) // ENTRY_SIZE
    if entries_fit_memory < 1:
        raise ValueError("memory limit is too small to hold a single record")

    if entry_count <= entries_fit_memory:
        report(f"Loading {entry_count} entries into memory...")
        with open(path, "rb") as handle:
            entries = _decode(handle.read())
        report("Sorting in memory...")
        entries.sort(key=Entry.sort_key)
        report("Writing sorted database...")
        write_entries(path, entries)
        report("Sort complete")
        return entry_count

    report(f"Starting external merge sort for {entry_count} entries...")
    chunk_count = -(-entry_count // entries_fit_memory)
    chunk_files: List[str] = []
    temp_output = path + ".sorted"
    try:
        with open(path, "rb") as handle:
            for chunk_idx in range(chunk_count):
                chunk_entries = min(entries_fit_memory, entry_count - chunk_idx * entries_fit_memory)
                report(
                    f"Sorting chunk {chunk_idx + 1}/{chunk_count} ({chunk_entries} entries)"
                )
                chunk = _decode(handle.read(chunk_entries * ENTRY_SIZE))
                chunk.sort(key=Entry.sort_key)
                chunk_file = f"{path}.sortchunk{chunk_idx}"
                chunk_files.append(chunk_file)
                write_entries(chunk_file, chunk)

        report(f"Merging {len(chunk_files)} sorted chunks...")
        merged_count = 0
        buffer: List[bytes] = []
        with open(temp_output, "wb") as out:
            for entry in merge_sorted_files(chunk_files):
                buffer.append(entry.to_bytes())
                if len(buffer) == _MERGE_BUFFER:
                    out.write(b"".join(buffer))
                    merged_count += len(buffer)
                    buffer.clear()
                    if merged_count % _MERGE_REPORT_EVERY == 0:
                        report(f"Merged {merged_count}/{entry_count} entries")
            if buffer:
                out.write(b"".join(buffer))
                merged_count += len(buffer)
    finally:
        for chunk_file in chunk_files:
            if os.path.exists(chunk_file):
                os.remove(chunk_file)

    os.replace(temp_output, path)
    report(f"Sort complete: {merged_count} entries")
    return merged_count