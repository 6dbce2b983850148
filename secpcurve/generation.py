"""Generation of (x, j) record databases for consecutive multiples of G.

Records for j*G are produced in chunks.  Each chunk is sorted by x and written
to ``<name>.chunk.<index>``.  The chunks are then merged into the final
database with :func:`merge`.
"""

from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, List, Optional, Union

from secpcurve.entries import ENTRY_SIZE, Entry, merge_sorted_files, write_entries
from secpcurve.field import batch_inverse
from secpcurve.point import Point, Scalar

BATCH_SIZE = 1024
"""Points whose Z coordinates are inverted together."""

CHUNK_MEMORY_LIMIT = 256 * 1024 * 1024
"""Bytes of records held in memory for one chunk."""

ENTRIES_PER_CHUNK = CHUNK_MEMORY_LIMIT // ENTRY_SIZE
"""Records per generated chunk."""

MERGE_BUFFER_ENTRIES = 1024 * 1024
"""Records buffered before each write while merging."""

_PROGRESS_EVERY = 100_000

PathLike = Union[str, os.PathLike]
CountProgress = Optional[Callable[[int, int], None]]


def _chunk_prefix(path: PathLike) -> str:
    return Path(path).name + ".chunk."


def range_gen(
    output_file: PathLike, start_j: int, count: int, progress: CountProgress = None
) -> int:
    """Write the records for j in [start_j, start_j + count), sorted by x.

    Returns the number of records written.  Nothing is written when count is 0.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    if count == 0:
        return 0
    if start_j < 1:
        raise ValueError("start_j must be at least 1")

    point = Point.generator()
    if start_j > 1:
        point = point.scalar_mul(Scalar.from_uint64(start_j))

    entries: List[Entry] = []
    batch: List[tuple] = []
    end = start_j + count

    def flush() -> None:
        z_invs = batch_inverse(p.Z for p, _ in batch)
        for (p, j), z_inv in zip(batch, z_invs):
            entries.append(Entry.from_point(p.X * z_inv.square(), j))
        batch.clear()
        if progress is not None and len(entries) % _PROGRESS_EVERY == 0:
            progress(len(entries), count)

    for j in range(start_j, end):
        batch.append((point, j))
        point = point.next()
        if len(batch) == BATCH_SIZE or j == end - 1:
            flush()

    entries.sort(key=Entry.sort_key)
    written = write_entries(output_file, entries)
    if progress is not None:
        progress(count, count)
    return written


def generate(
    path: PathLike,
    count: int,
    chunk_dir: PathLike = ".",
    start_j: int = 1,
    num_threads: int = 0,
    progress: CountProgress = None,
) -> List[str]:
    """Generate sorted chunks covering j in [start_j, start_j + count).

    Chunks are written to ``chunk_dir`` (created if missing) as
    ``<basename of path>.chunk.<index>``; their paths are returned in index
    order.  ``num_threads`` of 0 uses one worker per CPU.
    """
    if count < 0:
        raise ValueError("count must not be negative")
    if num_threads <= 0:
        num_threads = os.cpu_count() or 1

    per_chunk = ENTRIES_PER_CHUNK
    total_chunks = -(-count // per_chunk)
    directory = Path(os.fspath(chunk_dir) or ".")
    directory.mkdir(parents=True, exist_ok=True)
    prefix = _chunk_prefix(path)

    lock = threading.Lock()
    generated = 0

    def work(chunk_idx: int) -> str:
        nonlocal generated
        chunk_start = start_j + chunk_idx * per_chunk
        chunk_count = min(per_chunk, count - (chunk_start - start_j))
        chunk_path = str(directory / f"{prefix}{chunk_idx}")
        range_gen(chunk_path, chunk_start, chunk_count)
        with lock:
            generated += chunk_count
            if progress is not None:
                progress(generated, count)
        return chunk_path

    with ThreadPoolExecutor(max_workers=num_threads) as pool:
        chunk_paths = list(pool.map(work, range(total_chunks)))

    if progress is not None:
        progress(count, count)
    return chunk_paths


def merge(path: PathLike, chunk_dir: PathLike = ".", progress: CountProgress = None) -> int:
    """Merge the sorted chunks of ``path`` found in ``chunk_dir`` into ``path``.

    The chunk files are removed afterwards.  Returns the number of records
    written.  Raises FileNotFoundError when no chunk is found.
    """
    directory = Path(os.fspath(chunk_dir) or ".")
    prefix = _chunk_prefix(path)
    chunk_files: List[str] = []
    if directory.is_dir():
        chunk_files = sorted(
            str(directory / name) for name in os.listdir(directory) if name.startswith(prefix)
        )
    if not chunk_files:
        raise FileNotFoundError(f"No chunk files found in {os.fspath(chunk_dir)}")

    total_entries = sum(os.path.getsize(f) // ENTRY_SIZE for f in chunk_files)
    merged_count = 0
    buffer: List[bytes] = []
    with open(path, "wb") as out:
        for entry in merge_sorted_files(chunk_files):
            buffer.append(entry.to_bytes())
            if len(buffer) >= MERGE_BUFFER_ENTRIES:
                out.write(b"".join(buffer))
                merged_count += len(buffer)
                buffer.clear()
                if progress is not None:
                    progress(merged_count, total_entries)
        if buffer:
            out.write(b"".join(buffer))
            merged_count += len(buffer)

    for chunk_file in chunk_files:
        os.remove(chunk_file)

    if progress is not None:
        progress(merged_count, total_entries)
    return merged_count