"""Lookup and verification over a database of (x, j) records for multiples of G.

The database file holds fixed-size records, optionally after a 16-byte header
that starts with the magic ``SOTSDBA``.  Full records are 40 bytes (x as a
256-bit little-endian value, then j as a 64-bit little-endian value).  Files
whose path contains ``.bin`` or ``_xonly`` hold x-only records of 32 bytes,
for which j is reported as 0.
"""

from __future__ import annotations

import bisect
import logging
import mmap
import os
import shutil
import struct
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple, Union

from secpcurve.entries import ENTRY_SIZE, X_SIZE, merge_sorted_files
from secpcurve.field import FieldElement, batch_inverse
from secpcurve.generation import generate
from secpcurve.point import Point, Scalar

logger = logging.getLogger(__name__)

HEADER_MAGIC = b"SOTSDBA"
HEADER_SIZE = 16
INDEX_SLOTS = (1 << 24) + 1
"""Entries of a prefix index: one start offset per 24-bit x prefix, plus the end."""
INDEX_FILE_SIZE = INDEX_SLOTS * 8
STREAM_VERIFY_BYTES = 64 * 1024 * 1024 * 1024
"""Databases larger than this are verified by streaming instead of lookups."""
VERIFY_BATCH = 4096

_READ_BLOCK = 4096
_PROGRESS_EVERY = 100_000
_PROGRESS_INTERVAL = 5.0
_STREAM_REPORT_EVERY = 1_000_000
_X_LIMIT = 1 << 256
_MASK64 = (1 << 64) - 1

PathLike = Union[str, os.PathLike]
CountProgress = Optional[Callable[[int, int], None]]
XLike = Union[FieldElement, int, Sequence[int]]


@dataclass
class ValidationResult:
    """Outcome of checking that records are in strictly ascending x order."""

    is_sorted: bool = True
    total_checked: int = 0
    sort_errors: int = 0
    first_error_index: int = 0


@dataclass
class VerifyResult:
    """Outcome of checking the records against freshly computed j*G."""

    total_tested: int = 0
    found_correct: int = 0
    not_found: int = 0
    value_mismatch: int = 0
    elapsed_seconds: float = 0.0
    is_valid: bool = False


def _coerce_x(x: XLike) -> int:
    if isinstance(x, FieldElement):
        value = int(x)
    elif isinstance(x, int) and not isinstance(x, bool):
        value = x
    else:
        limbs = list(x)
        if len(limbs) != 4 or any(not 0 <= limb <= _MASK64 for limb in limbs):
            raise ValueError("x must be four 64-bit little-endian limbs")
        value = sum(limb << (64 * i) for i, limb in enumerate(limbs))
    if not 0 <= value < _X_LIMIT:
        raise ValueError("x must fit in 256 unsigned bits")
    return value


def _multiples(start_j: int, count: int, batch_size: int) -> Iterator[List[Tuple[int, int]]]:
    """Yield batches of (j, affine x of j*G) for j in [start_j, start_j + count)."""
    point = Point.generator()
    if start_j > 1:
        point = point.scalar_mul(Scalar(start_j))
    end = start_j + count
    j = start_j
    while j < end:
        size = min(batch_size, end - j)
        batch = []
        for _ in range(size):
            batch.append(point)
            point = point.next()
        z_invs = batch_inverse(p.Z for p in batch)
        yield [
            (j + i, int(p.X * z_inv.square())) for i, (p, z_inv) in enumerate(zip(batch, z_invs))
        ]
        j += size


def _split(total: int, parts: int) -> List[Tuple[int, int]]:
    """Split j in [1, total] into (start_j, count) ranges for ``parts`` workers."""
    chunk = -(-total // parts)
    ranges = []
    for t in range(parts):
        start_j = 1 + t * chunk
        if start_j > total:
            break
        ranges.append((start_j, min(chunk, total - start_j + 1)))
    return ranges


class _XView:
    """Sequence of the x values of a database, for bisection."""

    def __init__(self, db: "SortedEccDB") -> None:
        self._db = db

    def __len__(self) -> int:
        return len(self._db)

    def __getitem__(self, index: int) -> int:
        return self._db._x_at(index)


class SortedEccDB:
    """Read-only access to an (x, j) database file."""

    def __init__(self, path: PathLike) -> None:
        self.path = os.fspath(path)
        if not os.path.exists(self.path):
            raise FileNotFoundError(f"Database file does not exist: {self.path}")
        file_size = os.path.getsize(self.path)
        self.is_xonly = ".bin" in self.path or "_xonly" in self.path
        self.record_size = X_SIZE if self.is_xonly else ENTRY_SIZE
        self.stream_threshold = STREAM_VERIFY_BYTES
        self._lock = threading.Lock()
        self._closed = False
        self._map: Optional[mmap.mmap] = None
        self._index: Optional[mmap.mmap] = None
        self._file = open(self.path, "rb")
        try:
            magic = self._file.read(8)
            self.header_size = (
                HEADER_SIZE if len(magic) == 8 and magic[:7] == HEADER_MAGIC else 0
            )
            if self.header_size:
                logger.info("Detected 16-byte header, skipping")
            data_size = file_size - self.header_size
            if data_size < 0 or data_size % self.record_size != 0:
                raise ValueError(
                    f"Invalid database file size (not multiple of {self.record_size} bytes)"
                )
            self._count = data_size // self.record_size
            logger.info(
                "Detected %s format: %s (%d entries, %d bytes/record)",
                "X-only" if self.is_xonly else "full",
                self.path,
                self._count,
                self.record_size,
            )
            if file_size > 0:
                try:
                    self._map = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_READ)
                except (OSError, ValueError):
                    self._map = None
        except BaseException:
            self._file.close()
            raise

    def close(self) -> None:
        """Release the file, its mapping and any loaded index."""
        if self._closed:
            return
        self._closed = True
        if self._map is not None:
            self._map.close()
            self._map = None
        if self._index is not None:
            self._index.close()
            self._index = None
        self._file.close()

    def __enter__(self) -> "SortedEccDB":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __len__(self) -> int:
        return self._count

    @property
    def entry_count(self) -> int:
        return self._count

    # -- raw access ---------------------------------------------------------

    def _read(self, offset: int, size: int) -> bytes:
        if self._closed:
            raise ValueError("database is closed")
        if self._map is not None:
            data = self._map[offset : offset + size]
        else:
            with self._lock:
                self._file.seek(offset)
                data = self._file.read(size)
        if len(data) != size:
            raise ValueError("read past the end of the database")
        return data

    def _x_at(self, index: int) -> int:
        offset = self.header_size + index * self.record_size
        return int.from_bytes(self._read(offset, X_SIZE), "little")

    def _record_at(self, index: int) -> Tuple[int, int]:
        offset = self.header_size + index * self.record_size
        data = self._read(offset, self.record_size)
        x = int.from_bytes(data[:X_SIZE], "little")
        j = 0 if self.is_xonly else int.from_bytes(data[X_SIZE:ENTRY_SIZE], "little")
        return x, j

    def _iter_records(self, start: int = 0) -> Iterator[Tuple[int, int]]:
        size = self.record_size
        index = start
        while index < self._count:
            block = min(_READ_BLOCK, self._count - index)
            data = self._read(self.header_size + index * size, block * size)
            for offset in range(0, block * size, size):
                x = int.from_bytes(data[offset : offset + X_SIZE], "little")
                j = (
                    0
                    if self.is_xonly
                    else int.from_bytes(data[offset + X_SIZE : offset + ENTRY_SIZE], "little")
                )
                yield x, j
            index += block

    # -- index and lookup ---------------------------------------------------

    def load_index(self, idx_path: PathLike) -> None:
        """Load a prefix index narrowing each lookup to records sharing x's top 24 bits."""
        idx_path = os.fspath(idx_path)
        if not os.path.exists(idx_path):
            raise FileNotFoundError(f"Index file does not exist: {idx_path}")
        if os.path.getsize(idx_path) != INDEX_FILE_SIZE:
            raise ValueError("Invalid index file size")
        with open(idx_path, "rb") as handle:
            index = mmap.mmap(handle.fileno(), 0, access=mmap.ACCESS_READ)
        if self._index is not None:
            self._index.close()
        self._index = index

    @property
    def has_index(self) -> bool:
        return self._index is not None

    def _find(self, x: int, use_index: bool = True) -> Optional[int]:
        lo, hi = 0, self._count
        if use_index and self._index is not None:
            prefix = x >> 232
            lo, hi = struct.unpack_from("<QQ", self._index, prefix * 8)
            lo = min(lo, self._count)
            hi = min(hi, self._count)
        if lo >= hi:
            return None
        pos = bisect.bisect_left(_XView(self), x, lo, hi)
        if pos < hi and self._x_at(pos) == x:
            return self._record_at(pos)[1]
        return None

    def lookup(self, x: XLike) -> Optional[int]:
        """Return j for the record with this x, or None if there is none.

        ``x`` may be a FieldElement, an int, or four little-endian 64-bit
        limbs.  X-only databases report j as 0.
        """
        if self._closed:
            raise ValueError("database is closed")
        return self._find(_coerce_x(x))

    # -- validation ---------------------------------------------------------

    def validate_sort(self) -> ValidationResult:
        """Check that x values are strictly ascending."""
        result = ValidationResult()
        prev: Optional[int] = None
        for index, (x, _) in enumerate(self._iter_records()):
            if prev is not None and not prev < x:
                result.is_sorted = False
                result.sort_errors += 1
                if result.sort_errors == 1:
                    result.first_error_index = index
            prev = x
            result.total_checked += 1
        return result

    def verify_unsorted(self, num_threads: int = 1, progress: CountProgress = None) -> VerifyResult:
        """Check that record i holds the x of (i+1)*G and j = i+1."""
        total = self._count
        result = VerifyResult(total_tested=total)
        if total == 0:
            result.is_valid = True
            return result
        started = time.perf_counter()

        lock = threading.Lock()
        state = {"completed": 0, "last": time.monotonic()}

        def tick_single(j: int) -> None:
            if progress is not None and (j % _PROGRESS_EVERY == 0 or j == total):
                progress(j, total)

        def tick_threaded(_: int) -> None:
            if progress is None:
                with lock:
                    state["completed"] += 1
                return
            with lock:
                state["completed"] += 1
                now = time.monotonic()
                if now - state["last"] > _PROGRESS_INTERVAL or state["completed"] == total:
                    progress(state["completed"], total)
                    state["last"] = now

        def check(start_j: int, count: int, tick: Callable[[int], None]) -> Tuple[int, int, int]:
            found = missing = mismatch = 0
            records = self._iter_records(start_j - 1)
            for batch in _multiples(start_j, count, VERIFY_BATCH):
                for j, expected_x in batch:
                    x, stored_j = next(records)
                    if x != expected_x:
                        missing += 1
                    elif stored_j != j:
                        mismatch += 1
                    else:
                        found += 1
                    tick(j)
            return found, missing, mismatch

        if num_threads <= 1:
            counts = [check(1, total, tick_single)]
        else:
            with ThreadPoolExecutor(max_workers=num_threads) as pool:
                futures = [
                    pool.submit(check, start_j, count, tick_threaded)
                    for start_j, count in _split(total, num_threads)
                ]
                counts = [f.result() for f in futures]

        result.found_correct = sum(c[0] for c in counts)
        result.not_found = sum(c[1] for c in counts)
        result.value_mismatch = sum(c[2] for c in counts)
        result.elapsed_seconds = time.perf_counter() - started
        result.is_valid = result.found_correct == total
        return result

    def verify_sorted(self, num_threads: int = 1, progress: CountProgress = None) -> VerifyResult:
        """Look up every j*G for j in [1, len] and check the stored j.

        Large databases, or ones that cannot be mapped, are instead compared
        as a stream against freshly generated and merged sorted records.
        ``num_threads`` of 0 uses one worker per CPU.
        """
        total = self._count
        result = VerifyResult(total_tested=total)
        if total == 0:
            result.is_valid = True
            return result
        if num_threads <= 0:
            num_threads = os.cpu_count() or 1
        started = time.perf_counter()

        if self._map is None or total * self.record_size > self.stream_threshold:
            if self._map is None:
                logger.info("Memory mapping unavailable; switching to stream verification")
            else:
                logger.info("Database exceeds the size threshold; switching to stream verification")
            return self._stream_verify(result, num_threads, progress, started)

        lock = threading.Lock()
        processed = [0]

        def check(start_j: int, count: int) -> Tuple[int, int, int]:
            found = missing = mismatch = 0
            for batch in _multiples(start_j, count, VERIFY_BATCH):
                for j, x in sorted(batch, key=lambda q: q[1]):
                    stored = self._find(x, use_index=False)
                    if stored is None:
                        missing += 1
                    elif stored == j:
                        found += 1
                    else:
                        mismatch += 1
                with lock:
                    processed[0] += len(batch)
                    current = processed[0]
                    if progress is not None and current % _PROGRESS_EVERY < VERIFY_BATCH:
                        progress(current, total)
            return found, missing, mismatch

        with ThreadPoolExecutor(max_workers=num_threads) as pool:
            futures = [pool.submit(check, s, c) for s, c in _split(total, num_threads)]
            counts = [f.result() for f in futures]

        result.found_correct = sum(c[0] for c in counts)
        result.not_found = sum(c[1] for c in counts)
        result.value_mismatch = sum(c[2] for c in counts)
        result.elapsed_seconds = time.perf_counter() - started
        result.is_valid = result.found_correct == total
        return result

    def _stream_verify(
        self, result: VerifyResult, num_threads: int, progress: CountProgress, started: float
    ) -> VerifyResult:
        total = self._count
        parent = Path(self.path).resolve().parent
        temp_dir = tempfile.mkdtemp(prefix="verify_temp_", dir=parent)
        verified = mismatch = 0
        try:

            def first_half(current: int, _total: int) -> None:
                if progress is not None:
                    progress(current // 2, total)

            chunks = generate("verify_dummy.dat", total, temp_dir, 1, num_threads, first_half)
            expected = merge_sorted_files(chunks)
            actual = self._iter_records()
            processed = 0
            for want in expected:
                got = next(actual, None)
                if got is None:
                    mismatch += 1
                    break
                if want.x == got[0]:
                    verified += 1
                else:
                    mismatch += 1
                processed += 1
                if progress is not None and processed % _STREAM_REPORT_EVERY == 0:
                    progress(total // 2 + processed // 2, total)
            else:
                if next(actual, None) is not None:
                    mismatch += 1
            expected.close()
            del expected
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        result.elapsed_seconds = time.perf_counter() - started
        result.found_correct = verified
        result.value_mismatch = mismatch
        result.is_valid = mismatch == 0 and verified == total
        return result

    def verify(self, num_threads: int = 1, progress: CountProgress = None) -> VerifyResult:
        """Verify as unsorted when the first record has j = 1, otherwise as sorted."""
        if self._count == 0:
            return VerifyResult(is_valid=True)
        _, first_j = self._record_at(0)
        if first_j == 1:
            return self.verify_unsorted(num_threads, progress)
        return self.verify_sorted(num_threads, progress)