# secpcurve

Arithmetic on the secp256k1 elliptic curve in plain Python, with no
third-party dependencies. The package also includes known-answer self-tests
and tools to build, sort, search and verify databases of the x-coordinates of
consecutive multiples of the generator G.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Modules

| Module | Contents |
| --- | --- |
| `secpcurve.field` | `FieldElement`, `batch_inverse`, the prime `P` |
| `secpcurve.point` | `Scalar`, `Point`, `KPlan`, `glv_decompose`, `compute_wnaf`, `apply_endomorphism`, `scalar_mul_generator` |
| `secpcurve.vectors` | built-in vectors `TEST_VECTORS`, the external vector file format, `run_external_vectors` |
| `secpcurve.selftest` | `selftest` and the `secpcurve-selftest` command |
| `secpcurve.entries` | the 40-byte `Entry` record, reading, writing, merging and sorting record files |
| `secpcurve.generation` | `range_gen`, `generate`, `merge` for building databases |
| `secpcurve.sorted_db` | `SortedEccDB` for lookup and verification, `ValidationResult`, `VerifyResult` |

## Field and scalar arithmetic

`FieldElement` is an immutable element of the prime field
p = 2^256 - 2^32 - 977. `Scalar` is an immutable integer modulo the group
order n. Both support `+`, `-`, `*` and unary `-`, compare by value and can be
hashed. You can build them with `zero()`, `one()`, `from_uint64`,
`from_bytes` (32 big-endian bytes) and `from_hex` (exactly 64 hex digits). Any
value that is too large is reduced. `to_bytes()` and `to_hex()` give the
canonical big-endian form. `FieldElement.limbs()` returns four little-endian
64-bit limbs, and `FieldElement.from_mont` converts a value out of the
Montgomery domain.

```python
from secpcurve.field import FieldElement, batch_inverse

a = FieldElement.from_uint64(7)
b = FieldElement.from_hex("0" * 63 + "5")
assert (a + b) - b == a
assert a.inverse() * a == FieldElement.one()

inverses = batch_inverse([FieldElement.from_uint64(v) for v in (3, 7, 11)])
```

`batch_inverse` inverts a whole list with a single field inversion. Inverting
zero raises `ZeroDivisionError`, both in `inverse()` and in `batch_inverse`.

## Points

`Point` is an immutable point stored in Jacobian coordinates. Two points
compare equal when they are the same point on the curve. `x()` and `y()`
return affine coordinates. Calling them on the point at infinity raises
`ValueError`.

```python
from secpcurve.point import Point, Scalar, KPlan, scalar_mul_generator

G = Point.generator()
k = Scalar.from_hex("4727daf2986a9804b1117f8261aba645c34537e4474e19be58700792d501a591")
P = scalar_mul_generator(k)
print(P.x().to_hex(), P.y().to_hex())

assert G.add(G) == G.dbl()
assert G.add(G.negate()).is_infinity()
assert G.next() == G.dbl() and G.next().prev() == G

compressed = P.to_compressed()      # 33 bytes, prefix 02/03
uncompressed = P.to_uncompressed()  # 65 bytes, prefix 04
```

`scalar_mul` uses a width-5 wNAF. Other constructors are `from_affine`,
`from_hex` and `from_jacobian_coords`. `x_first_half()` and `x_second_half()`
return the two 16-byte halves of the x-coordinate.

The GLV endomorphism phi(x, y) = (beta·x, y) equals lambda·P and is available
as `apply_endomorphism`. `glv_decompose(k)` returns `(k1, k2, neg1, neg2)`
with k = ±k1 ± k2·lambda (mod n). When many points are multiplied by the same
scalar, build a `KPlan` once. It holds the split and the wNAF digits of that
scalar:

```python
plan = KPlan.from_scalar(k, 4)
Q = scalar_mul_generator(Scalar.from_uint64(13))
assert Q.scalar_mul_with_plan(plan) == Q.scalar_mul(k)
```

`Point.scalar_mul_predecomposed(k1, k2, neg1, neg2)` does the same work from a
split you have already computed.

## Self-test

The self-test runs these checks:

- scalar multiplication against fixed vectors
- field, scalar and point group identities
- serialization
- batch inversion
- doubling chains
- large and squared scalars
- bilinearity
- the fixed-scalar plan
- sequential increments

```
secpcurve-selftest          # exit status 0 when every check passes
secpcurve-selftest -v       # report each check
```

From Python:

```python
from secpcurve.selftest import selftest
assert selftest(verbose=False)
```

### External vector files

You can add vectors of your own in a file with one record per line and fields
separated by semicolons. Empty lines, lines starting with `#`, and records of
unknown kinds are skipped:

```
SCALARMUL;<k>;<expected x>;<expected y>;<description>
ADD;<x1>;<y1>;<x2>;<y2>;<expected x>;<expected y>;<description>
SUB;<x1>;<y1>;<x2>;<y2>;<expected x>;<expected y>;<description>
```

To include the file in the self-test, set `SECP256K1_SELFTEST_VECTORS` to its
path. You can also check it directly with
`secpcurve.vectors.run_external_vectors(path, verbose)`. A missing file counts
as a pass. A malformed or failing record counts as a failure. The module also
provides `parse_vector_file`, `parse_vector_line` and `check_vector`.

## Sorted x-coordinate databases

A database file holds 40-byte records (`secpcurve.entries.Entry`). Each record
contains:

- the affine x-coordinate of j·G as a 256-bit little-endian value, which is
  the same as four little-endian 64-bit limbs with the least significant limb
  first;
- j as a 64-bit little-endian integer.

Records are ordered by x.

```python
from secpcurve.generation import generate, merge
from secpcurve.sorted_db import SortedEccDB
from secpcurve.point import scalar_mul_generator, Scalar

generate("points.dat", 10_000, "chunks", 1, 4, None)  # sorted chunk files in chunks/
merge("points.dat", "chunks", None)                   # k-way merge into points.dat

with SortedEccDB("points.dat") as db:
    x = scalar_mul_generator(Scalar.from_uint64(1234)).x()
    assert db.lookup(x) == 1234
    print(db.validate_sort())
    print(db.verify_sorted(4, None))
```

### Building

- `generate` writes chunks named `<file name>.chunk.<index>` and returns their
  paths. Each chunk holds up to 256 MiB of records and is sorted in memory.
- `merge` merges the chunks into the database and deletes them.
- `range_gen(output_file, start_j, count, progress)` writes a single sorted
  range.

Progress callbacks receive `(done, total)`.

### Looking up

`SortedEccDB.lookup` accepts a `FieldElement`, an int, or four 64-bit limbs.
It returns j, or `None` when the x-coordinate is not in the database.

- **X-only files.** A file whose path contains `.bin` or `_xonly` is read as
  an x-only database with 32-byte records, and j is reported as 0.
- **Header.** A 16-byte header starting with the magic `SOTSDBA` is detected
  and skipped.
- **Prefix index.** `load_index` loads an optional index of 2^24 + 1
  little-endian 64-bit offsets, one per 24-bit x prefix. Lookups then search
  only the records that share that prefix.

### Checking

- `validate_sort()` checks that x is strictly ascending.
- `verify_unsorted()` checks that record i holds (i+1)·G with j = i+1.
- `verify_sorted()` looks up every j·G.
- `verify()` picks one of the two: it runs `verify_unsorted` when the first
  record has j = 1, and `verify_sorted` otherwise.

`verify_sorted` switches to a streaming comparison in two cases: when the file
cannot be memory-mapped, or when it is larger than 64 GiB. In that mode it
compares the file against freshly generated and merged records.

### Sorting

`secpcurve.entries.sort_database(path, memory_limit_mb, progress)` sorts an
unsorted database in place. If the file does not fit within the memory limit,
it sorts chunks and then merges them. Its progress callback receives text
messages. Related helpers are `read_entries`, `write_entries` and
`merge_sorted_files`.

Format detection and verification mode changes are logged through the
`secpcurve.sorted_db` logger.

## What this package does not do

- There are no signatures, key handling or hashing: no ECDSA, no Schnorr, and
  no key generation or encoding beyond point serialization.
- The arithmetic uses Python integers and is not constant-time. Do not use it
  where timing side channels matter.
- The only command is `secpcurve-selftest`. Building, sorting, searching and
  verifying databases is done from Python.