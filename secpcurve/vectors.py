"""Known scalar-multiplication vectors and the external vector file format.

An external vector file holds one record per line, fields separated by ``;``::

    SCALARMUL;k;expX;expY;desc
    ADD;x1;y1;x2;y2;expX;expY;desc
    SUB;x1;y1;x2;y2;expX;expY;desc

Blank lines and lines starting with ``#`` are ignored, as are records of an
unknown kind.  Hexadecimal fields may be upper or lower case.
"""

from __future__ import annotations

import dataclasses
import os
import string
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

from secpcurve.field import FieldElement
from secpcurve.point import Point, Scalar, scalar_mul_generator

VECTORS_ENV = "SECP256K1_SELFTEST_VECTORS"
"""Environment variable naming an optional external vector file."""

KINDS = ("SCALARMUL", "ADD", "SUB")

_MIN_FIELDS = {"SCALARMUL": 5, "ADD": 8, "SUB": 8}
_UPPER_HEX_TO_LOWER = str.maketrans("ABCDEF", "abcdef")
_HEX_DIGITS = frozenset(string.hexdigits)


@dataclass(frozen=True)
class TestVector:
    """A scalar k with the expected affine coordinates of k*G."""

    __test__ = False

    scalar_hex: str
    expected_x: str
    expected_y: str
    description: str


TEST_VECTORS: Tuple[TestVector, ...] = (
    TestVector(
        "4727daf2986a9804b1117f8261aba645c34537e4474e19be58700792d501a591",
        "0566896db7cd8e47ceb5e4aefbcf4d46ec295a15acb089c4affa9fcdd44471ef",
        "1513fcc547db494641ee2f65926e56645ec68cceaccb278a486e68c39ee876c4",
        "Vector 1",
    ),
    TestVector(
        "c77835cf72699d217c2bbe6c59811b7a599bb640f0a16b3a332ebe64f20b1afa",
        "510f6c70028903e8c0d6f7a156164b972cea569b5a29bb03ff7564dfea9e875a",
        "c02b5ff43ae3b46e281b618abb0cbdaabdd600fbd6f4b78af693dec77080ef56",
        "Vector 2",
    ),
    TestVector(
        "c401899c059f1c624292fece1933c890ae4970abf56dd4d2c986a5b9d7c9aeb5",
        "8434cbaf8256a8399684ed2212afc204e2e536034612039177bba44e1ea0d1c6",
        "0c34841bd41b0d869b35cfc4be6d57f098ae4beca55dc244c762c3ca0fd56af3",
        "Vector 3",
    ),
    TestVector(
        "700a25ca2ae4eb40dfa74c9eda069be7e2fc9bfceabb13953ddedd33e1f03f2c",
        "2327ee923f529e67f537a45f633c8201dbee7be0c78d0894e31855843d9fbf0a",
        "f81ad336ee0bd923ec9338dd4b5f4b98d77caba5c153a6511ab15fd2ac6a422e",
        "Vector 4",
    ),
    TestVector(
        "489206bbfff1b2370619ba0e6a51b74251267e06d3abafb055464bb623d5057a",
        "3ce5eb585c77104f8b877dd5ee574bf9439213b29f027e02e667cec79cd47b9e",
        "7ea30086c7c1f617d4c21c2f6e63cd0386f47ac8a3e97861d19d5d57d7338e3b",
        "Vector 5",
    ),
    TestVector(
        "0000000000000000000000000000000000000000000000000000000000000001",
        "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798",
        "483ada7726a3c4655da4fbfc0e1108a8fd17b448a68554199c47d08ffb10d4b8",
        "1*G (Generator)",
    ),
    TestVector(
        "0000000000000000000000000000000000000000000000000000000000000002",
        "c6047f9441ed7d6d3045406e95c07cd85c778e4b8cef3ca7abac09b95c709ee5",
        "1ae168fea63dc339a3c58419466ceaeef7f632653266d0e1236431a950cfe52a",
        "2*G",
    ),
    TestVector(
        "0000000000000000000000000000000000000000000000000000000000000003",
        "f9308a019258c31049344f85f89d5229b531c845836f99b08601f113bce036f9",
        "388f7b0f632de8140fe337e62a37f3566500a99934c2231b6cb9fd7584b8e672",
        "3*G",
    ),
    TestVector(
        "000000000000000000000000000000000000000000000000000000000000000a",
        "a0434d9e47f3c86235477c7b1ae6ae5d3442d49b1943c2b752a68e2a47e247c7",
        "893aba425419bc27a3b6c7e693a24c696f794c2ed877a1593cbee53b037368d7",
        "10*G",
    ),
    TestVector(
        "fffffffffffffffffffffffffffffffebaaedce6af48a03bbfd25e8cd0364140",
        "79be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798",
        "b7c52588d95c3b9aa25b0403f1eef75702e84bb7597aabe663b82f6f04ef2777",
        "(n-1)*G = -G",
    ),
)


@dataclass(frozen=True)
class VectorRecord:
    """One record of an external vector file.

    ``operands`` holds the scalar for SCALARMUL and ``(x1, y1, x2, y2)`` for
    ADD and SUB, all as hexadecimal text.
    """

    kind: str
    operands: Tuple[str, ...]
    expected_x: str
    expected_y: str
    description: str = ""
    line_number: int = 0


def hex_equal(a: str, b: str) -> bool:
    """Compare two hex strings, ignoring the case of the digits A-F only."""
    if len(a) != len(b):
        return False
    return a.translate(_UPPER_HEX_TO_LOWER) == b.translate(_UPPER_HEX_TO_LOWER)


def hex_to_bytes32(hex_str: str) -> bytes:
    """Decode exactly 64 hexadecimal characters into 32 bytes."""
    if len(hex_str) != 64:
        raise ValueError(f"expected 64 hexadecimal characters, got {len(hex_str)}")
    if not all(c in _HEX_DIGITS for c in hex_str):
        raise ValueError(f"not a hexadecimal string: {hex_str!r}")
    return bytes.fromhex(hex_str)


def parse_vector_line(line: str) -> Optional[VectorRecord]:
    """Parse one line; None for blank lines, comments and unknown kinds.

    Raises ValueError when a known record kind has too few fields.
    """
    line = line.rstrip("\r\n")
    if not line or line.startswith("#"):
        return None
    parts = line.split(";")
    if line.endswith(";"):
        parts.pop()
    if not parts:
        return None
    kind = parts[0]
    if kind not in _MIN_FIELDS:
        return None
    needed = _MIN_FIELDS[kind]
    if len(parts) < needed:
        raise ValueError(f"{kind} record needs {needed} fields, got {len(parts)}")
    if kind == "SCALARMUL":
        return VectorRecord(kind, (parts[1],), parts[2], parts[3], parts[4])
    return VectorRecord(kind, tuple(parts[1:5]), parts[5], parts[6], parts[7])


def parse_vector_file(path: Union[str, os.PathLike]) -> List[VectorRecord]:
    """Parse every record of a vector file, keeping line numbers.

    Raises ValueError naming the line of the first malformed record.
    """
    records = []
    with open(path, encoding="utf-8") as handle:
        for line_number, line in enumerate(handle, start=1):
            try:
                record = parse_vector_line(line)
            except ValueError as exc:
                raise ValueError(f"line {line_number}: {exc}") from exc
            if record is not None:
                records.append(dataclasses.replace(record, line_number=line_number))
    return records


def _point_from_hex(x_hex: str, y_hex: str) -> Point:
    return Point.from_affine(
        FieldElement.from_bytes(hex_to_bytes32(x_hex)),
        FieldElement.from_bytes(hex_to_bytes32(y_hex)),
    )


def check_vector(record: VectorRecord) -> bool:
    """Compute the record's operation and compare with its expected point.

    Raises ValueError if an operand is not valid hexadecimal.
    """
    if record.kind == "SCALARMUL":
        result = scalar_mul_generator(Scalar.from_hex(record.operands[0]))
    elif record.kind in ("ADD", "SUB"):
        x1, y1, x2, y2 = record.operands
        first = _point_from_hex(x1, y1)
        second = _point_from_hex(x2, y2)
        if record.kind == "SUB":
            second = second.negate()
        result = first.add(second)
    else:
        raise ValueError(f"unknown vector kind {record.kind!r}")
    if result.is_infinity():
        return False
    return hex_equal(result.x().to_hex(), record.expected_x) and hex_equal(
        result.y().to_hex(), record.expected_y
    )


def run_external_vectors(
    path: Optional[Union[str, os.PathLike]] = None, verbose: bool = False
) -> bool:
    """Check every record of an external vector file.

    Without a path the file named by SECP256K1_SELFTEST_VECTORS is used.  A
    missing path or file counts as success; a malformed or failing record
    counts as failure.
    """
    if path is None:
        path = os.environ.get(VECTORS_ENV)
        if not path:
            return True
    file_path = Path(path)
    try:
        handle = open(file_path, encoding="utf-8")
    except OSError:
        if verbose:
            print(f"\n[Selftest] Vector file not found: {file_path} (skipping)")
        return True

    if verbose:
        print(f"\nExternal Vector Tests ({file_path}):")
    all_ok = True
    with handle:
        for line_number, line in enumerate(handle, start=1):
            try:
                record = parse_vector_line(line)
                ok = record is None or check_vector(record)
            except ValueError:
                ok = False
            if not ok:
                all_ok = False
                if verbose:
                    print(f"    FAIL (line {line_number})")
    if verbose:
        print("    PASS" if all_ok else "    FAIL")
    return all_ok