"""Arithmetic in the secp256k1 base field GF(p)."""

from __future__ import annotations

import string
from typing import Iterable, List, Sequence

P = 2**256 - 2**32 - 977
"""The field prime p = 2^256 - 2^32 - 977."""

MONT_R = (1 << 256) % P
"""Montgomery radix R = 2^256 mod p (equals 0x1000003D1)."""

_MONT_R_INV = pow(MONT_R, -1, P)
_UINT64_LIMIT = 1 << 64
_MASK64 = _UINT64_LIMIT - 1


def _parse_hex256(hex_str: str) -> int:
    text = hex_str.strip()
    if len(text) != 64 or not all(c in string.hexdigits for c in text):
        raise ValueError(f"expected 64 hexadecimal characters, got {hex_str!r}")
    return int(text, 16)


class FieldElement:
    """An immutable element of the secp256k1 base field."""

    __slots__ = ("_value",)

    def __init__(self, value: int = 0) -> None:
        if not isinstance(value, int):
            raise TypeError("field element value must be an int")
        self._value = value % P

    @classmethod
    def zero(cls) -> "FieldElement":
        return cls(0)

    @classmethod
    def one(cls) -> "FieldElement":
        return cls(1)

    @classmethod
    def from_uint64(cls, value: int) -> "FieldElement":
        if not 0 <= value < _UINT64_LIMIT:
            raise ValueError("value does not fit in 64 unsigned bits")
        return cls(value)

    @classmethod
    def from_limbs(cls, limbs: Sequence[int]) -> "FieldElement":
        """Build from four little-endian 64-bit limbs (limbs[0] is least significant)."""
        limbs = list(limbs)
        if len(limbs) != 4:
            raise ValueError("exactly four limbs are required")
        if any(not 0 <= limb < _UINT64_LIMIT for limb in limbs):
            raise ValueError("each limb must fit in 64 unsigned bits")
        return cls(sum(limb << (64 * i) for i, limb in enumerate(limbs)))

    @classmethod
    def from_bytes(cls, data: bytes) -> "FieldElement":
        """Build from 32 big-endian bytes; values >= p are reduced."""
        data = bytes(data)
        if len(data) != 32:
            raise ValueError("exactly 32 bytes are required")
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def from_hex(cls, hex_str: str) -> "FieldElement":
        """Build from 64 hexadecimal characters (big-endian)."""
        return cls(_parse_hex256(hex_str))

    @classmethod
    def from_mont(cls, a: "FieldElement") -> "FieldElement":
        """Convert a*R from the Montgomery domain back to a."""
        return cls(a._value * _MONT_R_INV)

    @property
    def value(self) -> int:
        return self._value

    def __int__(self) -> int:
        return self._value

    def to_bytes(self) -> bytes:
        return self._value.to_bytes(32, "big")

    def to_hex(self) -> str:
        return f"{self._value:064x}"

    def limbs(self) -> tuple:
        """The four little-endian 64-bit limbs of the canonical value."""
        return tuple((self._value >> (64 * i)) & _MASK64 for i in range(4))

    def __add__(self, other: object) -> "FieldElement":
        if not isinstance(other, FieldElement):
            return NotImplemented
        return FieldElement(self._value + other._value)

    def __sub__(self, other: object) -> "FieldElement":
        if not isinstance(other, FieldElement):
            return NotImplemented
        return FieldElement(self._value - other._value)

    def __mul__(self, other: object) -> "FieldElement":
        if not isinstance(other, FieldElement):
            return NotImplemented
        return FieldElement(self._value * other._value)

    def __neg__(self) -> "FieldElement":
        return FieldElement(-self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldElement):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(("FieldElement", self._value))

    def __bool__(self) -> bool:
        return self._value != 0

    def __repr__(self) -> str:
        return f"FieldElement(0x{self.to_hex()})"

    def square(self) -> "FieldElement":
        return FieldElement(self._value * self._value)

    def inverse(self) -> "FieldElement":
        """Multiplicative inverse; zero has none."""
        if self._value == 0:
            raise ZeroDivisionError("zero has no inverse in the field")
        return FieldElement(pow(self._value, P - 2, P))


def batch_inverse(elements: Iterable[FieldElement]) -> List[FieldElement]:
    """Invert many elements with a single field inversion (Montgomery's trick)."""
    items = list(elements)
    if not items:
        return []
    if any(element.value == 0 for element in items):
        raise ZeroDivisionError("zero has no inverse in the field")

    prefix = []
    acc = FieldElement.one()
    for element in items:
        prefix.append(acc)
        acc = acc * element

    inv = acc.inverse()
    result = []
    for element, before in zip(reversed(items), reversed(prefix)):
        result.append(inv * before)
        inv = inv * element
    result.reverse()
    return result