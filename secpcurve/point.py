"""Scalars modulo the group order and points on the secp256k1 curve."""

from __future__ import annotations

import string
from dataclasses import dataclass
from itertools import zip_longest
from typing import Dict, Iterable, List, Sequence, Tuple, Union

from secpcurve.field import P, FieldElement

N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
"""Order of the group generated by G."""

GX = 0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798
GY = 0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8

BETA = 0x7AE96A2B657C07106E64479EAC3434E99CF0497512F58995C1396C28719501EE
"""Cube root of unity in GF(p): phi(x, y) = (beta * x, y)."""
LAMBDA = 0x5363AD4CC05C30E0A5261C028812645A122E22EA20816678DF02967C1B23BD72
"""Cube root of unity mod n: phi(P) = lambda * P."""

_A1 = 0x3086D221A7D46BCDE86C90E49284EB15
_B1 = -0xE4437ED6010E88286F547FA90ABFE4C3
_A2 = 0x114CA50F7A8E2F3F657C1108D9D44CFD8
_B2 = 0x3086D221A7D46BCDE86C90E49284EB15

_UINT64_LIMIT = 1 << 64

ScalarLike = Union["Scalar", int]


def _parse_hex256(hex_str: str) -> int:
    text = hex_str.strip()
    if len(text) != 64 or not all(c in string.hexdigits for c in text):
        raise ValueError(f"expected 64 hexadecimal characters, got {hex_str!r}")
    return int(text, 16)


class Scalar:
    """An immutable integer modulo the group order n."""

    __slots__ = ("_value",)

    def __init__(self, value: int = 0) -> None:
        if not isinstance(value, int):
            raise TypeError("scalar value must be an int")
        self._value = value % N

    @classmethod
    def zero(cls) -> "Scalar":
        return cls(0)

    @classmethod
    def one(cls) -> "Scalar":
        return cls(1)

    @classmethod
    def from_uint64(cls, value: int) -> "Scalar":
        if not 0 <= value < _UINT64_LIMIT:
            raise ValueError("value does not fit in 64 unsigned bits")
        return cls(value)

    @classmethod
    def from_bytes(cls, data: bytes) -> "Scalar":
        """Build from 32 big-endian bytes, reduced modulo n."""
        data = bytes(data)
        if len(data) != 32:
            raise ValueError("exactly 32 bytes are required")
        return cls(int.from_bytes(data, "big"))

    @classmethod
    def from_hex(cls, hex_str: str) -> "Scalar":
        """Build from 64 hexadecimal characters, reduced modulo n."""
        return cls(_parse_hex256(hex_str))

    @property
    def value(self) -> int:
        return self._value

    def __int__(self) -> int:
        return self._value

    def is_zero(self) -> bool:
        return self._value == 0

    def to_bytes(self) -> bytes:
        return self._value.to_bytes(32, "big")

    def to_hex(self) -> str:
        return f"{self._value:064x}"

    def __add__(self, other: object) -> "Scalar":
        if not isinstance(other, Scalar):
            return NotImplemented
        return Scalar(self._value + other._value)

    def __sub__(self, other: object) -> "Scalar":
        if not isinstance(other, Scalar):
            return NotImplemented
        return Scalar(self._value - other._value)

    def __mul__(self, other: object) -> "Scalar":
        if not isinstance(other, Scalar):
            return NotImplemented
        return Scalar(self._value * other._value)

    def __neg__(self) -> "Scalar":
        return Scalar(-self._value)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scalar):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(("Scalar", self._value))

    def __repr__(self) -> str:
        return f"Scalar(0x{self.to_hex()})"


def compute_wnaf(k: ScalarLike, w: int) -> List[int]:
    """Width-w non-adjacent form of k, least significant digit first."""
    if not 2 <= w <= 32:
        raise ValueError("wNAF window width must be between 2 and 32")
    value = int(k)
    if value < 0:
        raise ValueError("wNAF needs a non-negative integer")
    modulus = 1 << w
    half = modulus >> 1
    digits = []
    while value:
        if value & 1:
            digit = value % modulus
            if digit >= half:
                digit -= modulus
            value -= digit
        else:
            digit = 0
        digits.append(digit)
        value >>= 1
    return digits


def glv_decompose(k: ScalarLike) -> Tuple[Scalar, Scalar, bool, bool]:
    """Split k into (k1, k2, neg1, neg2) with k = ±k1 ± k2*lambda (mod n), k1, k2 about 128 bits."""
    value = int(k) % N
    c1 = (_B2 * value + N // 2) // N
    c2 = (-_B1 * value + N // 2) // N
    k1 = value - c1 * _A1 - c2 * _A2
    k2 = -c1 * _B1 - c2 * _B2
    return Scalar(abs(k1)), Scalar(abs(k2)), k1 < 0, k2 < 0


@dataclass(frozen=True)
class KPlan:
    """All work that depends only on a fixed scalar K: GLV split and wNAF digits."""

    window_width: int
    k1: Scalar
    k2: Scalar
    wnaf1: Tuple[int, ...]
    wnaf2: Tuple[int, ...]
    neg1: bool
    neg2: bool

    @classmethod
    def from_scalar(cls, k: ScalarLike, w: int = 4) -> "KPlan":
        if not 2 <= w <= 16:
            raise ValueError("window width must be between 2 and 16")
        k1, k2, neg1, neg2 = glv_decompose(k)
        return cls(
            window_width=w,
            k1=k1,
            k2=k2,
            wnaf1=tuple(compute_wnaf(k1, w)),
            wnaf2=tuple(compute_wnaf(k2, w)),
            neg1=neg1,
            neg2=neg2,
        )


class Point:
    """An immutable point on secp256k1 held in Jacobian coordinates."""

    __slots__ = ("_x", "_y", "_z", "_inf")

    def __init__(self, x: int = 0, y: int = 1, z: int = 0, infinity: bool = True) -> None:
        self._x = int(x) % P
        self._y = int(y) % P
        self._z = int(z) % P
        self._inf = bool(infinity) or self._z == 0

    @classmethod
    def generator(cls) -> "Point":
        return cls(GX, GY, 1, False)

    @classmethod
    def infinity(cls) -> "Point":
        return cls()

    @classmethod
    def from_affine(cls, x: FieldElement, y: FieldElement) -> "Point":
        return cls(int(x), int(y), 1, False)

    @classmethod
    def from_hex(cls, x_hex: str, y_hex: str) -> "Point":
        return cls(_parse_hex256(x_hex), _parse_hex256(y_hex), 1, False)

    @classmethod
    def from_jacobian_coords(
        cls, x: FieldElement, y: FieldElement, z: FieldElement, infinity: bool
    ) -> "Point":
        return cls(int(x), int(y), int(z), infinity)

    # Raw Jacobian coordinates, for batch processing.
    @property
    def X(self) -> FieldElement:
        return FieldElement(self._x)

    @property
    def Y(self) -> FieldElement:
        return FieldElement(self._y)

    @property
    def Z(self) -> FieldElement:
        return FieldElement(self._z)

    def _affine(self) -> Tuple[int, int]:
        if self._inf:
            raise ValueError("the point at infinity has no affine coordinates")
        z_inv = pow(self._z, -1, P)
        z_inv2 = z_inv * z_inv % P
        return self._x * z_inv2 % P, self._y * z_inv2 * z_inv % P

    def x(self) -> FieldElement:
        return FieldElement(self._affine()[0])

    def y(self) -> FieldElement:
        return FieldElement(self._affine()[1])

    def is_infinity(self) -> bool:
        return self._inf

    def x_first_half(self) -> bytes:
        return self.x().to_bytes()[:16]

    def x_second_half(self) -> bytes:
        return self.x().to_bytes()[16:]

    def dbl(self) -> "Point":
        if self._inf or self._y == 0:
            return Point.infinity()
        x, y, z = self._x, self._y, self._z
        a = x * x % P
        b = y * y % P
        c = b * b % P
        d = 2 * ((x + b) * (x + b) - a - c) % P
        e = 3 * a % P
        f = e * e % P
        x3 = (f - 2 * d) % P
        y3 = (e * (d - x3) - 8 * c) % P
        z3 = 2 * y * z % P
        return Point(x3, y3, z3, False)

    def add(self, other: "Point") -> "Point":
        if self._inf:
            return other
        if other._inf:
            return self
        z1z1 = self._z * self._z % P
        z2z2 = other._z * other._z % P
        u1 = self._x * z2z2 % P
        u2 = other._x * z1z1 % P
        s1 = self._y * other._z * z2z2 % P
        s2 = other._y * self._z * z1z1 % P
        if u1 == u2:
            return self.dbl() if s1 == s2 else Point.infinity()
        h = (u2 - u1) % P
        r = (s2 - s1) % P
        h2 = h * h % P
        h3 = h * h2 % P
        u1h2 = u1 * h2 % P
        x3 = (r * r - h3 - 2 * u1h2) % P
        y3 = (r * (u1h2 - x3) - s1 * h3) % P
        z3 = h * self._z * other._z % P
        return Point(x3, y3, z3, False)

    def negate(self) -> "Point":
        if self._inf:
            return self
        return Point(self._x, -self._y, self._z, False)

    def next(self) -> "Point":
        return self.add(Point.generator())

    def prev(self) -> "Point":
        return self.add(Point.generator().negate())

    def scalar_mul(self, scalar: ScalarLike) -> "Point":
        k = int(scalar) % N
        if k == 0 or self._inf:
            return Point.infinity()
        return _wnaf_sum([(self, compute_wnaf(k, 5))])

    def scalar_mul_predecomposed(
        self, k1: ScalarLike, k2: ScalarLike, neg1: bool, neg2: bool
    ) -> "Point":
        """Compute (±k1)*Q + (±k2)*phi(Q) with Shamir's trick."""
        return self._glv_sum(compute_wnaf(int(k1), 4), compute_wnaf(int(k2), 4), neg1, neg2)

    def scalar_mul_with_plan(self, plan: KPlan) -> "Point":
        return self._glv_sum(plan.wnaf1, plan.wnaf2, plan.neg1, plan.neg2)

    def _glv_sum(
        self, wnaf1: Sequence[int], wnaf2: Sequence[int], neg1: bool, neg2: bool
    ) -> "Point":
        if self._inf:
            return Point.infinity()
        base1 = self.negate() if neg1 else self
        base2 = apply_endomorphism(self)
        if neg2:
            base2 = base2.negate()
        return _wnaf_sum([(base1, wnaf1), (base2, wnaf2)])

    def to_compressed(self) -> bytes:
        x, y = self._affine()
        return bytes([0x03 if y & 1 else 0x02]) + x.to_bytes(32, "big")

    def to_uncompressed(self) -> bytes:
        x, y = self._affine()
        return b"\x04" + x.to_bytes(32, "big") + y.to_bytes(32, "big")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Point):
            return NotImplemented
        if self._inf or other._inf:
            return self._inf and other._inf
        z1z1 = self._z * self._z % P
        z2z2 = other._z * other._z % P
        if self._x * z2z2 % P != other._x * z1z1 % P:
            return False
        return self._y * z2z2 * other._z % P == other._y * z1z1 * self._z % P

    def __hash__(self) -> int:
        if self._inf:
            return hash(("Point", None))
        return hash(("Point", self._affine()))

    def __repr__(self) -> str:
        if self._inf:
            return "Point(infinity)"
        x, y = self._affine()
        return f"Point(x=0x{x:064x}, y=0x{y:064x})"


def _odd_multiples(point: Point, max_digit: int) -> Dict[int, Point]:
    table = {1: point}
    twice = point.dbl()
    current = point
    for multiple in range(3, max_digit + 1, 2):
        current = current.add(twice)
        table[multiple] = current
    return table


def _wnaf_sum(terms: Iterable[Tuple[Point, Sequence[int]]]) -> Point:
    """Sum of d-weighted points for several wNAF expansions, sharing the doublings."""
    active = [(pt, list(digits)) for pt, digits in terms if not pt.is_infinity() and any(digits)]
    tables = [_odd_multiples(pt, max(abs(d) for d in digits)) for pt, digits in active]
    columns = list(zip_longest(*(digits for _, digits in active), fillvalue=0))
    acc = Point.infinity()
    for column in reversed(columns):
        acc = acc.dbl()
        for table, digit in zip(tables, column):
            if digit > 0:
                acc = acc.add(table[digit])
            elif digit < 0:
                acc = acc.add(table[-digit].negate())
    return acc


def apply_endomorphism(point: Point) -> Point:
    """phi(x, y) = (beta*x, y), equal to lambda*point."""
    if point.is_infinity():
        return point
    return Point.from_jacobian_coords(
        point.X * FieldElement(BETA), point.Y, point.Z, False
    )


def scalar_mul_generator(k: ScalarLike) -> Point:
    """k * G."""
    return Point.generator().scalar_mul(k)