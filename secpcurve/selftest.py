"""Self-test of the curve arithmetic against known vectors and group identities."""

from __future__ import annotations

import argparse
from typing import Callable, List, Optional, Sequence, Tuple

from secpcurve.field import FieldElement, batch_inverse
from secpcurve.point import (
    KPlan,
    Point,
    Scalar,
    apply_endomorphism,
    scalar_mul_generator,
)
from secpcurve.vectors import TEST_VECTORS, TestVector, hex_equal, run_external_vectors

_RULE = "=============================================="


def _report(ok: bool, verbose: bool) -> bool:
    if verbose:
        print("    PASS" if ok else "    FAIL")
    return ok


def _matches_vector(point: Point, vector: TestVector) -> bool:
    if point.is_infinity():
        return False
    return hex_equal(point.x().to_hex(), vector.expected_x) and hex_equal(
        point.y().to_hex(), vector.expected_y
    )


def _check_scalar_vector(vector: TestVector, verbose: bool) -> bool:
    if verbose:
        print(f"  Testing: {vector.description}")
    result = scalar_mul_generator(Scalar.from_hex(vector.scalar_hex))
    if result.is_infinity():
        if verbose:
            print("    FAILED: Result is infinity!")
        return False
    got_x = result.x().to_hex()
    got_y = result.y().to_hex()
    x_ok = hex_equal(got_x, vector.expected_x)
    y_ok = hex_equal(got_y, vector.expected_y)
    if verbose:
        if x_ok and y_ok:
            print("    PASS")
        else:
            print("    FAIL")
            if not x_ok:
                print(f"      Expected X: {vector.expected_x}")
                print(f"      Got      X: {got_x}")
            if not y_ok:
                print(f"      Expected Y: {vector.expected_y}")
                print(f"      Got      Y: {got_y}")
    return x_ok and y_ok


def _compare_points(result: Point, expected: Point, verbose: bool) -> bool:
    ok = result == expected
    if verbose:
        if ok:
            print("    PASS")
        else:
            print("    FAIL")
            for label, point in (("Expected", expected), ("Got     ", result)):
                if point.is_infinity():
                    print(f"      {label}: infinity")
                else:
                    print(f"      {label} X: {point.x().to_hex()}")
                    print(f"      {label} Y: {point.y().to_hex()}")
    return ok


def _check_addition(verbose: bool) -> bool:
    if verbose:
        print("\nPoint Addition Test:")
        print("  Testing: 2*G + 3*G = 5*G")
    result = scalar_mul_generator(Scalar(2)).add(scalar_mul_generator(Scalar(3)))
    return _compare_points(result, scalar_mul_generator(Scalar(5)), verbose)


def _check_subtraction(verbose: bool) -> bool:
    if verbose:
        print("\nPoint Subtraction Test:")
        print("  Testing: 5*G - 2*G = 3*G")
    result = scalar_mul_generator(Scalar(5)).add(scalar_mul_generator(Scalar(2)).negate())
    return _compare_points(result, scalar_mul_generator(Scalar(3)), verbose)


def _check_field_arithmetic(verbose: bool) -> bool:
    if verbose:
        print("\nField Arithmetic Test:")
    zero = FieldElement.zero()
    one = FieldElement.one()
    a = FieldElement.from_uint64(7)
    b = FieldElement.from_uint64(5)
    ok = all(
        (
            zero + zero == zero,
            one + zero == one,
            one * one == one,
            zero * one == zero,
            (zero - a) + a == zero,
            (a + b) - b == a,
            b == zero or b.inverse() * b == one,
        )
    )
    return _report(ok, verbose)


def _check_scalar_arithmetic(verbose: bool) -> bool:
    if verbose:
        print("\nScalar Arithmetic Test:")
    z = Scalar.zero()
    o = Scalar.one()
    ok = z + z == z and o + z == o and (o + o) - o == o
    return _report(ok, verbose)


def _check_point_identities(verbose: bool) -> bool:
    if verbose:
        print("\nPoint Group Identities:")
    g = Point.generator()
    with_neutral = g.add(Point.infinity())
    ok = (
        not with_neutral.is_infinity()
        and with_neutral.x() == g.x()
        and with_neutral.y() == g.y()
        and g.add(g.negate()).is_infinity()
    )
    return _report(ok, verbose)


def _check_external_vectors(verbose: bool) -> bool:
    return run_external_vectors(None, verbose)


def _check_serialization(verbose: bool) -> bool:
    if verbose:
        print("\nPoint Serialization:")

    def check(k: Scalar) -> bool:
        point = scalar_mul_generator(k)
        cx = point.x().to_bytes()
        cy = point.y().to_bytes()
        compressed = point.to_compressed()
        uncompressed = point.to_uncompressed()
        prefix = 0x03 if cy[31] & 1 else 0x02
        return (
            compressed[0] == prefix
            and compressed[1:33] == cx
            and uncompressed[0] == 0x04
            and uncompressed[1:33] == cx
            and uncompressed[33:65] == cy
        )

    ok = all([check(Scalar(k)) for k in (1, 2, 3, 10)])
    return _report(ok, verbose)


def _check_batch(values: Sequence[int]) -> bool:
    elements = [FieldElement.from_uint64(v) for v in values]
    inverted = batch_inverse(elements)
    return len(inverted) == len(elements) and all(
        element.inverse() == inv for element, inv in zip(elements, inverted)
    )


def _check_batch_inverse(verbose: bool) -> bool:
    if verbose:
        print("\nBatch Inversion:")
    return _report(_check_batch((3, 7, 11, 19)), verbose)


def _check_batch_inverse_expanded(verbose: bool) -> bool:
    if verbose:
        print("\nBatch Inversion (expanded 32 elems):")
    return _report(_check_batch([3 + 2 * i for i in range(32)]), verbose)


def _check_constant(title: str, point: Point, vector: TestVector, verbose: bool) -> bool:
    if verbose:
        print(f"\n{title}")
    return _report(_matches_vector(point, vector), verbose)


def _check_addition_constants(verbose: bool) -> bool:
    total = Point.generator().add(scalar_mul_generator(Scalar.from_uint64(2)))
    return _check_constant(
        "Point Addition (constants): G + 2G = 3G", total, TEST_VECTORS[7], verbose
    )


def _check_subtraction_constants(verbose: bool) -> bool:
    diff = scalar_mul_generator(Scalar.from_uint64(3)).add(
        scalar_mul_generator(Scalar.from_uint64(2)).negate()
    )
    return _check_constant(
        "Point Subtraction (constants): 3G - 2G = 1G", diff, TEST_VECTORS[5], verbose
    )


def _check_doubling_constants(verbose: bool) -> bool:
    ten_g = scalar_mul_generator(Scalar.from_uint64(5)).dbl()
    return _check_constant(
        "Point Doubling (constants): 2*(5G) = 10G", ten_g, TEST_VECTORS[8], verbose
    )


def _check_negation_constants(verbose: bool) -> bool:
    return _check_constant(
        "Point Negation (constants): -G = (n-1)*G",
        Point.generator().negate(),
        TEST_VECTORS[9],
        verbose,
    )


def _check_pow2_chain(verbose: bool) -> bool:
    if verbose:
        print("\nDoubling chain vs scalar multiples (2^i * G):")
    current = Point.generator()
    ok = True
    for i in range(1, 21):
        current = current.dbl()
        if current != scalar_mul_generator(Scalar.from_uint64(1 << i)):
            ok = False
            break
    return _report(ok, verbose)


def _fast_vs_affine(scalars: Sequence[Scalar]) -> bool:
    g = Point.generator()
    g_affine = Point.from_affine(g.x(), g.y())
    return all(scalar_mul_generator(k) == g_affine.scalar_mul(k) for k in scalars)


def _check_large_scalars(verbose: bool) -> bool:
    if verbose:
        print("\nLarge scalar cross-checks (fast vs affine):")
    hexes = (
        "ffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff",
        "8000000000000000000000000000000000000000000000000000000000000000",
        "7fffffffffffffffffffffffffffffffffffffffffffffffffffffffffffffff",
        "deadbeefcafebabef00dfeedfacefeed1234567890abcdef1122334455667788",
    )
    return _report(_fast_vs_affine([Scalar.from_hex(h) for h in hexes]), verbose)


def _check_squared_scalars(verbose: bool) -> bool:
    if verbose:
        print("\nSquared scalars k^2 * G (fast vs affine):")
    hexes = [v.scalar_hex for v in TEST_VECTORS[:4]] + [
        "0000000000000000000000000000000000000000000000000000000000000013",
        "0000000000000000000000000000000000000000000000000000000000000061",
        "2b3c4d5e6f708192a3b4c5d6e7f8091a2b3c4d5e6f708192a3b4c5d6e7f8091a",
    ]
    squares = [Scalar.from_hex(h) * Scalar.from_hex(h) for h in hexes]
    return _report(_fast_vs_affine(squares), verbose)


def _check_bilinearity(verbose: bool) -> bool:
    if verbose:
        print("\nBilinearity: K*(Q±G) vs K*Q ± K*G")
    k_hexes = (
        "0000000000000000000000000000000000000000000000000000000000000005",
        "4727daf2986a9804b1117f8261aba645c34537e4474e19be58700792d501a591",
        "c77835cf72699d217c2bbe6c59811b7a599bb640f0a16b3a332ebe64f20b1afa",
    )
    q_hexes = (
        "0000000000000000000000000000000000000000000000000000000000000011",
        "0000000000000000000000000000000000000000000000000000000000000067",
        "c401899c059f1c624292fece1933c890ae4970abf56dd4d2c986a5b9d7c9aeb5",
    )
    g = Point.generator()
    ok = True
    for kh in k_hexes:
        k = Scalar.from_hex(kh)
        kg = scalar_mul_generator(k)
        for qh in q_hexes:
            q = scalar_mul_generator(Scalar.from_hex(qh))
            kq = q.scalar_mul(k)
            if q.add(g).scalar_mul(k) != kq.add(kg):
                ok = False
                break
            if q.add(g.negate()).scalar_mul(k) != kq.add(kg.negate()):
                ok = False
                break
        if not ok:
            break
    return _report(ok, verbose)


def _print_mismatch(kh: str, qh: str, plan: KPlan, q: Point, a: Point, b: Point) -> None:
    def show(point: Point) -> str:
        return "infinity" if point.is_infinity() else point.to_compressed().hex()

    t1 = q.scalar_mul(plan.k1)
    t2 = apply_endomorphism(q).scalar_mul(plan.k2)
    if plan.neg1:
        t1 = t1.negate()
    if plan.neg2:
        t2 = t2.negate()
    print("    Mismatch!")
    print(f"      K: 0x{kh}  (neg1={int(plan.neg1)}, neg2={int(plan.neg2)})")
    print(f"      q: 0x{qh}")
    print(f"      A: {show(a)}")
    print(f"      B: {show(b)}")
    print(f"      C(slow): {show(t1.add(t2))}")


def _check_fixed_k_plan(verbose: bool) -> bool:
    if verbose:
        print("\nFixed-K plan: with_plan vs direct scalar_mul")
    k_hexes = (
        TEST_VECTORS[0].scalar_hex,
        TEST_VECTORS[1].scalar_hex,
        "00000000000000000000000000000000000000000000000000000000000000a7",
    )
    q_hexes = (
        "000000000000000000000000000000000000000000000000000000000000000d",
        "0000000000000000000000000000000000000000000000000000000000000123",
        "700a25ca2ae4eb40dfa74c9eda069be7e2fc9bfceabb13953ddedd33e1f03f2c",
    )
    ok = True
    for kh in k_hexes:
        k = Scalar.from_hex(kh)
        plan = KPlan.from_scalar(k, 4)
        for qh in q_hexes:
            q = scalar_mul_generator(Scalar.from_hex(qh))
            direct = q.scalar_mul(k)
            planned = q.scalar_mul_with_plan(plan)
            if direct != planned:
                if verbose:
                    _print_mismatch(kh, qh, plan, q, direct, planned)
                ok = False
                break
        if not ok:
            break
    return _report(ok, verbose)


def _check_sequential_increment(verbose: bool) -> bool:
    if verbose:
        print("\nSequential increment: (Q+i*G)*K vs (Q*K)+i*(G*K)")
    k = Scalar.from_hex("489206bbfff1b2370619ba0e6a51b74251267e06d3abafb055464bb623d5057a")
    q = scalar_mul_generator(
        Scalar.from_hex("0000000000000000000000000000000000000000000000000000000000000101")
    )
    kg = scalar_mul_generator(k)
    right = q.scalar_mul(k)
    ok = True
    for _ in range(16):
        q = q.next()
        right = right.add(kg)
        if q.scalar_mul(k) != right:
            ok = False
            break
    return _report(ok, verbose)


def _checks() -> List[Callable[[bool], bool]]:
    vector_checks: List[Callable[[bool], bool]] = [
        (lambda verbose, v=vector: _check_scalar_vector(v, verbose)) for vector in TEST_VECTORS
    ]
    return vector_checks + [
        _check_addition,
        _check_field_arithmetic,
        _check_scalar_arithmetic,
        _check_point_identities,
        _check_external_vectors,
        _check_serialization,
        _check_batch_inverse,
        _check_addition_constants,
        _check_subtraction_constants,
        _check_doubling_constants,
        _check_negation_constants,
        _check_pow2_chain,
        _check_large_scalars,
        _check_squared_scalars,
        _check_batch_inverse_expanded,
        _check_bilinearity,
        _check_fixed_k_plan,
        _check_sequential_increment,
        _check_subtraction,
    ]


def _run(verbose: bool) -> Tuple[int, int]:
    if verbose:
        print(f"\n{_RULE}\n  SECP256K1 Library Self-Test\n{_RULE}")
        print("\nScalar Multiplication Tests:")
    checks = _checks()
    passed = sum(1 for check in checks if check(verbose))
    return passed, len(checks)


def selftest(verbose: bool = False) -> bool:
    """Run every arithmetic check; True when all of them pass.

    Records from the file named by SECP256K1_SELFTEST_VECTORS, if any, are
    checked too.
    """
    passed, total = _run(verbose)
    if verbose:
        print(f"\n{_RULE}")
        print(f"  Results: {passed}/{total} tests passed")
        print("  [OK] ALL TESTS PASSED" if passed == total else "  [FAIL] SOME TESTS FAILED")
        print(f"{_RULE}\n")
    return passed == total


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Command-line entry: run the self-test, exit status 0 on success."""
    parser = argparse.ArgumentParser(description="Run the secp256k1 arithmetic self-test.")
    parser.add_argument("-v", "--verbose", action="store_true", help="report every check")
    args = parser.parse_args(argv)
    return 0 if selftest(args.verbose) else 1


if __name__ == "__main__":
    raise SystemExit(main())