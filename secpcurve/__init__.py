"""secp256k1 field, scalar and point arithmetic, self-tests and sorted x-coordinate databases."""

__version__ = "1.0.0"

__all__ = ["entries", "field", "generation", "point", "selftest", "sorted_db", "vectors"]