# Overview: Package <-> stem conversion for products sold by the stem.

from __future__ import annotations

from .errors import InvalidQuantity

STEM = "stem"
PACKAGE = "package"
UNITS = (STEM, PACKAGE)


def units_per_package(product) -> int:
    return max(int(product.units_per_package or 1), 1)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def to_stems(product, quantity, unit: str = STEM) -> int:
    """
    Convert a quantity expressed in `unit` into stems.

    Raises InvalidQuantity for non-positive / non-integer quantities and
    unknown units.
    """
    if not _is_positive_int(quantity):
        raise InvalidQuantity(
            "quantity must be a positive integer",
            details={"quantity": quantity},
        )
    if unit == PACKAGE:
        return quantity * units_per_package(product)
    if unit == STEM:
        return quantity
    raise InvalidQuantity(f"unknown unit {unit!r}", details={"units": list(UNITS)})


def to_packages(product, stems: int) -> tuple[int, int]:
    """Split a stem count into (full packages, loose stems)."""
    return divmod(stems, units_per_package(product))
