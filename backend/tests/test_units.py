"""Package/stem conversion."""

from types import SimpleNamespace

import pytest

from petalpos.errors import InvalidQuantity
from petalpos.units import PACKAGE, STEM, to_packages, to_stems


ROSES = SimpleNamespace(units_per_package=24)


class TestToStems:

    def test_packages_multiply_by_units_per_package(self):
        assert to_stems(ROSES, 2, PACKAGE) == 48

    def test_stems_pass_through(self):
        assert to_stems(ROSES, 7, STEM) == 7

    @pytest.mark.parametrize("n", [1, 3, 17])
    def test_package_conversion_is_reversible(self, n):
        stems = to_stems(ROSES, n, PACKAGE)
        assert stems // ROSES.units_per_package == n
        assert to_packages(ROSES, stems) == (n, 0)

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, "2", True, None])
    def test_rejects_non_positive_integers(self, quantity):
        with pytest.raises(InvalidQuantity):
            to_stems(ROSES, quantity, PACKAGE)

    def test_rejects_unknown_unit(self):
        with pytest.raises(InvalidQuantity):
            to_stems(ROSES, 1, "box")

    def test_missing_units_per_package_counts_as_one(self):
        loose = SimpleNamespace(units_per_package=None)
        assert to_stems(loose, 4, PACKAGE) == 4


def test_to_packages_reports_loose_stems():
    assert to_packages(ROSES, 50) == (2, 2)
