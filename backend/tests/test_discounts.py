from decimal import Decimal

import pytest

from bizops.services.discounts import discount_amount, final_amount


@pytest.mark.parametrize("subtotal", [0, 1, 199, 20000, 999_999])
@pytest.mark.parametrize("discount,kind", [
    (0, "fixed"), (150, "fixed"), (10**9, "fixed"),
    (0, "percent"), (Decimal("12.5"), "percent"), (100, "percent"), (250, "percent"),
])
def test_final_amount_stays_within_subtotal(subtotal, discount, kind):
    final = final_amount(subtotal, discount, kind)
    assert 0 <= final <= subtotal
    assert discount_amount(subtotal, discount, kind) == subtotal - final


def test_percent_over_100_clamps_to_zero():
    assert final_amount(5000, 150, "percent") == 0
    assert discount_amount(5000, 150, "percent") == 5000


def test_non_positive_discount_is_identity():
    assert final_amount(12345, 0, "fixed") == 12345
    assert final_amount(12345, -50, "fixed") == 12345
    assert final_amount(12345, -5, "percent") == 12345
    assert discount_amount(12345, -5, "percent") == 0


def test_ten_percent_of_two_hundred():
    # 2 x 100.00 at 10% -> 180.00
    assert final_amount(20000, 10, "percent") == 18000
    assert discount_amount(20000, 10, "percent") == 2000


def test_percent_cut_rounds_half_up_to_the_cent():
    # 333 * 15% = 49.95 -> 50
    assert final_amount(333, 15, "percent") == 283


def test_fixed_discount_larger_than_subtotal():
    assert final_amount(1000, 2500, "fixed") == 0


def test_unknown_kind_rejected():
    with pytest.raises(ValueError):
        final_amount(1000, 10, "coupon")
