from __future__ import annotations

from receiptparse.extract.vat_math import (
    approx_equal,
    check_totals,
    fill_item_amount,
    tolerance,
    total_from_supply_and_vat,
)


def test_tolerance_is_relative_with_floor() -> None:
    assert tolerance(100) == 10.0
    assert tolerance(100_000) == 2000.0


def test_approx_equal_passes_unknown_sides() -> None:
    assert approx_equal(None, 100) is True
    assert approx_equal(10_150, 10_000) is True
    assert approx_equal(11_000, 10_000) is False


def test_fill_item_amount_only_when_missing() -> None:
    assert fill_item_amount(1500, 2, None) == 3000
    assert fill_item_amount(1500, 2, 2900) == 2900
    assert fill_item_amount(None, 2, None) is None


def test_total_from_supply_and_vat() -> None:
    assert total_from_supply_and_vat(10_000, 1_000) == 11_000
    assert total_from_supply_and_vat(None, 1_000) is None


def test_check_totals_flags_bad_items_and_totals() -> None:
    items = [
        {"line_no": "1", "unit_price": 1000, "qty": 2, "amount": 2000},
        {"line_no": "2", "unit_price": 5000, "qty": 1, "amount": 8000},
    ]
    amount_sum, flags = check_totals(items, {"taxable": 9091, "vat": 909, "total": 10000})
    assert amount_sum == 10000
    assert flags["items_ok"] is False
    assert flags["bad_items:2"] is False
    assert flags["totals_ok"] is True


def test_check_totals_without_amounts() -> None:
    amount_sum, flags = check_totals([], {"taxable": 5000, "vat": 500, "total": 9000})
    assert amount_sum is None
    assert flags["items_ok"] is True
    assert flags["totals_ok"] is False
