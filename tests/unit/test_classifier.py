from __future__ import annotations

import pytest

from receiptparse.extract.classifier import ItemCategory, TaxType, classify, taxify


def test_classify_food_supply_other() -> None:
    assert classify("국산 양파 1kg") == ItemCategory.FOOD
    assert classify("주방세제 리필") == ItemCategory.SUPPLY
    assert classify("건전지") == ItemCategory.OTHER
    assert classify(None) == ItemCategory.OTHER


def test_classify_exception_list_wins() -> None:
    assert classify("바지락 칼국수") == ItemCategory.OTHER


def test_taxify() -> None:
    assert taxify("과세") == TaxType.TAXABLE
    assert taxify("면세") == TaxType.TAX_FREE
    assert taxify("*") == TaxType.UNKNOWN
    assert taxify(None) == TaxType.UNKNOWN
    assert int(TaxType.TAX_FREE) == 2


@pytest.mark.parametrize("name", ["양파 비닐봉투", "두부 포장", "계란 위생장갑 세트", "마늘 집게"])
def test_food_keyword_beats_supply_keyword(name) -> None:
    assert classify(name) == ItemCategory.FOOD


@pytest.mark.parametrize("flag", [None, ""])
def test_taxify_without_flag_is_unknown(flag) -> None:
    assert taxify(flag) == TaxType.UNKNOWN
