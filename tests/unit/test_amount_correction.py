from __future__ import annotations

from receiptparse.utils.amount_correction import (
    choose_best_candidate,
    normalize_ocr_amount_token,
    to_float,
    to_int,
    validate_candidates_against_invariant,
)


def test_normalize_ocr_amount_token_replaces_common_chars() -> None:
    out, changed = normalize_ocr_amount_token("1O,5OO")
    assert changed is True
    assert out == "10,500"


def test_normalize_ocr_amount_token_leaves_words_alone() -> None:
    out, changed = normalize_ocr_amount_token("SALE")
    assert changed is False
    assert out == "SALE"


def test_to_int_handles_separators_signs_and_garbage() -> None:
    assert to_int("12,300원") == 12300
    assert to_int("-1,000") == -1000
    assert to_int("1O,OOO") == 10000
    assert to_int("없음") is None
    assert to_int(None) is None
    assert to_int(True) is None
    assert to_int("99999999999") is None


def test_to_float_reads_decimal_quantities() -> None:
    assert to_float("1.5") == 1.5
    assert to_float("1,200") == 1200.0
    assert to_float("-") is None


def test_validate_candidates_against_invariant_filters() -> None:
    valid = validate_candidates_against_invariant([9900, 10000, 10100], validator=lambda x: x == 10000)
    assert valid == [10000]


def test_choose_best_candidate_uses_original_guess() -> None:
    assert choose_best_candidate([1000, 12100, 990], original_guess=12000) == 12100
    assert choose_best_candidate([5, 6]) == 5
    assert choose_best_candidate([]) is None
