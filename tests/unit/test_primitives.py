from __future__ import annotations

import pytest

from receiptparse.extract.primitives import (
    contains_any,
    extract,
    extract_all,
    extract_dot,
    first_int,
    first_non_null,
    index_of_line,
    money_tokens,
    rank_money,
    slice_block,
)


def test_extract_group_fallbacks() -> None:
    assert extract("승인번호: 12345678", r"승인번호\s*[:：]?\s*(\d+)") == "12345678"
    assert extract("승인번호: 12345678", r"승인번호\s*[:：]?\s*(\d+)", 3) == "12345678"
    assert extract("abc 123", r"\d+") == "123"


def test_extract_is_null_safe() -> None:
    assert extract(None, r"x") is None
    assert extract("text", None) is None
    assert extract("text", "(") is None
    assert extract("text", r"(\d+)") is None


def test_extract_dot_spans_lines() -> None:
    assert extract_dot("상품명\n우유\n합계", r"상품명(.*?)합계") == "우유"
    assert extract("상품명\n우유\n합계", r"상품명(.*?)합계") is None


def test_extract_all_skips_blank_groups() -> None:
    assert extract_all("A 1 B 2", r"(\d)") == ["1", "2"]


def test_first_non_null_is_lazy() -> None:
    def boom() -> str:
        raise AssertionError("must not be called")

    assert first_non_null(None, "  ", "null", lambda: "x", boom) == "x"
    assert first_non_null(None, lambda: None) is None


def test_first_int_reads_last_group() -> None:
    assert first_int("합계 12,000", r"(합계)\s*([0-9,]+)") == 12000
    assert first_int("합계 없음", r"(합계)\s*([0-9,]+)") is None


def test_contains_any_and_index_of_line() -> None:
    assert contains_any("신용카드 매출전표", "현금", "매출") is True
    assert contains_any(None, "x") is False
    assert index_of_line(["a", "b", "a"], lambda s: s == "a", 1) == 2
    assert index_of_line(["a"], lambda s: s == "z") == -1


def test_slice_block_stops_at_first_end_after_start() -> None:
    assert slice_block("END 0\nSTART x\nmid\nEND y", "START", "END") == "START x\nmid"
    assert slice_block("no anchor", "START", "END") is None


@pytest.mark.parametrize(
    "line,expected",
    [
        ("2024-01-05 합계 12,000", [12000]),
        ("부가세 100", [100]),
        ("승인번호 12345678", []),
        ("TEL 02-123-4567", []),
    ],
)
def test_money_tokens_skip_non_money_numbers(line, expected) -> None:
    assert money_tokens(line) == expected


def test_rank_money_buckets() -> None:
    r = rank_money(["공급가액 10,000", "부가세 1,000", "합계 11,000"])
    assert (r.total, r.vat, r.supply) == (11000, 1000, 10000)
    assert r.reselected_total is False


def test_rank_money_total_from_supply_and_vat() -> None:
    r = rank_money(["공급가액 10,000", "부가세 1,000"])
    assert r.total == 11000
    assert r.total_from_supply_vat is True


def test_rank_money_reselects_strongly_labeled_total() -> None:
    r = rank_money(["합계 9,000", "부가세 1,000", "공급가액 10,000", "결제금액 11,000"])
    assert r.total == 11000
    assert r.reselected_total is True
