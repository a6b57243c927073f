from __future__ import annotations

from receiptparse.parsers.marketplace.common import (
    collect_after_label,
    extract_qty,
    find_biz_no,
    looks_like_label,
    money_strict,
    refine_product_name,
    single_item,
    slice_lines,
    value_after_label,
)


def test_money_strict_only_accepts_amount_lines() -> None:
    assert money_strict("12,000원") == 12000
    assert money_strict("12000원") == 12000
    assert money_strict("0원") == 0
    assert money_strict("12000") is None
    assert money_strict("30012345") is None
    assert money_strict("1,234,567") is None
    assert money_strict("합계 12,000") is None


def test_value_after_label_same_line_or_next() -> None:
    assert value_after_label(["판매자 상호 :", "쿠팡(주)"], "판매자상호") == "쿠팡(주)"
    assert value_after_label(["판매자상호 가나상점"], "판매자상호") == "가나상점"
    assert value_after_label(["카드번호", "승인번호"], "카드번호", ["승인번호"]) is None
    assert value_after_label(["기타"], "카드번호") is None


def test_collect_after_label_stops_at_label() -> None:
    ls = ["판매자주소", "서울시", "송파구", "상품명", "생수"]
    assert collect_after_label(ls, "판매자주소", ["상품명"]) == "서울시 송파구"


def test_find_biz_no_skips_excluded_numbers() -> None:
    text = "플랫폼 524-86-01528 / 판매자 120-88-00767"
    assert find_biz_no(text, exclude=("524-86-01528",)) == "120-88-00767"
    assert find_biz_no("번호 1208800767") == "1208800767"
    assert find_biz_no("") is None


def test_extract_qty() -> None:
    assert extract_qty("생수 2L 6개") == 6
    assert extract_qty("3입 2팩") == 3
    assert extract_qty("양말 x 3") == 3
    assert extract_qty("500g") is None
    assert extract_qty("생수") is None


def test_refine_product_name_strips_labels_and_qty() -> None:
    assert refine_product_name("상품명 곰곰 생수 6개", ("상품명",), "상품") == ("곰곰 생수", 6)
    assert refine_product_name("상품명", ("상품명",), "구매상품") == ("구매상품", None)


def test_single_item_splits_total_over_qty() -> None:
    [it] = single_item(None, 10000, 3)
    assert (it.name, it.qty, it.unit_price, it.amount) == ("상품", 3, 3333, 10000)


def test_slice_lines_and_labels() -> None:
    ls = ["a", "결제금액", "1,000", "판매자 정보", "x"]
    assert slice_lines(ls, "결제금액", "판매자정보") == ["1,000"]
    assert slice_lines(ls, "없음") == []
    assert looks_like_label("판매자 상호 쿠팡", ["판매자상호"]) is True
    assert looks_like_label("쿠팡", ["판매자상호"]) is False
