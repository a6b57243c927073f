from __future__ import annotations

from receiptparse.extract.items import (
    ItemLayout,
    detect_layout,
    is_noise_name,
    parse_inline,
    parse_item_table,
    post_filter,
    split_numbers,
)
from receiptparse.extract.model import Item


def test_split_numbers_by_magnitude() -> None:
    assert split_numbers(["1,500", "2", "3,000"]) == (1500, 2, 3000)
    assert split_numbers(["12,000원"]) == (None, None, 12000)
    assert split_numbers(["2"]) == (None, 2, None)


def test_inline_layout() -> None:
    lines = ["바나나우유 1,500 2 3,000", "과자 2,000 1 2,000 #"]
    assert detect_layout(lines) == ItemLayout.INLINE
    items = parse_inline(lines)
    assert [(it.name, it.unit_price, it.qty, it.amount, it.tax_flag) for it in items] == [
        ("바나나우유", 1500, 2, 3000, "과세"),
        ("과자", 2000, 1, 2000, "면세"),
    ]


def test_two_line_layout_with_barcodes() -> None:
    lines = ["001 신라면 멀티", "8801043014816", "4,500 2 9,000", "002 생수 2L", "8801234567890", "1,200 1 1,200 #"]
    layout, items = parse_item_table(lines)
    assert layout == ItemLayout.TWO_LINE
    assert [it.name for it in items] == ["신라면 멀티", "생수 2L"]
    assert items[0].barcode == "8801043014816"
    assert (items[0].unit_price, items[0].qty, items[0].amount) == (4500, 2, 9000)
    assert items[1].tax_flag == "면세"
    assert items[1].line_no == "002"


def test_numbered_layout_with_header() -> None:
    lines = ["NO. 상품명 단가 수량 금액", "1 삼겹살 15,000 2 30,000", "2 상추", "3,000"]
    layout, items = parse_item_table(lines)
    assert layout == ItemLayout.NUMBERED
    assert [(it.line_no, it.name, it.amount) for it in items] == [("1", "삼겹살", 30000), ("2", "상추", 3000)]
    assert items[0].unit_price == 15000


def test_split_layout_zips_names_and_blocks() -> None:
    lines = ["우유", "2,500 1 2,500", "계란 30구", "7,900"]
    layout, items = parse_item_table(lines)
    assert layout == ItemLayout.SPLIT
    assert (items[0].name, items[0].unit_price, items[0].qty, items[0].amount) == ("우유", 2500, 1, 2500)
    assert (items[1].name, items[1].amount) == ("계란 30구", 7900)


def test_noise_names() -> None:
    assert is_noise_name("합계수량") is True
    assert is_noise_name("서울시 강남구 역삼동 12번") is True
    assert is_noise_name("8801234") is True
    assert is_noise_name("A") is True
    assert is_noise_name(None) is True
    assert is_noise_name("우유") is False


def test_post_filter_cleans_names_and_fills_amount() -> None:
    out = post_filter([Item(name="*우유  저지방*", unit_price=1000, qty=2), Item(name="교환/환불 안내")])
    assert len(out) == 1
    assert out[0].name == "우유 저지방"
    assert out[0].amount == 2000
