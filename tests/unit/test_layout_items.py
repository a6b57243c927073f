from __future__ import annotations

from receiptparse.extract.layout_items import (
    BUYER_SIDE,
    SUPPLIER_SIDE,
    BoundingBox,
    LayoutOcrItem,
    column_side,
    extract_items_from_ocr_layout,
    rows_to_text,
)


def _mk(x0: float, y0: float, x1: float, y1: float, text: str) -> LayoutOcrItem:
    return LayoutOcrItem(box=[[x0, y0], [x1, y0], [x1, y1], [x0, y1]], text=text, confidence=0.9)


def test_extract_single_row_with_unit_price_column() -> None:
    items = [
        _mk(10, 10, 120, 30, "우유"),
        _mk(140, 10, 170, 30, "2"),
        _mk(200, 10, 260, 30, "1,200"),
        _mk(300, 10, 380, 30, "2,400"),
    ]
    out = extract_items_from_ocr_layout(items)
    assert len(out) == 1
    assert out[0]["name"] == "우유"
    assert out[0]["qty"] == 2
    assert out[0]["unit_price"] == 1200
    assert out[0]["amount"] == 2400


def test_extract_two_rows_with_y_clustering_and_x_order() -> None:
    items = [
        _mk(300, 10, 380, 30, "1,500"),
        _mk(10, 10, 120, 30, "식빵"),
        _mk(140, 10, 170, 30, "1"),
        _mk(300, 50, 380, 70, "9,000"),
        _mk(10, 50, 120, 70, "커피"),
        _mk(140, 50, 170, 70, "2"),
    ]
    out = extract_items_from_ocr_layout(items)
    assert [it["name"] for it in out] == ["식빵", "커피"]
    assert out[1]["unit_price"] == 4500


def test_summary_rows_are_dropped() -> None:
    items = [
        _mk(10, 10, 120, 30, "라면"),
        _mk(300, 10, 380, 30, "3,000"),
        _mk(10, 50, 120, 70, "합계"),
        _mk(300, 50, 380, 70, "3,000"),
    ]
    out = extract_items_from_ocr_layout(items)
    assert len(out) == 1
    assert out[0]["qty"] == 1


def test_rows_to_text_rebuilds_reading_order() -> None:
    items = [_mk(200, 10, 260, 30, "B"), _mk(10, 10, 60, 30, "A"), _mk(10, 60, 60, 80, "C")]
    assert rows_to_text(items) == "A B\nC"


def test_column_side_uses_page_width_for_pixel_boxes() -> None:
    left = BoundingBox(vertices=((10.0, 0.0), (200.0, 0.0)))
    right = BoundingBox(vertices=((600.0, 0.0), (900.0, 0.0)))
    assert column_side(left, 1000.0) == SUPPLIER_SIDE
    assert column_side(right, 1000.0) == BUYER_SIDE


def test_column_side_without_geometry_is_buyer() -> None:
    assert column_side(None) == BUYER_SIDE
    assert column_side(BoundingBox(vertices=((0.1, 0.0), (0.3, 0.0)), normalized=True)) == SUPPLIER_SIDE
