from __future__ import annotations

from receiptparse.parsers.convenience import ConvenienceBrand, ConvenienceReceiptParser, detect_brand

GS25 = "GS25 강남점\n2025-10-09\n삼각김밥 1 1500 1500\n합계 1500"

CU = """CU 역삼점
2024-05-07 08:10
*삼각김밥 1 1,200
바나나우유 2 3,000
결제금액 4,200
카드번호 9410-12**-****-1234
승인번호 12345678
"""


def test_detect_brand() -> None:
    assert detect_brand("gs25 역삼점") is ConvenienceBrand.GS25
    assert detect_brand("CU 역삼점") is ConvenienceBrand.CU
    assert detect_brand("세븐일레븐 선릉점") is ConvenienceBrand.SEVEN
    assert detect_brand(None) is ConvenienceBrand.UNKNOWN


def test_gs25_inline_item() -> None:
    r = ConvenienceReceiptParser().parse(GS25)
    assert r.extra["brand"] == "GS25"
    assert r.merchant.name == "GS25 강남점"
    assert r.meta.sale_date == "2025-10-09"
    assert [(it.name, it.qty, it.unit_price, it.amount) for it in r.items] == [("삼각김밥", 1, 1500, 1500)]
    assert r.totals.total == 1500


def test_gs25_name_qty_then_amount_lines() -> None:
    text = "GS25 역삼점\n컵라면 2\n1,800\n과세물품 1,636\n부가세 164\n합계 1,800"
    r = ConvenienceReceiptParser().parse(text)
    assert [(it.name, it.qty, it.unit_price, it.amount) for it in r.items] == [("컵라면", 2, 900, 1800)]
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (1636, 164, 1800)


def test_cu_items_and_payment() -> None:
    r = ConvenienceReceiptParser().parse(CU)
    assert r.extra["brand"] == "CU"
    assert r.merchant.name == "CU 역삼점"
    assert r.meta.sale_date == "2024-05-07"
    assert r.meta.sale_time == "08:10"
    assert [(it.name, it.qty, it.unit_price, it.amount) for it in r.items] == [
        ("삼각김밥", 1, 1200, 1200),
        ("바나나우유", 2, 1500, 3000),
    ]
    assert r.totals.total == 4200
    assert r.payment.type == "신용카드"
    assert r.payment.card_masked == "9410-12****-****-1234"
    assert r.approval.approval_no == "12345678"


def test_gs25_total_with_dotted_thousands() -> None:
    r = ConvenienceReceiptParser().parse("GS25 역삼점\n삼각김밥 1 1.500원\n합계 1.500원")
    assert r.totals.total == 1500
