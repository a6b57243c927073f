from __future__ import annotations

from receiptparse.parsers.mart import MartReceiptParser, split_sections

MART = """한빛마트
경기 수원시 팔달구 1번길 2
사업자 123-45-67890
일시: 2024-05-05 18:30
상품명 단가 수량 금액
사과 3,000 2 6,000
배즙 2,000 1 2,000
합계 8,000
카드 국민카드 승인금액 8,000
승인 (12345678)
"""


def test_split_sections_by_markers() -> None:
    sections = split_sections(["가게", "상품명 금액", "우유 1,000", "합계 1,000", "감사합니다"])
    assert sections == [["가게"], ["상품명 금액", "우유 1,000"], ["합계 1,000"], ["감사합니다"]]
    assert split_sections(["가게", "전화 02-1234-5678"]) == [["가게", "전화 02-1234-5678"]]


def test_mart_itemized_card_receipt() -> None:
    r = MartReceiptParser().parse(MART)
    assert r.merchant.name == "한빛마트"
    assert r.merchant.biz_no == "123-45-67890"
    assert r.merchant.address == "경기 수원시 팔달구 1번길 2"
    assert r.meta.sale_date == "2024-05-05"
    assert r.meta.sale_time == "18:30"
    assert [(it.name, it.unit_price, it.qty, it.amount) for it in r.items] == [
        ("사과", 3000, 2, 6000),
        ("배즙", 2000, 1, 2000),
    ]
    assert r.extra["itemLayout"] == "inline"
    assert r.extra["item_count"] == 2
    assert r.totals.total == 8000
    assert r.totals.card == 8000
    assert r.payment.type == "card"
    assert r.payment.card_brand == "국민카드"
    assert r.payment.approval_amt == "8,000"
    assert r.approval.approval_no == "12345678"


def test_cash_receipt_total_from_items() -> None:
    r = MartReceiptParser().parse("동네마트\n상품명 금액\n두부 1,500 1 1,500\n현금 1,500")
    assert r.payment.type == "cash"
    assert r.totals.total == 1500
    assert r.payment.approval_amt == "1500"
