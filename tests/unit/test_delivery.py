from __future__ import annotations

from receiptparse.parsers.delivery import DeliveryReceiptParser, parse_menu_block

ORDER = """배달의민족
주문일시 2024-05-06 19:20
주문 메뉴
• 후라이드치킨
가격: 18,000원
• 콜라 1.25L
가격: 2,000원
배달팁 3,000
할인금액 -1,000
결제금액 22,000
카카오페이
가게 사장님께
덜 맵게 해주세요
"""


def test_menu_block_quantity_updates_priced_item() -> None:
    items = parse_menu_block("짜장면\n가격: 7,000원\n짜장면 2개")
    assert [(it.name, it.unit_price, it.qty, it.amount) for it in items] == [("짜장면", 7000, 2, 14000)]
    assert parse_menu_block(None) == []


def test_delivery_order() -> None:
    r = DeliveryReceiptParser().parse(ORDER)
    assert r.merchant.name == "배달의민족"
    assert r.meta.sale_date == "2024-05-06"
    assert r.meta.sale_time == "19:20"
    assert [(it.name, it.amount) for it in r.items] == [
        ("후라이드치킨", 18000),
        ("콜라 1.25L", 2000),
        ("배달팁", 3000),
        ("할인", 1000),
    ]
    assert (r.totals.cash, r.totals.discount, r.totals.total) == (3000, 1000, 22000)
    assert r.payment.type == "카카오페이"
    assert r.extra["storeRequest"] == "덜 맵게 해주세요"
    assert r.extra["payMethod"] == "카카오페이"
    assert r.extra["payAmount"] == "22,000"
