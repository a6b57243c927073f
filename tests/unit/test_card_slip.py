from __future__ import annotations

from receiptparse.parsers.card_slip import (
    GenericCardSlipParser,
    clean_merchant_name,
    guess_top_name,
    looks_like_merchant_name,
    masked_pan_loose,
)

SLIP = """스타벅스 역삼점
사업자번호 214-86-12345
서울시 강남구 테헤란로 152
TEL 02-555-1234
신용카드 매출전표
카드번호 5310-12**-****-3456
국민카드 일시불
승인일시 2024-05-02 09:15:00
승인번호 12345678
공급가액 4,091
부가세 409
합계 4,500
가맹점번호 00123456
"""


def test_merchant_helpers() -> None:
    assert masked_pan_loose("1234 **** **** 5678") == "1234********5678"
    assert masked_pan_loose("합계 4,500") is None
    assert looks_like_merchant_name("가게")
    assert not looks_like_merchant_name("승인 12345")
    assert not looks_like_merchant_name("12")
    assert clean_merchant_name("스타벅스 고객용") == "스타벅스"
    assert clean_merchant_name("카드") is None
    assert guess_top_name(["12", "(주)한빛상사", "합계 1,000"]) == "(주)한빛상사"
    assert guess_top_name(["12", "3,000"]) is None


def test_generic_card_slip() -> None:
    r = GenericCardSlipParser().parse(SLIP)
    assert r.meta.sale_date == "2024-05-02"
    assert r.meta.sale_time == "09:15:00"
    assert r.approval.auth_datetime == "2024-05-02 09:15:00"
    assert r.approval.approval_no == "12345678"
    assert r.approval.merchant_no == "00123456"
    assert r.payment.card_no == "5310-12**-****-3456"
    assert r.payment.installment == "일시불"
    assert r.payment.type == "신용카드"
    assert r.payment.card_brand == "KB국민카드"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (4091, 409, 4500)
    assert r.payment.approval_amt == "4500"
    assert r.merchant.biz_no == "214-86-12345"
    assert r.merchant.phone == "02-555-1234"
    assert r.merchant.address == "서울시 강남구 테헤란로 152"
    # no 상호 label: the name is taken next to the business number
    assert r.merchant.name == "스타벅스 역삼점"
    assert r.items == ()
    assert r.extra["template"] == "CARD_SLIP_GENERIC"


def test_template_override_and_supply_vat_fallback() -> None:
    r = GenericCardSlipParser(template="MART_ITEMIZED").parse("가게\n공급가액 1000\n부가세 100")
    assert r.totals.total == 1100
    assert r.extra["totalFromSupplyVat"] is True
    assert r.extra["template"] == "MART_ITEMIZED"
