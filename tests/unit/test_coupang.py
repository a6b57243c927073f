from __future__ import annotations

from receiptparse.parsers.coupang import CoupangReceiptParser, quantity_hint
from receiptparse.parsers.marketplace.coupang_card import HeadOfficeCoupangParser

APP_SCREEN = "쿠팡(쿠페이) -12,900원\n2024.05.01 13:22:10\n주문번호 1234567890\n거래메모 생수 2L 6개"

CARD_RECEIPT = """카드영수증
카드종류 국민카드
거래종류 신용거래
할부개월 일시불
카드번호 9410****1234
거래일시 2024-05-01 13:22:10
승인번호 30012345
구매정보
주문번호 200012345678
상품명 곰곰 생수 2L 6개
과세금액 10,000
부가세 1,000
합계금액 11,000
이용상점정보
판매자상호 쿠팡(주)
판매자 사업자등록번호 120-88-00767
판매자주소 서울시 송파구
"""

HEAD_OFFICE_SCREEN = "\n".join(
    [
        "카드영수증", "결제정보", "카드종류", "국민카드", "거래종류", "신용거래", "할부개월", "일시불",
        "카드번호", "9410****1234", "거래일시", "2024-05-01 13:22:10", "승인번호", "30012345",
        "구매정보", "주문번호", "200012345678", "상품명", "곰곰 생수 2L 6개",
        "과세금액", "10,000원", "비과세금액", "0원", "부가세", "1,000원", "합계금액", "11,000원",
        "이용상점정보", "판매자상호", "쿠팡(주)", "판매자 사업자등록번호", "120-88-00767",
        "판매자주소", "서울시 송파구 송파대로 570",
    ]
)


def test_quantity_hint() -> None:
    assert quantity_hint("생수 총 3건") == 3
    assert quantity_hint("키친타올 4개") == 4
    assert quantity_hint("사은품 1개 포함") is None


def test_app_screen_uses_memo_as_item() -> None:
    r = CoupangReceiptParser().parse(APP_SCREEN)
    assert r.extra["template"] == "COUPANG_APP"
    assert r.merchant.name == "쿠팡"
    assert r.totals.total == 12900
    assert r.meta.sale_date == "2024-05-01"
    assert r.meta.receipt_no == "1234567890"
    assert r.payment.card_brand == "쿠페이"
    assert [(it.name, it.qty, it.amount) for it in r.items] == [("생수 2L 6개", 1, 12900)]


def test_card_receipt_fields() -> None:
    r = CoupangReceiptParser().parse(CARD_RECEIPT)
    assert r.extra["template"] == "COUPANG_CARD"
    assert r.merchant.name == "쿠팡(주)"
    assert r.merchant.biz_no == "120-88-00767"
    assert r.payment.card_brand == "KB국민카드"
    assert r.payment.card_masked == "9410****1234"
    assert r.payment.type == "신용거래"
    assert r.payment.installment == "일시불"
    assert r.approval.approval_no == "30012345"
    assert r.meta.receipt_no == "200012345678"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (10000, 1000, 11000)
    [it] = r.items
    assert (it.name, it.qty, it.unit_price, it.amount) == ("곰곰 생수 2L 6개", 6, 1833, 11000)


def test_head_office_screen_one_value_per_line() -> None:
    r = HeadOfficeCoupangParser().parse(HEAD_OFFICE_SCREEN)
    assert r.extra["template"] == "COUPANG_CARD_SCREEN"
    assert r.extra["parserType"] == "headoffice:coupang"
    assert (r.meta.sale_date, r.meta.sale_time) == ("2024-05-01", "13:22:10")
    assert r.approval.approval_no == "30012345"
    assert r.meta.receipt_no == "200012345678"
    assert r.payment.card_brand == "KB국민카드"
    assert r.payment.type == "신용거래(일시불)"
    assert (r.totals.taxable, r.totals.tax_free, r.totals.vat, r.totals.total) == (10000, 0, 1000, 11000)
    assert r.payment.approval_amt == "11000"
    assert r.merchant.name == "쿠팡(주)"
    assert r.merchant.biz_no == "120-88-00767"
    assert r.merchant.address == "서울시 송파구 송파대로 570"
    [it] = r.items
    assert (it.name, it.qty, it.amount) == ("곰곰 생수 2L", 6, 11000)


def test_head_office_parser_delegates_app_screen() -> None:
    r = HeadOfficeCoupangParser().parse(APP_SCREEN)
    assert r.extra["template"] == "COUPANG_APP"
    assert r.totals.total == 12900
