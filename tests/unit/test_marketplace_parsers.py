from __future__ import annotations

from receiptparse.parsers.marketplace.eleven_post import (
    BLUE_SALES_SLIP,
    COUPANG_APP,
    GRAY_BILINGUAL_SLIP,
    LIGHT_SALES_SLIP,
    ElevenPostReceiptParser,
    detect_template,
    spaced_money_after,
)
from receiptparse.parsers.marketplace.gmarket import (
    KOREAN_LIGHT,
    SALES_SLIP_EN,
    GmarketReceiptParser,
    detect_style,
    slip_amounts,
)
from receiptparse.parsers.marketplace.homeplus import HomeplusReceiptParser, pay_amounts
from receiptparse.parsers.marketplace.naver import NaverReceiptParser, amount_tail, find_company_like, mask_card_line

NAVER = "\n".join(
    [
        "네이버페이 영수증", "카드사 / 승인번호", "신한 / 12345678", "카드번호(유효기간)",
        "1234-56**-****-7890(**/**)", "거래종류 / 할부", "신용거래 / 일시불", "결제일자", "2024.05.01 14:03:22",
        "상품명", "PD20240501001", "유기농 바나나 1송이", "판매자 정보", "판매자상호", "푸른농장",
        "사업자등록번호", "124-81-00998", "사업장주소", "경기도 수원시 팔달구 1", "가맹점 정보", "가맹점명",
        "네이버파이낸셜(주)", "사업자등록번호", "524-86-01528", "금액", "승인금액", "11,000", "공급가액",
        "10,000", "부가세액", "1,000", "봉사료", "0", "합계", "11,000",
    ]
)

HOMEPLUS = "\n".join(
    [
        "homeplus 신용카드매출전표", "승인번호", "87654321", "주문번호", "202405010012345", "품명", "두부 외 2건",
        "카드종류", "삼성카드", "카드번호", "5310********1234", "거래유형", "정상매출", "할부개월", "일시불",
        "승인일시", "2024-05-01 10:20:30", "결제금액", "금액", "10,000", "부가세", "1,000", "합계", "11,000",
        "판매자 정보", "홈플러스(주)", "사업자등록번호", "220-81-12345", "전화번호", "02-1234-5678",
        "가맹점 정보", "가맹점명", "홈플러스 강서점",
    ]
)

GMARKET_LIGHT = "\n".join(
    [
        "G마켓 카드 결제 확인서", "카드종류", "신한카드", "카드번호", "4518-12**-****-3456", "승인번호", "30012345",
        "거래종류", "신용구매", "할부구분", "일시불", "거래일자", "2024.05.03", "주문번호", "3912345678",
        "상품명", "무선 마우스 블랙", "과세금액", "20,000", "부가세", "2,000", "합계금액", "22,000",
        "업체명", "마우스월드 Gmarket전자지불", "사업자등록번호", "211-87-45678",
        "가맹점주소", "서울특별시 강남구 테헤란로 1", "문의 연락처", "1566-5701",
    ]
)

ELEVEN_LIGHT = """카드종류 국민카드
카드번호 9410-12**-****-5678
거래종류 신용구매
거래일자 2024-05-04
승인번호 40012345
주문번호 20240504111
상품명 텀블러 2개
과세금액 9,091
부가세 909
합계 10,000
업체명 컵하우스
사업자등록번호 123-45-67890
"""


def test_naver_helpers() -> None:
    assert mask_card_line("1234-56**-****-7890(**/**)") == "1234-56****-****-7890"
    assert mask_card_line(None) is None
    assert amount_tail(["상품명", "금액", "11,000", "10,000", "1,000", "0", "11,000"]) == [11000, 10000, 1000, 0, 11000]
    assert amount_tail(["상품명 사과"]) == []
    assert find_company_like([["홍길동", "가나케미칼", "(주)다라상사 본점", "네이버"]]) == "(주)다라상사 본점"
    assert find_company_like([["홍길동"]]) is None


def test_naver_receipt() -> None:
    r = NaverReceiptParser().parse(NAVER)
    assert r.payment.card_brand == "신한카드"
    assert r.approval.approval_no == "12345678"
    assert r.payment.card_masked == "1234-56****-****-7890"
    assert (r.payment.type, r.payment.installment) == ("신용거래", "일시불")
    assert r.meta.sale_date == "2024-05-01"
    assert r.meta.receipt_no == "PD20240501001"
    # the portal's own number is skipped in favour of the seller's
    assert r.merchant.biz_no == "124-81-00998"
    assert r.merchant.name == "푸른농장"
    assert r.merchant.address == "경기도 수원시 팔달구 1"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (10000, 1000, 11000)
    assert r.payment.approval_amt == "11000"
    assert [(it.name, it.qty, it.amount) for it in r.items] == [("유기농 바나나 1송이", 1, 11000)]
    assert r.extra["template"] == "NAVER"


def test_homeplus_pay_amounts() -> None:
    assert pay_amounts(["결제금액", "10,000", "1,000", "판매자 정보"]) == (10000, 1000, 11000)
    assert pay_amounts(["결제금액", "11,000", "판매자 정보"]) == (None, None, 11000)
    assert pay_amounts(["합계 11,000"]) == (None, None, None)


def test_homeplus_receipt() -> None:
    r = HomeplusReceiptParser().parse(HOMEPLUS)
    assert r.approval.approval_no == "87654321"
    assert r.meta.receipt_no == "202405010012345"
    assert r.payment.card_brand == "삼성카드"
    assert r.payment.card_no == "5310********1234"
    assert r.payment.type == "정상매출"
    assert r.payment.installment == "일시불"
    assert r.meta.sale_date == "2024-05-01"
    assert r.approval.auth_datetime == "2024-05-01 10:20:30"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (10000, 1000, 11000)
    assert r.merchant.name == "홈플러스(주)"
    assert r.merchant.biz_no == "220-81-12345"
    assert r.merchant.phone == "02-1234-5678"
    # "외 2건" means three products in one payment
    assert [(it.name, it.qty, it.amount) for it in r.items] == [("두부", 3, 11000)]


def test_gmarket_style_and_slip_amounts() -> None:
    assert detect_style(GMARKET_LIGHT) == KOREAN_LIGHT
    assert detect_style("Sales Slip\n판매자정보\n상호 가게") == SALES_SLIP_EN
    assert slip_amounts("금액\n10,000\n부가세\n1,000\n봉사료\n0\n합계\n11,000") == (10000, 1000, 0, 11000)
    assert slip_amounts("금액\n9,999\n10,000\n1,000\n11,000") == (10000, 1000, None, 11000)
    assert slip_amounts("금액\n10,000\n1,000") == (10000, 1000, None, 11000)
    assert slip_amounts("합계 없음") is None


def test_gmarket_korean_light() -> None:
    r = GmarketReceiptParser().parse(GMARKET_LIGHT)
    assert r.extra["template"] == KOREAN_LIGHT
    assert r.payment.card_brand == "신한카드"
    assert r.payment.card_masked.startswith("4518-12")
    assert r.approval.approval_no == "30012345"
    assert r.payment.type == "신용구매"
    assert r.payment.installment == "일시불"
    assert r.meta.sale_date == "2024-05-03"
    assert r.meta.receipt_no == "3912345678"
    assert r.merchant.name == "마우스월드"
    assert r.merchant.biz_no == "211-87-45678"
    assert r.merchant.address == "서울특별시 강남구 테헤란로 1"
    assert r.merchant.phone == "1566-5701"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (20000, 2000, 22000)
    assert [(it.name, it.amount) for it in r.items] == [("무선 마우스 블랙", 22000)]


def test_eleven_post_templates() -> None:
    assert detect_template("쿠팡(쿠페이) -1,000원\n거래메모 우유") == COUPANG_APP
    assert detect_template("SEQ 12\nAPPROVAL NO 1234\nTOTAL 1,000") == GRAY_BILINGUAL_SLIP
    assert detect_template("판매자 정보\n상호 가게") == BLUE_SALES_SLIP
    assert detect_template(ELEVEN_LIGHT) == LIGHT_SALES_SLIP
    assert spaced_money_after("AMOUNT 12 000\nTAXES 1 200", "AMOUNT") == 12000
    assert spaced_money_after("TOTAL", "AMOUNT") is None


def test_eleven_post_light_slip() -> None:
    r = ElevenPostReceiptParser().parse(ELEVEN_LIGHT)
    assert r.extra["template"] == LIGHT_SALES_SLIP
    assert r.payment.card_brand == "KB국민카드"
    assert r.payment.card_masked == "9410-12**-****-5678"
    assert r.payment.type == "신용구매"
    assert r.meta.sale_date == "2024-05-04"
    assert r.approval.approval_no == "40012345"
    assert r.meta.receipt_no == "20240504111"
    assert (r.totals.taxable, r.totals.vat, r.totals.total) == (9091, 909, 10000)
    assert r.payment.approval_amt == "10000"
    assert r.merchant.name == "컵하우스"
    assert [(it.name, it.qty, it.unit_price) for it in r.items] == [("텀블러 2개", 2, 5000)]
