from __future__ import annotations

import pytest

from receiptparse.extract.detector import (
    CardReceiptType,
    classify_card_receipt,
    detect,
    is_coupang_app,
    resolve_card_type,
)


def test_coupang_app_short_circuits() -> None:
    text = "쿠팡(쿠페이)\n결제금액 12,900원\n거래메모 생수 2L"
    assert is_coupang_app(text) is True
    c = classify_card_receipt(text)
    assert c.type == CardReceiptType.COUPANG_APP
    assert c.confidence == 0.95


def test_coupang_card_receipt_is_not_the_app_screen() -> None:
    assert is_coupang_app("쿠팡(쿠페이)\n거래메모 x\n카드영수증") is False


def test_convenience_store_wins_ties() -> None:
    c = classify_card_receipt("GS25 역삼점\n승인번호 12345678\n합계 3,000")
    assert c.type == CardReceiptType.CONVENIENCE
    assert c.scores["convenience"] == 6


def test_mart_itemized_scores_tax_sections() -> None:
    c = classify_card_receipt("과세물품 10,000\n공급가액 9,091\n부가세 909")
    assert c.type == CardReceiptType.MART_ITEMIZED
    assert c.confidence == 0.95


def test_generic_slip() -> None:
    c = classify_card_receipt("승인번호 12345678\n일시불\n단말기 1234")
    assert c.type == CardReceiptType.CARD_SLIP_GENERIC
    assert c.scores["slip"] == 7


def test_nothing_recognized_is_unknown() -> None:
    c = classify_card_receipt("")
    assert c.type == CardReceiptType.UNKNOWN
    assert c.confidence == 0.10


@pytest.mark.parametrize(
    "text,type_key",
    [
        ("거래명세표\n공급자 가나상사", "transaction"),
        ("카드 영수증\n네이버페이\n판매자 정보", "headoffice:naver"),
        ("홈플러스 온라인\n신용카드 매출전표", "headoffice:homeplus"),
        ("G마켓 카드 매출 전표", "headoffice:gmarket"),
        ("11번가 Gmarket 제휴", "headoffice:11post"),
        ("카드영수증\n구매정보\n판매자상호 가나", "headoffice:coupang"),
        ("배달의민족 주문", "delivery"),
        ("GS25 역삼점", "convenience"),
        ("승인번호 12345678 일시불", "card"),
    ],
)
def test_detect_chain(text, type_key) -> None:
    assert detect(text).type_key == type_key


def test_detect_statement_by_two_parties() -> None:
    text = "공급자 124-81-00998\n공급받는자 220-81-62517\n품목 합계"
    d = detect(text)
    assert d.type_key == "transaction"
    assert d.confidence == 0.95


def test_resolve_card_type_aliases() -> None:
    assert resolve_card_type("편의점") == CardReceiptType.CONVENIENCE
    assert resolve_card_type("slip") == CardReceiptType.CARD_SLIP_GENERIC
    assert resolve_card_type("coupang_app") == CardReceiptType.COUPANG_APP
    assert resolve_card_type("?") is None
    assert resolve_card_type(None) is None
