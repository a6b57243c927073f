from __future__ import annotations

import pytest

from receiptparse.extract.detector import Detection
from receiptparse.extract.dispatcher import (
    SUPPORTED_TYPE_KEYS,
    UnsupportedReceiptType,
    create_parser,
    normalize_type_key,
    parse,
    resolve,
)
from receiptparse.parsers import GenericCardSlipParser, NaverReceiptParser

GS25 = "GS25 강남점\n2025-10-09\n삼각김밥 1 1500 1500\n합계 1500"


def test_normalize_type_key() -> None:
    assert normalize_type_key(" Mart ") == "mart"
    assert normalize_type_key("   ") is None
    assert normalize_type_key(None) is None


def test_resolve_detects_when_key_missing() -> None:
    d, detected = resolve(None, GS25)
    assert detected is True
    assert (d.type_key, d.template, d.confidence) == ("convenience", "CONVENIENCE", 0.75)


def test_resolve_explicit_key_is_trusted() -> None:
    d, detected = resolve("HeadOffice:Naver", "")
    assert detected is False
    assert (d.type_key, d.template, d.confidence) == ("headoffice:naver", "NAVER", 1.0)


def test_generic_keys_classify_the_card_receipt() -> None:
    d, detected = resolve("card", "승인번호 12345678\n일시불")
    assert detected is True
    assert (d.type_key, d.template, d.confidence) == ("card", "CARD_SLIP_GENERIC", 0.60)

    d, _ = resolve("unknown", "")
    assert (d.type_key, d.template) == ("card", "UNKNOWN")


def test_unknown_key_raises() -> None:
    with pytest.raises(UnsupportedReceiptType) as exc:
        resolve("bogus", GS25)
    assert exc.value.type_key == "bogus"
    assert "statement" in str(exc.value)
    assert {"card", "unknown", "mart", "naver"} <= set(SUPPORTED_TYPE_KEYS)


def test_create_parser_carries_card_template() -> None:
    parser = create_parser(Detection(type_key="card", template="MART_ITEMIZED", confidence=0.75))
    assert isinstance(parser, GenericCardSlipParser)
    assert parser.template == "MART_ITEMIZED"
    assert isinstance(create_parser(Detection("naver", "NAVER", 1.0)), NaverReceiptParser)


def test_parse_outcome_to_dict() -> None:
    outcome = parse(GS25)
    d = outcome.to_dict()
    assert d["typeKey"] == "convenience"
    assert d["template"] == "CONVENIENCE"
    assert d["detected"] is True
    assert d["result"]["merchant"]["name"] == "GS25 강남점"
    assert d["result"]["items"][0]["itemType"] == 3
    assert d["reviewReasons"] == list(outcome.review_reasons)


def test_alias_keys_share_parsers() -> None:
    outcome = parse("상품명\n사과\n판매자 정보\n판매자상호\n과일가게", "naver")
    assert outcome.type_key == "naver"
    assert outcome.template == "NAVER"
    assert outcome.result.merchant.name == "과일가게"
