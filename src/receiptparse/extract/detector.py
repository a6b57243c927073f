from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from receiptparse.extract.primitives import contains_any
from receiptparse.utils.logging_setup import log_event

log = logging.getLogger("receiptparse.detector")


class CardReceiptType(str, Enum):
    CONVENIENCE = "CONVENIENCE"
    COUPANG_APP = "COUPANG_APP"
    COUPANG_CARD = "COUPANG_CARD"
    MART_ITEMIZED = "MART_ITEMIZED"
    CARD_SLIP_GENERIC = "CARD_SLIP_GENERIC"
    UNKNOWN = "UNKNOWN"


CARD_TYPE_ALIASES: Dict[str, CardReceiptType] = {
    "CVS": CardReceiptType.CONVENIENCE,
    "편의점": CardReceiptType.CONVENIENCE,
    "COUPANG": CardReceiptType.COUPANG_CARD,
    "MART": CardReceiptType.MART_ITEMIZED,
    "마트": CardReceiptType.MART_ITEMIZED,
    "SLIP": CardReceiptType.CARD_SLIP_GENERIC,
    "전표": CardReceiptType.CARD_SLIP_GENERIC,
}

# card receipt type -> parser type key
CARD_TYPE_PARSER: Dict[CardReceiptType, str] = {
    CardReceiptType.CONVENIENCE: "convenience",
    CardReceiptType.COUPANG_APP: "coupang",
    CardReceiptType.COUPANG_CARD: "coupang",
    CardReceiptType.MART_ITEMIZED: "card",
    CardReceiptType.CARD_SLIP_GENERIC: "card",
    CardReceiptType.UNKNOWN: "card",
}

_CU_STRONG_RE = re.compile(r"\bCU\b.*(점|STORE)")
_MASKED_CARD_RE = re.compile(r"\b\d{4}[\s\-]*([*Xx]{2,}|\d{0,2})[\s\-*Xx0-9]{2,12}\d{4}\b")
_BIZ_NO_RE = re.compile(r"\b\d{3}-\d{2}-\d{5}\b")


@dataclass(frozen=True)
class CardClassification:
    type: CardReceiptType
    confidence: float
    scores: Dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class Detection:
    type_key: str
    template: str
    confidence: float
    scores: Dict[str, int] = field(default_factory=dict)


def resolve_card_type(raw: Optional[str]) -> Optional[CardReceiptType]:
    """Explicit card type from its name or an alias; None when unknown."""
    if not raw or not raw.strip():
        return None
    key = raw.strip().upper()
    try:
        return CardReceiptType(key)
    except ValueError:
        pass
    return CARD_TYPE_ALIASES.get(raw.strip()) or CARD_TYPE_ALIASES.get(key)


def is_coupang_app(text: str) -> bool:
    return "쿠팡(쿠페이)" in text and "거래메모" in text and not contains_any(text, "카드영수증", "구매정보")


def _confidence(score: int) -> float:
    if score >= 10:
        return 0.95
    if score >= 8:
        return 0.85
    if score >= 6:
        return 0.75
    if score >= 4:
        return 0.60
    return 0.45


def classify_card_receipt(text: Optional[str]) -> CardClassification:
    """
    Score the card-receipt families and pick the best one.

    Coupang app screens short-circuit; otherwise ties go to convenience, then
    coupang card, then mart, then the generic slip.
    """
    t = text or ""
    upper = t.upper()

    if is_coupang_app(t):
        return CardClassification(CardReceiptType.COUPANG_APP, 0.95, {"coupang_app": 10})

    convenience = 0
    if "GS25" in upper:
        convenience += 6
    if "7-ELEVEN" in upper or "세븐일레븐" in t:
        convenience += 6
    if "CU점" in upper or _CU_STRONG_RE.search(upper):
        convenience += 5

    coupang_card = 0
    if "쿠팡" in t or "COUPANG" in upper:
        coupang_card += 3
    if "주문번호" in t:
        coupang_card += 2
    if contains_any(t, "카드영수증", "구매정보"):
        coupang_card += 3

    mart = 0
    if "과세" in t:
        mart += 2
    if "면세" in t:
        mart += 2
    if "공급가액" in t:
        mart += 3
    if "부가세" in t or "VAT" in upper:
        mart += 3
    if contains_any(t, "과세물품", "면세물품", "과세합계", "면세합계"):
        mart += 2

    slip = 0
    if "승인" in t:
        slip += 3
    if contains_any(t, "일시불", "할부"):
        slip += 2
    if contains_any(t, "가맹점번호", "단말기", "TID"):
        slip += 2
    if "매입사" in t or "VAN" in upper:
        slip += 1
    if _MASKED_CARD_RE.search(t):
        slip += 2

    scores = {"convenience": convenience, "coupang_card": coupang_card, "mart": mart, "slip": slip}
    best = max(scores.values())
    if best <= 0:
        return CardClassification(CardReceiptType.UNKNOWN, 0.10, scores)

    ordered = (
        (convenience, CardReceiptType.CONVENIENCE),
        (coupang_card, CardReceiptType.COUPANG_CARD),
        (mart, CardReceiptType.MART_ITEMIZED),
        (slip, CardReceiptType.CARD_SLIP_GENERIC),
    )
    for score, kind in ordered:
        if score == best:
            return CardClassification(kind, _confidence(best), scores)
    return CardClassification(CardReceiptType.UNKNOWN, 0.20, scores)


@dataclass(frozen=True)
class Signature:
    """One tier of the detection chain: a named predicate over the text."""

    type_key: str
    template: str
    matches: Callable[[str], bool]
    confidence: float = 0.9


def _is_statement(t: str) -> bool:
    if contains_any(t, "거래명세표", "거래명세서"):
        return True
    return len(_BIZ_NO_RE.findall(t)) >= 2 and "공급자" in t and "공급받는자" in t


def _is_naver(t: str) -> bool:
    return "카드 영수증" in t and "네이버" in t and contains_any(t, "판매자 정보", "가맹점 정보")


def _is_homeplus(t: str) -> bool:
    return "홈플러스" in t and "신용카드매출전표" in t.replace(" ", "")


def _is_gmarket(t: str) -> bool:
    return contains_any(t, "G마켓", "지마켓", "Gmarket", "옥션", "Auction") and "11번가" not in t


def _is_11post(t: str) -> bool:
    return contains_any(t, "11번가", "11st", "11ST")


def _is_headoffice_coupang(t: str) -> bool:
    return "카드영수증" in t and "구매정보" in t and "판매자상호" in t


def _is_delivery(t: str) -> bool:
    return contains_any(t, "배민", "배달의민족", "요기요", "쿠팡이츠", "라이더님께", "주문 메뉴")


# Most specific first; the card classifier runs when none matches.
SIGNATURES: tuple[Signature, ...] = (
    Signature("transaction", "TRANSACTION", _is_statement, 0.95),
    Signature("headoffice:naver", "NAVER", _is_naver),
    Signature("headoffice:homeplus", "HOMEPLUS", _is_homeplus),
    Signature("headoffice:gmarket", "GMARKET", _is_gmarket),
    Signature("headoffice:11post", "11POST", _is_11post),
    Signature("headoffice:coupang", "COUPANG_CARD_SCREEN", _is_headoffice_coupang),
    Signature("delivery", "DELIVERY", _is_delivery, 0.8),
)


def detect(text: Optional[str]) -> Detection:
    """Walk the signature chain, then fall back to the card-receipt classifier."""
    t = text or ""
    for sig in SIGNATURES:
        if sig.matches(t):
            return Detection(type_key=sig.type_key, template=sig.template, confidence=sig.confidence)

    c = classify_card_receipt(t)
    log_event(
        log,
        "detector.scores",
        "card receipt classified",
        level=logging.DEBUG,
        card_type=c.type.value,
        confidence=c.confidence,
        scores=c.scores,
    )
    return Detection(
        type_key=CARD_TYPE_PARSER[c.type],
        template=c.type.value,
        confidence=c.confidence,
        scores=dict(c.scores),
    )
