from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple, Type, Union

from receiptparse.extract.detector import (
    CARD_TYPE_PARSER,
    Detection,
    classify_card_receipt,
    detect,
)
from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.parsers import (
    BaseReceiptParser,
    ConvenienceReceiptParser,
    CoupangReceiptParser,
    DeliveryReceiptParser,
    ElevenPostReceiptParser,
    GenericCardSlipParser,
    GmarketReceiptParser,
    HeadOfficeCoupangParser,
    HomeplusReceiptParser,
    MartReceiptParser,
    NaverReceiptParser,
    ParseSettings,
    TransactionStatementParser,
)
from receiptparse.utils.forensic_context import forensic_scope, get_forensic_fields, new_correlation_id
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import normalize_text

log = logging.getLogger("receiptparse.dispatcher")

GENERIC_KEYS = ("card", "unknown")

PARSERS: Dict[str, Type[BaseReceiptParser]] = {
    "mart": MartReceiptParser,
    "convenience": ConvenienceReceiptParser,
    "coupang": CoupangReceiptParser,
    "delivery": DeliveryReceiptParser,
    "transaction": TransactionStatementParser,
    "statement": TransactionStatementParser,
    "card": GenericCardSlipParser,
    "headoffice:11post": ElevenPostReceiptParser,
    "headoffice:coupang": HeadOfficeCoupangParser,
    "headoffice:gmarket": GmarketReceiptParser,
    "headoffice:homeplus": HomeplusReceiptParser,
    "headoffice:naver": NaverReceiptParser,
    "11post": ElevenPostReceiptParser,
    "gmarket": GmarketReceiptParser,
    "homeplus": HomeplusReceiptParser,
    "naver": NaverReceiptParser,
}

SUPPORTED_TYPE_KEYS: Tuple[str, ...] = tuple(sorted(set(PARSERS) | set(GENERIC_KEYS)))


class UnsupportedReceiptType(ValueError):
    """Unknown type key handed to the dispatcher; a caller mistake, never a data-quality issue."""

    def __init__(self, type_key: str):
        self.type_key = type_key
        super().__init__(
            f"Unsupported receipt type key {type_key!r}; expected one of: {', '.join(SUPPORTED_TYPE_KEYS)}"
        )


@dataclass(frozen=True)
class ParseOutcome:
    result: ReceiptResult
    type_key: str
    template: str
    confidence: float
    detected: bool
    review_reasons: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "typeKey": self.type_key,
            "template": self.template,
            "confidence": self.confidence,
            "detected": self.detected,
            "reviewReasons": list(self.review_reasons),
            "result": self.result.to_dict(),
        }


def normalize_type_key(type_key: Optional[str]) -> Optional[str]:
    if type_key is None:
        return None
    key = type_key.strip().lower()
    return key or None


def _card_detection(text: str) -> Detection:
    c = classify_card_receipt(text)
    return Detection(
        type_key=CARD_TYPE_PARSER[c.type],
        template=c.type.value,
        confidence=c.confidence,
        scores=dict(c.scores),
    )


def resolve(type_key: Optional[str], text: str) -> Tuple[Detection, bool]:
    """
    Detection for an explicit or missing key; the flag tells whether the
    template was guessed from the text.

    Raises UnsupportedReceiptType for a key outside the vocabulary.
    """
    key = normalize_type_key(type_key)
    if key is None:
        return detect(text), True
    if key in GENERIC_KEYS:
        return _card_detection(text), True
    cls = PARSERS.get(key)
    if cls is None:
        raise UnsupportedReceiptType(type_key or "")
    return Detection(type_key=key, template=cls.template, confidence=1.0), False


def create_parser(detection: Detection, settings: Optional[ParseSettings] = None) -> BaseReceiptParser:
    cls = PARSERS[detection.type_key]
    if cls is GenericCardSlipParser:
        return GenericCardSlipParser(settings, template=detection.template)
    return cls(settings)


def parse(
    document: Union[Document, str, None],
    type_key: Optional[str] = None,
    settings: Optional[ParseSettings] = None,
    *,
    document_id: Optional[str] = None,
) -> ParseOutcome:
    """
    Public entry point: pick the parser for ``type_key`` (or detect one) and run it.

    Only an unknown type key raises; everything past this point degrades
    into a sparser result.
    """
    doc = document if isinstance(document, Document) else Document.from_text(document)
    correlation_id = get_forensic_fields()["correlation_id"] or new_correlation_id()
    with forensic_scope(correlation_id=correlation_id, document_id=document_id, phase="dispatch"):
        log_event(log, "dispatch.start", "dispatch started", level=logging.DEBUG, type_key=type_key)
        try:
            detection, detected = resolve(type_key, normalize_text(doc.text))
        except UnsupportedReceiptType as e:
            log_event(log, "dispatch.unsupported", str(e), level=logging.WARNING, type_key=type_key)
            raise

        log_event(
            log,
            "dispatch.detected",
            "parser selected",
            type_key=detection.type_key,
            template=detection.template,
            confidence=detection.confidence,
            detected=detected,
        )
        parser = create_parser(detection, settings)
        with forensic_scope(type_key=detection.type_key, template=detection.template, phase="parse"):
            result = parser.parse(doc)

    template = str(result.extra.get("template") or detection.template)
    return ParseOutcome(
        result=result,
        type_key=detection.type_key,
        template=template,
        confidence=detection.confidence,
        detected=detected,
        review_reasons=tuple(result.review_reasons),
    )
