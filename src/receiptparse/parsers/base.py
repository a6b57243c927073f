from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional, Union

from receiptparse.extract.classifier import classify, taxify
from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.normalizers import (
    is_canonical_biz_no,
    normalize_biz_no,
    normalize_date,
    normalize_time,
)
from receiptparse.extract.vat_math import TOLERANCE_FLOOR, TOLERANCE_REL, check_totals, fill_item_amount
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import normalize_text
from receiptparse.utils.text_quality import text_quality_score

log = logging.getLogger("receiptparse.parser")

_CANONICAL_DATE_LEN = len("yyyy-mm-dd")


class ReceiptParseError(RuntimeError):
    """Raised instead of degrading when a caller opts into strict parsing."""


@dataclass(frozen=True)
class ParseSettings:
    strict: bool = False
    review_quality_threshold: float = 0.35
    tolerance_floor: float = TOLERANCE_FLOOR
    tolerance_rel: float = TOLERANCE_REL

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]]) -> "ParseSettings":
        engine = dict((cfg or {}).get("engine") or {})
        return cls(
            strict=bool(engine.get("strict", False)),
            review_quality_threshold=float(engine.get("review_quality_threshold", 0.35)),
            tolerance_floor=float(engine.get("tolerance_floor", TOLERANCE_FLOOR)),
            tolerance_rel=float(engine.get("tolerance_rel", TOLERANCE_REL)),
        )


class BaseReceiptParser:
    """
    Shared parser contract.

    ``parse`` owns the lifecycle: a fresh result per call, the subclass
    ``fill`` step, then normalization, review flags and freezing. Subclasses
    only implement ``fill`` (and optionally ``normalize``).
    """

    type_key: str = ""
    template: str = ""

    def __init__(self, settings: Optional[ParseSettings] = None, template: Optional[str] = None) -> None:
        self.settings = settings or ParseSettings()
        if template:
            self.template = template

    def normalize(self, raw: str) -> str:
        return normalize_text(raw)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        raise NotImplementedError

    def parse(self, document: Union[Document, str, None], *, strict: Optional[bool] = None) -> ReceiptResult:
        doc = _as_document(document)
        strict_mode = self.settings.strict if strict is None else strict
        r = ReceiptResult()
        started = time.monotonic()
        log_event(log, "parser.start", "parse started", level=logging.DEBUG, parser=type(self).__name__)

        self._guarded("fill", lambda: self.fill(doc, self.normalize(doc.text), r), r, strict_mode)
        # a failed fill still gets canonical forms for whatever it did set
        self._guarded("finalize", lambda: self.finalize(doc, r), r, strict_mode)
        r.freeze()

        snap = r.debug_snapshot()
        log_event(
            log,
            "parser.done",
            "parse finished",
            level=logging.DEBUG,
            parser=type(self).__name__,
            duration_ms=int((time.monotonic() - started) * 1000),
            **snap.as_log_fields(),
        )
        return r

    def _guarded(self, stage: str, step: Callable[[], None], r: ReceiptResult, strict: bool) -> None:
        try:
            step()
        except Exception as e:
            if strict:
                raise ReceiptParseError(f"{type(self).__name__} failed in {stage}: {e}") from e
            log.exception(
                "parser degraded",
                extra={
                    "event_name": "parser.degraded",
                    "extra_payload": {
                        "parser": type(self).__name__,
                        "stage": stage,
                        "error": f"{type(e).__name__}: {e}",
                    },
                },
            )
            r.extra["degraded"] = True
            r.flag("degraded")

    def finalize(self, doc: Document, r: ReceiptResult) -> None:
        """Canonical forms, per-item classification and soft-invariant review flags."""
        raw_biz = r.merchant.biz_no
        if raw_biz:
            canon = normalize_biz_no(raw_biz)
            if is_canonical_biz_no(canon):
                r.merchant.biz_no = canon
            else:
                r.extra["bizNoRaw"] = raw_biz
                r.merchant.biz_no = None

        raw_date = r.meta.sale_date
        if raw_date:
            d = normalize_date(raw_date)
            if d and len(d) == _CANONICAL_DATE_LEN and d[4] == "-" and d[7] == "-":
                r.meta.sale_date = d
            else:
                r.extra["saleDateRaw"] = raw_date
                r.meta.sale_date = None
        if r.meta.sale_time:
            r.meta.sale_time = normalize_time(r.meta.sale_time)

        for idx, it in enumerate(r.items):
            if not it.line_no:
                it.line_no = str(idx + 1)
            it.amount = fill_item_amount(it.unit_price, it.qty, it.amount)
            it.category = classify(it.name)
            it.tax_type = taxify(it.tax_flag)

        r.extra.setdefault("parserType", self.type_key or type(self).__name__)
        if self.template:
            r.extra.setdefault("template", self.template)

        self._review(doc, r)

    def _review(self, doc: Document, r: ReceiptResult) -> None:
        s = self.settings
        item_dicts = [
            {"line_no": it.line_no, "unit_price": it.unit_price, "qty": it.qty, "amount": it.amount}
            for it in r.items
        ]
        totals: Dict[str, Any] = {"taxable": r.totals.taxable, "vat": r.totals.vat, "total": r.totals.total}
        _, flags = check_totals(item_dicts, totals, floor=s.tolerance_floor, rel=s.tolerance_rel)
        for key in flags:
            if key.startswith("bad_items:"):
                r.flag("item_amount_mismatch:" + key.split(":", 1)[1])
        if not flags.get("totals_ok", True):
            r.flag("totals_mismatch")

        score, metrics = text_quality_score(doc.text)
        if doc.text.strip() and score < s.review_quality_threshold:
            r.flag("low_text_quality")
            log_event(log, "parser.quality", "text quality below threshold", level=logging.DEBUG, **metrics)


def _as_document(document: Union[Document, str, None]) -> Document:
    if isinstance(document, Document):
        return document
    return Document.from_text(document)
