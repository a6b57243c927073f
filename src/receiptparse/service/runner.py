from __future__ import annotations

import contextvars
import logging
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from receiptparse.extract.classifier import classify, taxify
from receiptparse.extract.dispatcher import ParseOutcome, UnsupportedReceiptType, parse
from receiptparse.extract.document import Document
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_biz_no, normalize_date
from receiptparse.parsers.base import ParseSettings
from receiptparse.utils.forensic_context import forensic_scope, new_correlation_id
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.time import local_today

log = logging.getLogger("receiptparse.runner")

FALLBACK_TEMPLATE = "FALLBACK"
FALLBACK_ITEM = "영수증"

PAY_TYPE_CASH = 1
PAY_TYPE_CARD = 2


@dataclass(frozen=True)
class PurchaseRequest:
    """What the caller already knows before OCR: the only source of a fallback record."""

    merchant_name: Optional[str] = None
    amount: Optional[int] = None
    sale_date: Optional[str] = None
    memo: Optional[str] = None
    pay_type: Optional[str] = None


def build_fallback_result(request: Optional[PurchaseRequest], reason: str) -> ReceiptResult:
    req = request or PurchaseRequest()
    r = ReceiptResult()
    r.merchant.name = req.merchant_name
    r.meta.sale_date = normalize_date(req.sale_date) if req.sale_date else None
    r.totals.total = req.amount
    r.payment.type = req.pay_type
    if req.amount is not None:
        r.payment.approval_amt = str(req.amount)
    r.items = [Item(line_no="1", name=req.memo or FALLBACK_ITEM, qty=1, unit_price=req.amount, amount=req.amount)]
    for it in r.items:
        it.category = classify(it.name)
        it.tax_type = taxify(it.tax_flag)
    r.extra["fallback"] = True
    r.extra["fallbackReason"] = reason
    r.flag("fallback")
    return r.freeze()


def fallback_outcome(request: Optional[PurchaseRequest], reason: str, type_key: Optional[str] = None) -> ParseOutcome:
    result = build_fallback_result(request, reason)
    return ParseOutcome(
        result=result,
        type_key=type_key or "unknown",
        template=FALLBACK_TEMPLATE,
        confidence=0.0,
        detected=False,
        review_reasons=tuple(result.review_reasons),
    )


def _approval_amount(raw: Optional[str]) -> int:
    digits = re.sub(r"[^0-9]", "", raw or "")
    return int(digits) if digits else 0


def build_purchase_record(
    result: Union[ParseOutcome, ReceiptResult],
    request: Optional[PurchaseRequest] = None,
) -> Dict[str, Any]:
    """
    Flat purchase row for the ledger collaborator.

    Parsed values win; the caller's request fills what the parse left empty.
    A result with payment type ``cash`` books the approval amount as cash,
    anything else as card.
    """
    r = result.result if isinstance(result, ParseOutcome) else result
    req = request or PurchaseRequest()

    sale_date = r.meta.sale_date or (normalize_date(req.sale_date) if req.sale_date else None) or local_today().isoformat()
    year, month = (int(sale_date[:4]), int(sale_date[5:7])) if re.match(r"^\d{4}-\d{2}", sale_date) else (None, None)

    approval = _approval_amount(r.payment.approval_amt)
    is_cash = (r.payment.type or "") == "cash"
    biz_no = normalize_biz_no(r.merchant.biz_no) if r.merchant.biz_no else None

    details: List[Dict[str, Any]] = [
        {
            "name": it.name,
            "qty": it.qty,
            "amount": it.amount,
            "unitPrice": it.unit_price,
            "taxType": int(it.tax_type if it.tax_type is not None else taxify(it.tax_flag)),
            "itemType": int(it.category if it.category is not None else classify(it.name)),
        }
        for it in r.items
    ]
    return {
        "saleDate": sale_date,
        "year": year,
        "month": month,
        "total": r.totals.total if r.totals.total is not None else req.amount,
        "discount": r.totals.discount,
        "vat": r.totals.vat,
        "taxFree": r.totals.tax_free,
        "tax": r.totals.taxable,
        "useName": r.merchant.name or req.merchant_name,
        "payType": PAY_TYPE_CASH if is_cash else PAY_TYPE_CARD,
        "totalCash": approval if is_cash else 0,
        "totalCard": 0 if is_cash else approval,
        "cardNo": r.payment.card_no or r.payment.card_masked,
        "cardBrand": r.payment.card_brand,
        "bizNo": biz_no,
        "fallback": bool(r.extra.get("fallback", False)),
        "details": details,
    }


ParseFn = Callable[..., ParseOutcome]


class ParseRunner:
    """
    Runs the dispatcher under a wall-clock time limit.

    A timeout or a parser crash never reaches the caller: it becomes a
    fallback outcome built from the request alone. The worker keeps running
    after a timeout (threads cannot be interrupted), its result is dropped.
    """

    def __init__(
        self,
        timeout_sec: float = 10.0,
        *,
        settings: Optional[ParseSettings] = None,
        max_workers: int = 4,
        fallback_on_dispatch_error: bool = False,
        parse_fn: Optional[ParseFn] = None,
    ) -> None:
        self.timeout_sec = float(timeout_sec)
        self.settings = settings
        self.fallback_on_dispatch_error = fallback_on_dispatch_error
        self._parse_fn = parse_fn or parse
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="receiptparse")
        self._inflight_lock = threading.Lock()
        self._inflight: set[Future] = set()

    @classmethod
    def from_config(cls, cfg: Optional[Mapping[str, Any]], **kwargs: Any) -> "ParseRunner":
        engine = dict((cfg or {}).get("engine") or {})
        return cls(
            timeout_sec=float(engine.get("timeout_sec", 10)),
            settings=ParseSettings.from_config(cfg),
            **kwargs,
        )

    def _drop_future(self, fut: Future) -> None:
        with self._inflight_lock:
            self._inflight.discard(fut)

    def inflight(self) -> int:
        with self._inflight_lock:
            return sum(1 for f in self._inflight if not f.done())

    def submit(
        self,
        document: Union[Document, str, None],
        type_key: Optional[str] = None,
        request: Optional[PurchaseRequest] = None,
        *,
        document_id: Optional[str] = None,
    ) -> ParseOutcome:
        with forensic_scope(correlation_id=new_correlation_id(), document_id=document_id, mode="runner"):
            ctx = contextvars.copy_context()
            fut = self._executor.submit(
                ctx.run, self._parse_fn, document, type_key, self.settings, document_id=document_id
            )
            with self._inflight_lock:
                self._inflight.add(fut)
            fut.add_done_callback(self._drop_future)

            try:
                return fut.result(timeout=self.timeout_sec)
            except FutureTimeout:
                fut.cancel()
                log_event(
                    log,
                    "runner.timeout",
                    "parse exceeded its time limit",
                    level=logging.WARNING,
                    timeout_sec=self.timeout_sec,
                    type_key=type_key,
                )
                return self._fallback(request, "timeout", type_key)
            except UnsupportedReceiptType:
                if not self.fallback_on_dispatch_error:
                    raise
                return self._fallback(request, "unsupported_type", type_key)
            except Exception as e:
                log.exception(
                    "parse failed",
                    extra={
                        "event_name": "runner.failed",
                        "extra_payload": {"type_key": type_key, "error": f"{type(e).__name__}: {e}"},
                    },
                )
                return self._fallback(request, "error", type_key)

    def _fallback(self, request: Optional[PurchaseRequest], reason: str, type_key: Optional[str]) -> ParseOutcome:
        log_event(log, "runner.fallback", "fallback record built", level=logging.WARNING, reason=reason)
        return fallback_outcome(request, reason, type_key)

    def close(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)

    def __enter__(self) -> "ParseRunner":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
