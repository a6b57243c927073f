from __future__ import annotations

import logging
import re
from typing import List, Sequence

from receiptparse.extract.document import Document
from receiptparse.extract.items import parse_item_table
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.primitives import extract, first_int, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import normalize_text

log = logging.getLogger("receiptparse.parser.mart")

_UNIT_FIXES = (("㎏", "kg"), ("㎖", "ml"), ("ℓ", "L"))
_DISALLOWED_RE = re.compile(r"[^가-힣A-Za-z0-9.,:/()\-#*=_\n ]")

_ITEMS_START_RE = re.compile(r"(NO\.|상품명|단가|수량|금액)")
_TOTALS_START_RE = re.compile(r"(합계|총액|할인|면세|부가세|VAT|현금|카드)")
_FOOTER_START_RE = re.compile(r"(고객|적립|승인|영수증|거래NO|감사|계산원)")

_PROVINCES = "서울|인천|부산|대구|광주|대전|울산|세종|경기|강원|충북|충남|전북|전남|경북|경남|제주"
_ACCOUNT_RE = re.compile(
    r"(국민|농협|신한|우리|하나|기업|우체국|수협|새마을|부산|대구|광주|전북|경남)[^0-9\n]*"
    r"(\d{2,3}-\d{3,4}-\d{3,4}-\d{1,3}|\d{3}-\d{2,4}-\d{5,6})"
)


def split_sections(lines: Sequence[str]) -> List[List[str]]:
    """
    Merchant -> items -> totals -> footer.

    Each phase ends at the first line carrying the next phase's marker; the
    marker line opens the new section. Missing phases yield fewer sections.
    """
    sections: List[List[str]] = []
    current: List[str] = []
    phase = "merchant"
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if phase == "merchant" and _ITEMS_START_RE.search(line):
            sections.append(current)
            current, phase = [], "items"
        elif phase == "items" and _TOTALS_START_RE.search(line):
            sections.append(current)
            current, phase = [], "totals"
        elif phase == "totals" and _FOOTER_START_RE.search(line):
            sections.append(current)
            current, phase = [], "footer"
        current.append(line)
    if current:
        sections.append(current)
    return sections


def _section(sections: List[List[str]], idx: int) -> List[str]:
    return sections[idx] if idx < len(sections) else []


class MartReceiptParser(BaseReceiptParser):
    """Mart / grocery itemized receipts with a free-form item table."""

    type_key = "mart"
    template = "MART_ITEMIZED"

    def normalize(self, raw: str) -> str:
        t = normalize_text(raw, break_labels=False)
        for src, dst in _UNIT_FIXES:
            t = t.replace(src, dst)
        t = _DISALLOWED_RE.sub(" ", t)
        t = re.sub(r"[ ]+", " ", t)
        return "\n".join(ln.strip() for ln in t.split("\n") if ln.strip())

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        lines = text.split("\n")
        sections = split_sections(lines)
        merchant_text = "\n".join(_section(sections, 0))
        item_lines = _section(sections, 1)
        tail = " ".join(_section(sections, 2) + _section(sections, 3))

        r.merchant.name = first_non_null(
            lambda: extract(merchant_text, r"([가-힣A-Za-z ]*?식자재마트|[가-힣A-Za-z ]*?마트|베이커리|뚜레쥬르|파리바게뜨)"),
            lambda: extract(merchant_text, r"가맹점명[:：]\s*([^\n]*)"),
        )
        r.merchant.biz_no = extract(merchant_text, r"([0-9]{3}-[0-9]{2}-[0-9]{5})")
        r.merchant.phone = extract(merchant_text, r"(0\d{1,2}-\d{3,4}-\d{4})")
        r.merchant.address = extract(merchant_text, rf"((?:{_PROVINCES})[^\n]*\d[^\n]*)")

        r.meta.sale_date = first_non_null(
            lambda: extract(text, r"(?:일시|판매일)[:：]?\s*((?:20)?\d{2}[./-]\d{1,2}[./-]\d{1,2})"),
            lambda: extract(text, r"((?:20)?\d{2}[./-]\d{1,2}[./-]\d{1,2})"),
        )
        m = re.search(r"(?:일시|판매일)[^\n]*?([01]?\d|2[0-3]):([0-5]\d)", text)
        r.meta.sale_time = f"{m.group(1)}:{m.group(2)}" if m else None
        r.meta.receipt_no = extract(text, r"거래\s?NO[:：]?\s*([0-9]{8,20})")

        layout, items = parse_item_table(item_lines)
        r.items = items
        log_event(log, "parser.items", "mart item table", level=logging.DEBUG, layout=layout.value, count=len(items))

        self._fill_totals_and_payment(tail, r)
        self._fill_customer_and_approval(tail, r)
        account = _ACCOUNT_RE.search(tail)
        if account:
            r.extra["account_info"] = f"{account.group(1)} {account.group(2)}"

        if r.totals.total is None and r.items:
            r.totals.total = sum(it.amount for it in r.items if it.amount is not None)
        if r.payment.approval_amt is None and r.totals.total is not None:
            r.payment.approval_amt = str(r.totals.total)
        r.extra["item_count"] = len(r.items)
        r.extra["itemLayout"] = layout.value

    @staticmethod
    def _fill_totals_and_payment(t: str, r: ReceiptResult) -> None:
        r.totals.discount = first_int(t, r"(할인금액|할인)[:：]?\s*(-?[0-9,]+)")
        r.totals.total = first_int(t, r"(합 ?계|총 ?액|지불금액|내신금액|결제금액)[:：]?\s*([0-9,]+)")
        r.totals.vat = first_int(t, r"(부가세|VAT)[:：]?\s*([0-9,]+)")
        r.totals.tax_free = first_int(t, r"(면세물품가액|면세물품|면세)[:：]?\s*([0-9,]+)")
        r.totals.taxable = first_int(t, r"(과세물품가액|과세물품)[:：]?\s*([0-9,]+)")

        if "카드" in t:
            r.payment.type = "card"
            r.payment.card_brand = extract(t, r"((?:국민|하나|신한|롯데|BC|삼성|현대) ?카드)")
            r.payment.approval_amt = extract(t, r"(승인금액|전표금액|일시불)[:：]?\s*([0-9,]+)", 2)
            r.totals.card = r.totals.total
        else:
            r.payment.type = "cash"
            r.payment.approval_amt = extract(t, r"(현금지불|현금영수증|내신금액|지출증빙)[:：]?\s*([0-9,]+)", 2)
            r.totals.cash = r.totals.total

    @staticmethod
    def _fill_customer_and_approval(t: str, r: ReceiptResult) -> None:
        r.customer.name_or_group = extract(t, r"(고객|요양원|전강)[:：]?\s*([가-힣A-Za-z0-9()]+)", 2)
        r.customer.points_earned = first_int(t, r"(받은포인트|적립포인트)[:：]?\s*([0-9,]+)")
        r.customer.points_balance = first_int(t, r"(현재포인트|잔여포인트)[:：]?\s*([0-9,]+)")
        r.approval.approval_no = extract(t, r"\(([0-9]{6,9})\)")
        r.approval.cash_receipt_no = extract(t, r"(현금영수증승인|지출증빙)[:：]?/?\s*([0-9\-]{5,12})", 2)
