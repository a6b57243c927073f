from __future__ import annotations

import re
from enum import Enum
from typing import List, Optional

from receiptparse.extract.document import Document
from receiptparse.extract.items import is_noise_name, post_filter, split_numbers
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_masked_card
from receiptparse.extract.primitives import extract, first_int, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.amount_correction import to_int
from receiptparse.utils.text_normalizer import THOUSANDS_DOT_RE


class ConvenienceBrand(str, Enum):
    GS25 = "GS25"
    CU = "CU"
    SEVEN = "7-ELEVEN"
    UNKNOWN = "UNKNOWN"


def detect_brand(text: Optional[str]) -> ConvenienceBrand:
    t = (text or "").upper()
    if "GS25" in t:
        return ConvenienceBrand.GS25
    if "CU" in t:
        return ConvenienceBrand.CU
    if "7-ELEVEN" in t or "세븐일레븐" in t:
        return ConvenienceBrand.SEVEN
    return ConvenienceBrand.UNKNOWN


_MERCHANT_PATTERNS = (
    r"(GS25[ ]*[가-힣A-Za-z0-9]*점)",
    r"(CU[ ]*[가-힣A-Za-z0-9]*점)",
    r"(세븐일레븐[ ]*[가-힣A-Za-z0-9]*점)",
)
_ADDRESS_RE = r"([가-힣]+시\s*[가-힣]+구\s*[가-힣0-9\s]+\d+번)"
_DATE_RE = r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})"
_TIME_RE = r"([0-2]?\d:[0-5]\d(?::[0-5]\d)?)"

_THOUSANDS_DOT = (THOUSANDS_DOT_RE, ",")

_GS25_RULES = (
    _THOUSANDS_DOT,
    (re.compile(r"(?:(?<=점)|(?<=마트))[ ]+"), "\n"),
    (re.compile(r"(?<=\d)[ ]+(?=[가-힣])"), "\n"),
    (re.compile(r"(?<=[가-힣])[ ]+(?=\d{1,3}[.,]\d{3})"), "\n"),
    (re.compile(r"(?<=원)[ ]+"), "\n"),
    (re.compile(r"(?=과세|부가세|합계|총액|신용카드|현금|승인번호)"), "\n"),
)

_CU_RULES = (
    _THOUSANDS_DOT,
    (re.compile(r"(?<=CU)[ ]+"), "\n"),
    (re.compile(r"(?<=원)[ ]+"), "\n"),
    (re.compile(r"(?=총금액|면세|결제금액|신용카드|카드번호|승인번호)"), "\n"),
)

_NAME = r"[가-힣A-Za-z0-9()\-\s]{2,}?"
# "name qty" with the amount on later lines
_NAME_QTY_RE = re.compile(rf"^({_NAME})\s+(\d{{1,2}})$")
# "name qty amount" / "name qty unitPrice amount" / "name unitPrice qty amount"
_NAME_NUMBERS_RE = re.compile(rf"^({_NAME})\s+((?:[0-9,]+\s+){{1,2}}[0-9,]{{3,}})$")
_NUMBER_LINE_RE = re.compile(r"^[0-9,]{3,}$")
_ITEM_START_RE = re.compile(r".*[가-힣A-Za-z]+\s+\d{1,2}$")
_TOTALS_MARKERS = ("과세", "매출", "부가세", "신용카드")

_CU_ITEM_RE = re.compile(r"^[*]?[가-힣A-Za-z0-9()\-\s]+\s+(\d{1,3})\s+([0-9,]{3,})$")
_CU_SKIP_RE = re.compile(r"(총|합계|면세|POS|식품선도유지|품목|구매액|결제금액)")


def _apply(text: str, rules) -> str:
    t = text
    for rx, repl in rules:
        t = rx.sub(repl, t)
    t = re.sub(r"[ ]{2,}", " ", t)
    return "\n".join(ln.strip() for ln in t.split("\n") if ln.strip())


def _merchant_name(text: str) -> Optional[str]:
    name = first_non_null(*(lambda p=p: extract(text, p) for p in _MERCHANT_PATTERNS))
    return re.sub(r"\s+", " ", name) if name else None


def _item_from_numbers(name: str, numbers: str) -> Optional[Item]:
    unit_price, qty, amount = split_numbers(numbers.split())
    if amount is None:
        return None
    if qty is None:
        qty = 1
    if unit_price is None:
        unit_price = amount // max(1, qty)
    return Item(name=name.strip(), qty=qty, unit_price=unit_price, amount=amount)


class ConvenienceReceiptParser(BaseReceiptParser):
    """GS25 / CU / 7-ELEVEN receipts; unknown brands follow the GS25 rules."""

    type_key = "convenience"
    template = "CONVENIENCE"

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        brand = detect_brand(text)
        r.extra["brand"] = brand.value
        if brand is ConvenienceBrand.CU:
            self._fill_cu(text, r)
        else:
            self._fill_gs25(text, r)

    # -- GS25 / 7-ELEVEN ------------------------------------------------------

    def _fill_gs25(self, raw: str, r: ReceiptResult) -> None:
        text = _apply(raw, _GS25_RULES)

        r.merchant.name = _merchant_name(raw)
        r.merchant.address = extract(text, _ADDRESS_RE)
        r.meta.sale_date = extract(text, _DATE_RE)
        r.meta.sale_time = extract(text, _TIME_RE)

        lines = text.split("\n")
        start = self._first_item_line(lines)
        end = self._line_before_totals(lines, start)
        r.items = self._parse_items(lines[start:end])

        r.totals.vat = first_int(text, r"(부가세)\s*([0-9,]+)")
        r.totals.total = first_int(text, r"(합계|총액|결제금액|계)\s*([0-9,]+)")
        r.totals.taxable = first_int(text, r"(과세물품가액|과세물품)\s*([0-9,]+)")
        r.totals.tax_free = first_int(text, r"(면세물품가액|면세물품)\s*([0-9,]+)")

        r.payment.type = extract(text, r"(신용카드|현금|카카오페이|KB페이|네이버페이|토스페이|삼성페이)")
        r.payment.card_brand = first_non_null(
            lambda: extract(text, r"신용카드\(([^)]+)\)"),
            lambda: extract(text, r"\(([^)]+)페이\)"),
        )
        r.payment.card_no = extract(text, r"카드번호\s*([0-9\-*xX]+)")
        r.payment.card_masked = normalize_masked_card(r.payment.card_no) if r.payment.card_no else None
        r.payment.approval_amt = first_non_null(
            lambda: extract(text, r"사용금액\s*([0-9,]+)원?"),
            lambda: extract(text, r"(결제금액)\s*([0-9,]+)원?", 2),
        )
        r.payment.approval_time = r.meta.sale_time
        r.approval.approval_no = extract(text, r"승인번호\s*([0-9]{6,12})")
        r.payment.merchant = extract(text, r"매입사[:：]\s*([가-힣A-Za-z]+)")
        r.approval.acquirer = r.payment.merchant

    @staticmethod
    def _first_item_line(lines: List[str]) -> int:
        for i, cur in enumerate(lines):
            cur = cur.strip()
            if "합계수량" in cur or "수량/금액" in cur:
                if i > 0:
                    return i - 1
            if cur == "합" and i + 1 < len(lines) and "계수량" in lines[i + 1]:
                return max(0, i - 1)
            if _ITEM_START_RE.match(cur) or _NAME_NUMBERS_RE.match(cur):
                return i
        return 0

    @staticmethod
    def _line_before_totals(lines: List[str], start: int) -> int:
        for i in range(start, len(lines)):
            if any(k in lines[i] for k in _TOTALS_MARKERS):
                return i
        return len(lines)

    def _parse_items(self, ls: List[str]) -> List[Item]:
        """
        Line state machine: an inline "name numbers" line is one item; a
        "name qty" line takes the largest following number (>= 1000) as its
        amount. Stray number lines, headers and notices are skipped.
        """
        items: List[Item] = []
        for i, raw in enumerate(ls):
            line = raw.strip()
            if not line or "합계수량" in line or "수량/금액" in line:
                continue

            m_all = _NAME_NUMBERS_RE.match(line)
            if m_all:
                if not is_noise_name(m_all.group(1)):
                    it = _item_from_numbers(m_all.group(1), m_all.group(2))
                    if it is not None:
                        items.append(it)
                continue

            m_qty = _NAME_QTY_RE.match(line)
            if m_qty:
                name = m_qty.group(1).strip()
                qty = to_int(m_qty.group(2)) or 1
                if is_noise_name(name):
                    continue
                candidates: List[int] = []
                for nxt in ls[i + 1:]:
                    nxt = nxt.strip()
                    if not nxt:
                        continue
                    if any(k in nxt for k in ("과세", "부가세", "신용카드")):
                        break
                    if _NAME_QTY_RE.match(nxt) or _NAME_NUMBERS_RE.match(nxt):
                        break
                    if _NUMBER_LINE_RE.match(nxt):
                        v = to_int(nxt)
                        if v is not None and v >= 1000:
                            candidates.append(v)
                if candidates:
                    amount = max(candidates)
                    items.append(Item(name=name, qty=qty, amount=amount, unit_price=amount // max(1, qty)))
        return post_filter(items)

    # -- CU -------------------------------------------------------------------

    def _fill_cu(self, raw: str, r: ReceiptResult) -> None:
        text = _apply(raw, _CU_RULES)

        r.merchant.name = _merchant_name(raw)
        r.merchant.address = extract(text, r"([가-힣]+시\s*[가-힣]+구\s*[가-힣0-9\s]+\d+번?)")
        r.meta.sale_date = extract(text, _DATE_RE)
        r.meta.sale_time = extract(text, _TIME_RE)

        items: List[Item] = []
        seen = set()
        for raw_line in text.split("\n"):
            line = raw_line.strip()
            if not line or _CU_SKIP_RE.search(line):
                continue
            m = _CU_ITEM_RE.match(line)
            if not m:
                continue
            name = re.sub(r"\s+\d{1,3}\s+[0-9,]{3,}$", "", line).replace("*", "").strip()
            if len(name) < 2 or re.search(r"(면세|합계|총액|결제|POS)", name):
                continue
            qty = to_int(m.group(1)) or 1
            amount = to_int(m.group(2))
            key = f"{name}|{amount}"
            if key in seen:
                continue
            seen.add(key)
            items.append(Item(name=name, qty=qty, amount=amount, unit_price=(amount or 0) // max(1, qty)))
        r.items = post_filter(items)

        r.payment.type = "신용카드"
        r.payment.card_no = extract(text, r"카드번호[:\s]*([0-9\-*xX]+)")
        r.payment.card_masked = normalize_masked_card(r.payment.card_no) if r.payment.card_no else None
        r.payment.card_brand = extract(text, r"카드회사[:\s]*[0-9]+\s*([가-힣A-Za-z]+)")
        r.payment.approval_amt = extract(text, r"결제금액[:\s]*([0-9,]+)")
        r.approval.approval_no = extract(text, r"승인번호[:\s]*([0-9]{6,12})")

        r.totals.total = first_int(text, r"결제금액[:\s]*([0-9,]+)")
        r.totals.tax_free = first_int(text, r"면세물품가액[:\s]*([0-9,]+)")
