from __future__ import annotations

import re
from typing import List, Optional, Sequence

from receiptparse.extract.document import Document
from receiptparse.extract.layout_items import extract_items_from_ocr_layout
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand
from receiptparse.extract.primitives import contains_any, extract, first_int, first_non_null, rank_money
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.text_normalizer import split_lines

_PAN_LOOSE_RE = re.compile(r"\b(\d{4})[\s\-]*([*Xx]{2,}|\d{0,2})[\s\-*Xx0-9]{2,12}(\d{4})\b")

_MERCHANT_STOP_WORDS = (
    "승인", "카드", "일시불", "할부", "매입", "단말기", "고객용", "가맹점번호", "부가세", "합계", "결제금액",
    "공급가액", "과세", "면세",
)


def masked_pan_loose(text: Optional[str]) -> Optional[str]:
    """``NNNN********NNNN`` from anything shaped like a masked card number."""
    if not text:
        return None
    m = _PAN_LOOSE_RE.search(text)
    if not m:
        return None
    return f"{m.group(1)}********{m.group(3)}"


def looks_like_merchant_name(s: Optional[str]) -> bool:
    if s is None:
        return False
    s = s.strip()
    if len(s) < 2 or contains_any(s, *_MERCHANT_STOP_WORDS):
        return False
    digits = sum(ch.isdigit() for ch in s)
    letters = sum(ch.isalpha() for ch in s)
    if letters < 2:
        return False
    return digits <= len(s) // 2


def clean_merchant_name(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = re.sub(r"\s{2,}", " ", s).strip()
    s = re.sub(r"(고객용|승인|카드|영수증|매출전표)$", "", s).strip()
    return s if len(s) >= 2 else None


def merchant_near_biz_no(lines: Sequence[str], biz_no: str) -> Optional[str]:
    """First merchant-like line within two lines of the one holding ``biz_no``."""
    digits = re.sub(r"[^0-9]", "", biz_no)
    if not digits:
        return None
    for i, line in enumerate(lines):
        if digits not in re.sub(r"[^0-9]", "", line):
            continue
        for j in range(max(0, i - 2), min(len(lines), i + 3)):
            cand = lines[j].strip()
            if looks_like_merchant_name(cand):
                return cand
    return None


def guess_top_name(lines: Sequence[str]) -> Optional[str]:
    """Best-scoring line among the first five; needs at least a merchant-like shape."""
    best: Optional[str] = None
    best_score = -999
    for cand in (ln.strip() for ln in lines[:5]):
        s = 0
        if looks_like_merchant_name(cand):
            s += 3
        if len(cand) >= 6:
            s += 1
        if contains_any(cand, "㈜", "(주)", "주식회사"):
            s += 1
        if s > best_score:
            best_score, best = s, cand
    return best if best_score >= 3 else None


class GenericCardSlipParser(BaseReceiptParser):
    """
    Brand-agnostic fallback for card slips.

    Every field comes from a priority chain of loose patterns; totals come
    from label-proximity money ranking. Never fails on unknown layouts, the
    result is just sparser.
    """

    type_key = "card"
    template = "CARD_SLIP_GENERIC"

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        lines = split_lines(text)

        r.meta.sale_date = first_non_null(
            lambda: extract(text, r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})"),
            lambda: extract(text, r"(20\d{2}년\s*\d{1,2}월\s*\d{1,2}일)"),
        )
        r.meta.sale_time = extract(text, r"([0-2]?\d:[0-5]\d(?::[0-5]\d)?)")
        r.approval.auth_datetime = first_non_null(
            lambda: extract(
                text, r"(승인일시)\s*[:：\-]?\s*(20\d{2}[./-]\d{1,2}[./-]\d{1,2}\s*[0-2]?\d:[0-5]\d(?::[0-5]\d)?)", 2
            ),
            f"{r.meta.sale_date} {r.meta.sale_time}" if r.meta.sale_date and r.meta.sale_time else None,
        )

        r.approval.approval_no = first_non_null(
            lambda: extract(text, r"(승\s*인\s*번\s*호)\s*[:：\-]?\s*([0-9]{5,12})", 2),
            lambda: extract(text, r"(승인)\s*[:：\-]?\s*([0-9]{5,12})", 2),
        )
        r.payment.card_no = first_non_null(
            lambda: extract(text, r"(카드번호)\s*[:：\-]?\s*([0-9\-*xX]{8,})", 2),
            lambda: extract(text, r"(CARD\s*NO)\s*[:：\-]?\s*([0-9\-*xX]{8,})", 2),
            lambda: masked_pan_loose(text),
        )
        r.payment.card_masked = r.payment.card_no
        r.payment.installment = first_non_null(
            lambda: extract(text, r"(일시불)"),
            lambda: extract(text, r"(할부)\s*([0-9]{1,2})\s*개월", 2),
            lambda: extract(text, r"(할부)\s*[:：\-]?\s*([0-9]{1,2})", 2),
        )
        r.payment.type = first_non_null(
            lambda: extract(text, r"(신용카드|체크카드|간편결제|삼성페이|네이버페이|카카오페이|토스페이|애플페이|구글페이)"),
            "신용카드",
        )
        brand = first_non_null(
            lambda: extract(text, r"(국민|KB|신한|삼성|현대|롯데|하나|NH|농협|BC|우리)\s*(?:카드)?"),
            lambda: extract(text, r"(VISA|MASTERCARD|MASTER|AMEX|JCB)"),
        )
        r.payment.card_brand = normalize_card_brand(brand)

        self._fill_totals(lines, text, r)
        self._fill_merchant(lines, text, r)

        r.approval.merchant_no = extract(text, r"(가맹점\s*번호)\s*[:：\-]?\s*([0-9A-Za-z\-]{4,})", 2)
        r.approval.tid = first_non_null(
            lambda: extract(text, r"(TID)\s*[:：\-]?\s*([0-9A-Za-z\-]{4,})", 2),
            lambda: extract(text, r"(단말기\s*번호)\s*[:：\-]?\s*([0-9A-Za-z\-]{4,})", 2),
        )
        r.approval.van = first_non_null(
            lambda: extract(text, r"(VAN)\s*[:：\-]?\s*([0-9A-Za-z\-]{2,})", 2),
            lambda: extract(text, r"(밴사|밴)\s*[:：\-]?\s*([0-9A-Za-z\-]{2,})", 2),
            lambda: extract(text, r"(KICC|KSNET|NICE|SMARTRO|KIS|KOVAN)"),
        )
        r.approval.acquirer = extract(text, r"매입사\s*[:：]?\s*([가-힣A-Za-z]+)")

        if r.totals.total is not None:
            r.payment.approval_amt = str(r.totals.total)

        if not r.items and doc.tokens:
            r.items = self._layout_items(doc)

    def _fill_totals(self, lines: List[str], text: str, r: ReceiptResult) -> None:
        ranking = rank_money(lines, floor=self.settings.tolerance_floor, rel=self.settings.tolerance_rel)
        r.totals.total = ranking.total
        r.totals.vat = ranking.vat
        r.totals.taxable = ranking.supply
        r.totals.discount = ranking.discount
        r.totals.tax_free = first_int(text, r"(면세)[^0-9\n]*([0-9,]+)")
        if ranking.total_from_supply_vat:
            r.extra["totalFromSupplyVat"] = True
        if ranking.reselected_total:
            r.extra["totalReselected"] = True

    @staticmethod
    def _fill_merchant(lines: List[str], text: str, r: ReceiptResult) -> None:
        r.merchant.biz_no = extract(text, r"\b(\d{3}[- ]?\d{2}[- ]?\d{5})\b")
        r.merchant.phone = extract(text, r"(0\d{1,2}[- ]?\d{3,4}[- ]?\d{4})")
        r.merchant.address = first_non_null(
            lambda: extract(text, r"([가-힣]+시\s*[가-힣]+(?:구|군)\s*[가-힣0-9 \-]+\d+번?[^\n]*)"),
            lambda: extract(text, r"([가-힣]+도\s*[가-힣]+시\s*[가-힣]+(?:구|군)\s*[가-힣0-9 \-]+)"),
        )
        biz_no = r.merchant.biz_no
        r.merchant.name = first_non_null(
            lambda: clean_merchant_name(
                extract(text, r"(상호|가맹점명|가맹점)(?!\s*번호)\s*[:：\-]?\s*([가-힣A-Za-z0-9()\- ]{2,30})", 2)
            ),
            lambda: clean_merchant_name(merchant_near_biz_no(lines, biz_no)) if biz_no else None,
            lambda: clean_merchant_name(guess_top_name(lines)),
        )

    @staticmethod
    def _layout_items(doc: Document) -> List[Item]:
        return [
            Item(name=d.get("name"), qty=d.get("qty"), unit_price=d.get("unit_price"), amount=d.get("amount"))
            for d in extract_items_from_ocr_layout(doc.tokens)
        ]
