from __future__ import annotations

import re
from typing import List, Optional, Sequence

from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand, normalize_masked_card
from receiptparse.extract.primitives import extract, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.parsers.marketplace.common import (
    COMMA_MONEY_RE,
    DATE_RE,
    TIME_RE,
    clean_field,
    collect_after_label,
    compact,
    find_biz_no,
    index_of,
    looks_like_label,
    single_item,
    slice_lines,
    value_after_label,
)
from receiptparse.utils.amount_correction import to_int
from receiptparse.utils.text_normalizer import normalize_text, split_lines

PORTAL_BIZ_NO = "524-86-01528"
PORTAL_NAMES = ("네이버파이낸셜", "네이버")
DEFAULT_MERCHANT = "Unknown"
DEFAULT_PRODUCT = "상품"

LABELS = (
    "대표자명", "사업자등록번호", "전화번호", "사업장주소", "가맹점정보", "가맹점명", "가맹점번호", "주소",
    "승인금액", "공급가액", "부가세액", "봉사료", "합계", "상품주문번호", "상품주문", "주문번호", "상품명",
    "판매자정보", "판매자상호", "카드사", "카드번호", "거래종류", "결제일자", "금액",
)
_ORDER_NO_RE = re.compile(r"(PD[0-9A-Za-z]+)")
_COMPANY_MARK_RE = re.compile(r"(\(주\)|㈜|주식회사|회사)")
_COMPANY_TAIL_RE = re.compile(r"(케미칼|상사|마트|점)$")
_PERSON_NAME_RE = re.compile(r"^[가-힣]{2,4}$")
_BARE_NUMBER_RE = re.compile(r"^\s*(\d{1,9})\s*$")


def mask_card_line(line: Optional[str]) -> Optional[str]:
    """``1234-56**-****-7890(**/**)`` -> ``1234-56****-****-7890``."""
    if not line:
        return None
    s = re.sub(r"\(.*?\)", "", line)
    return normalize_masked_card(s)


def amount_tail(ls: Sequence[str]) -> List[int]:
    """Comma amounts from the first ``금액`` line on; bare digit lines join in when fewer than five."""
    start = index_of(ls, "금액")
    if start < 0:
        return []
    tail = ls[start:]
    out = [to_int(m.group(1)) for ln in tail for m in COMMA_MONEY_RE.finditer(ln)]
    if len(out) < 5:
        out = []
        for ln in tail:
            found = [to_int(m.group(1)) for m in COMMA_MONEY_RE.finditer(ln)]
            if found:
                out.extend(found)
                continue
            m = _BARE_NUMBER_RE.match(ln)
            if m:
                out.append(to_int(m.group(1)))
    return [v for v in out if v is not None]


def find_company_like(sections: Sequence[Sequence[str]]) -> Optional[str]:
    """Longest corporate-looking line of the given sections; person-like names and the portal are skipped."""
    cands: List[str] = []
    for section in sections:
        for raw in section:
            line = clean_field(raw)
            if not line or looks_like_label(line, LABELS):
                continue
            if any(p in line for p in PORTAL_NAMES) or _PERSON_NAME_RE.match(line):
                continue
            if _COMPANY_MARK_RE.search(line) or _COMPANY_TAIL_RE.search(line):
                cands.append(line)
    if not cands:
        return None
    return max(cands, key=len)


class NaverReceiptParser(BaseReceiptParser):
    """Naver Pay card receipts: payment block, 상품명 block, 판매자 정보 and 가맹점 정보."""

    type_key = "headoffice:naver"
    template = "NAVER"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        ls = split_lines(text)

        brand_approval = value_after_label(ls, "카드사 / 승인번호", LABELS)
        if brand_approval and "/" in brand_approval:
            brand, approval = (p.strip() for p in brand_approval.split("/", 1))
            r.payment.card_brand = normalize_card_brand(brand)
            r.approval.approval_no = extract(approval, r"([0-9]{6,12})")
        r.approval.approval_no = first_non_null(
            r.approval.approval_no,
            lambda: extract(text, r"승인번호\s*([0-9]{6,12})"),
        )

        r.payment.card_masked = mask_card_line(value_after_label(ls, "카드번호(유효기간)", LABELS))
        kind = value_after_label(ls, "거래종류 / 할부", LABELS)
        if kind:
            parts = [p.strip() for p in kind.split("/", 1)]
            r.payment.type = parts[0] or None
            r.payment.installment = parts[1] if len(parts) > 1 and parts[1] else None

        paid = value_after_label(ls, "결제일자", LABELS)
        r.meta.sale_date = extract(paid, DATE_RE)
        r.meta.sale_time = extract(paid, TIME_RE)

        product, order_no = self._product(ls)
        r.meta.receipt_no = order_no
        self._fill_seller(ls, text, r)
        self._fill_amounts(ls, r)
        r.items = single_item(product, r.totals.total, 1, DEFAULT_PRODUCT)

    @staticmethod
    def _product(ls: Sequence[str]) -> tuple[Optional[str], Optional[str]]:
        block = slice_lines(ls, "상품명", "판매자 정보")
        order_no = None
        cands: List[str] = []
        for raw in block:
            m = _ORDER_NO_RE.search(raw)
            if m and order_no is None:
                order_no = m.group(1)
            line = clean_field(_ORDER_NO_RE.sub("", raw))
            if not line or looks_like_label(line, LABELS):
                continue
            cands.append(line)
        return (max(cands, key=len) if cands else None), order_no

    @staticmethod
    def _fill_seller(ls: Sequence[str], text: str, r: ReceiptResult) -> None:
        seller_info = slice_lines(ls, "판매자 정보", "가맹점 정보")
        franchise_info = slice_lines(ls, "가맹점 정보", "금액")
        name = value_after_label(ls, "판매자상호", LABELS, window=12)
        franchise = value_after_label(ls, "가맹점명", LABELS, window=12)
        if franchise and "네이버" not in franchise:
            name = franchise
        r.merchant.name = first_non_null(
            clean_field(name),
            lambda: find_company_like((franchise_info, seller_info)),
            DEFAULT_MERCHANT,
        )
        r.merchant.biz_no = find_biz_no(text, exclude=(PORTAL_BIZ_NO,))
        r.merchant.phone = extract(value_after_label(ls, "전화번호", LABELS), r"(0\d{1,2}-?\d{3,4}-?\d{4})")

        section = slice_lines(ls, "판매자 정보", "금액") or ls
        addr = collect_after_label(section, "사업장주소", LABELS) or collect_after_label(section, "주소", LABELS)
        if addr and compact(addr) not in ("", "-"):
            r.merchant.address = addr

    @staticmethod
    def _fill_amounts(ls: Sequence[str], r: ReceiptResult) -> None:
        amounts = amount_tail(ls)
        if len(amounts) >= 5:
            approval, supply, vat, svc, total = amounts[-5:]
            r.payment.approval_amt = str(approval)
            r.totals.taxable, r.totals.vat, r.totals.total = supply, vat, total
            if svc:
                r.extra["serviceCharge"] = svc
        elif amounts:
            r.totals.total = amounts[-1]
            r.payment.approval_amt = str(amounts[-1])
