from __future__ import annotations

import re
from typing import List, Optional, Sequence

from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand
from receiptparse.extract.primitives import extract, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.parsers.marketplace.common import (
    DASHED_BIZ_NO_RE,
    DATE_RE,
    TIME_RE,
    comma_amounts,
    compact,
    index_of,
    looks_like_label,
    single_item,
    slice_lines,
    value_after_label,
)
from receiptparse.utils.amount_correction import to_int
from receiptparse.utils.text_normalizer import normalize_text, split_lines

ANCHOR = "신용카드매출전표"
DEFAULT_MERCHANT = "홈플러스"
DEFAULT_PRODUCT = "상품"
DEFAULT_TRADE_TYPE = "신용거래"

LABELS = (
    "승인번호", "주문번호", "품명", "품목", "상품명", "카드종류", "카드번호", "유효기간", "거래유형", "할부개월",
    "승인일시", "결제금액", "금액", "부가세", "합계", "판매자정보", "판매자상호", "대표자명", "사업자등록번호",
    "전화번호", "사업장주소", "가맹점정보", "가맹점명", "가맹점점명", "가맹점주소", "주소",
)

_APPROVAL_RE = re.compile(r"[0-9]{6,12}")
_ORDER_RE = re.compile(r"[0-9]{8,}")
_CARD_NO_RE = re.compile(r"[0-9*]{6,20}")
_TRADE_RE = re.compile(r"(정상매출|취소매출|정상|취소).*")
_INSTALLMENT_RE = re.compile(r"(일시불|[0-9]{1,2}\s*개월)")
_DATE_TIME_LINE_RE = re.compile(DATE_RE + r"\s+" + TIME_RE)
_MORE_ITEMS_RE = re.compile(r"(.+?)\s*외\s*([0-9]+)\s*건$")
_PHONE_RE = r"(0\d{1,2}-\d{3,4}-\d{4})"


def _is_label(line: str) -> bool:
    return looks_like_label(line, LABELS)


def _next_matching(ls: Sequence[str], rx: "re.Pattern[str]", start: int, limit: int) -> tuple[Optional[str], int]:
    """Next non-label line fully matching ``rx`` within ``limit`` lines."""
    for i in range(start, min(len(ls), start + limit)):
        line = ls[i].strip()
        if _is_label(line):
            continue
        if rx.fullmatch(line):
            return line, i
    return None, -1


def pay_amounts(ls: Sequence[str]) -> tuple[Optional[int], Optional[int], Optional[int]]:
    """
    (amount, vat, total) from the 결제금액 .. 판매자 정보 slice: three or more
    values read as amount/vat/total, two as amount/vat with their sum as
    total, a single value is the total.
    """
    nums: List[int] = []
    for line in slice_lines(ls, "결제금액", "판매자 정보"):
        nums.extend(comma_amounts(line))
    if len(nums) >= 3:
        amount, vat, total = nums[-3:]
    elif len(nums) == 2:
        amount, vat = nums
        total = amount + vat
    elif nums:
        amount, vat, total = None, None, nums[0]
    else:
        return None, None, None
    if total is None and amount is not None and vat is not None:
        total = amount + vat
    return amount, vat, total


class HomeplusReceiptParser(BaseReceiptParser):
    """Homeplus online-order card slips (신용카드매출전표 with seller / franchise sections)."""

    type_key = "headoffice:homeplus"
    template = "HOMEPLUS"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        ls = split_lines(text)
        anchor = next((i for i, ln in enumerate(ls) if ANCHOR in compact(ln)), -1)
        cursor = anchor + 1

        approval, idx = _next_matching(ls, _APPROVAL_RE, cursor, 80)
        if approval:
            r.approval.approval_no = approval
            cursor = idx + 1
        order, idx = _next_matching(ls, _ORDER_RE, cursor, 120)
        if order:
            r.meta.receipt_no = order

        name, qty = self._item(ls, anchor + 1)
        self._fill_card(ls, anchor + 1, r)

        dt = next((m for m in (_DATE_TIME_LINE_RE.fullmatch(ln.strip()) for ln in ls) if m), None)
        if dt:
            r.meta.sale_date, r.meta.sale_time = dt.group(1), dt.group(2)
        else:
            r.meta.sale_date = extract(text, DATE_RE)
            r.meta.sale_time = extract(text, TIME_RE)
        r.approval.auth_datetime = (
            f"{r.meta.sale_date} {r.meta.sale_time}" if r.meta.sale_date and r.meta.sale_time else None
        )

        amount, vat, total = pay_amounts(ls)
        r.totals.taxable, r.totals.vat, r.totals.total = amount, vat, total
        if total is not None:
            r.payment.approval_amt = str(total)

        self._fill_merchant(ls, r)
        r.items = single_item(name, r.totals.total, qty, DEFAULT_PRODUCT)

    @staticmethod
    def _item(ls: Sequence[str], start: int) -> tuple[Optional[str], Optional[int]]:
        end = index_of(ls, "결제금액", start)
        for line in ls[start:end if end >= 0 else len(ls)]:
            s = line.strip()
            low = s.lower()
            if not s or _is_label(s) or "homeplus" in low or ANCHOR in compact(s):
                continue
            if re.fullmatch(r"[0-9*\-:./\s,]+", s):
                continue
            if _INSTALLMENT_RE.fullmatch(s) or _TRADE_RE.fullmatch(s) or "카드" in s:
                continue
            m = _MORE_ITEMS_RE.match(s)
            if m:
                return m.group(1).strip(), 1 + (to_int(m.group(2)) or 0)
            return s, 1
        return None, None

    @staticmethod
    def _fill_card(ls: Sequence[str], start: int, r: ReceiptResult) -> None:
        region = ls[start:]
        card_line = next((ln.strip() for ln in region if "카드" in ln and not _is_label(ln)), None)
        r.payment.card_brand = normalize_card_brand(card_line)
        r.payment.card_no = next((ln.strip() for ln in region if _CARD_NO_RE.fullmatch(ln.strip()) and "*" in ln), None)
        r.payment.card_masked = r.payment.card_no
        trade = next((ln.strip() for ln in region if _TRADE_RE.fullmatch(ln.strip())), None)
        r.payment.type = trade or DEFAULT_TRADE_TYPE
        r.payment.installment = next((ln.strip() for ln in region if _INSTALLMENT_RE.fullmatch(ln.strip())), None)

    @staticmethod
    def _fill_merchant(ls: Sequence[str], r: ReceiptResult) -> None:
        seller = slice_lines(ls, "판매자 정보", "가맹점 정보")
        seller_name = next(
            (ln.strip() for ln in seller if not _is_label(ln) and not re.search(r"\d{2,}", ln)),
            None,
        )
        seller_text = "\n".join(seller)
        biz = DASHED_BIZ_NO_RE.search(seller_text)
        r.merchant.biz_no = biz.group(1) if biz else None
        r.merchant.phone = extract(seller_text, _PHONE_RE)

        franchise = slice_lines(ls, "가맹점 정보")
        franchise_name = first_non_null(
            lambda: value_after_label(franchise, "가맹점명", LABELS),
            lambda: value_after_label(franchise, "가맹점점명", LABELS),
        )
        r.merchant.name = first_non_null(seller_name, franchise_name, DEFAULT_MERCHANT)
