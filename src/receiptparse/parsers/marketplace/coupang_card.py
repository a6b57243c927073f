from __future__ import annotations

import logging
import re
from typing import List, Optional, Sequence

from receiptparse.extract.detector import is_coupang_app
from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand
from receiptparse.extract.primitives import extract, first_non_null, index_of_line
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.parsers.coupang import fill_app_payment
from receiptparse.parsers.marketplace.common import (
    clean_field,
    collect_after_label,
    find_biz_no,
    looks_like_label,
    money_strict,
    pick_first_among,
    refine_product_name,
    single_item,
    value_after_label,
)
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import normalize_text, split_lines

log = logging.getLogger("receiptparse.parser.headoffice")

DEFAULT_MERCHANT = "카드영수증"
DEFAULT_PRODUCT = "구매상품"
DEFAULT_TRADE_TYPE = "신용거래"

_DATE_TIME_RE = re.compile(r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})\s*([0-2]?\d:[0-5]\d:[0-5]\d)")
_MASKED_CARD_RE = r"\b(\d{4}\*{2,}\d{2,}\*?\d{0,4})"
_APPROVAL_LINE_RE = re.compile(r"\d{6,12}")
_APPROVAL_ANY_RE = r"\b(\d{6,12})\b"
_ORDER_NO_RE = re.compile(r"\b(\d{12,20})\b")

BRAND_KEYS = ("IBK비씨카드", "IBK", "BC카드", "비씨", "국민", "KB", "NH", "농협", "삼성", "신한", "현대", "롯데", "하나")
TRADE_KEYS = ("신용거래", "승인거래", "체크", "현금", "정상매출")
INSTALLMENT_KEYS = ("일시불", "할부", "개월")

JUNK_LABELS = (
    "카드영수증", "결제정보", "구매정보", "이용상점정보", "판매자상호", "판매자 사업자등록번호", "판매자주소",
    "카드종류", "거래종류", "할부개월", "카드번호", "거래일시", "승인번호", "주문번호", "상품명",
    "과세금액", "비과세금액", "부가세", "합계금액",
)
_ADDRESS_STOPS = ("카드영수증", "결제정보", "구매정보", "이용상점정보", "판매자상호", "판매자 사업자등록번호", "상품명")


def _approval_after(ls: Sequence[str], anchor: int) -> tuple[Optional[str], int]:
    """First bare 6-12 digit line within eight lines after the date-time line."""
    if anchor >= 0:
        for j in range(anchor + 1, min(len(ls), anchor + 9)):
            if _APPROVAL_LINE_RE.fullmatch(ls[j].strip()):
                return ls[j].strip(), j
    return None, -1


def _installment(ls: Sequence[str]) -> Optional[str]:
    line = value_after_label(ls, "할부개월", JUNK_LABELS)
    if line is None:
        line = next(
            (ln.strip() for ln in ls if any(k in ln for k in INSTALLMENT_KEYS) and not looks_like_label(ln, JUNK_LABELS)),
            None,
        )
    if line is None:
        return None
    if "일시불" in line:
        return "일시불"
    return clean_field(line)


def _guess_seller_name(ls: Sequence[str], biz_idx: int) -> Optional[str]:
    """Walk back from the business-number label to the nearest plain text line."""
    for j in range(biz_idx - 1, max(-1, biz_idx - 4), -1):
        cand = ls[j].strip()
        if not cand or looks_like_label(cand, JUNK_LABELS):
            continue
        if re.fullmatch(r"[0-9,\-\s원]+", cand):
            continue
        return cand
    return None


class HeadOfficeCoupangParser(BaseReceiptParser):
    """
    Coupang card-receipt screen as exported by head office: 결제정보 (payment),
    구매정보 (purchase) and 이용상점정보 (shop) sections, one value per line.
    """

    type_key = "headoffice:coupang"
    template = "COUPANG_CARD_SCREEN"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        if is_coupang_app(text):
            r.extra["template"] = "COUPANG_APP"
            fill_app_payment(text, r)
            return

        ls = split_lines(text)
        anchor = index_of_line(ls, lambda ln: bool(_DATE_TIME_RE.search(ln)))
        if anchor >= 0:
            m = _DATE_TIME_RE.search(ls[anchor])
            r.meta.sale_date, r.meta.sale_time = m.group(1), m.group(2)

        approval, approval_idx = _approval_after(ls, anchor)
        r.approval.approval_no = first_non_null(approval, lambda: extract(text, _APPROVAL_ANY_RE))
        r.payment.card_masked = extract(text, _MASKED_CARD_RE)
        r.payment.card_brand = normalize_card_brand(pick_first_among(ls, BRAND_KEYS))

        trade = pick_first_among(ls, TRADE_KEYS)
        trade_type = next((k for k in TRADE_KEYS if trade and k in trade), DEFAULT_TRADE_TYPE)
        inst = _installment(ls)
        r.payment.installment = inst
        r.payment.type = f"{trade_type}({inst})" if inst and inst != trade_type else trade_type

        self._fill_purchase(ls, approval_idx + 1 if approval_idx >= 0 else 0, r)
        self._fill_shop(ls, text, r)

        if r.totals.total is not None:
            r.payment.approval_amt = str(r.totals.total)
        log_event(
            log,
            "parser.sections",
            "coupang card screen parsed",
            level=logging.DEBUG,
            anchor=anchor,
            approval_line=approval_idx,
        )

    @staticmethod
    def _fill_purchase(ls: Sequence[str], start: int, r: ReceiptResult) -> None:
        order_idx = -1
        for i in range(start, len(ls)):
            m = _ORDER_NO_RE.search(ls[i])
            if m:
                r.meta.receipt_no = m.group(1)
                order_idx = i
                break

        money_idx: List[int] = [i for i in range(start, len(ls)) if money_strict(ls[i]) is not None]
        amounts = [money_strict(ls[i]) for i in money_idx]
        if len(amounts) >= 4:
            r.totals.taxable, r.totals.tax_free, r.totals.vat, r.totals.total = amounts[-4:]
        elif amounts:
            r.totals.total = amounts[-1]

        if r.totals.total is None:
            if r.totals.taxable is not None and r.totals.vat is not None:
                r.totals.total = r.totals.taxable + r.totals.vat
            elif r.totals.tax_free:
                r.totals.total = r.totals.tax_free

        first_money = money_idx[0] if money_idx else len(ls)
        if 0 <= order_idx < first_money:
            block = ls[order_idx + 1:first_money]
        else:
            block = [ln for ln in ls[start:first_money] if not _ORDER_NO_RE.search(ln)]
        block = [ln for ln in block if clean_field(ln) not in JUNK_LABELS]
        name, qty = refine_product_name(" ".join(block), JUNK_LABELS, DEFAULT_PRODUCT)
        r.items = single_item(name, r.totals.total, qty, DEFAULT_PRODUCT)

    @staticmethod
    def _fill_shop(ls: Sequence[str], text: str, r: ReceiptResult) -> None:
        name = value_after_label(ls, "판매자상호", JUNK_LABELS)
        if name and looks_like_label(name, JUNK_LABELS):
            name = None

        biz_idx = index_of_line(ls, lambda ln: "사업자등록번호" in ln.replace(" ", ""))
        labeled = value_after_label(ls, "판매자 사업자등록번호", JUNK_LABELS, window=2)
        r.merchant.biz_no = first_non_null(
            lambda: find_biz_no(labeled),
            lambda: find_biz_no(text),
        )
        r.merchant.address = collect_after_label(ls, "판매자주소", _ADDRESS_STOPS)
        r.merchant.name = first_non_null(
            clean_field(name),
            lambda: _guess_seller_name(ls, biz_idx) if biz_idx > 0 else None,
            DEFAULT_MERCHANT,
        )
