from __future__ import annotations

import re
from typing import List, Optional

from receiptparse.extract.detector import is_coupang_app
from receiptparse.extract.document import Document
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand
from receiptparse.extract.primitives import extract, extract_dot, first_int, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.amount_correction import to_int

DEFAULT_MERCHANT = "쿠팡"
DEFAULT_APP_ITEM = "쿠팡 구매상품"
DEFAULT_CARD_ITEM = "쿠팡 상품"

_DATE_RE = r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})"
_TIME_RE = r"([0-2]?\d:[0-5]\d:[0-5]\d)"
_ORDER_NO_RE = r"(주문\s*번호)\s*[:：]?\s*([0-9]{8,})"

_AMOUNT_LABELS_RE = re.compile(r"(합계금액|과세금액|비과세금액|부가세|총액|결제금액)")
_LEGACY_NOISE_RE = re.compile(
    r"(과세금액|비과세금액|합계금액|부가세|총액|결제금액|거래정보|거래일시|거래내용|이용상점정보|구매정보"
    r"|쿠팡\(쿠페이\)|저장|확인|검색|카드영수증).*"
)


def _clean_field(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = re.sub(r"\s+", " ", s).strip()
    return s or None


def _clean_product_name(s: Optional[str]) -> Optional[str]:
    s = _clean_field(s)
    if not s:
        return None
    s = re.sub(r"(과세금액|비과세금액|부가세|합계금액).*", "", s).strip()
    s = re.sub(r"(주문\s*번호\s*[:：]?\s*[0-9]{8,}).*", "", s).strip()
    s = re.sub(r"[,.:/\-]+$", "", s).strip()
    return s or None


def quantity_hint(text: str) -> Optional[int]:
    """``총 N건`` or ``N개`` (not ``N개 포함``) inside a product description."""
    m = re.search(r"총\s*([0-9]+)\s*건", text)
    if m:
        return to_int(m.group(1))
    m = re.search(r"([0-9]+)\s*개(?!\s*포함)", text)
    if m:
        return to_int(m.group(1))
    return None


def single_item(name: str, qty: Optional[int], total: Optional[int]) -> Item:
    """One line item carrying the whole payment, unit price derived from qty."""
    q = qty if qty and qty > 0 else 1
    unit = total // q if total is not None else None
    return Item(name=name, qty=q, amount=total, unit_price=unit)


def fill_app_payment(text: str, r: ReceiptResult) -> None:
    """Coupang app payment-history screen: one item named by the transaction memo."""
    r.merchant.name = DEFAULT_MERCHANT
    r.totals.total = first_int(
        text, r"쿠팡\(쿠페이\)\s*-?([0-9,]+)원"
    ) or first_int(text, r"(-?[0-9,]+)원")
    r.payment.card_brand = first_non_null(
        lambda: extract(text, r"(쿠페이)"),
        lambda: extract(text, r"(쿠팡페이)"),
    )
    r.payment.type = "간편결제"
    r.meta.sale_date = extract(text, _DATE_RE)
    r.meta.sale_time = extract(text, _TIME_RE)
    r.meta.receipt_no = extract(text, _ORDER_NO_RE, 2)

    memo = first_non_null(
        lambda: extract(text, r"거래메모\s*([가-힣A-Za-z0-9 :/,.]{2,30})"),
        lambda: extract(text, r"([가-힣A-Za-z0-9]+ ?(절단미역|쌀강정|세제|쿠키|강정|미역))"),
    )
    r.items = [single_item(memo or DEFAULT_APP_ITEM, 1, r.totals.total)]


class CoupangReceiptParser(BaseReceiptParser):
    """
    Coupang payments in two shapes: the app payment-history screen
    (``쿠팡(쿠페이)`` + ``거래메모``) and the card-receipt screen with
    payment / purchase / shop sections.
    """

    type_key = "coupang"
    template = "COUPANG_CARD"

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        if is_coupang_app(text):
            r.extra["template"] = "COUPANG_APP"
            fill_app_payment(text, r)
        else:
            self._fill_card(text, r)

    def _fill_card(self, text: str, r: ReceiptResult) -> None:
        seller = _clean_field(
            extract_dot(text, r"판매자상호\s*(.*?)\s*(?:판매자\s*사업자등록번호|판매자주소|\Z)")
        )
        r.merchant.name = first_non_null(
            seller,
            lambda: extract(text, r"(쿠팡\(주\)|쿠팡주식회사|쿠팡)"),
            DEFAULT_MERCHANT,
        )
        r.merchant.biz_no = extract(text, r"판매자\s*사업자등록번호\s*[:：]?\s*([0-9]{3}-?[0-9]{2}-?[0-9]{5})")

        card_kind = _clean_field(
            extract_dot(text, r"카드종류\s*([가-힣A-Za-z0-9 ]*?카드)\s*(?:거래종류|할부개월|카드번호|거래일시|승인번호|\Z)")
        )
        brand = first_non_null(
            card_kind,
            lambda: extract(text, r"(IBK비씨카드|IBK\s*비씨카드|BC카드|비씨카드|BC)"),
            lambda: extract(text, r"(농협|하나|국민|신한|롯데|현대|NH|KB)"),
        )
        r.payment.card_brand = normalize_card_brand(brand)
        r.payment.card_masked = first_non_null(
            lambda: extract(text, r"(\d{4}\*+\d{2,6}\*?\d{0,6})"),
            lambda: extract(text, r"(\d{4}\*{4,}\d{3,4}\*?)"),
        )

        trade = _clean_field(
            extract_dot(text, r"거래종류\s*([가-힣A-Za-z0-9 ]{2,20}?)\s*(?:할부개월|카드번호|거래일시|승인번호|\n|\Z)")
        )
        r.payment.type = first_non_null(
            trade,
            lambda: extract(text, r"(신용거래|현금거래|일시불|할부)"),
            "신용거래",
        )
        r.payment.installment = extract(text, r"할부개월\s*[:：]?\s*([가-힣0-9]+)")

        r.meta.receipt_no = extract(text, _ORDER_NO_RE, 2)
        r.approval.approval_no = extract(text, r"(승인\s*번호)\s*[:：]?\s*([0-9]{6,12})", 2)
        r.meta.sale_date = extract(text, _DATE_RE)
        r.meta.sale_time = extract(text, _TIME_RE)

        r.totals.taxable = first_int(text, r"(?<!비)과세금액[^0-9\n]*([0-9,]+)")
        r.totals.vat = first_int(text, r"부가세[^0-9\n]*([0-9,]+)")
        r.totals.tax_free = first_int(text, r"비과세금액[^0-9\n]*([0-9,]+)")
        if r.totals.taxable is not None and "부가세" not in text:
            r.totals.taxable = None

        r.totals.total = self._card_total(text, r)
        r.payment.approval_amt = str(r.totals.total) if r.totals.total is not None else None
        r.items = self._card_items(text, r.totals.total)

    @staticmethod
    def _card_total(text: str, r: ReceiptResult) -> Optional[int]:
        """쿠팡(쿠페이) amount > 합계금액 > 총액/결제금액 > tax-free > taxable + vat."""
        coupay = first_int(text, r"쿠팡\(쿠페이\)\s*-?\s*([0-9]{1,3}(?:,[0-9]{3})*)")
        if coupay:
            return coupay
        labeled = first_int(text, r"합계금액[^0-9]*([0-9]{1,3}(?:,[0-9]{3})+)")
        if labeled is None:
            labeled = first_int(text, r"(총액|결제금액)[^0-9]*([0-9]{1,3}(?:,[0-9]{3})+)")
        if labeled:
            return labeled
        if r.totals.tax_free:
            return r.totals.tax_free
        if r.totals.taxable is not None and r.totals.vat is not None:
            return r.totals.taxable + r.totals.vat
        return None

    def _card_items(self, text: str, total: Optional[int]) -> List[Item]:
        product = _clean_product_name(
            extract_dot(text, r"상품명\s*(.*?)\s*(?:과세금액|비과세금액|부가세|합계금액|이용상점정보|\Z)")
        )
        if product:
            return [single_item(product, quantity_hint(product), total)]
        return self._legacy_items(text, total)

    @staticmethod
    def _legacy_items(text: str, total: Optional[int]) -> List[Item]:
        """Blocks opened by a 상품명 line and closed by an amount label."""
        lines = []
        for raw in re.split(r"\n|\s{3,}", text):
            line = re.sub(r"[^가-힣A-Za-z0-9,./()\-원 ]", "", raw).strip()
            if line:
                lines.append(line)

        blocks: List[List[str]] = []
        cur: Optional[List[str]] = None
        for line in lines:
            if "상품명" in line:
                if cur:
                    blocks.append(cur)
                cur = []
            elif _AMOUNT_LABELS_RE.search(line):
                if cur:
                    blocks.append(cur)
                cur = None
            elif cur is not None:
                cur.append(line)
        if cur:
            blocks.append(cur)

        items: List[Item] = []
        for block in blocks:
            joined = re.sub(r"\s{2,}", " ", " ".join(block))
            joined = re.sub(r"(쿠팡\(쿠페이\)|저장|확인|구매정보|이용상점정보).*", "", joined).strip()
            if not joined:
                continue
            name = _LEGACY_NOISE_RE.sub("", joined)
            name = re.sub(r"주문\s*번호\s*[0-9]{6,}", "", name)
            name = re.sub(r"\b[0-9]{9,}\b", "", name)
            name = re.sub(r"\s{2,}", " ", name).strip()
            name = re.sub(r"[,.:]+$", "", name).strip()
            name = re.sub(r"[^가-힣A-Za-z0-9,()\-\s]", "", name).strip()
            items.append(single_item(name, quantity_hint(joined), total))

        if not items:
            items.append(single_item(DEFAULT_CARD_ITEM, 1, total))
        return items
