from __future__ import annotations

import logging
import re
from typing import List, Optional

from receiptparse.extract.document import Document
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand, normalize_date
from receiptparse.extract.primitives import contains_any, extract, extract_dot, first_int, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.parsers.coupang import fill_app_payment, quantity_hint
from receiptparse.parsers.marketplace.common import DATE_RE, clean_field, single_item
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import normalize_text

log = logging.getLogger("receiptparse.parser.headoffice")

COUPANG_APP = "COUPANG_APP"
GRAY_BILINGUAL_SLIP = "GRAY_BILINGUAL_SLIP"
BLUE_SALES_SLIP = "BLUE_SALES_SLIP"
LIGHT_SALES_SLIP = "LIGHT_SALES_SLIP"

DEFAULT_MERCHANT = "가맹점"
DEFAULT_PRODUCT = "품목"
DEFAULT_TRADE_TYPE = "신용거래"

_MONEY = r"([0-9]{1,3}(?:,[0-9]{3})*)"
_BRAND_WORDS = r"(비씨|BC|BC카드|비씨카드|국민|신한|현대|롯데|농협|하나|KB|NH)"
_MASKED_LOOSE = r"([0-9]{4}\*+\d{2,6}\*?\d{0,6})"
_PRODUCT_TAIL_RE = re.compile(
    r"(과세금액|비과세금액|부가세|합계금액|합계|금액|판매자정보|판매자\s*정보|업체명|상호|AMOUNT|TAXES|TOTAL).*"
)


def detect_template(text: str) -> str:
    """Coupang app screen, then the bilingual gray slip, then the blue Sales Slip; light slip otherwise."""
    if "쿠페이" in text and "거래메모" in text and not contains_any(text, "카드영수증", "구매정보"):
        return COUPANG_APP

    has_seq = "SEQ" in text
    has_order_en = "ORDER NO" in text
    has_approval_en = "APPROVAL NO" in text
    has_amounts_en = contains_any(text, "AMOUNT", "TAXES", "TOTAL")
    has_shop = contains_any(text, "SHOP NAME", "SELLER ADDRESS", "SHOP NO")
    if (has_seq and has_approval_en and has_amounts_en) or (has_order_en and has_approval_en and has_shop):
        return GRAY_BILINGUAL_SLIP

    has_title = contains_any(text, "Sales Slip", "Credit Card")
    has_seller = contains_any(text, "판매자정보", "판매자 정보")
    has_fields = contains_any(text, "봉사료", "과세유형", "사업장주소", "유효기간")
    if has_seller or (has_title and has_fields):
        return BLUE_SALES_SLIP
    return LIGHT_SALES_SLIP


def spaced_money_after(text: str, label: str) -> Optional[int]:
    """
    Amount after ``label`` where OCR split the digits ("12 000", "1 2,000");
    every digit up to the next non-money character is joined.
    """
    raw = extract(text, rf"(?i)(?:{label})[^0-9\n]{{0,20}}([0-9][0-9 ,]{{0,30}})")
    if raw is None:
        return None
    digits = re.sub(r"[^0-9]", "", raw)
    return int(digits) if digits else None


def clean_product_name(s: Optional[str]) -> Optional[str]:
    s = clean_field(s)
    if not s:
        return None
    s = _PRODUCT_TAIL_RE.sub("", s).strip()
    s = re.sub(r"[,.:/\-]+$", "", s).strip()
    return s or None


def _masked(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    return re.sub(r"--+", "-", re.sub(r"\s+", "", s)) or None


def items_by_product_label(text: str, total: Optional[int], end_labels: str) -> List[Item]:
    product = clean_product_name(extract_dot(text, rf"상품명\s*[:：]?\s*(.*?)\s*(?:{end_labels}|\Z)"))
    if not product:
        return single_item(DEFAULT_PRODUCT, total, 1)
    return single_item(product, total, quantity_hint(product), DEFAULT_PRODUCT)


class ElevenPostReceiptParser(BaseReceiptParser):
    """11번가 receipts; four slip looks share one parser, picked by :func:`detect_template`."""

    type_key = "headoffice:11post"
    template = "11POST"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        template = detect_template(text)
        r.extra["template"] = template
        log_event(log, "parser.template", "11post template picked", level=logging.DEBUG, template=template)
        if template == COUPANG_APP:
            fill_app_payment(text, r)
        elif template == GRAY_BILINGUAL_SLIP:
            self._fill_gray(text, r)
        elif template == BLUE_SALES_SLIP:
            self._fill_blue(text, r)
        else:
            self._fill_light(text, r)
        if r.totals.total is not None and r.payment.approval_amt is None:
            r.payment.approval_amt = str(r.totals.total)

    @staticmethod
    def _fill_gray(text: str, r: ReceiptResult) -> None:
        r.meta.receipt_no = extract(text, r"ORDER\s*NO\.?\s*[:：]?\s*([0-9]{8,30})")
        r.payment.card_brand = normalize_card_brand(
            clean_field(extract(text, r"CARD\s*TYPE\s*[:：]?\s*([가-힣A-Za-z0-9 ]+)"))
        )
        r.payment.card_masked = _masked(
            first_non_null(
                lambda: extract(text, r"CARD\s*NO\.?\s*[:：]?\s*([0-9\-*]{7,25})"),
                lambda: extract(text, r"([0-9]{6}\*{3,}[0-9]{3,4})"),
            )
        )
        r.meta.sale_date = normalize_date(extract(text, r"TRANS\s*DATE\s*[:：]?\s*(20\d{2}[-./]\d{1,2}[-./]\d{1,2})"))
        r.payment.type = first_non_null(
            clean_field(extract(text, r"TRANS\s*CLASS\s*[:：]?\s*([가-힣A-Za-z0-9 ]+)")),
            DEFAULT_TRADE_TYPE,
        )
        r.payment.installment = clean_field(extract(text, r"INSTALLMENT\s*[:：]?\s*([가-힣A-Za-z0-9 ]+)"))

        desc = clean_product_name(
            extract_dot(text, r"DESCRIPTION\s*[:：]?\s*(.*?)\s*(?:거래유형|TRANS\s*TYPE|통신판매업자|SHOP\s*NAME|AMOUNT|TAXES|TOTAL|\Z)")
        )
        shop = clean_field(
            extract_dot(text, r"SHOP\s*NAME\s*[:：]?\s*(.*?)\s*(?:대표자|MASTER|사업자등록번호|SHOP\s*NO|SELLER\s*PHONE|SELLER\s*ADDRESS|\Z)")
        )
        r.merchant.name = first_non_null(shop, DEFAULT_MERCHANT)
        r.approval.approval_no = extract(text, r"APPROVAL\s*NO\.?\s*[:：]?\s*([0-9]{6,12})")
        if r.approval.approval_no is None:
            r.approval.approval_no = extract(text, r"승인번호\s*[:：]?\s*([0-9]{6,12})")

        amount = spaced_money_after(text, "AMOUNT")
        taxes = spaced_money_after(text, "TAXES")
        total = spaced_money_after(text, "TOTAL")
        if amount is None:
            amount = spaced_money_after(text, "금액")
        if taxes is None:
            taxes = spaced_money_after(text, "세금|부가세")
        if total is None:
            total = spaced_money_after(text, "합계")
        if total is None and amount is not None:
            total = amount + (taxes or 0)
        r.totals.taxable, r.totals.vat, r.totals.total = amount, taxes, total
        r.items = single_item(desc, total, 1, DEFAULT_PRODUCT)

    @staticmethod
    def _fill_blue(text: str, r: ReceiptResult) -> None:
        r.meta.receipt_no = extract(text, r"주문\s*번호\s*[:：]?\s*([0-9]{8,})")
        brand = first_non_null(
            lambda: extract_dot(text, r"카드종류\s*[:：]?\s*([가-힣A-Za-z0-9 \n]+?)\s*(?:유효기간|카드번호|승인번호|거래일시|\Z)"),
            lambda: extract(text, _BRAND_WORDS),
        )
        r.payment.card_brand = normalize_card_brand(clean_field(brand))
        r.payment.card_masked = _masked(
            first_non_null(
                lambda: extract(text, r"카드번호\s*[:：]?\s*([0-9]{4}[- ]?[0-9]{2}\*{2}[- ]?\*{4}[- ]?\*{4}[- ]?[0-9]{3,4})"),
                lambda: extract(text, _MASKED_LOOSE),
            )
        )
        r.approval.approval_no = extract(text, r"승인\s*번호\s*[:：]?\s*([0-9]{6,12})")

        dt = extract_dot(text, r"거래일시\s*[:：]?\s*([0-9]{4}[-./][0-9]{1,2}[-./][0-9]{1,2}\s+[0-9]{1,2}:[0-9]{2}:[0-9]{2}\s*(?:AM|PM)?)")
        source = dt or text
        r.meta.sale_date = extract(source, DATE_RE)
        r.meta.sale_time = extract(source, r"([0-2]?\d:[0-5]\d:[0-5]\d)")

        amount = first_int(text, r"(?<![과세])금액\s*[:：]?\s*" + _MONEY)
        vat = first_int(text, r"부가세\s*[:：]?\s*" + _MONEY)
        tip = first_int(text, r"봉사료\s*[:：]?\s*" + _MONEY)
        total = first_int(text, r"합계\s*[:：]?\s*" + _MONEY)
        if total is None and amount is not None:
            total = amount + (vat or 0) + (tip or 0)
        r.totals.total, r.totals.vat = total, vat
        if total is not None and vat is not None and total >= vat:
            r.totals.taxable = total - vat
        if tip:
            r.extra["serviceCharge"] = tip

        merchant = first_non_null(
            lambda: clean_field(extract_dot(
                text, r"판매자\s*정보.*?상호\s*[:：]?\s*(.*?)\s*(?:사업자등록번호|대표자명|과세유형|전화번호|사업장주소|\Z)"
            )),
            lambda: clean_field(extract_dot(
                text, r"상호\s*[:：]?\s*(.*?)\s*(?:사업자등록번호|대표자명|과세유형|전화번호|사업장주소|\Z)"
            )),
        )
        r.merchant.name = first_non_null(merchant, DEFAULT_MERCHANT)
        r.payment.type = first_non_null(
            lambda: clean_field(extract_dot(text, r"거래유형\s*[:：]?\s*(.*?)\s*(?:거래종류|일시불|\Z)")),
            lambda: clean_field(extract_dot(text, r"거래종류\s*[:：]?\s*(.*?)\s*(?:상품명|금액|\Z)")),
            DEFAULT_TRADE_TYPE,
        )
        r.items = items_by_product_label(
            text, total, r"금액|부가세|봉사료|합계|판매자\s*정보|상호|사업자등록번호"
        )

    @staticmethod
    def _fill_light(text: str, r: ReceiptResult) -> None:
        brand = first_non_null(
            lambda: clean_field(extract_dot(text, r"카드종류\s*[:：]?\s*(.*?)\s*(?:카드번호|거래종류|거래금액|\Z)")),
            lambda: extract(text, _BRAND_WORDS),
        )
        r.payment.card_brand = normalize_card_brand(brand)
        r.payment.card_masked = _masked(
            first_non_null(
                lambda: extract(text, r"카드번호\s*[:：]?\s*([0-9\-*]{7,25})"),
                lambda: extract(text, _MASKED_LOOSE),
            )
        )
        r.payment.type = first_non_null(
            clean_field(extract_dot(text, r"거래종류\s*[:：]?\s*(.*?)\s*(?:거래금액|거래일자|승인번호|\Z)")),
            DEFAULT_TRADE_TYPE,
        )
        r.meta.sale_date = first_non_null(
            lambda: extract(text, r"거래일자\s*[:：]?\s*(20\d{2}[-./]\d{1,2}[-./]\d{1,2})"),
            lambda: extract(text, DATE_RE),
        )
        r.approval.approval_no = extract(text, r"승인\s*번호\s*[:：]?\s*([0-9]{6,12})")
        r.meta.receipt_no = first_non_null(
            lambda: extract(text, r"주문번호\s*[:：]?\s*([0-9]{8,})"),
            lambda: extract(text, r"배[송숭]비결제번호\s*[:：]?\s*([0-9]{6,})"),
        )

        candidates = (
            first_int(text, r"합계(?!금액)\s*[:：]?\s*" + _MONEY),
            first_int(text, r"합계금액\s*[:：]?\s*" + _MONEY),
            first_int(text, r"거래금액\s*[:：]?\s*" + _MONEY),
        )
        r.totals.total = next((v for v in candidates if v is not None and v >= 0), None)
        r.totals.taxable = first_int(text, r"(?<!비)과세금액\s*[:：]?\s*" + _MONEY)
        r.totals.tax_free = first_int(text, r"비과세금액\s*[:：]?\s*" + _MONEY)
        r.totals.vat = first_int(text, r"부가세\s*[:：]?\s*" + _MONEY)

        r.merchant.name = first_non_null(
            lambda: clean_field(extract_dot(
                text, r"업체명\s*[:：]?\s*(.*?)\s*(?:대표자|사업자등록번호|가맹점번호|가맹점주소|문의연락처|\Z)"
            )),
            lambda: clean_field(extract_dot(text, r"판매자상호\s*[:：]?\s*(.*?)\s*(?:사업자등록번호|판매자주소|가맹점주소|\Z)")),
            DEFAULT_MERCHANT,
        )
        r.items = items_by_product_label(
            text,
            r.totals.total,
            r"과세금액|비과세금액|부가세|합계금액|합계|업체명|대표자|사업자등록번호|가맹점번호|가맹점주소|문의연락처",
        )
