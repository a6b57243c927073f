from __future__ import annotations

import re
from typing import List, Optional

from receiptparse.extract.document import Document
from receiptparse.extract.model import ReceiptResult
from receiptparse.extract.normalizers import normalize_card_brand
from receiptparse.extract.primitives import contains_any, extract, extract_dot, first_int, first_non_null
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.parsers.marketplace.common import DATE_RE, clean_field, single_item
from receiptparse.utils.amount_correction import to_int
from receiptparse.utils.text_normalizer import normalize_text

SALES_SLIP_EN = "SALES_SLIP_EN"
KOREAN_LIGHT = "KOREAN_LIGHT"
DEFAULT_MERCHANT = "Unknown"
DEFAULT_PRODUCT = "상품"

# label, optional colon, value on the same line or the next one
_NEXT = r"\s*[:：]?\s*(?:\n\s*)?"
_MONEY = r"([0-9]{1,3}(?:,[0-9]{3})+)"
_BIZ_NO = r"([0-9]{3}-[0-9]{2}-[0-9]{5})"
_SLIP_TIME = r"([0-2]?\d:[0-5]\d:[0-5]\d\s*(?:AM|PM)?)"

NOISE_LABELS = (
    "카드종류", "유효기간", "거래일자", "거래종류", "거래유형", "승인번호", "카드번호", "주문번호", "금액", "부가세",
    "봉사료", "합계", "판매자정보", "상호", "사업자등록번호", "대표자", "대표자명", "전화번호", "과세유형",
    "사업장주소", "업체명", "가맹점번호", "가맹점주소", "문의 연락처", "할부구분",
)
_NOISE_VALUES = ("신용구매", "신용거래", "일시불")
_PRODUCT_TAIL_RE = re.compile(
    r"(과세금액|비과세금액|부가세|합계금액|합계|거래금액|판매자정보|업체명|대표자|사업자등록번호|가맹점번호"
    r"|가맹점주소|문의\s*연락처|할부구분).*"
)
_PAYMENT_NOISE_RE = re.compile(r"(Auction\s*전자지불|Gmarket전자지불|지마켓전자지불)$")
_MONEY_ONLY_RE = re.compile(r"^\d{1,3}(?:,\d{3})+\s*원?$|^\d{1,8}\s*원$")
_STANDALONE_NUMBER_RE = re.compile(r"^\s*(\d{1,3}(?:,\d{3})+|\d{1,8})\s*$", re.MULTILINE)


def detect_style(text: str) -> str:
    has_slip = contains_any(text, "Sales Slip", "판매자정보", "봉사료", "유효기간")
    has_seller = contains_any(text, "판매자정보", "상호", "사업자등록번호", "과세유형", "사업장주소")
    has_amounts = contains_any(text, "금액", "부가세", "합계")
    return SALES_SLIP_EN if has_slip and (has_seller or has_amounts) else KOREAN_LIGHT


def _is_noise_product_line(line: str) -> bool:
    if line in _NOISE_VALUES:
        return True
    return any(line == n or line.startswith(n + " ") or line.startswith(n + ":") for n in NOISE_LABELS)


def pick_product_line(block: Optional[str]) -> Optional[str]:
    """Longest line of the block that is neither a label nor a bare amount."""
    if block is None:
        return None
    cands: List[str] = []
    for raw in block.split("\n"):
        line = clean_field(raw)
        if not line or _is_noise_product_line(line) or _MONEY_ONLY_RE.match(line):
            continue
        cands.append(line)
    if not cands:
        return clean_field(block)
    return max(cands, key=len)


def clean_product_name(s: Optional[str]) -> Optional[str]:
    s = clean_field(s)
    if not s:
        return None
    s = _PRODUCT_TAIL_RE.sub("", s).strip()
    s = re.sub(r"[,.:/\-]+$", "", s).strip()
    return s or None


def mask_card(s: Optional[str]) -> Optional[str]:
    s = clean_field(s)
    if not s:
        return None
    s = re.sub(r"(거래종류|거래유형|유효기간|승인번호|거래일자|주문번호|상품명).*", "", s).strip()
    s = re.sub(r"[^0-9*Xx\-]", "*", s)
    s = re.sub(r"\*{3,}", "******", s)
    return re.sub(r"-{2,}", "-", s.replace(" ", "")) or None


def date_near_label(text: str, label: str) -> Optional[str]:
    idx = text.find(label)
    if idx < 0:
        return None
    return extract(text[idx:idx + 160], DATE_RE)


def slip_amounts(text: str) -> Optional[tuple[Optional[int], Optional[int], Optional[int], Optional[int]]]:
    """
    (amount, vat, service charge, total) from the standalone number lines
    after the first amount label. Four or more values read as
    amount/vat/svc/total unless they fail to add up (within 1), in which case
    the last three are amount/vat/total.
    """
    idx = -1
    for label in ("금액", "부가세", "합계"):
        idx = text.find(label)
        if idx >= 0:
            break
    if idx < 0:
        return None
    nums = [v for v in (to_int(m.group(1)) for m in _STANDALONE_NUMBER_RE.finditer(text[idx:])) if v is not None]
    if len(nums) < 2:
        return None

    amount, vat, svc, total = None, None, None, None
    if len(nums) >= 4:
        amount, vat, svc, total = nums[-4:]
        if abs(amount + vat + (svc or 0) - total) > 1:
            amount, vat, total = nums[-3:]
            svc = None
    elif len(nums) == 3:
        amount, vat, total = nums
    else:
        amount, vat = nums
    if total is None and amount is not None and vat is not None:
        total = amount + vat
    return amount, vat, svc, total


class GmarketReceiptParser(BaseReceiptParser):
    """
    G마켓 / 옥션 card receipts in two looks: the light Korean confirmation
    (업체명, 가맹점주소, comma amounts next to their labels) and the dark
    "Sales Slip" with a 판매자정보 section and a column of bare amounts.
    """

    type_key = "headoffice:gmarket"
    template = "GMARKET"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        style = detect_style(text)
        r.extra["template"] = style
        if style == SALES_SLIP_EN:
            self._fill_sales_slip(text, r)
        else:
            self._fill_korean_light(text, r)
        if r.totals.total is not None:
            r.payment.approval_amt = str(r.totals.total)

    @staticmethod
    def _fill_card_fields(text: str, r: ReceiptResult) -> None:
        r.payment.card_brand = normalize_card_brand(clean_field(extract(text, r"카드종류" + _NEXT + r"([^\n]{1,30})")))
        r.payment.card_masked = mask_card(extract(text, r"카드번호" + _NEXT + r"([^\n]{6,50})"))
        r.approval.approval_no = extract(text, r"승인번호" + _NEXT + r"([0-9]{6,12})")

    def _fill_korean_light(self, text: str, r: ReceiptResult) -> None:
        self._fill_card_fields(text, r)
        r.payment.type = clean_field(extract(text, r"거래종류" + _NEXT + r"([^\n]{1,30})"))
        r.payment.installment = clean_field(extract(text, r"할부구분" + _NEXT + r"([^\n]{1,30})"))
        r.meta.sale_date = date_near_label(text, "거래일자")
        r.meta.receipt_no = first_non_null(
            lambda: extract(text, r"주문번호" + _NEXT + r"([0-9]{6,})"),
            lambda: extract(text, r"배송비결제번호" + _NEXT + r"([0-9]{6,})"),
        )

        merchant = clean_field(
            extract_dot(text, r"업체명" + _NEXT + r"(.*?)\s*(?:대표자|사업자등록번호|가맹점번호|가맹점주소|문의\s*연락처|\Z)")
        )
        if merchant:
            merchant = _PAYMENT_NOISE_RE.sub("", merchant).strip()
        r.merchant.name = first_non_null(merchant, DEFAULT_MERCHANT)
        r.merchant.biz_no = first_non_null(
            lambda: extract(text, r"사업자등록번호" + _NEXT + _BIZ_NO),
            lambda: extract(text, _BIZ_NO),
        )
        r.merchant.address = clean_field(
            extract_dot(text, r"가맹점주소" + _NEXT + r"(.*?)\s*(?:문의\s*연락처|본\s*확인서|본\s*영수증|\Z)")
        )
        r.merchant.phone = extract(text, r"문의\s*연락처" + _NEXT + r"([0-9\-]{8,20})")

        block = extract_dot(
            text, r"상품명" + _NEXT + r"(.*?)\s*(?:업체명|대표자|사업자등록번호|가맹점번호|가맹점주소|문의\s*연락처|\Z)"
        )
        product = clean_product_name(pick_product_line(block))

        r.totals.taxable = first_int(text, r"(?<!비)과세금액" + _NEXT + _MONEY)
        r.totals.vat = first_int(text, r"부가세" + _NEXT + _MONEY)
        r.totals.total = first_int(text, r"합계(?:금액)?" + _NEXT + _MONEY)
        if r.totals.total is None:
            r.totals.total = first_int(text, r"거래금액" + _NEXT + _MONEY)
        r.totals.tax_free = first_int(text, r"비과세금액" + _NEXT + _MONEY)
        r.items = single_item(product, r.totals.total, 1, DEFAULT_PRODUCT)

    def _fill_sales_slip(self, text: str, r: ReceiptResult) -> None:
        self._fill_card_fields(text, r)
        r.meta.receipt_no = clean_field(extract(text, r"주문번호" + _NEXT + r"([0-9/\-]{8,})"))

        dt = extract(text, r"거래일자" + _NEXT + r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2}\s+[0-2]?\d:[0-5]\d:[0-5]\d\s*(?:AM|PM)?)")
        if dt:
            r.meta.sale_date = extract(dt, DATE_RE)
            r.meta.sale_time = clean_field(extract(dt, _SLIP_TIME))
        else:
            r.meta.sale_date = date_near_label(text, "거래일자")
            r.meta.sale_time = extract(text, _SLIP_TIME)
        r.payment.type = clean_field(extract(text, r"(거래유형|거래종류)" + _NEXT + r"([^\n]{1,30})", 2))

        block = extract_dot(text, r"상품명" + _NEXT + r"(.*?)\s*(?:금액|부가세|봉사료|합계|판매자정보|\Z)")
        product = clean_product_name(pick_product_line(block))

        idx = text.find("판매자정보")
        seller = text[idx:idx + 2000] if idx >= 0 else ""
        merchant = clean_field(
            extract_dot(seller, r"상호" + _NEXT + r"(.*?)\s*(?:사업자등록번호|대표자명|전화번호|과세유형|사업장주소|\Z)")
        )
        r.merchant.name = first_non_null(merchant, DEFAULT_MERCHANT)
        r.merchant.biz_no = first_non_null(
            lambda: extract(seller, r"사업자등록번호" + _NEXT + _BIZ_NO),
            lambda: extract(seller, _BIZ_NO),
        )
        r.merchant.phone = extract(seller, r"전화번호" + _NEXT + r"([0-9\-]{8,20})")
        r.merchant.address = clean_field(
            extract_dot(seller, r"사업장주소" + _NEXT + r"(.*?)\s*(?:본\s*영수증|본\s*확인서|\Z)")
        )

        amounts = slip_amounts(text)
        if amounts is not None:
            amount, vat, svc, total = amounts
            r.totals.taxable, r.totals.vat, r.totals.total = amount, vat, total
            if svc:
                r.extra["serviceCharge"] = svc
        r.items = single_item(product, r.totals.total, 1, DEFAULT_PRODUCT)
