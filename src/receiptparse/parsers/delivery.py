from __future__ import annotations

import re
from typing import Dict, List, Optional

from receiptparse.extract.document import Document
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.extract.normalizers import normalize_date
from receiptparse.extract.primitives import extract, first_int, first_non_null, slice_block
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.amount_correction import to_int
from receiptparse.utils.text_normalizer import normalize_text

BRANDS = (
    "배민", "요기요", "쿠팡이츠", "배달의민족", "파리바게뜨", "파리바게트", "던킨", "스타벅스",
    "맥도날드", "롯데리아", "도미노피자", "버거킹", "BHC", "BBQ", "교촌치킨",
)

TIP_ITEM = "배달팁"
DISCOUNT_ITEM = "할인"

_MENU_NAME_RE = re.compile(r"^[가-힣A-Za-z0-9\s()/.\-]+$")
_SKIP_LINE_RE = re.compile(r"(무료배달|할인|아낄 수 있었어요|주문상세|결제금액)")
_DATE_WORD_RE = re.compile(r"(\d{1,2}월|\d{1,2}일|월요일|화요일|수요일|목요일|금요일|토요일|일요일)")
_PLACE_WORD_RE = re.compile(r"(층|호|도로명|지하|지상|건물|식당|요양원|아파트|호점|마트|점)")
_BULLET_RE = re.compile(r"^[•·・>▶\-*]+\s*")
_BULLETS_RE = re.compile(r"[•·・▶\-*]+")

_PRICE_LINE_RE = re.compile(r"가격[:：]?\s*\(?([0-9,]+)원\)?")
_PRICE_QTY_RE = re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+)원\s*([0-9]{1,2})개")
_NAME_QTY_RE = re.compile(r"^([가-힣A-Za-z0-9\s()/.\-]+?)\s*([0-9]{1,2})\s*개$")

_ADDRESS_LABELS = r"(배달 주소|배달주소|배송지|주소)"


def _clean_line(line: Optional[str]) -> str:
    return _BULLET_RE.sub("", line or "").strip()


def _is_menu_name(line: str) -> bool:
    if not _MENU_NAME_RE.match(line) or "가격" in line:
        return False
    if "주문상세" in line or "결제" in line:
        return False
    return not (_DATE_WORD_RE.search(line) or _PLACE_WORD_RE.search(line))


def _add_priced(items: List[Item], name: str, price: Optional[int]) -> None:
    if any(it.name == name and it.unit_price == price for it in items):
        return
    items.append(Item(name=name, unit_price=price, qty=1, amount=price))


def parse_menu_block(block: Optional[str]) -> List[Item]:
    """
    Menu lines of a delivery order.

    ``가격: N원`` pairs with the last menu-name line (or the nearest one above
    it), ``N원 M개`` prices the previous item, and ``name M개`` sets a
    quantity. Duplicates by name keep the higher unit price.
    """
    items: List[Item] = []
    if not block:
        return items
    lines = re.split(r"\n+", block)
    last_name: Optional[str] = None

    for i, raw in enumerate(lines):
        line = _clean_line(raw)
        if not line:
            continue
        if _SKIP_LINE_RE.search(line) or _DATE_WORD_RE.search(line) or _PLACE_WORD_RE.search(line):
            continue
        if _MENU_NAME_RE.match(line) and "가격" not in line:
            last_name = line

        m = _PRICE_LINE_RE.search(line)
        if m:
            price = to_int(m.group(1))
            if last_name is not None:
                _add_priced(items, last_name, price)
                last_name = None
            else:
                for k in range(i - 1, max(-1, i - 6), -1):
                    prev = _clean_line(lines[k])
                    if prev and _is_menu_name(prev):
                        _add_priced(items, prev, price)
                        break
            continue

        m = _PRICE_QTY_RE.search(line)
        if m:
            price, qty = to_int(m.group(1)), to_int(m.group(2))
            if items and items[-1].unit_price is None and price is not None and qty is not None:
                last = items[-1]
                last.unit_price, last.qty, last.amount = price, qty, price * qty
            continue

        m = _NAME_QTY_RE.match(line)
        if m:
            name = m.group(1).strip()
            qty = to_int(m.group(2))
            existing = next((it for it in items if it.name and name in it.name), None)
            if existing is not None:
                existing.qty = qty
                if existing.unit_price is not None and qty is not None:
                    existing.amount = existing.unit_price * qty
            else:
                items.append(Item(name=name, qty=qty))
            if last_name == line:
                last_name = None

    unique: Dict[str, Item] = {}
    for it in items:
        prev = unique.get(it.name or "")
        if prev is None or (it.unit_price is not None and (prev.unit_price is None or it.unit_price > prev.unit_price)):
            unique[it.name or ""] = it
    return list(unique.values())


def _strip_label(block: Optional[str], labels: str) -> Optional[str]:
    if block is None:
        return None
    s = re.sub(rf"^{labels}\s*", "", block).strip()
    return s or None


class DeliveryReceiptParser(BaseReceiptParser):
    """Delivery-app order confirmations (배달의민족, 요기요, 쿠팡이츠, ...)."""

    type_key = "delivery"
    template = "DELIVERY"

    def normalize(self, raw: str) -> str:
        return normalize_text(raw, break_labels=False)

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        r.merchant.name = first_non_null(
            lambda: extract(text, "(%s)" % "|".join(BRANDS)),
            lambda: extract(text, r"(가게명|상호명)\s*[:：]?\s*([가-힣A-Za-z0-9 ]+)", 2),
        )
        r.meta.sale_date = extract(text, r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})")
        r.meta.sale_time = extract(text, r"([0-2]?\d:[0-5]\d)")

        menu = slice_block(text, r"(주문 메뉴|주문메뉴|주문 내역|주문내역)", r"(가게 사장님께|고객센터|ARS|카카오페이|전화번호)")
        rider = slice_block(text, r"(라이더님께|라이더에게)", r"(가게 사장님께|고객센터|ARS|카카오페이)")
        if rider:
            if menu is None:
                menu = rider
            elif rider not in menu:
                menu = menu + "\n" + rider
        items = parse_menu_block(menu if menu is not None else text)

        r.totals.subtotal = first_int(text, r"(메뉴금액|주문금액|상품금액)\s*[:：]?\s*([0-9,]+)")
        r.totals.cash = first_int(text, r"(배달팁|라이더팁)\s*[:：]?\s*([0-9,]+)")
        r.totals.discount = first_int(
            text, r"(총 할인받은 금액|할인금액|배달팁 할인|쿠폰할인|할인)\s*[:：]?\s*[+\-]?([0-9,]+)"
        )
        r.totals.total = first_int(text, r"(총결제금액|결제금액|합계금액)\s*[:：]?\s*([0-9,]+)")
        if r.totals.total is None and r.totals.subtotal is not None:
            r.totals.total = r.totals.subtotal - (r.totals.discount or 0) + (r.totals.cash or 0)

        r.payment.card_brand = extract(text, r"(카카오페이|토스페이|배민페이|네이버페이)")
        r.payment.type = first_non_null(
            r.payment.card_brand,
            lambda: extract(text, r"(신용카드|현금|체크카드|카드결제|현금결제)"),
        )

        self._fill_address(text, r)
        self._fill_requests(text, r)
        self._fill_payment_block(text, r)
        self._fill_dates(text, r)

        if r.totals.cash is not None:
            items.append(Item(name=TIP_ITEM, unit_price=r.totals.cash, qty=1, amount=r.totals.cash))
        if r.totals.discount is not None:
            items.append(Item(name=DISCOUNT_ITEM, unit_price=r.totals.discount, qty=1, amount=r.totals.discount))
        r.items = items

    @staticmethod
    def _fill_address(text: str, r: ReceiptResult) -> None:
        block = _strip_label(slice_block(text, _ADDRESS_LABELS, r"(결제|전화번호|고객센터)"), _ADDRESS_LABELS)
        if block is None:
            return
        road = extract(block, r"\(도로명\)\s*([가-힣A-Za-z0-9 \-]+)")
        lot = extract(block, r"^(?!.*도로명)([가-힣A-Za-z0-9 \-]+)")
        if road:
            r.extra["roadAddress"] = road
        if lot and (road is None or road not in lot):
            r.extra["lotAddress"] = lot
        detail = extract(block, r"(지하|지상|[0-9]+층[가-힣]*)")
        if detail:
            r.extra["addressDetail"] = detail
        r.extra["deliveryAddress"] = block

    @staticmethod
    def _fill_requests(text: str, r: ReceiptResult) -> None:
        rider = slice_block(text, r"(라이더님께|라이더에게|배달 요청사항)", r"(가게 사장님께|고객센터)")
        rider = _strip_label(rider, r"(라이더님께|라이더에게|배달 요청사항)")
        if rider:
            r.extra["riderRequest"] = _BULLETS_RE.sub("", rider).strip()
        store = slice_block(text, r"(가게 사장님께|가게 사장에게|가게에 전달)", r"(라이더님께|고객센터)")
        store = _strip_label(store, r"(가게 사장님께|가게 사장에게|가게에 전달)")
        if store:
            r.extra["storeRequest"] = _BULLETS_RE.sub("", store).strip()

    @staticmethod
    def _fill_payment_block(text: str, r: ReceiptResult) -> None:
        block = slice_block(
            text,
            r"(결제 정보|결제정보|결제금액|카카오페이|배민페이|쿠팡이츠페이)",
            r"(배달 주소|배달주소|배송지|주소|고객센터)",
        )
        if block is None:
            return
        method = extract(block, r"(카카오페이|토스페이|배민페이|네이버페이|신용카드|체크카드|현금)")
        amount = extract(block, r"결제금액\s*[:：]?\s*([0-9,]+)원?")
        discount = extract(block, r"(할인금액|총 할인받은 금액)\s*[:：]?\s*[+\-]?([0-9,]+)원?", 2)
        if method:
            r.extra["payMethod"] = method
        if amount:
            r.extra["payAmount"] = amount
        if discount:
            r.extra["discountAmount"] = discount

    @staticmethod
    def _fill_dates(text: str, r: ReceiptResult) -> None:
        block = slice_block(
            text,
            r"(주문일자|결제일|배달일자|배달예정|배송일|픽업일|출고일|수령일|[0-9]{1,2}월\s*[0-9]{1,2}일)",
            r"(결제정보|고객센터|전화번호)",
        )
        if block is None:
            return
        order = extract(block, r"(주문일자|주문일)\s*[:：]?\s*([0-9./\-년월일 :]+)", 2)
        pay = extract(block, r"(결제일자|결제일|결제시간)\s*[:：]?\s*([0-9./\-년월일 :]+)", 2)
        delivery = extract(block, r"(배달일자|배달예정|배송일|픽업일|출고일|수령일)\s*[:：]?\s*([0-9./\-년월일 :]+)", 2)
        if order is None:
            order = extract(text, r"([0-9]{1,2}월\s*[0-9]{1,2}일)")
        if order and "20" not in order:
            order = normalize_date(order)
        if order:
            r.extra["orderDate"] = order
        if pay:
            r.extra["payDate"] = pay
        if delivery:
            r.extra["deliveryDate"] = delivery
