from __future__ import annotations

import re
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

from receiptparse.extract.classifier import TAX_FREE_LABEL, VAT_LABEL
from receiptparse.extract.model import Item
from receiptparse.extract.vat_math import fill_item_amount
from receiptparse.utils.amount_correction import to_int


class ItemLayout(str, Enum):
    NUMBERED = "numbered"
    TWO_LINE = "two_line"
    INLINE = "inline"
    SPLIT = "split"


TAX_FREE_MARK = "#"

# Boilerplate that lands in the item area: notices, refund rules, table headers.
NOISE_NAME_RE = re.compile(
    r"(정부방침|교환|환불|영수증|지참|카드결제|가능|일부상품|제외|합계수량|수량/금액"
    r"|상품명|단가|수량|금액|합계|총액|부가세|과세|면세물품|결제|매출|POS|식품선도유지|구매액"
    r"|NO\.)"
)
_ADDRESS_TAIL_RE = re.compile(r"(시|구|동)\s*\d+번$")
_ALL_DIGITS_RE = re.compile(r"^[0-9,\s\-]+$")

_HEADER_RE = re.compile(r"(NO\.|상품명|단가|수량|금액)")
_BARCODE_RE = re.compile(r"^\d{8,14}$")
_INDEX_PREFIX_RE = re.compile(r"^(\d{1,3})\s+")
_NAME_START_RE = re.compile(r"^[가-힣A-Za-z(]")
_NEXT_ITEM_RE = re.compile(r"^(\d{1,3}\s+)?[가-힣A-Za-z(]")

_MONEY = r"(?:\d{1,3}(?:,\d{3})+|\d+)"
_PRICE_QTY_AMOUNT_RE = re.compile(rf"({_MONEY})\s+(\d{{1,2}})\s+({_MONEY})")
_PRICE_LINE_RE = re.compile(rf"^({_MONEY})\s+\d{{1,2}}\s+({_MONEY})(?:\s*#)?$")
_INLINE_RE = re.compile(rf"^(.*?)({_MONEY})\s+(\d{{1,2}})\s+({_MONEY})")
_NUMBERED_INLINE_RE = re.compile(rf"^\d{{1,3}}\s+[가-힣A-Za-z].*({_MONEY})\s+\d{{1,2}}\s+({_MONEY})")
_NAMED_INLINE_RE = re.compile(rf"^[가-힣A-Za-z].*({_MONEY})\s+(\d{{1,2}})\s+({_MONEY})")
_NUMBERED_HEADER_RE = re.compile(r"\bNO\.?\b.*상품명")
_NUMERIC_LINE_RE = re.compile(r"^[0-9,\-#* ]+$")
_NUM_TOKEN_RE = re.compile(r"\d{1,3}(?:,\d{3})+|\d+")


def tax_flag_for(text: str) -> str:
    return TAX_FREE_LABEL if TAX_FREE_MARK in (text or "") else VAT_LABEL


def is_noise_name(name: Optional[str]) -> bool:
    """True for names that are boilerplate, addresses or leaked barcodes rather than products."""
    if name is None:
        return True
    n = name.strip()
    if len(n) < 2:
        return True
    if _ALL_DIGITS_RE.match(n):
        return True
    if _ADDRESS_TAIL_RE.search(n):
        return True
    return bool(NOISE_NAME_RE.search(n))


def split_numbers(tokens: Iterable[str]) -> Tuple[Optional[int], Optional[int], Optional[int]]:
    """
    Classify numeric tokens by magnitude into ``(unit_price, qty, amount)``.

    A bare 1-2 digit token is the quantity (first one wins). Comma-grouped or
    3+ digit tokens are money: with two or more the largest is the amount and
    the first other one the unit price; a single money token is the amount.
    """
    qty: Optional[int] = None
    money: List[int] = []
    for raw in tokens:
        tok = raw.strip().rstrip("원#")
        if not tok:
            continue
        if re.fullmatch(r"\d{1,2}", tok):
            if qty is None and int(tok) > 0:
                qty = int(tok)
            continue
        v = to_int(tok)
        if v is not None and v > 0:
            money.append(v)

    if not money:
        return None, qty, None
    if len(money) == 1:
        return None, qty, money[0]

    amount = max(money)
    idx = money.index(amount)
    rest = money[:idx] + money[idx + 1:]
    return rest[0], qty, amount


def parse_numbered_blocks(lines: Sequence[str]) -> List[Item]:
    """
    Numbered single-block items: an index/name line followed by a run of
    lines up to the next item start. Barcode lines in the run are dropped and
    the remaining numbers are split by magnitude.
    """
    items: List[Item] = []
    i = 0
    n = len(lines)
    while i < n:
        name_line = lines[i].strip()
        line_no: Optional[str] = None
        m = _INDEX_PREFIX_RE.match(name_line)
        if m:
            line_no = m.group(1)
            name_line = name_line[m.end():].strip()
        if not _NAME_START_RE.match(name_line):
            i += 1
            continue

        j = i + 1
        buf: List[str] = []
        while j < n:
            s = lines[j].strip()
            if not s:
                j += 1
                continue
            if _NEXT_ITEM_RE.match(s):
                break
            buf.append(s)
            j += 1
        buf = [s for s in buf if not _BARCODE_RE.match(s)]

        it = Item(line_no=line_no)
        inline = _PRICE_QTY_AMOUNT_RE.search(name_line)
        if inline:
            it.name = name_line[: inline.start()].strip()
            it.unit_price = to_int(inline.group(1))
            it.qty = to_int(inline.group(2))
            it.amount = to_int(inline.group(3))
        else:
            it.name = name_line

        tokens: List[str] = []
        for s in buf:
            tokens.extend(_NUM_TOKEN_RE.findall(s))
        unit_price, qty, amount = split_numbers(tokens)
        it.unit_price = it.unit_price if it.unit_price is not None else unit_price
        it.qty = it.qty if it.qty is not None else qty
        it.amount = it.amount if it.amount is not None else amount
        it.tax_flag = tax_flag_for(" ".join(buf) + name_line)
        items.append(it)
        i = j
    return items


def parse_two_line(lines: Sequence[str]) -> List[Item]:
    """Name line, optional header/barcode line, then one ``unitPrice qty amount`` line."""
    items: List[Item] = []
    i = 0
    n = len(lines)
    while i < n:
        line = lines[i].strip()
        m = _INDEX_PREFIX_RE.match(line)
        if not m:
            i += 1
            continue

        it = Item(line_no=m.group(1), name=line[m.end():].strip())
        tax_source = line
        if i + 1 < n and _HEADER_RE.search(lines[i + 1]):
            i += 1
        if i + 1 < n and _BARCODE_RE.match(lines[i + 1].strip()):
            it.barcode = lines[i + 1].strip()
            i += 1
        if i + 1 < n:
            nxt = lines[i + 1].strip()
            pm = _PRICE_QTY_AMOUNT_RE.search(nxt) if _PRICE_LINE_RE.match(nxt) else None
            if pm:
                it.unit_price = to_int(pm.group(1))
                it.qty = to_int(pm.group(2))
                it.amount = to_int(pm.group(3))
                tax_source += nxt
                i += 1
        it.tax_flag = tax_flag_for(tax_source)
        items.append(it)
        i += 1
    return items


def parse_inline(lines: Sequence[str]) -> List[Item]:
    """``name unitPrice qty amount`` on a single line."""
    items: List[Item] = []
    for line in lines:
        m = _INLINE_RE.match(line.strip())
        if not m:
            continue
        name = m.group(1).strip()
        line_no: Optional[str] = None
        im = _INDEX_PREFIX_RE.match(name)
        if im:
            line_no = im.group(1)
            name = name[im.end():].strip()
        items.append(
            Item(
                line_no=line_no,
                name=name,
                unit_price=to_int(m.group(2)),
                qty=to_int(m.group(3)),
                amount=to_int(m.group(4)),
                tax_flag=tax_flag_for(line),
            )
        )
    return items


def _block_to_items(block: Sequence[str]) -> List[Item]:
    nums: List[int] = []
    for s in block:
        for tok in re.findall(_MONEY, s):
            v = to_int(tok)
            if v is not None and v > 0:
                nums.append(v)
    flag = tax_flag_for(" ".join(block))
    if not nums:
        return []
    if len(nums) >= 3:
        return [
            Item(unit_price=nums[k], qty=nums[k + 1], amount=nums[k + 2], tax_flag=flag)
            for k in range(0, len(nums) - 2, 3)
        ]
    if len(nums) == 2:
        return [Item(unit_price=nums[0], qty=1, amount=nums[1], tax_flag=flag)]
    return [Item(amount=nums[0], tax_flag=flag)]


def parse_split(lines: Sequence[str]) -> List[Item]:
    """
    Names and numeric blocks are collected as two ordered lists and zipped.

    A block of 3 numbers reads as unitPrice/qty/amount, 2 as unitPrice/amount
    with qty 1, and 1 as the amount alone. Names without a block are kept
    without prices.
    """
    names: List[str] = []
    blocks: List[List[str]] = []
    current: List[str] = []
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        if _NAME_START_RE.match(line):
            if current:
                blocks.append(current)
                current = []
            names.append(line)
        elif _NUMERIC_LINE_RE.match(line):
            current.append(line)
    if current:
        blocks.append(current)

    parsed: List[Item] = []
    for block in blocks:
        parsed.extend(_block_to_items(block))

    items: List[Item] = []
    for idx, name in enumerate(names):
        if idx < len(parsed):
            it = parsed[idx]
            it.name = name
            if it.qty is None and it.unit_price is not None and it.amount is not None and it.amount > it.unit_price:
                it.qty = 1
        else:
            it = Item(name=name, tax_flag=VAT_LABEL)
        items.append(it)
    return items


def detect_layout(lines: Sequence[str]) -> ItemLayout:
    """Pick the item-table strategy from the shape of the item section."""
    n = len(lines)
    for i in range(max(0, n - 2)):
        cur = lines[i].strip()
        nxt = lines[i + 1].strip()
        after = lines[i + 2].strip() if i + 2 < n else ""
        is_name = bool(re.match(r"^\d{1,3}\s+[가-힣A-Za-z(]", cur))
        is_header = bool(_HEADER_RE.search(nxt))
        is_barcode = bool(_BARCODE_RE.match(nxt) or _BARCODE_RE.match(after))
        is_price = bool(_PRICE_LINE_RE.match(after)) or (i + 3 < n and bool(_PRICE_LINE_RE.match(lines[i + 3].strip())))
        if is_name and is_price and (is_barcode or is_header):
            return ItemLayout.TWO_LINE

    if any(_NUMBERED_HEADER_RE.search(ln) for ln in lines) or any(_NUMBERED_INLINE_RE.match(ln.strip()) for ln in lines):
        return ItemLayout.NUMBERED
    if any(_NAMED_INLINE_RE.match(ln.strip()) for ln in lines):
        return ItemLayout.INLINE
    return ItemLayout.SPLIT


_STRATEGIES = {
    ItemLayout.NUMBERED: parse_numbered_blocks,
    ItemLayout.TWO_LINE: parse_two_line,
    ItemLayout.INLINE: parse_inline,
    ItemLayout.SPLIT: parse_split,
}


def post_filter(items: Iterable[Item]) -> List[Item]:
    """Drop noise and all-digit names; derive a missing amount from unitPrice x qty."""
    out: List[Item] = []
    for it in items:
        if it.name is not None:
            it.name = re.sub(r"\s{2,}", " ", it.name.replace("*", "")).strip()
        if is_noise_name(it.name):
            continue
        it.amount = fill_item_amount(it.unit_price, it.qty, it.amount)
        out.append(it)
    return out


def parse_item_table(lines: Sequence[str], layout: Optional[ItemLayout] = None) -> Tuple[ItemLayout, List[Item]]:
    """
    Run one strategy over an item section and post-filter the result.

    Header lines are removed before parsing but still count for layout
    detection. ``layout`` forces a strategy.
    """
    chosen = layout or detect_layout(lines)
    body = [ln.strip() for ln in lines if ln.strip() and not _HEADER_RE.search(ln)]
    return chosen, post_filter(_STRATEGIES[chosen](body))
