from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from receiptparse.extract.document import Document, Table
from receiptparse.extract.layout_items import SUPPLIER_SIDE, column_side
from receiptparse.extract.model import Item, ReceiptResult
from receiptparse.parsers.base import BaseReceiptParser
from receiptparse.utils.amount_correction import to_float, to_int
from receiptparse.utils.logging_setup import log_event
from receiptparse.utils.text_normalizer import THOUSANDS_DOT_RE, normalize_text

log = logging.getLogger("receiptparse.parser.statement")

UNITS: tuple[str, ...] = (
    "박스", "봉", "kg", "KG", "팩", "EA", "개", "통", "캔", "병", "줄", "포", "롤", "세트", "SET", "묶음", "판",
)
_UNIT_ALT = "|".join(UNITS)

TOTALS_WINDOW_CHARS = 2600

_BIZ_NO_RE = re.compile(r"\b\d{3}-\d{2}-\d{5}\b")
_NUM_RE = re.compile(r"\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?")
_UNIT_QTY_RE = re.compile(rf"({_UNIT_ALT})\s*(\d+(?:\.\d+)?)")
_MONEY_RE = re.compile(r"(?:￦\s*)?(\d{1,3}(?:,\d{3})+)")
_WON_RE = re.compile(r"￦\s*(\d{1,3}(?:,\d{3})+)")
_COMMA_MONEY_RE = re.compile(r"\d{1,3}(?:,\d{3})+")

_SUPPLY_LABEL = re.compile(
    r"(공급가액|공\s*급\s*가\s*액|공\s*가\s*액|공기\s*급액|공\s*기\s*급\s*액|공\s*가\s*\|\s*급\s*액|공\s*가\s*급\s*액)"
)
_TAX_LABEL = re.compile(r"(세\s*액|세역)")
_GRAND_LABEL = re.compile(r"(합\s*계|총\s*계|총\s*액|합\s*계\s*금\s*액)")
_PREV_LABEL = re.compile(r"(전\s*미\s*수)")
_BALANCE_LABEL = re.compile(r"(미\s*수\s*금)")
_TOTALS_LABELS = (_SUPPLY_LABEL, _TAX_LABEL, _GRAND_LABEL, _PREV_LABEL, _BALANCE_LABEL)

_ITEM_HEADER_RE = re.compile(r".*품\s*목.*\(\s*규\s*격\s*\).*|.*품\s*목.*규\s*격.*")
_TABLE_HEADER_NOISE_RE = re.compile(r".*(품\s*목|단\s*위|수\s*량|단\s*가|금\s*액|세\s*액).*")
_BLANK_MARK_RE = re.compile(r"이\s*하\s*여\s*백")
_FIELD_WORDS_RE = re.compile(
    r"(주\s*소|주소|업\s*태|종\s*목|품\s*목|규\s*격|단\s*위|수\s*량|단\s*가|세\s*액|합\s*계|전\s*미\s*수|미\s*수\s*금)"
)

# party labels at the start of a line
_LABEL_NAME = re.compile(r"^\s*상\s*호(?:\s|:|$)")
_LABEL_CEO_FULL = re.compile(r"^\s*성\s*명(?:\s|:|$)")
_LABEL_CEO = re.compile(r"^\s*성(?:\s|:|$)")
_LABEL_MYEONG = re.compile(r"^\s*명(?:\s|:|$)")
_LABEL_ADDRESS = re.compile(r"^\s*(주\s*소|주소)(?:\s|:|$)")
_LABEL_BIZ_TYPE = re.compile(r"^\s*업\s*태(?:\s|:|$)")
_LABEL_BIZ_ITEM = re.compile(r"^\s*(종\s*목|종목)(?:\s|:|$)")
_PARTY_LABELS = (
    (_LABEL_NAME, "name"),
    (_LABEL_CEO_FULL, "ceo"),
    (_LABEL_CEO, "ceo"),
    (_LABEL_ADDRESS, "address"),
    (_LABEL_BIZ_TYPE, "biz_type"),
    (_LABEL_BIZ_ITEM, "biz_item"),
)
_LABEL_STRIP = (
    re.compile(r"^\s*상\s*호\s*[:：]?"),
    re.compile(r"^\s*성\s*명\s*[:：]?"),
    re.compile(r"^\s*성\s*[:：]?"),
    re.compile(r"^\s*(주\s*소|주소)\s*[:：]?"),
    re.compile(r"^\s*업\s*태\s*[:：]?"),
    re.compile(r"^\s*(종\s*목|종목)\s*[:：]?"),
)

_PARTY_NOISE_LINE = re.compile(
    r"^(등록|공번호|공급받는\s*자|공급받는자|공급\s*받는\s*자|인수자|거래명세표|\(1/1\)|\(공급받는자\s*보관용\)|보관용)"
)
_PARTY_NOISE_TOKENS = frozenset({"급", "자", "는", "|", "공급", "받는", "공급받는", "공급자", "명"})
_CORP_HINTS = ("주식회사", "유한회사", "농업회사법인", "회사법인", "(주)", "㈜")
_ADDRESS_WORD_RE = re.compile(r"(로|길|동|번지|층|호|시|군|구|읍|면)")
_NOT_A_NAME_RE = re.compile(r"(거래명세표|공급가액|세액|합계|전미수|미수금)")
_CEO_RE = re.compile(r"(?:성\s*명|대표\s*자|대표|성)\s*[:：]?\s*([가-힣]{2,5})")

_STATEMENT_RULES = (
    (re.compile(r"₩"), "￦"),
    (re.compile(r"(?<!\S)[Ww](?=\d)"), "￦"),
    (THOUSANDS_DOT_RE, ","),
    (re.compile(r"박\s*스"), "박스"),
    (re.compile(r"k\s*g"), "kg"),
    (re.compile(r"K\s*G"), "KG"),
    (re.compile(r"E\s*A"), "EA"),
    (re.compile(r"S\s*E\s*T"), "SET"),
    (re.compile(r"븡"), "봉"),
    (re.compile(r"(?=거\s*래\s*명\s*세\s*표)"), "\n"),
    (re.compile(r"(?=전\s*미\s*수|미\s*수\s*금|합\s*계|세\s*액)"), "\n"),
    (re.compile(r"(?=공\s*급\s*가\s*액|공기\s*급액|공\s*기\s*급\s*액|공\s*가\s*\|\s*급\s*액)"), "\n"),
    (re.compile(r"(?=상\s*호)"), "\n"),
    (re.compile(r"(?=주\s*소)"), "\n"),
    (re.compile(r"(?=업\s*태)"), "\n"),
    (re.compile(r"(?=종\s*목)"), "\n"),
    (re.compile(rf"(?<=[가-힣A-Za-z0-9)])({_UNIT_ALT})\b"), r" \1"),
)


@dataclass
class Party:
    biz_no: Optional[str] = None
    name: Optional[str] = None
    ceo: Optional[str] = None
    address: Optional[str] = None
    biz_type: Optional[str] = None
    biz_item: Optional[str] = None

    def is_empty(self) -> bool:
        return not any((self.name, self.ceo, self.address, self.biz_type, self.biz_item))

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "bizNo": self.biz_no,
            "name": self.name,
            "ceo": self.ceo,
            "address": self.address,
            "bizType": self.biz_type,
            "bizItem": self.biz_item,
        }


@dataclass
class StatementItem:
    name: Optional[str] = None
    unit: Optional[str] = None
    qty: Optional[float] = None
    unit_price: Optional[int] = None
    supply_amt: Optional[int] = None
    tax_amt: Optional[int] = None


@dataclass
class StatementTotals:
    supply_total: Optional[int] = None
    tax_total: Optional[int] = None
    grand_total: Optional[int] = None
    prev_balance: Optional[int] = None
    balance: Optional[int] = None


@dataclass
class Statement:
    supplier: Party = field(default_factory=Party)
    buyer: Party = field(default_factory=Party)
    issue_date: Optional[str] = None
    doc_no: Optional[str] = None
    items: List[StatementItem] = field(default_factory=list)
    totals: StatementTotals = field(default_factory=StatementTotals)


# -- text helpers -------------------------------------------------------------


def clean_party_text(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    v = re.sub(r"\s{2,}", " ", re.sub(r"[\r\n]+", " ", s)).strip()
    v = re.sub(r"\(\s*1\s*/\s*1\s*\)", " ", v)
    v = re.sub(r"\(공급받는자\s*보관용\)", " ", v)
    v = re.sub(r"거래명세표", " ", v)
    v = re.sub(r"\s{2,}", " ", v).strip()
    return v or None


def is_good_name_candidate(s: Optional[str]) -> bool:
    if s is None:
        return False
    v = re.sub(r"\s{2,}", " ", s).strip()
    if len(v) < 2 or re.fullmatch(r"[0-9,]+", v) or "￦" in v:
        return False
    if _ADDRESS_WORD_RE.search(v) and len(v) > 12:
        return False
    return not _NOT_A_NAME_RE.search(v)


def canonical_unit(unit: Optional[str]) -> Optional[str]:
    if unit is None:
        return None
    u = re.sub(r"\s+", "", unit)
    low = u.lower()
    if low == "kg":
        return "kg"
    if low == "ea":
        return "EA"
    if low == "set":
        return "SET"
    return u if u in UNITS else None


def infer_unit_from_name(name: Optional[str]) -> Optional[str]:
    """``(박스)`` anywhere, a trailing unit word, or a bare ``kg`` in the name."""
    if not name:
        return None
    for u in UNITS:
        if f"({u})" in name:
            return canonical_unit(u)
    for u in UNITS:
        if re.search(rf"\b{re.escape(u)}\b\s*$", name):
            return canonical_unit(u)
    if re.search(r"\bkg\b", name):
        return "kg"
    return None


def clean_item_name(name: Optional[str]) -> Optional[str]:
    if name is None:
        return None
    n = re.sub(r"\s{2,}", " ", re.sub(r"[\r\n]+", " ", name)).strip()
    n = re.sub(r"\s{2,}", " ", re.sub(r"[|]+", " ", n)).strip()
    return re.sub(r"(공급가액|전미수|미수금|합계|세액).*$", "", n).strip()


def is_valid_item_name(name: Optional[str]) -> bool:
    if name is None:
        return False
    n = name.strip()
    if len(n) < 2 or re.fullmatch(r"[0-9,]+", n):
        return False
    return not re.search(r"(공\s*급\s*가\s*액|전\s*미\s*수|미\s*수\s*금|합\s*계|세\s*액|거\s*래\s*명\s*세\s*표)", n)


def validate_item_row(it: StatementItem) -> bool:
    """
    Row arithmetic check with a tolerance of max(2000, 2%).

    Accepts supply + tax, supply alone, or supply as the VAT-exclusive part of
    qty * unit price.
    """
    if not it.name or len(it.name.strip()) < 2:
        return False
    if it.unit_price is None or it.supply_amt is None:
        return False
    qty = it.qty if it.qty and it.qty > 0 else 1.0
    expected = int(round(qty * it.unit_price))
    if it.supply_amt < 100 and expected > 1000:
        return False
    tol = max(2000, int(round(expected * 0.02)))
    if abs(it.supply_amt - expected) <= tol:
        return True
    if it.tax_amt is not None:
        return abs(it.supply_amt + it.tax_amt - expected) <= tol
    return abs(it.supply_amt - int(round(expected / 1.1))) <= tol


def _numbers(s: str) -> List[str]:
    return _NUM_RE.findall(s)


def build_item(name_raw: str, unit_raw: Optional[str], nums: Sequence[str]) -> Optional[StatementItem]:
    """3+ numbers: qty, unit price, supply[, tax]; 2 numbers: unit price, supply with qty 1."""
    name = clean_item_name(name_raw)
    if not name:
        return None
    unit = canonical_unit(unit_raw) or infer_unit_from_name(name) or "EA"
    if len(nums) >= 3:
        return StatementItem(
            name=name,
            unit=unit,
            qty=to_float(nums[0]),
            unit_price=to_int(nums[1]),
            supply_amt=to_int(nums[2]),
            tax_amt=to_int(nums[3]) if len(nums) >= 4 else None,
        )
    if len(nums) == 2:
        return StatementItem(name=name, unit=unit, qty=1.0, unit_price=to_int(nums[0]), supply_amt=to_int(nums[1]))
    return None


def parse_inline_row(line: str) -> Optional[StatementItem]:
    """``name unit qty price supply [tax]`` on one line; the last unit+qty pair splits name from numbers."""
    matches = list(_UNIT_QTY_RE.finditer(line))
    if not matches:
        return None
    last = matches[-1]
    nums = _numbers(line[last.start():])
    if len(nums) < 2:
        return None
    it = build_item(line[: last.start()].strip(), last.group(1), nums)
    if it is None or not is_valid_item_name(it.name):
        return None
    return it


def _is_totals_line(line: str) -> bool:
    has_money = "￦" in line or bool(_COMMA_MONEY_RE.search(line))
    if any(p.search(line) for p in _TOTALS_LABELS):
        return has_money
    return "￦" in line and bool(_COMMA_MONEY_RE.search(line))


def _is_unit_only(line: str) -> bool:
    return re.sub(r"\s+", "", line) in UNITS


def _is_junk_name_line(line: str) -> bool:
    if "|" in line:
        return True
    s = re.sub(r"\s+", "", line)
    if len(s) <= 2:
        return True
    hits = sum(1 for u in UNITS if u in s)
    return hits >= 2 and len(s) < 20


def parse_item_lines(lines: Sequence[str]) -> List[StatementItem]:
    """
    Text fallback for the item table.

    The table opens after a ``품목(규격)`` header followed by ``단위`` and
    ``수량``/``금액`` within 25 lines. Inside it, an inline row is taken as is;
    otherwise name lines accumulate until a unit is known, then the numbers of
    the following lines close the row. A totals line ends the table.
    """
    items: List[StatementItem] = []
    in_table = False
    header_at = -1
    seen_unit = seen_qty = seen_amt = False
    name_lines: List[str] = []
    nums: List[str] = []
    unit: Optional[str] = None

    def joined_name() -> str:
        return re.sub(r"\s{2,}", " ", " ".join(name_lines)).strip()

    def close_row() -> None:
        it = build_item(joined_name(), unit, nums)
        if it is not None and is_valid_item_name(it.name):
            items.append(it)

    for i, raw in enumerate(lines):
        line = raw.strip()
        if not line:
            continue

        if not in_table:
            if _ITEM_HEADER_RE.match(line):
                header_at = i
                seen_unit = seen_qty = seen_amt = False
            if header_at >= 0:
                seen_unit = seen_unit or bool(re.search(r"단\s*위", line))
                seen_qty = seen_qty or bool(re.search(r"수\s*량", line))
                seen_amt = seen_amt or bool(re.search(r"금\s*액", line))
                if seen_unit and (seen_qty or seen_amt):
                    in_table, header_at = True, -1
                    name_lines, nums, unit = [], [], None
                elif i - header_at > 25:
                    header_at = -1
            continue

        if _TABLE_HEADER_NOISE_RE.match(line) or re.match(r"=+", line) or re.match(r"[-_]{3,}", line):
            continue
        if any(p.fullmatch(line) for p in _TOTALS_LABELS):
            continue
        if _BLANK_MARK_RE.search(line):
            continue
        if _is_totals_line(line):
            if unit is not None and len(nums) >= 2:
                close_row()
            break

        inline = parse_inline_row(line)
        if inline is not None:
            items.append(inline)
            name_lines, nums, unit = [], [], None
            continue

        if unit is None:
            if _is_unit_only(line):
                unit = canonical_unit(line)
                continue
            if _is_junk_name_line(line):
                continue
            name_lines.append(line)
            unit = infer_unit_from_name(joined_name())
            if len(joined_name()) > 280:
                name_lines = []
            continue

        nums.extend(_numbers(line))
        if len(nums) >= 2:
            close_row()
            name_lines, nums, unit = [], [], None

    seen = set()
    out: List[StatementItem] = []
    for it in items:
        key = (it.name or "", it.supply_amt, it.tax_amt)
        if key not in seen:
            seen.add(key)
            out.append(it)
    return out


def parse_table_items(tables: Sequence[Table]) -> List[StatementItem]:
    """
    Items from the first table whose header names at least two item columns.

    Columns are read positionally: name, unit, qty, unit price, supply, tax.
    Rows stop at ``이하여백`` and must pass :func:`validate_item_row`.
    """
    for table in tables:
        headers = [re.sub(r"\s+", "", c) for c in (table.header_rows[0] if table.header_rows else ())]
        hits = 0
        for h in headers:
            hits += ("품목" in h or "규격" in h) + ("단위" in h) + ("수량" in h)
            hits += ("단가" in h) + ("금액" in h) + ("세액" in h)
        if hits < 2:
            continue

        out: List[StatementItem] = []
        for row in table.body_rows:
            cells = [c.strip() for c in row]
            joined = re.sub(r"\s{2,}", " ", " ".join(cells)).strip()
            if not joined:
                continue
            if "이하여백" in re.sub(r"\s+", "", joined):
                break

            def cell(k: int) -> Optional[str]:
                return cells[k] if len(cells) > k else None

            it = StatementItem(
                name=clean_item_name(cell(0)),
                unit=canonical_unit(cell(1)),
                qty=to_float(cell(2)),
                unit_price=to_int(cell(3)),
                supply_amt=to_int(cell(4)),
                tax_amt=to_int(cell(5)),
            )
            if it.unit is None:
                it.unit = infer_unit_from_name(it.name)
            if it.qty is None:
                it.qty = 1.0
            if is_valid_item_name(it.name) and validate_item_row(it):
                out.append(it)
        if out:
            return out
    return []


# -- totals -------------------------------------------------------------------


def _first_money(line: str) -> Optional[int]:
    m = _MONEY_RE.search(line)
    return to_int(m.group(1)) if m else None


def _money_after_label(line: str, label: "re.Pattern[str]") -> Optional[int]:
    m = label.search(line)
    if not m:
        return None
    return _first_money(line[m.end():])


def _money_near_label(
    lines: Sequence[str], label: "re.Pattern[str]", forward: int, backward: int = 0
) -> Optional[int]:
    """
    Money on a label line first (after the label, then anywhere on it), then
    up to ``backward`` lines above and ``forward`` lines below each label
    line in turn.
    """
    hits = [i for i, raw in enumerate(lines) if raw.strip() and label.search(raw)]
    for i in hits:
        line = lines[i].strip()
        v = _money_after_label(line, label)
        if v is None:
            v = _first_money(line)
        if v is not None:
            return v
    for i in hits:
        for j in range(i - 1, max(-1, i - 1 - backward), -1):
            v = _first_money(lines[j])
            if v is not None:
                return v
        for j in range(i + 1, min(len(lines), i + 1 + forward)):
            v = _first_money(lines[j])
            if v is not None:
                return v
    return None


def _approx(a: int, b: int) -> bool:
    return abs(a - b) <= 1


def apply_won_arity(totals: StatementTotals, won: Sequence[int]) -> str:
    """
    Positional reading of the trailing ``￦`` amounts; fills only missing fields.

    * 3 values: supply, tax, total
    * 4 values: supply, total, previous balance, balance (tax = total - supply),
      unless the first three already add up as supply + tax = total, which
      downgrades to the 3-value reading
    * 5+ values: supply, tax, total, previous balance, balance

    Returns the reading used ("", "3", "4" or "5").
    """
    t = totals
    n = len(won)
    if n == 3 or (n == 4 and _approx(won[0] + won[1], won[2])):
        t.supply_total = t.supply_total if t.supply_total is not None else won[0]
        t.tax_total = t.tax_total if t.tax_total is not None else won[1]
        t.grand_total = t.grand_total if t.grand_total is not None else won[2]
        if n == 4 and t.balance is None:
            t.balance = won[3]
        return "3"
    if n == 4:
        t.supply_total = t.supply_total if t.supply_total is not None else won[0]
        t.grand_total = t.grand_total if t.grand_total is not None else won[1]
        t.prev_balance = t.prev_balance if t.prev_balance is not None else won[2]
        t.balance = t.balance if t.balance is not None else won[3]
        if t.tax_total is None and t.supply_total is not None and t.grand_total is not None:
            t.tax_total = max(0, t.grand_total - t.supply_total)
        return "4"
    if n >= 5:
        t.supply_total = t.supply_total if t.supply_total is not None else won[0]
        t.tax_total = t.tax_total if t.tax_total is not None else won[1]
        t.grand_total = t.grand_total if t.grand_total is not None else won[2]
        t.prev_balance = t.prev_balance if t.prev_balance is not None else won[3]
        t.balance = t.balance if t.balance is not None else won[4]
        return "5"
    return ""


def parse_totals(text: str) -> StatementTotals:
    totals = StatementTotals()
    tail = text[-TOTALS_WINDOW_CHARS:]
    ls = tail.split("\n")
    start = next(
        (
            i
            for i, s in enumerate(ls)
            if "￦" in s or any(p.search(s) for p in (_PREV_LABEL, _BALANCE_LABEL, _SUPPLY_LABEL, _GRAND_LABEL))
        ),
        -1,
    )
    if start < 0:
        return totals
    window = ls[max(0, start - 10):]

    totals.balance = _money_near_label(window, _BALANCE_LABEL, 3)
    totals.prev_balance = _money_near_label(window, _PREV_LABEL, 4, backward=4)
    totals.supply_total = _money_near_label(window, _SUPPLY_LABEL, 4)
    totals.tax_total = _money_near_label(window, _TAX_LABEL, 2)
    totals.grand_total = _money_near_label(window, _GRAND_LABEL, 4)

    won = [v for line in window for v in (to_int(m) for m in _WON_RE.findall(line)) if v is not None]
    apply_won_arity(totals, won)

    if totals.grand_total is None and totals.supply_total is not None and totals.tax_total is not None:
        totals.grand_total = totals.supply_total + totals.tax_total
    return totals


# -- parties ------------------------------------------------------------------


def _is_noise_token_line(line: str) -> bool:
    s = re.sub(r"\s+", "", line)
    if not s or s in _PARTY_NOISE_TOKENS:
        return True
    return s.startswith("(") and s.endswith(")")


def _strip_label(line: str) -> str:
    s = line
    for rx in _LABEL_STRIP:
        s = rx.sub("", s, count=1).strip()
    return s


def _is_party_label(line: str) -> bool:
    return any(rx.search(line) for rx, _ in _PARTY_LABELS)


def fill_party_from_lines(p: Party, lines: Sequence[str]) -> None:
    """Label state machine: a label line opens a field, plain lines continue it."""
    fields: Dict[str, str] = {}
    current: Optional[str] = None
    buf: List[str] = []

    def flush() -> None:
        v = " ".join(buf).strip()
        if current is not None and v:
            fields[current] = v

    for raw in lines:
        line = raw.strip()
        if not line or _PARTY_NOISE_LINE.search(line) or _is_noise_token_line(line):
            continue
        opened = next((key for rx, key in _PARTY_LABELS if rx.search(line)), None)
        if opened is not None:
            flush()
            current, buf = opened, []
            tail = _strip_label(line)
            if tail:
                buf.append(tail)
            continue
        if current == "ceo" and _LABEL_MYEONG.search(line):
            continue
        if current is not None:
            buf.append(line)
    flush()

    p.name = fields.get("name")
    p.ceo = fields.get("ceo")
    p.address = fields.get("address")
    p.biz_type = fields.get("biz_type")
    p.biz_item = fields.get("biz_item")


def _merge_corp_prefix(name: str, prefix: str) -> str:
    tail, pre = name.strip(), prefix.strip()
    if pre in tail or tail in pre:
        return name
    # "주식회사 씨" + "엔푸드" was split mid-word by the form layout
    if pre.endswith("씨") and tail.startswith("엔"):
        return pre + tail
    return f"{pre} {tail}"


def refine_party(p: Party, lines: Sequence[str]) -> None:
    joined = re.sub(r"\s{2,}", " ", " ".join(lines)).strip()
    if p.ceo is None:
        m = re.search(r"(성\s*명|성)\s*([가-힣]{2,5})", joined)
        if m:
            p.ceo = m.group(2)

    prefix = None
    for raw in lines:
        s = raw.strip()
        if not s or _PARTY_NOISE_LINE.search(s) or _is_noise_token_line(s) or _is_party_label(s):
            continue
        if "주식회사" in s or "회사법인" in s:
            cut = s
            idx = cut.find("성")
            if idx > 0:
                cut = cut[:idx].strip()
            cut = re.sub(r"(공번호|등록|급)\s*", "", cut).strip()
            if len(cut) >= 2:
                prefix = cut
                break

    if p.name is not None and prefix is not None:
        p.name = _merge_corp_prefix(p.name, prefix)
    elif p.name is None and prefix is not None:
        p.name = prefix
    if p.name is not None:
        p.name = re.sub(r"^\)+", "", re.sub(r"\s{2,}", " ", p.name).strip()).strip()


def _clean_party(p: Party) -> None:
    p.name = clean_party_text(p.name)
    p.ceo = clean_party_text(p.ceo)
    p.address = clean_party_text(p.address)
    p.biz_type = clean_party_text(p.biz_type)
    p.biz_item = clean_party_text(p.biz_item)


def _index_of(lines: Sequence[str], rx: "re.Pattern[str]") -> int:
    return next((i for i, s in enumerate(lines) if rx.search(s)), -1)


def parse_parties_from_text(text: str, st: Statement) -> None:
    """
    Split the header at the line holding the second business number; the
    part above belongs to the supplier, the rest (up to the item header)
    to the buyer. Without a second number both sides read the whole header.
    """
    biz_nos = _BIZ_NO_RE.findall(text)
    if biz_nos:
        st.supplier.biz_no = biz_nos[0]
    if len(biz_nos) >= 2:
        st.buyer.biz_no = biz_nos[1]

    ls = text.split("\n")
    items_at = _index_of(ls, _ITEM_HEADER_RE)
    buyer_at = _index_of(ls, re.compile(re.escape(st.buyer.biz_no))) if st.buyer.biz_no else -1
    if buyer_at >= 0:
        supplier_lines = ls[:buyer_at]
        buyer_lines = ls[buyer_at: items_at if items_at > buyer_at else len(ls)]
    else:
        end = items_at if items_at > 0 else len(ls)
        supplier_lines = buyer_lines = ls[:end]

    fill_party_from_lines(st.supplier, supplier_lines)
    fill_party_from_lines(st.buyer, buyer_lines)
    refine_party(st.supplier, supplier_lines)
    refine_party(st.buyer, buyer_lines)
    _clean_party(st.supplier)
    _clean_party(st.buyer)

    if st.buyer.biz_item is None and st.buyer.biz_type is not None:
        hint = next((s.strip() for s in buyer_lines if "위탁" in s or "급식" in s), None)
        if hint:
            st.buyer.biz_item = re.sub(r"^\s*[가-힣]?\s*", "", hint).strip()


def _map_party_key(key: str) -> Optional[str]:
    k = re.sub(r"\s+", "", key).replace("：", ":").replace("|", "")
    if "상호" in k or k == "상":
        return "name"
    if "대표" in k or "성명" in k or k == "성":
        return "ceo"
    if "주소" in k:
        return "address"
    if "업태" in k:
        return "biz_type"
    if "종목" in k:
        return "biz_item"
    return None


def _merge_keep_space(a: Optional[str], b: str) -> str:
    a = (a or "").strip()
    b = b.strip()
    if not a:
        return b
    if not b or b in a:
        return a
    return re.sub(r"\s{2,}", " ", f"{a} {b}").strip()


def _apply_party_map(p: Party, m: Dict[str, str]) -> None:
    p.name = p.name or clean_party_text(m.get("name"))
    p.ceo = p.ceo or clean_party_text(m.get("ceo"))
    p.address = p.address or clean_party_text(m.get("address"))
    p.biz_type = p.biz_type or clean_party_text(m.get("biz_type"))
    p.biz_item = p.biz_item or clean_party_text(m.get("biz_item"))


def parse_parties_from_form_fields(doc: Document, text: str, st: Statement) -> bool:
    """
    Party fields from labelled form fields, split into columns by the
    horizontal centre of each label box.

    Returns False when no usable field was found so the caller can fall back
    to the text heuristics.
    """
    left: Dict[str, str] = {}
    right: Dict[str, str] = {}
    for ff in doc.form_fields:
        key, val = ff.name.strip(), ff.value.strip()
        if not key or not val:
            continue
        mapped = _map_party_key(key)
        if mapped is None:
            continue
        target = left if column_side(ff.box, doc.page_width(ff.page)) == SUPPLIER_SIDE else right
        target[mapped] = _merge_keep_space(target.get(mapped), val)
    if not left and not right:
        return False

    biz_nos = _BIZ_NO_RE.findall(text)
    if biz_nos:
        st.supplier.biz_no = biz_nos[0]
    if len(biz_nos) >= 2:
        st.buyer.biz_no = biz_nos[1]
    _apply_party_map(st.supplier, left)
    _apply_party_map(st.buyer, right)

    # all fields landed on the right: the supplier column was never seen
    if st.supplier.is_empty() and not st.buyer.is_empty() and not left and right:
        _apply_party_map(st.supplier, right)
    if st.supplier.is_empty() and not st.buyer.is_empty() and left and right:
        st.supplier, st.buyer = st.buyer, st.supplier

    return any((st.supplier.name, st.supplier.ceo, st.buyer.name, st.buyer.ceo))


def salvage_parties_by_label_order(text: str, st: Statement) -> None:
    """First ``상호`` value is the supplier's, the second the buyer's; same for the CEO."""
    ls = text.split("\n")
    names: List[str] = []
    name_at: List[int] = []
    for i, raw in enumerate(ls):
        m = re.match(r"^\s*상\s*호\s*(.+)?$", raw.strip())
        if not m:
            continue
        tail = (m.group(1) or "").strip()
        if not tail and i + 1 < len(ls):
            tail = ls[i + 1].strip()
        tail = clean_party_text(tail)
        if tail is not None and is_good_name_candidate(tail):
            names.append(tail)
            name_at.append(i)
    if st.supplier.name is None and names:
        st.supplier.name = names[0]
    if st.buyer.name is None and len(names) >= 2:
        st.buyer.name = names[1]

    ceos = []
    for raw in ls:
        m = _CEO_RE.search(raw)
        if m:
            name = clean_party_text(m.group(1))
            if name and re.fullmatch(r"[가-힣]{2,5}", name):
                ceos.append(name)
    if st.supplier.ceo is None and ceos:
        st.supplier.ceo = ceos[0]
    if st.buyer.ceo is None and len(ceos) >= 2:
        st.buyer.ceo = ceos[1]

    if st.supplier.name is not None and name_at:
        idx = name_at[0]
        for k in (1, 2):
            if idx + k >= len(ls):
                break
            cand = ls[idx + k].strip()
            if not cand or _FIELD_WORDS_RE.search(cand):
                continue
            if not any(h in cand for h in _CORP_HINTS):
                continue
            cut = cand.find("성")
            if cut > 0:
                cand = cand[:cut].strip()
            pre = clean_party_text(cand)
            if pre is None:
                continue
            st.supplier.name = _merge_corp_prefix(st.supplier.name, pre)
            break

    st.supplier.name = clean_party_text(st.supplier.name)
    st.supplier.ceo = clean_party_text(st.supplier.ceo)
    st.buyer.name = clean_party_text(st.buyer.name)
    st.buyer.ceo = clean_party_text(st.buyer.ceo)


def _pick_value_by_label(win: Sequence[str], label: "re.Pattern[str]", forward: int = 2) -> Optional[str]:
    for i, line in enumerate(win):
        if not label.search(line):
            continue
        tail = re.sub(r"[:：]", " ", line)
        tail = re.sub(r"상\s*호\s*명?|대\s*표\s*자|대\s*표|성\s*명|성", " ", tail)
        tail = re.sub(r"\s{2,}", " ", tail).strip()
        tail = re.sub(r".*\b\d{3}-\d{2}-\d{5}\b", " ", tail).strip()
        if is_good_name_candidate(tail):
            return tail
        for nxt in win[i + 1: i + 1 + forward]:
            if is_good_name_candidate(nxt.strip()):
                return nxt.strip()
    return None


def _guess_company_name(win: Sequence[str], buyer_name: Optional[str]) -> Optional[str]:
    buyer_compact = re.sub(r"\s+", "", buyer_name) if buyer_name else None
    for raw in win:
        line = raw.strip()
        if not line or "￦" in line or _COMMA_MONEY_RE.search(line) or _FIELD_WORDS_RE.search(line):
            continue
        compact = re.sub(r"\s+", "", line)
        if buyer_compact is not None and compact == buyer_compact:
            continue
        corp = any(h in line for h in _CORP_HINTS) or "법인" in line
        if corp and 2 <= len(compact) <= 40:
            return line
        if 2 <= len(compact) <= 30 and not re.search(r"\d", compact) and re.search(r"[가-힣A-Za-z]", compact):
            return line
    return None


def salvage_supplier_window(text: str, st: Statement) -> None:
    """
    Business-number anchored fallback for a supplier still without name and
    CEO: scan from 10 lines above the supplier's number up to the buyer's
    number or the item header.
    """
    if st.supplier.name or st.supplier.ceo:
        return
    ls = text.split("\n")
    sup_at = _index_of(ls, re.compile(re.escape(st.supplier.biz_no))) if st.supplier.biz_no else -1
    if sup_at < 0:
        sup_at = _index_of(ls, _BIZ_NO_RE)
    if sup_at < 0:
        return
    end = len(ls)
    buyer_at = _index_of(ls, re.compile(re.escape(st.buyer.biz_no))) if st.buyer.biz_no else -1
    items_at = _index_of(ls, _ITEM_HEADER_RE)
    if buyer_at >= 0:
        end = min(end, buyer_at)
    if items_at >= 0:
        end = min(end, items_at)
    win = [s.strip() for s in ls[max(0, sup_at - 10): min(end, sup_at + 18)] if s.strip()]

    st.supplier.name = clean_party_text(_pick_value_by_label(win, re.compile(r"상\s*호\s*명?")))
    st.supplier.ceo = clean_party_text(_pick_value_by_label(win, re.compile(r"대\s*표\s*자|대\s*표|성\s*명|성")))
    if st.supplier.name is None:
        st.supplier.name = clean_party_text(_guess_company_name(win, st.buyer.name))
    if st.supplier.ceo is None:
        m = re.search(r"(대표자|대표|성명|성)\s*[:：]?\s*([가-힣]{2,5})", " ".join(win))
        if m:
            st.supplier.ceo = m.group(2)


def parse_header(text: str, st: Statement) -> None:
    m = re.search(r"일\s*자\s*(20\d{2})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일\s*([0-9\-]{3,})?", text)
    if m:
        st.issue_date = f"{m.group(1)}-{int(m.group(2)):02d}-{int(m.group(3)):02d}"
        if m.group(4):
            st.doc_no = m.group(4).strip("-").strip() or None
        return
    m = re.search(r"(20\d{2})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일", text)
    if m:
        st.issue_date = f"{m.group(1)}-{int(m.group(2)):02d}-{int(m.group(3)):02d}"


def _round_qty(q: Optional[float]) -> int:
    if q is None:
        return 1
    return int(q + 0.5)


class TransactionStatementParser(BaseReceiptParser):
    """
    B2B transaction statements (거래명세표): two parties, an item table with
    units and per-line tax, and running-balance totals.

    The supplier is reported as the merchant. Both parties, the previous and
    current balance and the per-item unit / tax amount go to ``extra``.
    """

    type_key = "transaction"
    template = "TRANSACTION"

    def normalize(self, raw: str) -> str:
        t = normalize_text(raw, break_labels=False)
        for rx, repl in _STATEMENT_RULES:
            t = rx.sub(repl, t)
        t = re.sub(r"[ ]{2,}", " ", t)
        return "\n".join(ln.strip() for ln in t.split("\n") if ln.strip())

    def parse_statement(self, doc: Document, text: str) -> Statement:
        st = Statement()
        parse_header(text, st)

        source = "form"
        if not parse_parties_from_form_fields(doc, text, st):
            source = "text"
            parse_parties_from_text(text, st)
        salvage_parties_by_label_order(text, st)
        salvage_supplier_window(text, st)
        log_event(
            log,
            "parser.parties",
            "statement parties resolved",
            level=logging.DEBUG,
            source=source,
            supplier=st.supplier.name,
            buyer=st.buyer.name,
        )

        st.items = parse_table_items(doc.tables)
        item_source = "table"
        if not st.items:
            item_source = "text"
            st.items = parse_item_lines(text.split("\n"))
        log_event(log, "parser.items", "statement items", level=logging.DEBUG, source=item_source, count=len(st.items))

        st.totals = parse_totals(text)
        return st

    def fill(self, doc: Document, text: str, r: ReceiptResult) -> None:
        st = self.parse_statement(doc, text)

        r.merchant.name = st.supplier.name
        r.merchant.biz_no = st.supplier.biz_no
        r.merchant.address = st.supplier.address
        r.meta.sale_date = st.issue_date
        r.meta.receipt_no = st.doc_no

        r.items = [
            Item(name=si.name, qty=_round_qty(si.qty), unit_price=si.unit_price, amount=si.supply_amt)
            for si in st.items
        ]
        r.totals.subtotal = st.totals.supply_total
        r.totals.vat = st.totals.tax_total
        r.totals.total = st.totals.grand_total

        r.extra["parserType"] = "TRANSACTION"
        r.extra["docNo"] = st.doc_no
        r.extra["prevBalance"] = st.totals.prev_balance
        r.extra["balance"] = st.totals.balance
        r.extra["supplier"] = st.supplier.to_dict()
        r.extra["buyer"] = st.buyer.to_dict()
        r.extra["itemDetails"] = [
            {"name": si.name, "unit": si.unit, "qty": si.qty, "taxAmt": si.tax_amt} for si in st.items
        ]
