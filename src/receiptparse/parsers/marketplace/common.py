from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

from receiptparse.extract.model import Item
from receiptparse.utils.amount_correction import to_int

DASHED_BIZ_NO_RE = re.compile(r"\b(\d{3}-\d{2}-\d{5})\b")
BIZ_NO_10_RE = re.compile(r"(?<!\d)(\d{10})(?!\d)")
COMMA_MONEY_RE = re.compile(r"(?<![0-9,])(\d{1,3}(?:,\d{3})+)(?![0-9,])")
DATE_RE = r"(20\d{2}[./-]\d{1,2}[./-]\d{1,2})"
TIME_RE = r"([0-2]?\d:[0-5]\d(?::[0-5]\d)?)"

_STRICT_MONEY_RE = re.compile(r"^-?\s*([0-9]{1,3}(?:,[0-9]{3})+|[0-9]{1,6})\s*(원)?$")
_QTY_UNIT_RE = re.compile(r"(?i)(?<![0-9])([0-9]{1,3})\s*(개|ea|입|팩|봉|병|캔|세트|box|박스)(?![A-Za-z])")
_QTY_X_RE = re.compile(r"(?i)(?:^|\s)[xX×]\s*([0-9]{1,3})(?![0-9])|(?<![0-9])([0-9]{1,3})\s*[xX×](?:\s|$)")
_SIZE_UNIT_RE = re.compile(r"(?i)^[0-9.,]+\s*(g|kg|ml|l|mm|cm|m|매|장|매입)$")


def clean_field(s: Optional[str]) -> Optional[str]:
    if s is None:
        return None
    s = re.sub(r"\s+", " ", s).strip()
    return s or None


def compact(s: Optional[str]) -> str:
    return re.sub(r"\s+", "", s or "")


def _spaced_label(label: str) -> "re.Pattern[str]":
    """``판매자상호`` also matches ``판매자 상호 :`` at the start of a line."""
    return re.compile(r"^\s*" + r"\s*".join(map(re.escape, compact(label))) + r"\s*[:：]?\s*")


def looks_like_label(line: Optional[str], labels: Iterable[str]) -> bool:
    """Space-insensitive: the line is a label or starts with one."""
    c = compact(line)
    if not c:
        return False
    for label in labels:
        k = compact(label)
        if c == k or c.startswith(k):
            return True
    return False


def money_strict(line: Optional[str]) -> Optional[int]:
    """
    A line that is only an amount: comma-grouped or ``원``-suffixed, under
    seven digits. Approval and order numbers never qualify.
    """
    if line is None:
        return None
    s = line.strip()
    m = _STRICT_MONEY_RE.match(s)
    if not m:
        return None
    if "," not in s and not m.group(2):
        return None
    digits = re.sub(r"\D", "", m.group(1))
    if len(digits) >= 7:
        return None
    return to_int(m.group(1))


def comma_amounts(text: Optional[str]) -> List[int]:
    out: List[int] = []
    for m in COMMA_MONEY_RE.finditer(text or ""):
        v = to_int(m.group(1))
        if v is not None:
            out.append(v)
    return out


def value_after_label(
    ls: Sequence[str],
    label: str,
    labels: Iterable[str] = (),
    *,
    window: int = 1,
) -> Optional[str]:
    """
    Value of ``label``: the rest of the label line, else the first following
    line (within ``window``) that is not itself a label.
    """
    label_set = tuple(labels)
    rx = _spaced_label(label)
    for i, raw in enumerate(ls):
        m = rx.match(raw)
        if not m:
            continue
        rest = raw[m.end():].strip()
        if rest:
            return rest
        for j in range(i + 1, min(len(ls), i + 1 + window)):
            cand = ls[j].strip()
            if not cand:
                continue
            if label_set and looks_like_label(cand, label_set):
                return None
            return cand
        return None
    return None


def collect_after_label(ls: Sequence[str], label: str, stop_labels: Iterable[str], *, limit: int = 4) -> Optional[str]:
    """Lines after ``label`` joined with a space, until a stop label or ``limit`` lines."""
    stops = tuple(stop_labels)
    rx = _spaced_label(label)
    for i, raw in enumerate(ls):
        m = rx.match(raw)
        if not m:
            continue
        parts: List[str] = []
        rest = raw[m.end():].strip()
        if rest:
            parts.append(rest)
        for j in range(i + 1, len(ls)):
            if len(parts) >= limit or looks_like_label(ls[j], stops):
                break
            parts.append(ls[j].strip())
        return clean_field(" ".join(parts))
    return None


def pick_first_among(ls: Sequence[str], keys: Sequence[str], *, start: int = 0) -> Optional[str]:
    """First line (from ``start``) containing any of ``keys``, trimmed."""
    for i in range(max(0, start), len(ls)):
        line = ls[i].strip()
        if any(k in line for k in keys):
            return line
    return None


def index_of(ls: Sequence[str], needle: str, start: int = 0) -> int:
    key = compact(needle)
    for i in range(max(0, start), len(ls)):
        if key in compact(ls[i]):
            return i
    return -1


def slice_lines(ls: Sequence[str], start_label: str, end_label: Optional[str] = None) -> List[str]:
    """Lines strictly between the first ``start_label`` line and the next ``end_label`` line."""
    s = index_of(ls, start_label)
    if s < 0:
        return []
    e = index_of(ls, end_label, s + 1) if end_label else -1
    return list(ls[s + 1:e if e >= 0 else len(ls)])


def find_biz_no(text: Optional[str], *, exclude: Sequence[str] = ()) -> Optional[str]:
    """First dashed business number, else a bare 10-digit run; ``exclude`` skips platform numbers."""
    if not text:
        return None
    for m in DASHED_BIZ_NO_RE.finditer(text):
        if m.group(1) not in exclude:
            return m.group(1)
    bare_excluded = {x.replace("-", "") for x in exclude}
    for m in BIZ_NO_10_RE.finditer(text):
        if m.group(1) not in bare_excluded:
            return m.group(1)
    return None


def extract_qty(text: Optional[str]) -> Optional[int]:
    """Largest ``N개/ea/입/...`` count, else ``xN``; a bare size (``500g``) is no count."""
    if not text:
        return None
    s = text.strip()
    if _SIZE_UNIT_RE.match(s):
        return None
    counts = [to_int(m.group(1)) for m in _QTY_UNIT_RE.finditer(s)]
    counts = [c for c in counts if c]
    if counts:
        return max(counts)
    m = _QTY_X_RE.search(s)
    if m:
        return to_int(m.group(1) or m.group(2))
    return None


def refine_product_name(text: Optional[str], junk_labels: Iterable[str], default: str) -> tuple[str, Optional[int]]:
    """Product text minus label noise and quantity tokens, plus the quantity it carried."""
    s = clean_field(text) or ""
    for label in junk_labels:
        s = s.replace(label, " ")
    qty = extract_qty(s)
    if qty is not None:
        s = _QTY_UNIT_RE.sub(" ", s)
        s = _QTY_X_RE.sub(" ", s)
    s = re.sub(r"\s+[0-9]{1,4}$", "", s.strip())
    s = clean_field(s) or ""
    return (s or default), qty


def single_item(name: Optional[str], total: Optional[int], qty: Optional[int] = None, default: str = "상품") -> List[Item]:
    """The whole payment as one line; unit price is the total split over ``qty``."""
    q = qty if qty and qty > 0 else 1
    unit = total // q if total is not None else None
    return [Item(name=name or default, qty=q, unit_price=unit, amount=total)]
