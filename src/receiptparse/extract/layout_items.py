from __future__ import annotations

import re
from dataclasses import dataclass
from statistics import median
from typing import Iterable, List, NamedTuple, Optional, Sequence


@dataclass
class LayoutOcrItem:
    box: List[List[float]]
    text: str
    confidence: float = 0.0


@dataclass(frozen=True)
class BoundingBox:
    """Polygon of a layout element; ``normalized`` vertices are already 0..1 of the page."""

    vertices: tuple[tuple[float, float], ...] = ()
    normalized: bool = False


_MONEY_RE = re.compile(r"^-?(?:\d{1,3}(?:,\d{3})+|\d{3,})(?:원)?$")
_QTY_RE = re.compile(r"^\d{1,2}$")

SUPPLIER_SIDE = "supplier"
BUYER_SIDE = "buyer"

_SUMMARY_WORDS = ("합계", "총액", "부가세", "공급가액", "과세", "면세", "결제금액", "받을금액", "할인")


def _norm_token(t: str) -> str:
    return str(t or "").strip().replace("\xa0", " ")


def _parse_money_token(t: str) -> Optional[int]:
    tt = _norm_token(t).replace(" ", "")
    if not _MONEY_RE.match(tt):
        return None
    digits = re.sub(r"[^0-9\-]", "", tt)
    try:
        return int(digits)
    except ValueError:
        return None


def _parse_qty_token(t: str) -> Optional[int]:
    tt = _norm_token(t)
    if not _QTY_RE.match(tt):
        return None
    q = int(tt)
    if q <= 0:
        return None
    return q


class _Token(NamedTuple):
    y: float
    x0: float
    height: float
    text: str


def _token(item: LayoutOcrItem) -> _Token:
    text = _norm_token(item.text)
    if not item.box:
        return _Token(0.0, 0.0, 0.0, text)
    xs = [float(p[0]) for p in item.box]
    ys = [float(p[1]) for p in item.box]
    return _Token((min(ys) + max(ys)) / 2.0, min(xs), max(1.0, max(ys) - min(ys)), text)


def _cluster_rows(items: Sequence[LayoutOcrItem]) -> List[List[_Token]]:
    """Group tokens whose vertical centres sit within ~0.6 line heights; each row sorted left to right."""
    tokens = sorted((_token(it) for it in items if _norm_token(it.text)), key=lambda t: t.y)
    if not tokens:
        return []
    tol = max(5.0, 0.60 * float(median(t.height for t in tokens)))

    rows: List[List[_Token]] = [[tokens[0]]]
    for tok in tokens[1:]:
        row = rows[-1]
        row_y = sum(t.y for t in row) / len(row)
        if abs(tok.y - row_y) <= tol:
            row.append(tok)
        else:
            rows.append([tok])
    for row in rows:
        row.sort(key=lambda t: t.x0)
    return rows


def rows_to_text(ocr_items: Iterable[LayoutOcrItem]) -> str:
    """Rebuild reading-order text from bbox tokens: one line per y-cluster, tokens left to right."""
    rows = _cluster_rows([it for it in ocr_items if _norm_token(getattr(it, "text", ""))])
    return "\n".join(" ".join(t.text for t in row) for row in rows)


def center_x(box: Optional[BoundingBox], page_width: float = 0.0) -> float:
    """
    Horizontal centre of a box as a 0..1 page fraction.

    Normalized vertices are used as they are; pixel vertices are divided by
    the page width. Without usable geometry the centre is 0.5.
    """
    if box is None or not box.vertices:
        return 0.5
    xs = [float(v[0]) for v in box.vertices]
    cx = (min(xs) + max(xs)) / 2.0
    if box.normalized:
        return cx
    if page_width and page_width > 0:
        return min(1.0, max(0.0, cx / float(page_width)))
    return 0.5


def column_side(box: Optional[BoundingBox], page_width: float = 0.0) -> str:
    """Left half of the page belongs to the supplier, the rest to the buyer."""
    return SUPPLIER_SIDE if center_x(box, page_width) < 0.5 else BUYER_SIDE


def _row_to_item(row: List[_Token]) -> Optional[dict]:
    toks = [t.text for t in row if t.text]
    if not toks:
        return None

    money_positions = [(i, _parse_money_token(tok)) for i, tok in enumerate(toks)]
    money_positions = [(i, v) for i, v in money_positions if v is not None]
    if not money_positions:
        return None

    # rightmost money token is the line amount
    amount_idx, amount = money_positions[-1]

    qty: Optional[int] = None
    for i, tok in enumerate(toks):
        if i >= amount_idx:
            break
        q = _parse_qty_token(tok)
        if q is not None:
            qty = q
            break

    unit_price: Optional[int] = None
    priced = [(i, v) for i, v in money_positions[:-1] if v is not None and v >= 100]
    if priced:
        unit_price = priced[-1][1]
    elif qty:
        unit_price = amount // qty if amount % qty == 0 else None

    name_toks: List[str] = []
    stop_i = money_positions[0][0]
    for i, tok in enumerate(toks):
        if i >= stop_i:
            break
        if _parse_qty_token(tok) is not None:
            continue
        name_toks.append(tok)
    name = " ".join(name_toks).strip()
    if not name:
        return None

    return {
        "name": name,
        "qty": qty if qty is not None else 1,
        "unit_price": unit_price,
        "amount": amount,
    }


def extract_items_from_ocr_layout(ocr_items: Iterable[LayoutOcrItem]) -> List[dict]:
    """Layout-aware item extraction from bbox tokens.

    Each y-cluster with a money token on the right becomes one item dict
    (``name``/``qty``/``unit_price``/``amount``); summary rows are dropped.
    """
    items = [it for it in ocr_items if _norm_token(getattr(it, "text", ""))]
    if not items:
        return []

    out: List[dict] = []
    for row in _cluster_rows(items):
        item = _row_to_item(row)
        if not item:
            continue
        name = str(item.get("name") or "")
        if any(k in name for k in _SUMMARY_WORDS):
            continue
        out.append(item)

    return out
