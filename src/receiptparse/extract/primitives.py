from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Iterable, List, Optional, Sequence, Union

from receiptparse.extract.vat_math import TOLERANCE_FLOOR, TOLERANCE_REL, tolerance, total_from_supply_and_vat
from receiptparse.utils.amount_correction import (
    choose_best_candidate,
    to_int,
    validate_candidates_against_invariant,
)

Pattern = Union[str, "re.Pattern[str]"]


@lru_cache(maxsize=1024)
def _compile(pattern: str, flags: int) -> "re.Pattern[str]":
    return re.compile(pattern, flags)


def _as_regex(pattern: Pattern, flags: int) -> Optional["re.Pattern[str]"]:
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return _compile(pattern, flags)
    except re.error:
        return None


def extract(text: Optional[str], pattern: Optional[Pattern], group: int = 1) -> Optional[str]:
    """
    First match of ``pattern`` in ``text`` (MULTILINE).

    Returns the requested group, or group 1 when the requested one does not
    exist, or the whole match when the pattern has no groups; always trimmed.
    None when nothing matches, the group did not participate, or the pattern
    does not compile.
    """
    if text is None or pattern is None:
        return None
    rx = _as_regex(pattern, re.MULTILINE)
    if rx is None:
        return None
    m = rx.search(text)
    if not m:
        return None
    count = rx.groups
    if 0 < group <= count:
        val = m.group(group)
    elif count >= 1:
        val = m.group(1)
    else:
        val = m.group(0)
    return val.strip() if val is not None else None


def extract_dot(text: Optional[str], pattern: Optional[Pattern], group: int = 1) -> Optional[str]:
    """Same as :func:`extract` but ``.`` also matches line breaks."""
    if text is None or pattern is None:
        return None
    rx = _as_regex(pattern, re.MULTILINE | re.DOTALL)
    if rx is None:
        return None
    return extract(text, rx, group)


def extract_all(text: Optional[str], pattern: Optional[Pattern], group: int = 1) -> List[str]:
    if text is None or pattern is None:
        return []
    rx = _as_regex(pattern, re.MULTILINE)
    if rx is None:
        return []
    out: List[str] = []
    for m in rx.finditer(text):
        g = group if group <= rx.groups else (1 if rx.groups else 0)
        val = m.group(g)
        if val is not None and val.strip():
            out.append(val.strip())
    return out


def first_non_null(*candidates: Union[Optional[str], Callable[[], Optional[str]]]) -> Optional[str]:
    """
    First non-blank candidate, trimmed.

    Candidates may be plain values or zero-argument callables; callables are
    evaluated lazily, in order, so later (more generic) extractors only run
    when earlier ones came back empty.
    """
    for cand in candidates:
        val = cand() if callable(cand) else cand
        if val is None:
            continue
        s = str(val).strip()
        if s and s.lower() != "null":
            return s
    return None


def first_int(text: Optional[str], pattern: Pattern) -> Optional[int]:
    """Integer from the last group of the first match (label groups come first in these patterns)."""
    if text is None:
        return None
    rx = _as_regex(pattern, re.MULTILINE)
    if rx is None:
        return None
    m = rx.search(text)
    if not m:
        return None
    return to_int(m.group(rx.groups) if rx.groups else m.group(0))


def contains_any(text: Optional[str], *keys: str) -> bool:
    if not text:
        return False
    return any(k in text for k in keys)


def safe(s: Optional[str]) -> str:
    if s is None:
        return ""
    s = s.strip()
    return "" if s.lower() == "null" else s


def lines(text: Optional[str]) -> List[str]:
    return [ln.strip() for ln in (text or "").replace("\r", "\n").split("\n") if ln.strip()]


def slice_block(text: Optional[str], start_pattern: Pattern, end_pattern: Pattern) -> Optional[str]:
    """Text from the first ``start_pattern`` match up to the first ``end_pattern`` match after it."""
    if not text:
        return None
    start_rx = _as_regex(start_pattern, re.MULTILINE)
    end_rx = _as_regex(end_pattern, re.MULTILINE)
    if start_rx is None or end_rx is None:
        return None
    ms = start_rx.search(text)
    if not ms:
        return None
    start = ms.start()
    end = len(text)
    for me in end_rx.finditer(text):
        if me.start() > start:
            end = me.start()
            break
    return text[start:end].strip()


def index_of_line(ls: Sequence[str], predicate: Callable[[str], bool], start: int = 0) -> int:
    for i in range(max(0, start), len(ls)):
        if predicate(ls[i]):
            return i
    return -1


# ---------------------------------------------------------------------------
# Money candidates
# ---------------------------------------------------------------------------

MONEY_TOKEN_RE = re.compile(r"(?<![0-9,])(-?[0-9]{1,3}(?:,[0-9]{3})+|-?[0-9]{4,})(?![0-9,])")

TOTAL_KEYS: tuple[str, ...] = ("합계", "총액", "결제금액", "승인금액", "총 결제", "승인 금액", "받을금액", "TOTAL")
STRONG_TOTAL_KEYS: tuple[str, ...] = ("결제금액", "승인금액")
VAT_KEYS: tuple[str, ...] = ("부가세", "VAT", "부가가치세", "세액")
SUPPLY_KEYS: tuple[str, ...] = ("공급가액", "과세물품가액")
DISCOUNT_KEYS: tuple[str, ...] = ("할인", "DC", "쿠폰")
TAX_KIND_KEYS: tuple[str, ...] = ("면세", "과세")

_LABELED_VALUE_RE = re.compile(
    r"(?:%s)\s*[:：]?\s*(?:금액)?\s*[:：]?\s*(?:￦|₩|W)?\s*(-?[0-9][0-9,]*)"
    % "|".join(re.escape(k) for k in TOTAL_KEYS + VAT_KEYS + SUPPLY_KEYS + DISCOUNT_KEYS + TAX_KIND_KEYS)
)

# tokens that look numeric but are never money
_NOT_MONEY_RE = re.compile(
    r"20\d{2}\s*[./\-년]\s*\d{1,2}\s*[./\-월]\s*\d{1,2}"  # dates
    r"|\d{3}-\d{2}-\d{5}"  # business numbers
    r"|0\d{1,2}-\d{3,4}-\d{4}"  # phone numbers
    r"|\d{4}[\-\s]?[*Xx]{2,}[0-9*Xx\-\s]*"  # masked card numbers
    r"|[0-2]?\d:[0-5]\d(?::[0-5]\d)?"  # times
    r"|(?:승인\s*번호|승인No|APPROVAL\s*NO|주문\s*번호|거래\s*NO|가맹점\s*번호|단말기\s*번호|TID)\s*[:：]?\s*[0-9\-]+",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class MoneyCandidate:
    amount: int
    score: int
    line_index: int
    context: str
    bucket: str


@dataclass(frozen=True)
class MoneyRanking:
    total: Optional[int]
    vat: Optional[int]
    supply: Optional[int]
    discount: Optional[int]
    candidates: tuple[MoneyCandidate, ...]
    reselected_total: bool = False
    total_from_supply_vat: bool = False


def money_tokens(line: str) -> List[int]:
    """
    Currency-like integers of a line: comma-grouped or 4+ digit tokens, plus a
    short number sitting right after a money label ("부가세 100").
    Dates, times, phone/business/approval numbers and masked cards are skipped.
    """
    if not line:
        return []
    clean = _NOT_MONEY_RE.sub(" ", line)
    out: List[int] = []
    seen_spans: List[tuple[int, int]] = []
    for m in MONEY_TOKEN_RE.finditer(clean):
        v = to_int(m.group(1))
        if v is None or v <= 0:
            continue
        out.append(v)
        seen_spans.append(m.span(1))
    for m in _LABELED_VALUE_RE.finditer(clean):
        span = m.span(1)
        if any(s <= span[0] < e for s, e in seen_spans):
            continue
        v = to_int(m.group(1))
        if v is None or v <= 0:
            continue
        out.append(v)
    return out


def _score_line(line: str) -> int:
    upper = line.upper()
    base = 0
    if contains_any(line, *TOTAL_KEYS) or "TOTAL" in upper:
        base += 10
    if contains_any(line, *VAT_KEYS) or "VAT" in upper:
        base += 7
    if contains_any(line, *SUPPLY_KEYS):
        base += 7
    if contains_any(line, *DISCOUNT_KEYS):
        base += 6
    if contains_any(line, *TAX_KIND_KEYS):
        base += 2
    return base


def _bucket(line: str) -> str:
    if contains_any(line, *VAT_KEYS) or "VAT" in line.upper():
        return "vat"
    if contains_any(line, *SUPPLY_KEYS):
        return "supply"
    if contains_any(line, *DISCOUNT_KEYS):
        return "discount"
    return "total"


def collect_money_candidates(text_lines: Sequence[str]) -> List[MoneyCandidate]:
    """Score every money token of every line by its label keywords and position."""
    out: List[MoneyCandidate] = []
    n = len(text_lines)
    for i, raw in enumerate(text_lines):
        line = raw.strip()
        if not line:
            continue
        monies = money_tokens(line)
        if not monies:
            continue
        base = _score_line(line)
        if i > n * 0.75:
            base -= 2
        bucket = _bucket(line)
        bonus = {"vat": 2, "supply": 2, "discount": 1}.get(bucket, 0)
        for money in monies:
            out.append(MoneyCandidate(amount=money, score=base + bonus, line_index=i, context=line, bucket=bucket))
    return out


def pick_best(cands: Iterable[MoneyCandidate], *, min_score: Optional[int] = None) -> Optional[int]:
    """Highest score wins; ties keep document order."""
    best: Optional[MoneyCandidate] = None
    for c in cands:
        if min_score is not None and c.score < min_score:
            continue
        if best is None or c.score > best.score:
            best = c
    return best.amount if best else None


def rank_money(
    text_lines: Sequence[str],
    *,
    floor: float = TOLERANCE_FLOOR,
    rel: float = TOLERANCE_REL,
) -> MoneyRanking:
    """
    Bucket money candidates into total / vat / supply / discount and keep the
    best of each.

    Unlabeled numbers never become the total (score must be positive). When
    supply + vat disagrees with the picked total, the total is re-picked from
    candidates on strongly labeled lines (결제금액/승인금액, +3); when no total
    was found at all, supply + vat stands in.
    """
    cands = collect_money_candidates(text_lines)
    by_bucket = {"total": [], "vat": [], "supply": [], "discount": []}
    for c in cands:
        by_bucket[c.bucket].append(c)

    total = pick_best(by_bucket["total"], min_score=1)
    vat = pick_best(by_bucket["vat"])
    supply = pick_best(by_bucket["supply"])
    discount = pick_best(by_bucket["discount"])

    reselected = False
    from_supply_vat = False
    expected = total_from_supply_and_vat(supply, vat)

    if total is not None and expected is not None:
        if abs(expected - total) > tolerance(total, floor=floor, rel=rel):
            strong = [
                MoneyCandidate(c.amount, c.score + 3, c.line_index, c.context, c.bucket)
                for c in by_bucket["total"]
                if contains_any(c.context, *STRONG_TOTAL_KEYS)
            ]
            better = pick_best(strong)
            if better is not None and better != total:
                total = better
                reselected = True
            else:
                # any total candidate that does reconcile beats a non-reconciling label pick
                matching = validate_candidates_against_invariant(
                    (c.amount for c in by_bucket["total"] if c.score > 0),
                    validator=lambda v: abs(expected - v) <= tolerance(v, floor=floor, rel=rel),
                )
                alt = choose_best_candidate(matching, original_guess=expected)
                if alt is not None and alt != total:
                    total = alt
                    reselected = True

    if total is None and expected is not None:
        total = expected
        from_supply_vat = True

    return MoneyRanking(
        total=total,
        vat=vat,
        supply=supply,
        discount=discount,
        candidates=tuple(cands),
        reselected_total=reselected,
        total_from_supply_vat=from_supply_vat,
    )
