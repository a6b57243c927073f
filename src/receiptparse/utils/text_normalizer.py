from __future__ import annotations

import re
from typing import Iterable, List, Optional, Sequence

# Labels that start their own line on almost every layout. Longer labels first
# so the alternation never splits a compound label.
BREAK_LABELS: tuple[str, ...] = (
    "총결제금액",
    "합계금액",
    "결제금액",
    "승인금액",
    "과세물품가액",
    "면세물품가액",
    "비과세금액",
    "과세금액",
    "공급가액",
    "부가세",
    "할인금액",
    "승인번호",
    "승인일시",
    "카드번호",
    "가맹점번호",
    "합계",
    "총액",
    "할인",
    "면세",
    "과세",
)

_FULLWIDTH_OFFSET = 0xFEE0
_HSPACE_RE = re.compile(r"[ \t\x0b\x0c\u00a0\u2000-\u200b\u3000]+")
_NEWLINES_RE = re.compile(r"\n{2,}")
# lookahead, not \b: "4.800원" has no word boundary before 원
THOUSANDS_DOT_RE = re.compile(r"(?<=\d)\.(?=\d{3}(?!\d))")


def _label_alternation(labels: Sequence[str]) -> str:
    ordered = sorted(dict.fromkeys(labels), key=len, reverse=True)
    return "|".join(re.escape(x) for x in ordered)


_BREAK_SPACED_RE = re.compile(r"(?<=\S)[ ]+(?=(?:%s))" % _label_alternation(BREAK_LABELS))
# run-together case: "1,500부가세 150" -> break only after a digit/punctuation/원
_BREAK_GLUED_RE = re.compile(r"(?<=[0-9,.:)\]원])(?=(?:%s))" % _label_alternation(BREAK_LABELS))


def fold_width(text: str) -> str:
    """Fold full-width ASCII (U+FF01..U+FF5E) to half-width and the ideographic space to a space."""
    out = []
    for ch in text:
        code = ord(ch)
        if 0xFF01 <= code <= 0xFF5E:
            out.append(chr(code - _FULLWIDTH_OFFSET))
        elif code == 0x3000:
            out.append(" ")
        else:
            out.append(ch)
    return "".join(out)


def fix_thousands_dot(text: str) -> str:
    """4.800 -> 4,800 (OCR often reads the thousands comma as a dot)."""
    return THOUSANDS_DOT_RE.sub(",", text or "")


def collapse_whitespace(text: str) -> str:
    """Collapse horizontal whitespace runs; keep single line breaks; trim every line."""
    t = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    t = _HSPACE_RE.sub(" ", t)
    lines = [ln.strip() for ln in t.split("\n")]
    t = "\n".join(ln for ln in lines if ln)
    return _NEWLINES_RE.sub("\n", t)


def break_before_labels(text: str, labels: Optional[Iterable[str]] = None) -> str:
    if labels is None:
        t = _BREAK_SPACED_RE.sub("\n", text)
        return _BREAK_GLUED_RE.sub("\n", t)
    alt = _label_alternation(list(labels))
    if not alt:
        return text
    t = re.sub(r"(?<=\S)[ ]+(?=(?:%s))" % alt, "\n", text)
    return re.sub(r"(?<=[0-9,.:)\]원])(?=(?:%s))" % alt, "\n", t)


def normalize_text(
    text: Optional[str],
    *,
    break_labels: bool = True,
    labels: Optional[Iterable[str]] = None,
) -> str:
    """
    Canonical form of raw OCR text.

    Full-width characters are folded, whitespace runs collapse to one space,
    existing line breaks survive and, unless ``break_labels`` is off, a line
    break is forced ahead of every known field label. Never raises; ``None``
    or empty input gives ``""``.
    """
    if not text:
        return ""
    t = fold_width(str(text))
    t = collapse_whitespace(t)
    if break_labels:
        t = break_before_labels(t, labels)
        t = collapse_whitespace(t)
    return t


def split_lines(text: Optional[str]) -> List[str]:
    return [ln.strip() for ln in (text or "").split("\n") if ln.strip()]
