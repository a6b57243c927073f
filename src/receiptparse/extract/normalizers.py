from __future__ import annotations

import datetime as dt
import re
from typing import Optional

from dateutil import parser as dtparser

from receiptparse.utils.time import current_year


_YMD_RE = re.compile(r"(20\d{2}|19\d{2})\s*[./\-]\s*(\d{1,2})\s*[./\-]\s*(\d{1,2})")
_YMD_KO_RE = re.compile(r"(\d{4})\s*년\s*(\d{1,2})\s*월\s*(\d{1,2})\s*일")
_MD_KO_RE = re.compile(r"(\d{1,2})\s*월\s*(\d{1,2})\s*일")
_YY_MD_RE = re.compile(r"^(\d{2})[./\-](\d{1,2})[./\-](\d{1,2})\.?$")
_CANONICAL_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EN_MONTH_RE = re.compile(r"\b(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\b", re.IGNORECASE)

_TIME_RE = re.compile(r"([0-2]?\d)\s*:\s*([0-5]\d)(?:\s*:\s*([0-5]\d))?")

_BIZ_NO_CANONICAL_RE = re.compile(r"^\d{3}-\d{2}-\d{5}$")
_BIZ_NO_WEIGHTS = (1, 3, 7, 1, 3, 7, 1, 3, 5)

_CARD_NOISE_RE = re.compile(r"[^0-9*Xx\-]")
_CARD_MASK_RUN_RE = re.compile(r"[*Xx]{2,}")
_DASH_RUN_RE = re.compile(r"-{2,}")


def _ymd(year: int, month: int, day: int) -> Optional[str]:
    """Validated yyyy-mm-dd or None for impossible dates."""
    try:
        d = dtparser.parse(f"{year:04d}-{month:02d}-{day:02d}", yearfirst=True).date()
    except (ValueError, OverflowError):
        return None
    return d.isoformat()


def normalize_date(raw: Optional[str]) -> Optional[str]:
    """
    Canonical zero-padded ``yyyy-mm-dd``.

    Accepts ``yyyy.mm.dd``, ``yyyy/mm/dd``, ``yyyy-mm-dd``, ``yyyy년 mm월 dd일``,
    ``yy.mm.dd`` and the year-less ``mm월 dd일`` (current year). English month
    names ("Oct 9, 2025") go through dateutil. Anything else is returned as
    given, trimmed.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if not s:
        return s

    if _CANONICAL_DATE_RE.match(s):
        return _ymd(int(s[:4]), int(s[5:7]), int(s[8:10])) or s

    m = _YMD_RE.search(s)
    if m:
        return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3))) or s

    m = _YMD_KO_RE.search(s)
    if m:
        return _ymd(int(m.group(1)), int(m.group(2)), int(m.group(3))) or s

    m = _YY_MD_RE.match(s)
    if m:
        return _ymd(2000 + int(m.group(1)), int(m.group(2)), int(m.group(3))) or s

    m = _MD_KO_RE.search(s)
    if m:
        return _ymd(current_year(), int(m.group(1)), int(m.group(2))) or s

    if _EN_MONTH_RE.search(s):
        try:
            default = dt.datetime(current_year(), 1, 1)
            return dtparser.parse(s, fuzzy=True, default=default).date().isoformat()
        except (ValueError, OverflowError):
            return s

    return s


def normalize_time(raw: Optional[str]) -> Optional[str]:
    """``HH:MM`` or ``HH:MM:SS`` zero-padded; input returned unchanged when no time is found."""
    if raw is None:
        return None
    s = str(raw).strip()
    m = _TIME_RE.search(s)
    if not m:
        return s
    hh = int(m.group(1))
    if hh > 23:
        return s
    out = f"{hh:02d}:{m.group(2)}"
    if m.group(3):
        out += f":{m.group(3)}"
    return out


def is_valid_biz_no(raw: Optional[str]) -> bool:
    """Korean business registration number checksum (digits, dashes or spaces mixed in are fine)."""
    if not raw or not str(raw).strip():
        return False
    digits = re.sub(r"\D", "", str(raw))
    if len(digits) != 10:
        return False

    total = sum(int(digits[i]) * _BIZ_NO_WEIGHTS[i] for i in range(9))
    total += (int(digits[8]) * 5) // 10
    check = (10 - (total % 10)) % 10
    return check == int(digits[9])


def normalize_biz_no(raw: Optional[str]) -> Optional[str]:
    """
    ``NNN-NN-NNNNN`` from a 10-digit run or an already-dashed value.
    Non-conforming input comes back unchanged (trimmed); the checksum is not enforced here.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    digits = re.sub(r"\D", "", s)
    if len(digits) != 10:
        return s
    return f"{digits[:3]}-{digits[3:5]}-{digits[5:]}"


def is_canonical_biz_no(value: Optional[str]) -> bool:
    return bool(value) and bool(_BIZ_NO_CANONICAL_RE.match(str(value)))


def normalize_masked_card(raw: Optional[str]) -> Optional[str]:
    """
    Clean a masked card number: OCR noise becomes ``*``, mask runs collapse
    to ``****`` and repeated dashes collapse to one.
    """
    if raw is None:
        return None
    s = str(raw).strip().replace(" ", "")
    if not s:
        return s
    s = _CARD_NOISE_RE.sub("*", s)
    s = _CARD_MASK_RUN_RE.sub("****", s)
    s = _DASH_RUN_RE.sub("-", s)
    return s.strip("-")


_CARD_BRAND_CANON: tuple[tuple[tuple[str, ...], str], ...] = (
    (("IBK비씨", "IBK BC", "IBKBC"), "IBK비씨카드"),
    (("비씨", "BC"), "BC카드"),
    (("KB", "국민"), "KB국민카드"),
    (("NH", "농협"), "NH농협카드"),
    (("삼성",), "삼성카드"),
    (("신한",), "신한카드"),
    (("현대",), "현대카드"),
    (("롯데",), "롯데카드"),
    (("하나",), "하나카드"),
    (("우리",), "우리카드"),
)


def normalize_card_brand(raw: Optional[str]) -> Optional[str]:
    """Display form of an issuer name ("국민" -> "KB국민카드", "BC" -> "BC카드"); unknown brands pass through."""
    if raw is None:
        return None
    s = re.sub(r"\s+", "", str(raw))
    if not s:
        return None
    upper = s.upper()
    for keys, canon in _CARD_BRAND_CANON:
        for k in keys:
            kk = k.replace(" ", "").upper()
            if kk in upper:
                return canon
    return s
