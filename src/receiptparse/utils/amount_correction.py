from __future__ import annotations

import re
from typing import Callable, Iterable, Optional


_OCR_CHAR_MAP = {
    "O": "0",
    "o": "0",
    "D": "0",
    "l": "1",
    "I": "1",
    "|": "1",
    "S": "5",
    "s": "5",
    "B": "8",
    "Z": "2",
}

# only tokens that already look mostly numeric are repaired ("1O,5OO" yes, "SALE" no)
_REPAIRABLE_RE = re.compile(r"^[0-9OoDlI|SsBZ,.\s]+$")
_INT_MAX = 2_000_000_000


def normalize_ocr_amount_token(token: str) -> tuple[str, bool]:
    """Repair common OCR letter/digit confusions in a numeric token."""
    raw = str(token or "")
    if not raw:
        return "", False
    if not _REPAIRABLE_RE.match(raw) or not any(ch.isdigit() for ch in raw):
        return raw.strip(), False
    out = "".join(_OCR_CHAR_MAP.get(ch, ch) for ch in raw)
    out = out.replace("\xa0", " ").strip()
    return out, (out != raw.strip())


def to_int(value: object) -> Optional[int]:
    """
    Digits of ``value`` as an int, or None.

    A leading minus survives ("-1,000" -> -1000). Anything without digits,
    or a value that would overflow a 32-bit amount, gives None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(round(value))
    s = str(value).strip()
    if not s:
        return None
    s, _ = normalize_ocr_amount_token(s)
    negative = s.startswith("-") or s.startswith("−")
    digits = re.sub(r"[^0-9]", "", s)
    if not digits:
        return None
    n = int(digits)
    if n > _INT_MAX:
        return None
    return -n if negative else n


def to_float(value: object) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    s = re.sub(r"[^0-9.\-]", "", str(value).replace(",", ""))
    if not s or s in {"-", ".", "-."}:
        return None
    try:
        return float(s)
    except ValueError:
        return None


def validate_candidates_against_invariant(
    candidates: Iterable[int],
    *,
    validator: Callable[[int], bool],
) -> list[int]:
    """Keep only candidates that satisfy an accounting invariant (e.g. add up to the total)."""
    return [int(c) for c in candidates if validator(int(c))]


def choose_best_candidate(candidates: Iterable[int], *, original_guess: int | None = None) -> int | None:
    vals = [int(x) for x in candidates]
    if not vals:
        return None
    if original_guess is None:
        return vals[0]
    return min(vals, key=lambda x: abs(x - int(original_guess)))
