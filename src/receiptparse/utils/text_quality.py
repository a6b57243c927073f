from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, Tuple

_AMOUNT_RE = re.compile(r"\d{1,3}(?:,\d{3})+|\b\d{3,}\s*원|\b\d{4,}\b")
# digits with O/o/l/I glued in: "1,1OO", "5O0원"
_CONFUSED_NUMBER_RE = re.compile(r"\b(?=[0-9OolI,]*\d)(?=[0-9,]*[OolI])[0-9OolI,]{3,}\b")

RECEIPT_WORDS = (
    ("원", "krw", "₩", "￦"),
    ("합계", "총액", "결제금액", "승인금액", "합계금액", "total"),
    ("사업자", "가맹점", "승인번호", "카드번호", "대표자"),
    ("거래일시", "일시", "판매일", "결제일", "주문일", "date"),
    ("영수증", "매출전표", "거래명세", "receipt", "sales slip"),
    ("부가세", "과세", "면세", "공급가액", "vat"),
)

# a short convenience-store slip is already a "full" receipt
FULL_LENGTH = 120.0
FULL_LINES = 6.0


def _clamp(x: float) -> float:
    return min(1.0, max(0.0, float(x)))


def text_quality_score(text: str) -> Tuple[float, Dict[str, Any]]:
    """
    Score in [0, 1] for how much a receipt text looks like a readable receipt.

    Rewards length, letters/digits (Hangul counts as letters), receipt
    vocabulary, amount-looking numbers and line count. Penalizes replacement
    or control characters, numbers with letters glued into them and very
    long unbroken runs. Returns ``(score, metrics)``.
    """
    t = (text or "").replace("\xa0", " ").strip()
    if not t:
        return 0.0, {"length": 0, "score": 0.0}

    visible = [ch for ch in t if not ch.isspace()]
    n_visible = max(1, len(visible))
    word_chars = sum(1 for ch in visible if ch.isalnum())
    hangul = sum(1 for ch in visible if "가" <= ch <= "힣")
    garbage = t.count("�") + sum(
        1 for ch in visible if unicodedata.category(ch).startswith("C")
    )

    lower = t.lower()
    vocab = sum(1 for group in RECEIPT_WORDS if any(w in lower for w in group))
    amounts = len(_AMOUNT_RE.findall(t))
    confused = len(_CONFUSED_NUMBER_RE.findall(t))
    lines = sum(1 for ln in t.splitlines() if ln.strip())
    longest = max((len(tok) for tok in t.split()), default=0)

    word_ratio = word_chars / n_visible
    gain = (
        0.15 * _clamp(len(t) / FULL_LENGTH)
        + 0.20 * _clamp((word_ratio - 0.40) / 0.35)
        + 0.30 * _clamp(vocab / 3.0)
        + 0.20 * _clamp(amounts / 2.0)
        + 0.15 * _clamp(lines / FULL_LINES)
    )
    loss = (
        0.25 * _clamp(garbage / 3.0)
        + 0.15 * _clamp(confused / 2.0)
        + 0.20 * _clamp((longest - 40) / 60.0)
    )
    score = _clamp(gain - loss)

    return score, {
        "length": len(t),
        "word_ratio": round(word_ratio, 3),
        "hangul_ratio": round(hangul / n_visible, 3),
        "vocab_groups": vocab,
        "amounts": amounts,
        "confused_numbers": confused,
        "lines": lines,
        "garbage": garbage,
        "longest_run": longest,
        "score": round(score, 3),
    }
