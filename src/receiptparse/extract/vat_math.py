from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

TOLERANCE_FLOOR = 10
TOLERANCE_REL = 0.02


def _i(v: Any) -> Optional[int]:
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return int(round(v))
    return None


def tolerance(target: int | float, *, floor: float = TOLERANCE_FLOOR, rel: float = TOLERANCE_REL) -> float:
    """Allowed absolute deviation from ``target``: 2 % or the fixed floor, whichever is larger."""
    return max(float(floor), abs(float(target)) * float(rel))


def approx_equal(
    value: int | float | None,
    target: int | float | None,
    *,
    floor: float = TOLERANCE_FLOOR,
    rel: float = TOLERANCE_REL,
) -> bool:
    """True when both are known and within tolerance, or when either side is unknown."""
    if value is None or target is None:
        return True
    return abs(float(value) - float(target)) <= tolerance(target, floor=floor, rel=rel)


def item_amount_ok(
    unit_price: Optional[int],
    qty: Optional[int],
    amount: Optional[int],
    *,
    floor: float = TOLERANCE_FLOOR,
    rel: float = TOLERANCE_REL,
) -> bool:
    if unit_price is None or qty is None or amount is None:
        return True
    return approx_equal(amount, unit_price * qty, floor=floor, rel=rel)


def fill_item_amount(unit_price: Optional[int], qty: Optional[int], amount: Optional[int]) -> Optional[int]:
    if amount is None and unit_price is not None and qty is not None:
        return unit_price * qty
    return amount


def total_from_supply_and_vat(supply: Optional[int], vat: Optional[int]) -> Optional[int]:
    if supply is None or vat is None:
        return None
    return int(supply) + int(vat)


def totals_ok(
    taxable: Optional[int],
    vat: Optional[int],
    total: Optional[int],
    *,
    floor: float = TOLERANCE_FLOOR,
    rel: float = TOLERANCE_REL,
) -> bool:
    if taxable is None or vat is None or total is None:
        return True
    return approx_equal(taxable + vat, total, floor=floor, rel=rel)


def check_totals(
    items: List[Dict[str, Any]],
    totals: Dict[str, Any],
    *,
    floor: float = TOLERANCE_FLOOR,
    rel: float = TOLERANCE_REL,
) -> Tuple[Optional[int], Dict[str, bool]]:
    """
    Reconcile line items and totals.

    ``items`` carry ``line_no``/``unit_price``/``qty``/``amount``; ``totals`` carry
    ``taxable``/``vat``/``total``. Returns the item amount sum (None when no item
    has an amount) and a flags dict:
      items_ok          every item with unit price and qty matches its amount
      totals_ok         taxable + vat matches total
      bad_items:<no>    one False entry per mismatching item
    """
    flags: Dict[str, bool] = {}
    items_ok = True
    amount_sum = 0
    has_amount = False
    for idx, it in enumerate(items or []):
        up, q, amt = _i(it.get("unit_price")), _i(it.get("qty")), _i(it.get("amount"))
        if amt is not None:
            amount_sum += amt
            has_amount = True
        if not item_amount_ok(up, q, amt, floor=floor, rel=rel):
            items_ok = False
            flags[f"bad_items:{it.get('line_no') or idx + 1}"] = False

    flags["items_ok"] = items_ok
    flags["totals_ok"] = totals_ok(
        _i(totals.get("taxable")), _i(totals.get("vat")), _i(totals.get("total")), floor=floor, rel=rel
    )
    return (amount_sum if has_amount else None), flags
