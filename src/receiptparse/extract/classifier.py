from __future__ import annotations

from enum import IntEnum
from typing import Optional


class TaxType(IntEnum):
    TAXABLE = 1
    TAX_FREE = 2
    UNKNOWN = 3


class ItemCategory(IntEnum):
    FOOD = 1
    SUPPLY = 2
    OTHER = 3


VAT_LABEL = "과세"
TAX_FREE_LABEL = "면세"

# Substring-matched, checked in order; first hit wins.
FOOD_KEYWORDS: tuple[str, ...] = (
    "쌀", "현미", "찹쌀", "보리",
    "감자", "고구마", "양파", "당근", "마늘", "생강", "무", "배추", "파", "버섯", "양배추",
    "고기", "쇠고기", "소고기", "돼지고기", "돈육", "닭", "계육", "정육", "삼겹살",
    "계란", "달걀", "두부", "콩", "콩나물", "숙주",
    "생선", "연어", "참치", "고등어", "오징어", "새우", "조개", "해물",
    "김치", "고춧가루", "된장", "간장", "맛술", "참기름", "식초", "소금", "설탕",
    "밀가루", "전분", "치즈", "버터", "우유", "생크림", "요거트",
    "사과", "바나나", "딸기", "배", "포도", "과일",
)

SUPPLY_KEYWORDS: tuple[str, ...] = (
    "칼", "식칼", "도마", "가위", "국자", "집게",
    "행주", "수건", "걸레", "키친타올", "종이타월", "휴지", "물티슈",
    "위생장갑", "고무장갑", "앞치마", "마스크",
    "종이컵", "비닐", "봉투", "랩", "호일", "포장",
    "세제", "주방세제", "락스", "세척제", "소독제",
    "수세미", "스펀지", "필터", "호스",
)

# Names containing a supply keyword that are really dishes/ingredients.
# A hit returns OTHER, not FOOD (kept as observed; see DESIGN.md).
FOOD_EXCEPTIONS: tuple[str, ...] = (
    "칼국수",
    "가위살",
)


def taxify(tax_flag: Optional[str]) -> TaxType:
    if not tax_flag:
        return TaxType.UNKNOWN
    if tax_flag == VAT_LABEL:
        return TaxType.TAXABLE
    if tax_flag == TAX_FREE_LABEL:
        return TaxType.TAX_FREE
    return TaxType.UNKNOWN


def classify(item_name: Optional[str]) -> ItemCategory:
    """Coarse category of an item name: exception list, then food, then supply."""
    if not item_name:
        return ItemCategory.OTHER

    for ex in FOOD_EXCEPTIONS:
        if ex in item_name:
            return ItemCategory.OTHER

    for keyword in FOOD_KEYWORDS:
        if keyword in item_name:
            return ItemCategory.FOOD

    for keyword in SUPPLY_KEYWORDS:
        if keyword in item_name:
            return ItemCategory.SUPPLY

    return ItemCategory.OTHER
