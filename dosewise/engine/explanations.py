"""
Natural-language explanations for schedule slots.

Rules are keyed by meal context and inspect the user's own supplement names
and categories (not the reference data), so manually entered supplements
get explained too. Name checks are case-insensitive substring matches.
"""

from typing import Callable, Dict, Iterable, List

from dosewise.engine.enums import MealContext, SupplementCategory

IRON_WITH_VITAMIN_C = "Iron absorbs best on an empty stomach. Vitamin C significantly boosts iron absorption."
IRON_ALONE = "Iron absorbs best before food - food can cut absorption by 50%."
PROBIOTIC_NOTE = "Probiotics may survive better on an empty stomach."
AMINO_ACID_NOTE = "Amino acids absorb better without competing proteins from food."
FAT_SOLUBLE_NOTE = "Fat-soluble vitamins require dietary fat to absorb properly. Your meal provides the fat they need."
ZINC_DINNER_NOTE = "Zinc absorption is enhanced by protein, making dinner an ideal time."
CALCIUM_NOTE = "Calcium competes with iron and other minerals for absorption. We've spaced them apart."
MAGNESIUM_NOTE = "Magnesium promotes muscle relaxation and may support better sleep."
ASHWAGANDHA_NOTE = "Ashwagandha can help manage stress and support restful sleep."


def _names(supplements) -> List[str]:
    return [(s.name or "").lower() for s in supplements]


def _categories(supplements) -> List[SupplementCategory]:
    return [SupplementCategory.parse(s.category) for s in supplements]


def _any_name_contains(supplements, needle: str) -> bool:
    return any(needle in name for name in _names(supplements))


def _empty_stomach_notes(supplements, context: MealContext) -> List[str]:
    notes = []
    has_iron = _any_name_contains(supplements, "iron")
    has_vitamin_c = any("vitamin c" in name or name == "c" for name in _names(supplements))

    if has_iron and has_vitamin_c:
        notes.append(IRON_WITH_VITAMIN_C)
    elif has_iron:
        notes.append(IRON_ALONE)

    categories = _categories(supplements)
    if SupplementCategory.PROBIOTIC in categories:
        notes.append(PROBIOTIC_NOTE)
    if SupplementCategory.AMINO_ACID in categories:
        notes.append(AMINO_ACID_NOTE)
    return notes


def _meal_notes(supplements, context: MealContext) -> List[str]:
    notes = []
    categories = _categories(supplements)
    if SupplementCategory.VITAMIN_FAT_SOLUBLE in categories or SupplementCategory.OMEGA in categories:
        notes.append(FAT_SOLUBLE_NOTE)
    if context == MealContext.WITH_DINNER and _any_name_contains(supplements, "zinc"):
        notes.append(ZINC_DINNER_NOTE)
    return notes


def _between_meals_notes(supplements, context: MealContext) -> List[str]:
    if _any_name_contains(supplements, "calcium"):
        return [CALCIUM_NOTE]
    return []


def _bedtime_notes(supplements, context: MealContext) -> List[str]:
    notes = []
    if _any_name_contains(supplements, "magnesium"):
        notes.append(MAGNESIUM_NOTE)
    if _any_name_contains(supplements, "ashwagandha"):
        notes.append(ASHWAGANDHA_NOTE)
    return notes


_RULES: Dict[MealContext, Callable[..., List[str]]] = {
    MealContext.EMPTY_STOMACH: _empty_stomach_notes,
    MealContext.WITH_BREAKFAST: _meal_notes,
    MealContext.WITH_LUNCH: _meal_notes,
    MealContext.WITH_DINNER: _meal_notes,
    MealContext.BETWEEN_MEALS: _between_meals_notes,
    MealContext.BEDTIME: _bedtime_notes,
}


def generate_explanation(context: MealContext, supplements: Iterable) -> str:
    """Join every applicable note with a space; no notes gives ""."""
    supplements = list(supplements)
    if not supplements:
        return ""
    return " ".join(_RULES[MealContext(context)](supplements, MealContext(context)))
