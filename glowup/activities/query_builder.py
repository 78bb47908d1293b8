"""Profile → search inputs: natural-language queries and keyword lists.

Pure functions; every downstream search strategy starts here.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from glowup.models.contracts import Budget, Profile
from glowup.taxonomy import GOAL_PHRASES, WASH_FREQUENCY_PHRASES

# Search ceiling per budget tier (used to filter candidates)
_SEARCH_CEILING: Mapping[str, float] = MappingProxyType({"low": 25, "medium": 60, "high": 200})
# Per-product ceiling (prompt guidance, last-resort lookups, coverage repair)
_PER_PRODUCT_CEILING: Mapping[str, float] = MappingProxyType({"low": 25, "medium": 60, "high": 100})

MELANIN_SAFE_TONE = 0.6


def max_price_for_budget(budget: Budget | str | None) -> float:
    return _SEARCH_CEILING.get(budget or "medium", 200)


def per_product_budget(budget: Budget | str | None) -> float:
    return _PER_PRODUCT_CEILING.get(budget or "medium", 60)


def skin_tone_label(tone: float | None) -> str:
    if tone is None:
        return "not specified"
    if tone < 0.3:
        return "Fair"
    if tone < 0.5:
        return "Medium"
    if tone < 0.7:
        return "Medium-deep"
    return "Deep"


def build_profile_query(profile: Profile) -> str:
    """Natural-language skincare query used for embedding search."""
    parts = [f"Skincare products for {profile.skin_type} skin"]

    if profile.skin_goals:
        goals = ", ".join(GOAL_PHRASES.get(g, g) for g in profile.skin_goals)
        parts.append(f"targeting {goals}")

    if profile.skin_concerns:
        parts.append(f"for concerns: {', '.join(profile.skin_concerns)}")

    if profile.skin_tone is not None and profile.skin_tone >= MELANIN_SAFE_TONE:
        parts.append("safe for melanin-rich skin, avoiding ingredients that cause hyperpigmentation")

    if profile.budget == "low":
        parts.append("affordable drugstore options")
    elif profile.budget == "high":
        parts.append("premium luxury skincare")

    if profile.fragrance_free:
        parts.append("fragrance-free and hypoallergenic")

    return ". ".join(parts)


def build_hair_query(profile: Profile) -> str:
    parts: list[str] = []
    if profile.hair_type:
        parts.append(f"Haircare for {profile.hair_type} hair")
    if profile.hair_concerns:
        parts.append(f"addressing {', '.join(profile.hair_concerns)}")
    if profile.wash_frequency:
        phrase = WASH_FREQUENCY_PHRASES.get(profile.wash_frequency, "")
        if phrase:
            parts.append(phrase)
    return ". ".join(parts)


def extract_keywords(profile: Profile) -> list[str]:
    """Lower-cased, de-duplicated keywords in profile order.

    Order matters: the attribute search only text-matches the first three.
    """
    raw = [
        profile.skin_type,
        *profile.skin_concerns,
        *profile.skin_goals,
        "fragrance-free" if profile.fragrance_free else "",
    ]
    keywords: list[str] = []
    for value in raw:
        kw = value.strip().lower()
        if kw and kw not in keywords:
            keywords.append(kw)
    return keywords
