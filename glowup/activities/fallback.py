"""Rule-based routine: used whenever the model path cannot produce one.

Deterministic for a fixed candidate list. Step counts: at most 4 morning,
at most 3 evening, exactly 2 weekly. Products may be absent when no candidate
fits a slot.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

import structlog

from glowup.activities.query_builder import MELANIN_SAFE_TONE
from glowup.models.contracts import ProductMatch, Profile, Routine, RoutineStep, SynthesisResult

log = structlog.get_logger("fallback")

_CATEGORY_WORDS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "cleanser": ("cleanser", "wash"),
        "moisturizer": ("moisturizer", "cream"),
        "sunscreen": ("sunscreen", "spf"),
        "serum": ("serum", "treatment"),
        "toner": ("toner", "essence"),
        "exfoliant": ("exfoliant", "peel", "scrub"),
        "mask": ("mask",),
    }
)

GENERIC_TIPS = (
    "Always patch test new products before full application",
    "Give products 2-4 weeks to show results",
    "Consistency is more important than complexity",
    "Apply products from thinnest to thickest consistency",
    "Don't forget your neck and décolletage!",
)
MIN_TIPS = 3


def pick_by_category(products: list[ProductMatch]) -> dict[str, ProductMatch]:
    """First candidate per routine category, by case-insensitive substring."""
    picks: dict[str, ProductMatch] = {}
    for key, words in _CATEGORY_WORDS.items():
        for p in products:
            cat = p.category.lower()
            if any(w in cat for w in words):
                picks[key] = p
                break
    return picks


def fallback_tips(profile: Profile) -> list[str]:
    tips: list[str] = []
    if profile.skin_type == "oily":
        tips.append("Use gel-based products and mattifying ingredients like niacinamide")
    elif profile.skin_type == "dry":
        tips.append("Layer hydrating products and seal with an occlusive moisturizer")
    if "clear_skin" in profile.skin_goals:
        tips.append("Incorporate salicylic acid or benzoyl peroxide to help control breakouts")
    if "anti_aging" in profile.skin_goals:
        tips.append("Retinol is your best friend - start slow, 2-3x per week")
    if profile.skin_tone is not None and profile.skin_tone >= MELANIN_SAFE_TONE:
        tips.append("Be gentle with actives to avoid post-inflammatory hyperpigmentation")
    if profile.sunscreen_usage != "daily":
        tips.append("Daily SPF is the #1 anti-aging product - make it non-negotiable!")

    for generic in GENERIC_TIPS:
        if len(tips) >= MIN_TIPS:
            break
        tips.append(generic)
    return tips


def fallback_summary(profile: Profile) -> str:
    goal = profile.skin_goals[0].replace("_", " ") if profile.skin_goals else "skincare"
    budget_line = (
        "Budget-friendly picks that deliver results."
        if profile.budget == "low"
        else "Quality products selected for maximum efficacy."
    )
    return f"A {profile.skin_type} skin routine tailored to your {goal} goals. {budget_line}"


def _numbered(steps: list[tuple[str, ProductMatch | None, str]], frequency: str) -> list[RoutineStep]:
    return [
        RoutineStep(step=i, name=name, product=product, instructions=text, frequency=frequency)
        for i, (name, product, text) in enumerate(steps, start=1)
    ]


def build_fallback_routine(profile: Profile, products: list[ProductMatch]) -> SynthesisResult:
    picks = pick_by_category(products)
    cleanser = picks.get("cleanser")
    moisturizer = picks.get("moisturizer")
    serum = picks.get("serum")
    toner = picks.get("toner")

    morning: list[tuple[str, ProductMatch | None, str]] = [
        (
            "Cleanser",
            cleanser,
            "Gently cleanse with lukewarm water to remove overnight oils"
            if profile.skin_type == "oily"
            else "Quick rinse or skip if skin feels balanced",
        )
    ]
    if toner:
        morning.append(("Toner/Essence", toner, "Pat onto skin while still damp"))
    morning.append(("Moisturizer", moisturizer, "Apply to damp skin for better absorption"))
    morning.append(
        (
            "Sunscreen",
            picks.get("sunscreen"),
            "Apply generously (2 finger lengths) as final step - wait 15 min before sun exposure",
        )
    )

    evening: list[tuple[str, ProductMatch | None, str]] = [
        (
            "Cleanser",
            cleanser,
            "Double cleanse if wearing makeup/sunscreen - oil cleanser first, then regular",
        )
    ]
    if serum:
        treatment_text = "Apply to clean, dry skin - less is more!"
        if "anti_aging" in profile.skin_goals:
            treatment_text += " If this contains retinol, start 2-3 nights a week."
        evening.append(("Treatment/Serum", serum, treatment_text))
    evening.append(("Moisturizer", moisturizer, "Seal in actives and hydration"))

    weekly: list[tuple[str, ProductMatch | None, str]] = [
        (
            "Exfoliation",
            picks.get("exfoliant") or serum,
            "Use a gentle exfoliant once a week to reset your skin",
        ),
        (
            "Mask",
            picks.get("mask") or moisturizer,
            "Apply a hydrating or clarifying mask for 10–15 minutes",
        ),
    ]

    routine = Routine(
        morning=_numbered(morning, "daily"),
        evening=_numbered(evening, "daily"),
        weekly=_numbered(weekly, "weekly"),
    )
    log.info(
        "fallback_routine_built",
        candidates=len(products),
        categories=sorted(picks),
        morning=len(routine.morning),
        evening=len(routine.evening),
    )
    return SynthesisResult(
        routine=routine,
        summary=fallback_summary(profile),
        tips=fallback_tips(profile),
        used_fallback=True,
    )
