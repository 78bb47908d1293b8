"""Static lookup tables: category groups, tag synonyms, focus targets.

Built once at import as read-only mappings of tuples; nothing mutates them.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from glowup.models.contracts import RoutineSlot

SKINCARE_CATEGORIES: tuple[str, ...] = (
    "cleanser",
    "moisturizer",
    "treatment",
    "serum",
    "sunscreen",
    "toner",
    "mask",
    "exfoliant",
    "face",
    "eye",
)

ESSENTIAL_CATEGORIES: tuple[str, ...] = ("cleanser", "moisturizer", "sunscreen", "treatment", "serum")

# Tool-facing enums for search_products
TOOL_CATEGORIES: tuple[str, ...] = (
    "cleanser",
    "moisturizer",
    "serum",
    "sunscreen",
    "treatment",
    "toner",
    "mask",
    "exfoliant",
    "eye",
    "face",
)
TOOL_SKIN_TYPES: tuple[str, ...] = ("oily", "dry", "combination", "sensitive", "normal", "acne-prone")

SKIN_TYPE_TAGS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "oily": ("oily", "all", "combination"),
        "dry": ("dry", "all", "sensitive"),
        "combination": ("combination", "all", "oily", "dry"),
        "sensitive": ("sensitive", "all", "dry"),
        "normal": ("normal", "all"),
    }
)

CONCERN_TAGS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "acne": ("acne", "breakouts", "blemishes", "pores", "oily"),
        "aging": ("aging", "anti-aging", "wrinkles", "fine lines", "firmness"),
        "pigmentation": ("pigmentation", "dark spots", "brightening", "uneven tone"),
        "dark_spots": ("dark spots", "pigmentation", "brightening", "hyperpigmentation"),
        "dryness": ("dryness", "hydration", "moisture", "dehydration"),
        "redness": ("redness", "sensitivity", "calming", "rosacea"),
        "texture": ("texture", "smoothing", "exfoliation", "rough"),
        "glass_skin": ("hydration", "glow", "radiance", "dewy"),
        "clear_skin": ("acne", "breakouts", "clarity", "pores"),
        "brightening": ("brightening", "radiance", "glow", "dull"),
        "anti_aging": ("aging", "anti-aging", "wrinkles", "firmness"),
        "barrier_repair": ("barrier", "repair", "soothing", "sensitive"),
        "frizz": ("frizz", "smoothing", "humidity"),
        "damage": ("damage", "repair", "strengthening"),
        "breakage": ("breakage", "strengthening", "repair"),
    }
)

GOAL_PHRASES: Mapping[str, str] = MappingProxyType(
    {
        "glass_skin": "achieving glass skin with hydration and glow",
        "clear_skin": "clearing acne and preventing breakouts",
        "brightening": "brightening dark spots and evening skin tone",
        "anti_aging": "reducing fine lines and wrinkles with anti-aging",
        "barrier_repair": "repairing damaged skin barrier",
    }
)

WASH_FREQUENCY_PHRASES: Mapping[str, str] = MappingProxyType(
    {
        "daily": "for daily washing",
        "2_3_weekly": "for washing 2-3 times per week",
        "weekly": "for weekly wash routine",
        "biweekly": "for protective styles and infrequent washing",
        "monthly": "for protective styles with minimal washing",
    }
)

# Step-label substrings -> category, first hit wins
STEP_LABEL_CATEGORIES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("cleanser", "clean"), "cleanser"),
    (("moistur",), "moisturizer"),
    (("sunscreen", "spf"), "sunscreen"),
    (("serum", "vitamin"), "serum"),
    (("toner",), "toner"),
    (("exfoli", "scrub", "peel"), "exfoliant"),
    (("mask",), "mask"),
    (("treatment", "retinol"), "treatment"),
)


def category_for_step_label(label: str) -> str | None:
    text = label.lower()
    for needles, category in STEP_LABEL_CATEGORIES:
        if any(n in text for n in needles):
            return category
    return None


@dataclass(frozen=True)
class FocusTarget:
    key: str
    label: str
    query_terms: tuple[str, ...]
    preferred_category: str
    routine_slot: RoutineSlot
    step_name: str
    instruction: str
    include_skin_type: bool = False

    def terms_for(self, skin_type: str | None) -> tuple[str, ...]:
        if self.include_skin_type:
            return (*self.query_terms, skin_type or "oily")
        return self.query_terms


FOCUS_TARGETS: Mapping[str, FocusTarget] = MappingProxyType(
    {
        t.key: t
        for t in (
            FocusTarget(
                key="acne",
                label="acne + breakouts",
                query_terms=("acne", "breakouts"),
                preferred_category="treatment",
                routine_slot="evening",
                step_name="Acne Treatment",
                instruction=(
                    "Apply a thin layer to breakout-prone areas to help reduce active acne "
                    "and prevent new blemishes."
                ),
                include_skin_type=True,
            ),
            FocusTarget(
                key="dark_spots",
                label="dark spots",
                query_terms=("dark spots", "hyperpigmentation", "brightening"),
                preferred_category="serum",
                routine_slot="evening",
                step_name="Dark Spot Corrector",
                instruction=(
                    "Use on dark spots and uneven tone zones to visibly improve pigmentation over time."
                ),
            ),
            FocusTarget(
                key="pigmentation",
                label="pigmentation",
                query_terms=("pigmentation", "uneven tone", "brightening"),
                preferred_category="serum",
                routine_slot="evening",
                step_name="Tone-Correcting Serum",
                instruction="Apply nightly to support a more even skin tone and reduce discoloration.",
            ),
            FocusTarget(
                key="redness",
                label="redness",
                query_terms=("redness", "soothing", "sensitive"),
                preferred_category="moisturizer",
                routine_slot="evening",
                step_name="Calming Moisturizer",
                instruction="Use as your final step to calm visible redness and support the skin barrier.",
            ),
            FocusTarget(
                key="sensitivity",
                label="sensitivity",
                query_terms=("sensitive", "barrier", "fragrance free"),
                preferred_category="moisturizer",
                routine_slot="evening",
                step_name="Barrier Support",
                instruction=(
                    "Focus on barrier-repair ingredients and avoid harsh actives while skin is reactive."
                ),
            ),
            FocusTarget(
                key="dryness",
                label="dryness",
                query_terms=("dryness", "hydration", "moisture"),
                preferred_category="moisturizer",
                routine_slot="evening",
                step_name="Deep Hydration",
                instruction="Seal hydration with this richer step to improve dryness and tightness.",
            ),
            FocusTarget(
                key="texture",
                label="texture",
                query_terms=("texture", "smooth", "exfoliant"),
                preferred_category="exfoliant",
                routine_slot="weekly",
                step_name="Texture Reset",
                instruction="Use 1-2 times weekly to smooth rough texture and refine skin surface.",
            ),
            FocusTarget(
                key="aging",
                label="aging",
                query_terms=("anti aging", "wrinkles", "fine lines", "retinol"),
                preferred_category="treatment",
                routine_slot="evening",
                step_name="Line-Smoothing Treatment",
                instruction="Apply at night to target fine lines and improve long-term skin firmness.",
            ),
            FocusTarget(
                key="glass_skin",
                label="glass skin glow",
                query_terms=("glass skin", "dewy", "hydrating serum"),
                preferred_category="serum",
                routine_slot="morning",
                step_name="Glow Serum",
                instruction="Layer under moisturizer for a hydrated, dewy glass-skin finish.",
            ),
            FocusTarget(
                key="clear_skin",
                label="clear skin",
                query_terms=("clear skin", "pores", "breakouts"),
                preferred_category="treatment",
                routine_slot="evening",
                step_name="Clarifying Treatment",
                instruction="Use consistently to keep pores clear and support a clearer complexion.",
            ),
            FocusTarget(
                key="brightening",
                label="brightening",
                query_terms=("brightening", "radiance", "dullness", "vitamin c"),
                preferred_category="serum",
                routine_slot="morning",
                step_name="Brightening Serum",
                instruction="Apply in the morning to boost radiance and support a brighter tone.",
            ),
            FocusTarget(
                key="anti_aging",
                label="anti-aging",
                query_terms=("anti aging", "retinol", "firmness", "wrinkles"),
                preferred_category="treatment",
                routine_slot="evening",
                step_name="Anti-Aging Active",
                instruction="Use as your evening active to improve texture, tone, and visible lines.",
            ),
            FocusTarget(
                key="barrier_repair",
                label="barrier repair",
                query_terms=("barrier repair", "ceramide", "soothing"),
                preferred_category="moisturizer",
                routine_slot="evening",
                step_name="Barrier Repair Cream",
                instruction="Apply nightly to strengthen barrier function and reduce irritation risk.",
            ),
        )
    }
)

SLOT_CAPS: Mapping[str, int] = MappingProxyType({"morning": 5, "evening": 5, "weekly": 3})

RETAILER_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "sephora": "Sephora",
        "ulta": "Ulta",
        "amazon": "Amazon",
        "target": "Target",
        "walmart": "Walmart",
        "cvs": "CVS",
        "walgreens": "Walgreens",
        "dermstore": "Dermstore",
        "yesstyle": "YesStyle",
        "stylevana": "Stylevana",
        "theordinary": "The Ordinary",
    }
)

# Step-name hints used to read a routine's categories (cart fit, integration)
ROUTINE_CATEGORY_HINTS: Mapping[str, str] = MappingProxyType(
    {
        "cleanser": "cleanser",
        "wash": "cleanser",
        "serum": "serum",
        "moisturizer": "moisturizer",
        "cream": "moisturizer",
        "sunscreen": "sunscreen",
        "spf": "sunscreen",
        "toner": "toner",
        "exfoliant": "exfoliant",
        "mask": "mask",
        "treatment": "treatment",
        "eye": "eye",
    }
)

# Where a newly bought product of each category belongs; unknown → evening
PLACEMENT_SLOTS: Mapping[str, tuple[RoutineSlot, ...]] = MappingProxyType(
    {
        "cleanser": ("morning", "evening"),
        "moisturizer": ("morning", "evening"),
        "sunscreen": ("morning",),
        "toner": ("morning",),
        "serum": ("evening",),
        "treatment": ("evening",),
        "eye": ("evening",),
        "exfoliant": ("weekly",),
        "mask": ("weekly",),
    }
)
