"""Focus coverage: make sure the user's top concerns each get a routine step.

Runs after step resolution. For up to three focus targets (concerns first,
then goals) it checks whether any step already addresses the target and, if
not, appends a targeted step with a real catalog product.
"""

from __future__ import annotations

import structlog

from glowup.activities.query_builder import per_product_budget
from glowup.activities.search import AttributeStrategy, SearchTuning
from glowup.models.contracts import ProductMatch, Profile, Routine, RoutineStep
from glowup.taxonomy import FOCUS_TARGETS, SLOT_CAPS, FocusTarget
from glowup.utils.catalog import Catalog

log = structlog.get_logger("coverage")

MAX_FOCUS_TARGETS = 3
CATEGORY_SEARCH_LIMIT = 5


def focus_targets_for(profile: Profile) -> list[FocusTarget]:
    targets: list[FocusTarget] = []
    for tag in [*profile.skin_concerns, *profile.skin_goals]:
        target = FOCUS_TARGETS.get(tag.lower())
        if target is not None and target not in targets:
            targets.append(target)
    return targets[:MAX_FOCUS_TARGETS]


def _step_text(step: RoutineStep) -> str:
    parts = [step.name, step.instructions]
    if step.product is not None:
        parts += [step.product.name, step.product.description]
    return " ".join(parts)


def is_covered(routine: Routine, target: FocusTarget) -> bool:
    text = " ".join(_step_text(s) for s in routine.all_steps()).lower()
    return any(term.lower() in text for term in target.query_terms)


def _from_candidates(
    target: FocusTarget, candidates: list[ProductMatch], used: set[str]
) -> ProductMatch | None:
    terms = [t.lower() for t in target.query_terms]
    for p in candidates:
        if p.id in used:
            continue
        text = f"{p.name} {p.category} {p.description}".lower()
        if any(t in text for t in terms) or target.preferred_category in p.category.lower():
            return p
    return None


async def ensure_focus_coverage(
    profile: Profile,
    routine: Routine,
    candidates: list[ProductMatch],
    catalog: Catalog,
    tuning: SearchTuning | None = None,
) -> tuple[Routine, list[str]]:
    """Return a routine covering the profile's focus targets and the labels added.

    The input routine is not mutated.
    """
    targets = focus_targets_for(profile)
    if not targets:
        return routine, []

    attribute = AttributeStrategy(catalog, tuning or SearchTuning.from_settings())
    budget_max = per_product_budget(profile.budget)
    slots: dict[str, list[RoutineStep]] = {
        "morning": list(routine.morning),
        "evening": list(routine.evening),
        "weekly": list(routine.weekly),
    }
    used = routine.used_product_ids()
    added: list[str] = []

    for target in targets:
        current = Routine(**slots)
        if is_covered(current, target):
            continue

        steps = slots[target.routine_slot]
        if len(steps) >= SLOT_CAPS[target.routine_slot]:
            log.info("coverage_slot_full", target=target.key, slot=target.routine_slot)
            continue

        match = _from_candidates(target, candidates, used)
        if match is None:
            keywords = [profile.skin_type, *target.terms_for(profile.skin_type)]
            hits = await attribute.attempt(
                profile,
                list(dict.fromkeys(keywords)),
                budget_max,
                CATEGORY_SEARCH_LIMIT,
                category=target.preferred_category,
            )
            match = next((h for h in hits if h.id not in used), None)
        if match is None:
            log.info("coverage_no_product", target=target.key)
            continue

        steps.append(
            RoutineStep(
                step=len(steps) + 1,
                name=target.step_name,
                product=match,
                instructions=target.instruction,
                frequency="weekly" if target.routine_slot == "weekly" else "daily",
            )
        )
        used.add(match.id)
        added.append(target.label)

    if added:
        log.info("coverage_steps_added", targets=added)
    return Routine(**slots), added
