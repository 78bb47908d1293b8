"""Fold a newly bought product into an existing routine.

A product replaces the step that already covers its category; otherwise it is
added as a new step, as long as the sequence has room. Cleansers and
moisturizers go into both the morning and evening sequences.
"""

from __future__ import annotations

import structlog

from glowup.models.contracts import (
    CatalogRecord,
    IntegrationResult,
    Placement,
    ProductMatch,
    Routine,
    RoutineSlot,
    RoutineStep,
)
from glowup.taxonomy import PLACEMENT_SLOTS, ROUTINE_CATEGORY_HINTS, SLOT_CAPS

log = structlog.get_logger("integration")

DEFAULT_SLOTS: tuple[RoutineSlot, ...] = ("evening",)
# Products the user owns are bound with full confidence
OWNED_SIMILARITY = 1.0


def placement_category(category: str) -> str | None:
    text = category.lower().strip()
    if text in PLACEMENT_SLOTS:
        return text
    return next((c for hint, c in ROUTINE_CATEGORY_HINTS.items() if hint in text), None)


def _step_category(step: RoutineStep) -> str | None:
    if step.product is not None:
        category = placement_category(step.product.category)
        if category:
            return category
    return placement_category(step.name)


def integrate_product(routine: Routine, record: CatalogRecord) -> IntegrationResult:
    """Place `record` into a copy of `routine`; the input is not mutated."""
    category = placement_category(record.category)
    slots = PLACEMENT_SLOTS.get(category, DEFAULT_SLOTS) if category else DEFAULT_SLOTS
    product = ProductMatch.from_record(record, OWNED_SIMILARITY)

    sequences: dict[RoutineSlot, list[RoutineStep]] = {
        "morning": list(routine.morning),
        "evening": list(routine.evening),
        "weekly": list(routine.weekly),
    }
    placements: list[Placement] = []

    for slot in slots:
        steps = sequences[slot]
        if any(s.product is not None and s.product.id == record.id for s in steps):
            continue

        index = next(
            (i for i, s in enumerate(steps) if category and _step_category(s) == category),
            None,
        )
        if index is not None:
            steps[index] = steps[index].model_copy(update={"product": product})
            placements.append(
                Placement(
                    action="replace",
                    routine_type=slot,
                    step_index=index,
                    step_name=steps[index].name,
                    reason=f"Replaces your current {category} in the {slot} routine",
                )
            )
            continue

        if len(steps) >= SLOT_CAPS[slot]:
            log.info("integration_slot_full", product_id=record.id, slot=slot)
            continue

        name = category.title() if category else "New Step"
        reason = f"Adds a {category or record.category or 'new'} step to your {slot} routine"
        steps.append(
            RoutineStep(
                step=len(steps) + 1,
                name=name,
                product=product,
                instructions=reason,
                frequency="weekly" if slot == "weekly" else "daily",
            )
        )
        placements.append(Placement(action="add", routine_type=slot, step_name=name, reason=reason))

    log.info(
        "product_integrated",
        product_id=record.id,
        category=category,
        placements=[f"{p.action}:{p.routine_type}" for p in placements],
    )
    return IntegrationResult(routine=Routine(**sequences), placements=placements)
