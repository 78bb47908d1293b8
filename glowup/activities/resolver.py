"""Product resolver: bind each model-proposed step to a real catalog record.

Strategies are tried in order and the first hit wins:

1. SessionIdStrategy        exact id in the session map          0.95
2. SessionNameStrategy      name match in the session map        0.90
3. PreSearchedNameStrategy  name match in pre-searched results   own score, ≤0.90
4. CatalogNameStrategy      catalog name (+brand) substring      0.90 / 0.85
5. CatalogIdStrategy        catalog lookup of a model-given id   0.85
6. CategoryGuessStrategy    top-rated product for the step label 0.80

Ids only ever come from the session map (filled from catalog responses) or
from the catalog itself, so a resolved step never carries a made-up id.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Protocol

import structlog

from glowup.activities.session import SynthesisSession
from glowup.errors import CatalogUnavailableError
from glowup.models.contracts import ProductMatch, Routine, RoutineStep, StepDraft
from glowup.taxonomy import category_for_step_label
from glowup.utils.catalog import Catalog, CatalogQuery

log = structlog.get_logger("resolver")

SHORT_NAME_WORDS = 3


@dataclass
class ResolutionContext:
    session: SynthesisSession
    pre_searched: list[ProductMatch]
    budget_max: float


class ResolutionStrategy(Protocol):
    name: str

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None: ...


def _with_similarity(match: ProductMatch, similarity: float) -> ProductMatch:
    return match.model_copy(update={"similarity": similarity})


class SessionIdStrategy:
    name = "session_id"

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        match = ctx.session.find_by_id(draft.product_id)
        return _with_similarity(match, 0.95) if match else None


class SessionNameStrategy:
    name = "session_name"

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        match = ctx.session.find_by_name(draft.product_name)
        return _with_similarity(match, 0.9) if match else None


class PreSearchedNameStrategy:
    name = "pre_searched_name"

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        if not draft.product_name:
            return None
        wanted = draft.product_name.lower()
        for p in ctx.pre_searched:
            known = p.name.lower()
            if known and (wanted in known or known in wanted):
                return _with_similarity(p, min(p.similarity, 0.9))
        return None


class CatalogNameStrategy:
    name = "catalog_name"

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        if not draft.product_name:
            return None
        hits = await self._catalog.find(
            CatalogQuery(
                name_like=draft.product_name,
                brand_like=draft.product_brand,
                order_by_rating=False,
                limit=1,
            )
        )
        if hits:
            return ProductMatch.from_record(hits[0], 0.9)

        short_name = " ".join(draft.product_name.split()[:SHORT_NAME_WORDS])
        if short_name == draft.product_name:
            return None
        hits = await self._catalog.find(
            CatalogQuery(name_like=short_name, order_by_rating=False, limit=1)
        )
        return ProductMatch.from_record(hits[0], 0.85) if hits else None


class CatalogIdStrategy:
    name = "catalog_id"

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        if not draft.product_id or ctx.session.find_by_id(draft.product_id):
            return None
        record = await self._catalog.get(draft.product_id)
        return ProductMatch.from_record(record, 0.85) if record else None


class CategoryGuessStrategy:
    name = "category_guess"

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    async def resolve(self, draft: StepDraft, ctx: ResolutionContext) -> ProductMatch | None:
        category = category_for_step_label(draft.name)
        if category is None:
            return None
        records = await self._catalog.find(
            CatalogQuery(category=category, max_price=ctx.budget_max, limit=3)
        )
        if not records:
            return None
        pick = next((r for r in records if r.id not in ctx.session.claimed_ids), records[0])
        log.info("resolver_category_guess", step=draft.name, category=category, product_id=pick.id)
        return ProductMatch.from_record(pick, 0.8)


class ProductResolver:
    def __init__(self, catalog: Catalog, strategies: list[ResolutionStrategy] | None = None) -> None:
        self.strategies: list[ResolutionStrategy] = strategies or [
            SessionIdStrategy(),
            SessionNameStrategy(),
            PreSearchedNameStrategy(),
            CatalogNameStrategy(catalog),
            CatalogIdStrategy(catalog),
            CategoryGuessStrategy(catalog),
        ]

    async def resolve_step(
        self,
        draft: StepDraft,
        session: SynthesisSession,
        pre_searched: list[ProductMatch],
        budget_max: float,
    ) -> RoutineStep:
        """Never raises; `product` is None only when every strategy misses."""
        ctx = ResolutionContext(session=session, pre_searched=pre_searched, budget_max=budget_max)
        product: ProductMatch | None = None
        for strategy in self.strategies:
            try:
                product = await strategy.resolve(draft, ctx)
            except CatalogUnavailableError as exc:
                log.warning(
                    "resolver_strategy_failed",
                    strategy=strategy.name,
                    step=draft.name,
                    error=str(exc)[:200],
                )
                continue
            if product is not None:
                session.claimed_ids.add(product.id)
                log.debug("resolver_step_bound", strategy=strategy.name, step=draft.name)
                break

        if product is None:
            log.info("resolver_step_unbound", step=draft.name, product_name=draft.product_name)

        return RoutineStep(
            step=max(draft.step, 1),
            name=draft.name or f"Step {draft.step}",
            product=product,
            instructions=draft.instructions,
            frequency=draft.frequency or "daily",
        )

    async def resolve_routine(
        self,
        drafts: dict[str, list[StepDraft]],
        session: SynthesisSession,
        pre_searched: list[ProductMatch],
        budget_max: float,
    ) -> Routine:
        """Resolve all three sequences concurrently, then number each from 1."""

        async def _sequence(steps: list[StepDraft]) -> list[RoutineStep]:
            resolved = await asyncio.gather(
                *(self.resolve_step(d, session, pre_searched, budget_max) for d in steps)
            )
            return [s.model_copy(update={"step": i}) for i, s in enumerate(resolved, start=1)]

        morning, evening, weekly = await asyncio.gather(
            _sequence(drafts.get("morning", [])),
            _sequence(drafts.get("evening", [])),
            _sequence(drafts.get("weekly", [])),
        )
        routine = Routine(morning=morning, evening=evening, weekly=weekly)
        steps = routine.all_steps()
        log.info(
            "resolver_routine_complete",
            steps=len(steps),
            bound=sum(1 for s in steps if s.product is not None),
        )
        return routine
