"""Inference pipeline: profile → candidates → routine → verified products.

    search cascade → category backfill → synthesis (model or fallback)
        → product resolution → focus coverage

`run_inference` is the core, callable directly from the API and tests; the
Temporal activities below wrap it and translate domain errors into
ApplicationError retry decisions.
"""

from __future__ import annotations

import structlog
from temporalio import activity
from temporalio.exceptions import ApplicationError

from glowup.activities.cart import build_cart
from glowup.activities.coverage import ensure_focus_coverage
from glowup.activities.fallback import build_fallback_routine
from glowup.activities.query_builder import (
    build_hair_query,
    build_profile_query,
    max_price_for_budget,
    per_product_budget,
)
from glowup.activities.resolver import ProductResolver
from glowup.activities.search import (
    CatalogSearchCascade,
    SearchTuning,
    backfill_essential_categories,
)
from glowup.activities.session import SynthesisSession
from glowup.activities.synthesis import (
    DEFAULT_SUMMARY,
    RoutineSynthesizer,
    RoutineToolExecutor,
    create_model_client,
)
from glowup.config import settings
from glowup.errors import CatalogConfigError, CatalogUnavailableError
from glowup.models.contracts import (
    Cart,
    InferenceResult,
    ProductMatch,
    Profile,
    Routine,
    SynthesisResult,
)
from glowup.utils.catalog import Catalog, create_catalog
from glowup.utils.embeddings import Embedder, OpenAIEmbedder

log = structlog.get_logger("inference")

_catalog: Catalog | None = None


async def get_catalog() -> Catalog:
    """Process-wide catalog adapter, built from settings on first use."""
    global _catalog
    if _catalog is None:
        _catalog = await create_catalog(
            settings.catalog_backend,
            url=settings.supabase_url,
            key=settings.supabase_key,
            table=settings.catalog_table,
            match_rpc=settings.catalog_match_rpc,
            seed_path=settings.catalog_seed_path,
        )
    return _catalog


def is_model_available() -> bool:
    return bool(settings.anthropic_api_key)


def _merge_candidates(*groups: list[ProductMatch]) -> list[ProductMatch]:
    merged: dict[str, ProductMatch] = {}
    for group in groups:
        for p in group:
            merged.setdefault(p.id, p)
    return list(merged.values())


async def synthesize_routine(
    profile: Profile,
    products: list[ProductMatch],
    catalog: Catalog,
    synthesizer: RoutineSynthesizer,
    tuning: SearchTuning | None = None,
) -> SynthesisResult:
    """Model-driven routine with resolution and coverage, else the fallback."""
    session = SynthesisSession.start(profile, products)
    draft = await synthesizer.run(session, products)
    if draft is None:
        log.info("inference_using_fallback", phase=session.phase, rounds=session.round)
        session.phase = "fallback"
        return build_fallback_routine(profile, products)

    resolver = ProductResolver(catalog)
    routine = await resolver.resolve_routine(
        draft.slots(), session, products, per_product_budget(profile.budget)
    )
    routine, added = await ensure_focus_coverage(
        profile,
        routine,
        _merge_candidates(products, session.discovered()),
        catalog,
        tuning,
    )
    return SynthesisResult(
        routine=routine,
        summary=draft.summary or DEFAULT_SUMMARY,
        tips=draft.tips,
        used_fallback=False,
    )


async def run_inference(
    profile: Profile,
    *,
    catalog: Catalog | None = None,
    embedder: Embedder | None = None,
    synthesizer: RoutineSynthesizer | None = None,
    tuning: SearchTuning | None = None,
) -> InferenceResult:
    """Full recommendation run for one profile.

    Raises CatalogUnavailableError only when nothing was found and the catalog
    does not answer a ping; every other upstream failure degrades in place.
    """
    catalog = catalog or await get_catalog()
    embedder = embedder or OpenAIEmbedder()
    tuning = tuning or SearchTuning.from_settings()
    if synthesizer is None:
        synthesizer = RoutineSynthesizer(
            RoutineToolExecutor(catalog, embedder), create_model_client()
        )

    max_price = max_price_for_budget(profile.budget)
    log.info(
        "inference_start",
        skin_type=profile.skin_type,
        budget=profile.budget,
        max_price=max_price,
        concerns=profile.skin_concerns,
        goals=profile.skin_goals,
        model_available=synthesizer.available,
        query=build_profile_query(profile),
        hair_query=build_hair_query(profile) or None,
    )

    cascade = CatalogSearchCascade(catalog, embedder, tuning)
    products = await cascade.search(profile, max_price, settings.search_result_limit)
    products = await backfill_essential_categories(catalog, products, max_price, tuning)

    if not products:
        try:
            await catalog.ping()
        except CatalogUnavailableError:
            log.error("inference_catalog_unavailable")
            raise
        log.warning("inference_no_candidates", skin_type=profile.skin_type, budget=profile.budget)

    result = await synthesize_routine(profile, products, catalog, synthesizer, tuning)
    steps = result.routine.all_steps()
    log.info(
        "inference_complete",
        products=len(products),
        steps=len(steps),
        bound=sum(1 for s in steps if s.product is not None),
        used_fallback=result.used_fallback,
    )
    return InferenceResult(
        products=products,
        routine=result.routine,
        summary=result.summary,
        personalized_tips=result.tips,
    )


@activity.defn
async def run_inference_activity(profile: Profile) -> InferenceResult:
    """Temporal activity wrapper: delegates to run_inference."""
    try:
        return await run_inference(profile)
    except CatalogUnavailableError as e:
        raise ApplicationError(f"Catalog unavailable: {e}", non_retryable=False) from e
    except CatalogConfigError as e:
        raise ApplicationError(f"Catalog misconfigured: {e}", non_retryable=True) from e


@activity.defn
async def build_cart_activity(routine: Routine) -> Cart:
    return build_cart(routine)
