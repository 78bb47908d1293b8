"""Catalog search cascade: profile → ranked, de-duplicated product matches.

Strategies run in order and each one only runs while the merged result count
is below the coverage threshold:

1. SemanticStrategy: embed the profile query, nearest-neighbour search plus a
   full-text pass, keyword boosting.
2. SeedSimilarityStrategy: reuse a top-rated product's stored vector as the
   query when no fresh embedding is available or results are thin.
3. AttributeStrategy: tag overlap / substring / full-text search with
   heuristic scoring. Needs no embeddings, always available.

`backfill_essential_categories` runs afterwards so the routine builder has at
least one candidate per essential category.

Catalog errors inside a strategy are logged and count as an empty result.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from typing import Protocol, TypeVar

import structlog
from pydantic import BaseModel, ConfigDict

from glowup.activities.query_builder import build_profile_query, extract_keywords
from glowup.config import Settings, settings
from glowup.errors import CatalogUnavailableError
from glowup.models.contracts import CatalogRecord, ProductMatch, Profile
from glowup.taxonomy import CONCERN_TAGS, ESSENTIAL_CATEGORIES, SKIN_TYPE_TAGS, SKINCARE_CATEGORIES
from glowup.utils.catalog import Catalog, CatalogQuery
from glowup.utils.embeddings import Embedder

log = structlog.get_logger("search")

T = TypeVar("T")


class SearchTuning(BaseModel):
    """Scoring constants for the cascade.

    Empirically tuned against the launch catalog; none of them is an
    invariant. Override through Settings when recalibrating.
    """

    model_config = ConfigDict(frozen=True)

    coverage_threshold: int = 6
    semantic_floor: float = 0.3
    seed_floor: float = 0.4
    seed_count: int = 5
    keyword_boost: float = 0.1
    default_similarity: float = 0.5
    attribute_base: float = 0.6
    skin_type_boost: float = 0.1
    concern_boost: float = 0.08
    rating_pivot: float = 3.5
    rating_weight: float = 0.05
    default_rating: float = 4.0
    tight_budget_ceiling: float = 30.0
    tight_budget_ratio: float = 0.8
    tight_budget_penalty: float = 0.05
    attribute_cap: float = 0.98
    default_max_price: float = 200.0
    backfill_similarity: float = 0.7
    backfill_max_products: int = 15

    @classmethod
    def from_settings(cls, s: Settings = settings) -> SearchTuning:
        return cls(
            coverage_threshold=s.search_coverage_threshold,
            semantic_floor=s.semantic_similarity_floor,
            seed_floor=s.seed_similarity_floor,
            keyword_boost=s.keyword_boost,
            attribute_base=s.attribute_base_score,
            skin_type_boost=s.skin_type_boost,
            concern_boost=s.concern_boost,
            rating_weight=s.rating_weight,
            tight_budget_penalty=s.tight_budget_penalty,
            backfill_similarity=s.backfill_similarity,
        )


async def soft_catalog_call(call: Awaitable[list[T]], op: str) -> list[T]:
    """Await a catalog call, turning catalog failures into an empty result."""
    try:
        return await call
    except CatalogUnavailableError as exc:
        log.warning("search_catalog_call_failed", op=op, error=str(exc)[:200])
        return []


def _unique(values: Iterable[str]) -> list[str]:
    out: list[str] = []
    for v in values:
        if v not in out:
            out.append(v)
    return out


def _is_skincare(category: str) -> bool:
    cat = category.lower()
    return any(c in cat for c in SKINCARE_CATEGORIES)


class SearchStrategy(Protocol):
    name: str

    async def attempt(
        self,
        profile: Profile,
        keywords: list[str],
        max_price: float | None,
        limit: int,
        category: str | None = None,
    ) -> list[ProductMatch]: ...


# === Strategy 1: semantic ===


class SemanticStrategy:
    name = "semantic"

    def __init__(self, catalog: Catalog, embedder: Embedder, tuning: SearchTuning) -> None:
        self._catalog = catalog
        self._embedder = embedder
        self._tuning = tuning

    async def attempt(
        self,
        profile: Profile,
        keywords: list[str],
        max_price: float | None,
        limit: int,
        category: str | None = None,
    ) -> list[ProductMatch]:
        vector = await self._embedder.embed(build_profile_query(profile))
        if vector is None:
            return []

        nearest = await soft_catalog_call(
            self._catalog.nearest(vector, self._tuning.semantic_floor, limit * 2), "nearest"
        )
        text_hits: list[CatalogRecord] = []
        if keywords:
            text_hits = await soft_catalog_call(
                self._catalog.full_text(keywords, limit=limit * 2), "full_text"
            )

        merged: dict[str, tuple[CatalogRecord, float]] = {}
        for hit in nearest:
            merged.setdefault(hit.record.id, (hit.record, hit.similarity))
        for record in text_hits:
            merged.setdefault(record.id, (record, self._tuning.default_similarity))

        matches: list[ProductMatch] = []
        for record, similarity in merged.values():
            if category and record.category != category:
                continue
            if max_price and record.price > max_price:
                continue
            text = f"{record.name} {record.brand} {record.summary}".lower()
            hits = [kw for kw in keywords if kw in text]
            boosted = min(similarity + self._tuning.keyword_boost * len(hits), 1.0)
            reason = f"semantic match; mentions {', '.join(hits)}" if hits else "semantic match"
            matches.append(ProductMatch.from_record(record, boosted, reason))

        matches.sort(key=lambda m: m.similarity, reverse=True)
        return matches[:limit]


# === Strategy 2: seed similarity ===


class SeedSimilarityStrategy:
    name = "seed_similarity"

    def __init__(self, catalog: Catalog, tuning: SearchTuning) -> None:
        self._catalog = catalog
        self._tuning = tuning

    async def attempt(
        self,
        profile: Profile,
        keywords: list[str],
        max_price: float | None,
        limit: int,
        category: str | None = None,
    ) -> list[ProductMatch]:
        skin_type = next((k for k in keywords if k in SKIN_TYPE_TAGS), None)
        seeds = await soft_catalog_call(
            self._catalog.find(
                CatalogQuery(
                    categories=SKINCARE_CATEGORIES,
                    skin_type_contains=skin_type,
                    require_embedding=True,
                    limit=self._tuning.seed_count,
                )
            ),
            "seed_find",
        )
        if not seeds:
            log.info("search_no_seed_products", skin_type=skin_type)
            return []
        seed = seeds[0]
        if not seed.embedding:
            log.info("search_seed_without_embedding", seed_id=seed.id)
            return []

        similar = await soft_catalog_call(
            self._catalog.nearest(seed.embedding, self._tuning.seed_floor, limit * 3),
            "seed_nearest",
        )
        seed_ids = {s.id for s in seeds}
        ceiling = max_price if max_price is not None else self._tuning.default_max_price

        matches: list[ProductMatch] = []
        for hit in similar:
            record = hit.record
            if record.id in seed_ids or record.price > ceiling:
                continue
            if record.category and not _is_skincare(record.category):
                continue
            if category and record.category != category:
                continue
            matches.append(
                ProductMatch.from_record(record, hit.similarity, f"similar to {seed.name}")
            )

        log.info(
            "search_seed_results",
            seeds=len(seeds),
            candidates=len(similar),
            kept=len(matches),
        )
        return matches[:limit]


# === Strategy 3: attribute / keyword ===


class AttributeStrategy:
    """Tag-overlap and keyword search with heuristic scoring.

    Deterministic for a fixed catalog: sub-query results are merged in a fixed
    order and the final sort is stable.
    """

    name = "attribute"

    def __init__(self, catalog: Catalog, tuning: SearchTuning) -> None:
        self._catalog = catalog
        self._tuning = tuning

    @staticmethod
    def expand_keywords(keywords: list[str]) -> tuple[list[str], list[str]]:
        """Keywords → (compatible skin-type tags, concern tag synonyms)."""
        skin_types = _unique(t for k in keywords for t in SKIN_TYPE_TAGS.get(k, ()))
        concerns = _unique(t for k in keywords for t in CONCERN_TAGS.get(k, ()))
        return skin_types, concerns

    def score(
        self,
        record: CatalogRecord,
        skin_types: list[str],
        concerns: list[str],
        max_price: float | None,
    ) -> tuple[float, list[str]]:
        t = self._tuning
        score = t.attribute_base
        reasons: list[str] = []

        product_skin = {s.lower() for s in record.target_skin_type}
        matched_skin = next((st for st in skin_types if st in product_skin), None)
        if matched_skin:
            score += t.skin_type_boost
            reasons.append(f"suits {matched_skin} skin")

        product_concerns = [c.lower() for c in record.target_concerns]
        for concern in concerns:
            if any(concern in pc for pc in product_concerns):
                score += t.concern_boost
                reasons.append(concern)

        rating = record.rating if record.rating is not None else t.default_rating
        score += (rating - t.rating_pivot) * t.rating_weight

        if (
            max_price
            and max_price < t.tight_budget_ceiling
            and record.price > max_price * t.tight_budget_ratio
        ):
            score -= t.tight_budget_penalty

        return max(min(score, t.attribute_cap), 0.0), reasons

    async def attempt(
        self,
        profile: Profile,
        keywords: list[str],
        max_price: float | None,
        limit: int,
        category: str | None = None,
    ) -> list[ProductMatch]:
        skin_types, concerns = self.expand_keywords(keywords)
        ceiling = max_price if max_price is not None else self._tuning.default_max_price
        log.info(
            "search_attribute_start",
            skin_types=skin_types[:5],
            concerns=concerns[:5],
            max_price=ceiling,
            category=category,
        )

        calls: list[Awaitable[list[CatalogRecord]]] = []
        if skin_types:
            calls.append(
                soft_catalog_call(
                    self._catalog.find(
                        CatalogQuery(
                            category=category,
                            skin_types_overlap=tuple(skin_types),
                            max_price=ceiling,
                            limit=limit,
                        )
                    ),
                    "skin_type_overlap",
                )
            )
        if concerns:
            calls.append(
                soft_catalog_call(
                    self._catalog.find(
                        CatalogQuery(
                            category=category,
                            concerns_overlap=tuple(concerns),
                            max_price=ceiling,
                            limit=limit,
                        )
                    ),
                    "concern_overlap",
                )
            )
        for term in keywords[:3]:
            calls.append(
                soft_catalog_call(
                    self._catalog.find(
                        CatalogQuery(
                            category=category,
                            text_like=term,
                            max_price=ceiling,
                            limit=max(limit // 2, 1),
                        )
                    ),
                    "text_like",
                )
            )
        if keywords:
            calls.append(
                soft_catalog_call(
                    self._catalog.full_text(
                        keywords, max_price=ceiling, category=category, limit=limit
                    ),
                    "full_text",
                )
            )

        batches = await asyncio.gather(*calls)

        unique: dict[str, CatalogRecord] = {}
        for batch in batches:
            for record in batch:
                unique.setdefault(record.id, record)

        matches: list[ProductMatch] = []
        for record in unique.values():
            similarity, reasons = self.score(record, skin_types, concerns, ceiling)
            reason = "matches " + ", ".join(reasons) if reasons else None
            matches.append(ProductMatch.from_record(record, similarity, reason))
        matches.sort(key=lambda m: m.similarity, reverse=True)

        log.info("search_attribute_complete", found=len(unique), returning=min(limit, len(matches)))
        return matches[:limit]


# === Cascade ===


class CatalogSearchCascade:
    def __init__(
        self,
        catalog: Catalog,
        embedder: Embedder,
        tuning: SearchTuning | None = None,
        strategies: list[SearchStrategy] | None = None,
    ) -> None:
        self.catalog = catalog
        self.tuning = tuning or SearchTuning.from_settings()
        self.attribute = AttributeStrategy(catalog, self.tuning)
        self.strategies: list[SearchStrategy] = strategies or [
            SemanticStrategy(catalog, embedder, self.tuning),
            SeedSimilarityStrategy(catalog, self.tuning),
            self.attribute,
        ]

    async def search(
        self,
        profile: Profile,
        max_price: float | None,
        limit: int = 12,
    ) -> list[ProductMatch]:
        """Run strategies until enough distinct matches exist.

        Returns at most `limit` matches, unique by id, best first.
        """
        keywords = extract_keywords(profile)
        found: dict[str, ProductMatch] = {}

        for strategy in self.strategies:
            if len(found) >= self.tuning.coverage_threshold:
                break
            batch = await strategy.attempt(profile, keywords, max_price, limit)
            added = 0
            for match in batch:
                if match.id not in found:
                    found[match.id] = match
                    added += 1
            log.info(
                "search_strategy_complete",
                strategy=strategy.name,
                returned=len(batch),
                added=added,
                total=len(found),
            )

        ranked = sorted(found.values(), key=lambda m: m.similarity, reverse=True)
        return ranked[:limit]


async def backfill_essential_categories(
    catalog: Catalog,
    products: list[ProductMatch],
    max_price: float | None,
    tuning: SearchTuning | None = None,
) -> list[ProductMatch]:
    """Add one top-rated in-budget product per missing essential category."""
    tuning = tuning or SearchTuning.from_settings()
    result = list(products)
    present = {p.category for p in result}
    ids = {p.id for p in result}

    for category in ESSENTIAL_CATEGORIES:
        if category in present or len(result) >= tuning.backfill_max_products:
            continue
        records = await soft_catalog_call(
            catalog.find(CatalogQuery(category=category, max_price=max_price, limit=2)),
            "backfill",
        )
        pick = next((r for r in records if r.id not in ids), None)
        if pick is None:
            continue
        result.append(
            ProductMatch.from_record(pick, tuning.backfill_similarity, f"top-rated {category}")
        )
        ids.add(pick.id)
        present.add(category)
        log.info("search_backfilled_category", category=category, product_id=pick.id)

    return result
