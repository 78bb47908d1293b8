"""Cart aggregation and cart-fit analysis.

`build_cart` is the deduplicated shopping list for a routine. `analyze_cart`
labels products a user is about to buy against their profile and routine.
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse

import structlog

from glowup.models.contracts import (
    Cart,
    CartAnalysis,
    CartFit,
    CartItem,
    CatalogRecord,
    FitLabel,
    ProductMatch,
    Profile,
    RetailerLink,
    Routine,
)
from glowup.taxonomy import RETAILER_NAMES, ROUTINE_CATEGORY_HINTS
from glowup.utils.catalog import Catalog

log = structlog.get_logger("cart")

GENERIC_RETAILER = "Generic"
DUPLICATE_CATEGORY_PENALTY = 0.2


def retailer_for(product: ProductMatch) -> str:
    """Product's retailer, else derived from the buy-link host."""
    if product.retailer:
        return product.retailer
    if not product.buy_link:
        return GENERIC_RETAILER
    host = (urlparse(product.buy_link).hostname or "").lower()
    for label in host.split("."):
        if label in RETAILER_NAMES:
            return RETAILER_NAMES[label]
    return GENERIC_RETAILER


def build_cart(routine: Routine) -> Cart:
    products: dict[str, ProductMatch] = {}
    for step in routine.all_steps():
        if step.product is not None:
            products.setdefault(step.product.id, step.product)

    links: dict[str, str] = {}
    for product in products.values():
        if product.buy_link:
            links.setdefault(retailer_for(product), product.buy_link)

    cart = Cart(
        items=[CartItem(product=p, quantity=1) for p in products.values()],
        total_price=round(sum(p.price for p in products.values()), 2),
        retailer_links=[RetailerLink(retailer=r, cart_url=url) for r, url in links.items()],
    )
    log.info(
        "cart_built",
        items=len(cart.items),
        total_price=cart.total_price,
        retailers=len(cart.retailer_links),
    )
    return cart


# === Cart fit ===


@dataclass(frozen=True)
class RoutineContext:
    """Categories and product ids already present in the daily steps."""

    categories: frozenset[str]
    product_ids: frozenset[str]

    @classmethod
    def from_routine(cls, routine: Routine | None) -> RoutineContext:
        if routine is None:
            return cls(frozenset(), frozenset())
        categories: set[str] = set()
        product_ids: set[str] = set()
        for step in [*routine.morning, *routine.evening]:
            if step.product is not None:
                product_ids.add(step.product.id)
                if step.product.category:
                    categories.add(step.product.category.lower())
            name = step.name.lower()
            categories.update(c for hint, c in ROUTINE_CATEGORY_HINTS.items() if hint in name)
        return cls(frozenset(categories), frozenset(product_ids))


def fit_label(score: float) -> FitLabel:
    if score >= 2:
        return "Great fit"
    if score >= 1:
        return "Good match"
    if score < 0:
        return "Caution"
    return "Neutral"


def score_cart_product(
    profile: Profile, record: CatalogRecord, context: RoutineContext
) -> CartFit:
    """Rule-based fit: skin type, concerns, fragrance and routine overlap."""
    score = 0.0
    reasons: list[str] = []

    if profile.skin_type in (t.lower() for t in record.target_skin_type):
        score += 1
        reasons.append(f"Matches your {profile.skin_type} skin")

    targets = {c.lower() for c in record.target_concerns}
    shared = [c for c in profile.skin_concerns if c.lower() in targets]
    if shared:
        score += 1
        reasons.append(f"Targets {', '.join(shared[:2])}")

    if profile.fragrance_free and "fragrance_free" not in record.attributes:
        score -= 1
        reasons.append("Not marked fragrance-free")

    category = record.category.lower()
    if record.id in context.product_ids:
        reasons.append("Already in your current routine")
    elif category and category in context.categories:
        score -= DUPLICATE_CATEGORY_PENALTY
        reasons.append(f"You already have a {category} in your routine")

    score = round(score, 2)
    return CartFit(
        product_id=record.id,
        label=fit_label(score),
        reason=" • ".join(reasons) or "No strong match signals yet",
        score=score,
    )


async def analyze_cart(
    profile: Profile,
    product_ids: list[str],
    catalog: Catalog,
    routine: Routine | None = None,
) -> CartAnalysis:
    """Fit label per requested product, in request order.

    Ids the catalog does not know are skipped. Catalog errors propagate.
    """
    records = {r.id: r for r in await catalog.get_many(product_ids)}
    context = RoutineContext.from_routine(routine)
    items = [
        score_cart_product(profile, records[pid], context)
        for pid in dict.fromkeys(product_ids)
        if pid in records
    ]
    missing = len(set(product_ids) - records.keys())
    log.info("cart_analyzed", products=len(items), missing=missing)
    return CartAnalysis(items=items)
