"""Tests for cart aggregation."""

from __future__ import annotations

import pytest

from glowup.activities.cart import (
    RoutineContext,
    analyze_cart,
    build_cart,
    retailer_for,
    score_cart_product,
)
from glowup.models.contracts import CatalogRecord, Profile, Routine, RoutineStep
from tests.conftest import match

CLEANSER = match("c1", "Gel Wash", "cleanser", 15.99, buy_link="https://www.ulta.com/p/gel-wash")
SERUM = match("v1", "Niacinamide", "serum", 6.0, buy_link="https://theordinary.com/en-us/niacinamide")
CREAM = match("m1", "Rich Cream", "moisturizer", 32.5, buy_link="https://www.ulta.com/p/rich-cream")
NO_LINK = match("k1", "Mystery Mask", "mask", 10.0)


def _routine(**slots) -> Routine:
    return Routine(
        **{
            slot: [
                RoutineStep(step=i, name=p.name if p else "Empty", product=p)
                for i, p in enumerate(products, start=1)
            ]
            for slot, products in slots.items()
        }
    )


class TestRetailerFor:
    def test_explicit_retailer_wins(self):
        assert retailer_for(CLEANSER.model_copy(update={"retailer": "Sephora"})) == "Sephora"

    def test_derived_from_domain(self):
        assert retailer_for(CLEANSER) == "Ulta"
        assert retailer_for(SERUM) == "The Ordinary"

    def test_unknown_domain_is_generic(self):
        product = match("z", "Z", "serum", buy_link="https://shop.example.com/z")
        assert retailer_for(product) == "Generic"


class TestBuildCart:
    def test_same_product_twice_listed_once(self):
        cart = build_cart(_routine(morning=[CLEANSER], evening=[CLEANSER, SERUM]))
        ids = [item.product.id for item in cart.items]
        assert ids == ["c1", "v1"]
        assert all(item.quantity == 1 for item in cart.items)

    def test_total_is_sum_of_distinct_prices(self):
        cart = build_cart(_routine(morning=[CLEANSER, CREAM], evening=[CREAM, SERUM], weekly=[SERUM]))
        assert cart.total_price == pytest.approx(54.49)
        assert cart.currency == "USD"

    def test_one_link_per_retailer(self):
        cart = build_cart(_routine(morning=[CLEANSER, SERUM], evening=[CREAM]))
        links = {link.retailer: link.cart_url for link in cart.retailer_links}
        assert links == {
            "Ulta": "https://www.ulta.com/p/gel-wash",
            "The Ordinary": "https://theordinary.com/en-us/niacinamide",
        }

    def test_items_without_link_still_counted(self):
        cart = build_cart(_routine(weekly=[NO_LINK]))
        assert len(cart.items) == 1
        assert cart.total_price == pytest.approx(10.0)
        assert cart.retailer_links == []

    def test_steps_without_product_are_skipped(self):
        cart = build_cart(_routine(morning=[None, CLEANSER]))
        assert [item.product.id for item in cart.items] == ["c1"]

    def test_empty_routine(self):
        cart = build_cart(Routine())
        assert cart.items == []
        assert cart.total_price == 0.0


# === Cart fit ===


def _record(record_id: str, category: str, **fields) -> CatalogRecord:
    return CatalogRecord(id=record_id, name=record_id.title(), category=category, **fields)


OILY_ACNE = Profile(skin_type="oily", skin_concerns=["acne", "pores"])


class TestScoreCartProduct:
    def test_skin_type_and_concern_is_great_fit(self):
        record = _record("gel", "cleanser", target_skin_type=["oily"], target_concerns=["acne", "pores"])
        fit = score_cart_product(OILY_ACNE, record, RoutineContext.from_routine(None))
        assert fit.label == "Great fit"
        assert fit.score == 2
        assert fit.reason == "Matches your oily skin • Targets acne, pores"

    def test_skin_type_only_is_good_match(self):
        record = _record("gel", "cleanser", target_skin_type=["Oily"])
        fit = score_cart_product(OILY_ACNE, record, RoutineContext.from_routine(None))
        assert fit.label == "Good match"

    def test_scented_product_for_fragrance_free_user_is_caution(self):
        profile = Profile(skin_type="dry", fragrance_free=True)
        fit = score_cart_product(profile, _record("rose", "toner"), RoutineContext.from_routine(None))
        assert fit.label == "Caution"
        assert fit.score == -1
        assert fit.reason == "Not marked fragrance-free"

    def test_no_signals_is_neutral(self):
        profile = Profile(skin_type="dry", fragrance_free=True)
        record = _record("plain", "toner", attributes=["fragrance_free"])
        fit = score_cart_product(profile, record, RoutineContext.from_routine(None))
        assert fit.label == "Neutral"
        assert fit.reason == "No strong match signals yet"

    def test_duplicate_category_is_penalised(self):
        context = RoutineContext.from_routine(_routine(morning=[CREAM]))
        record = _record("other-cream", "moisturizer", target_skin_type=["oily"], target_concerns=["acne"])
        fit = score_cart_product(OILY_ACNE, record, context)
        assert fit.score == pytest.approx(1.8)
        assert fit.label == "Good match"
        assert "You already have a moisturizer in your routine" in fit.reason

    def test_product_already_in_routine_not_penalised(self):
        context = RoutineContext.from_routine(_routine(evening=[CLEANSER]))
        record = _record("c1", "cleanser", target_skin_type=["oily"])
        fit = score_cart_product(OILY_ACNE, record, context)
        assert fit.score == 1
        assert fit.reason.endswith("Already in your current routine")


class TestRoutineContext:
    def test_categories_from_products_and_step_names(self):
        routine = Routine(
            morning=[RoutineStep(step=1, name="SPF", product=None)],
            evening=[RoutineStep(step=1, name="Night Serum", product=SERUM)],
            weekly=[RoutineStep(step=1, name="Clay Mask", product=NO_LINK)],
        )
        context = RoutineContext.from_routine(routine)
        assert context.categories == {"sunscreen", "serum"}
        assert context.product_ids == {"v1"}


class TestAnalyzeCart:
    @pytest.mark.asyncio
    async def test_request_order_unknown_ids_skipped(self, catalog):
        analysis = await analyze_cart(
            OILY_ACNE, ["m-oily-1", "missing", "c-oily-1", "m-oily-1"], catalog
        )
        assert [f.product_id for f in analysis.items] == ["m-oily-1", "c-oily-1"]
        assert analysis.items[1].label == "Great fit"

    @pytest.mark.asyncio
    async def test_routine_context_applied(self, catalog):
        routine = _routine(morning=[match("c-dry-1", "Cream Cleanser", "cleanser")])
        analysis = await analyze_cart(OILY_ACNE, ["c-oily-1"], catalog, routine)
        assert analysis.items[0].score == pytest.approx(1.8)
