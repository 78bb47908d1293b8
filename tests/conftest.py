"""Shared fixtures: a small in-memory catalog, a fake embedder, mock Claude responses."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from glowup.models.contracts import CatalogRecord, ProductMatch
from glowup.utils.catalog import InMemoryCatalog

SEED_PATH = Path(__file__).resolve().parent.parent / "data" / "catalog_seed.json"

# 3-dim vectors: axis 0 ~ oily/acne, axis 1 ~ dry/hydration, axis 2 ~ aging
_ROWS: list[dict[str, Any]] = [
    {
        "id": "c-oily-1",
        "name": "Clarifying Gel Cleanser",
        "brand": "ClearCo",
        "category": "cleanser",
        "price": 12.0,
        "target_skin_type": ["oily", "combination"],
        "target_concerns": ["acne", "pores"],
        "summary": "Salicylic gel cleanser for oily, acne-prone skin.",
        "ingredients": ["salicylic acid"],
        "rating": 4.5,
        "buy_link": "https://www.ulta.com/p/clarifying-gel-cleanser",
        "embedding": [0.9, 0.1, 0.0],
    },
    {
        "id": "c-dry-1",
        "name": "Cream Cleanser",
        "brand": "SoftSkin",
        "category": "cleanser",
        "price": 18.0,
        "target_skin_type": ["dry", "sensitive"],
        "target_concerns": ["dryness", "hydration"],
        "summary": "Non-foaming cream cleanser that respects a dry barrier.",
        "ingredients": ["ceramides"],
        "rating": 4.2,
        "buy_link": "https://www.sephora.com/product/cream-cleanser",
        "embedding": [0.1, 0.9, 0.1],
    },
    {
        "id": "m-oily-1",
        "name": "Oil-Free Gel Moisturizer",
        "brand": "ClearCo",
        "category": "moisturizer",
        "price": 21.0,
        "target_skin_type": ["oily"],
        "target_concerns": ["hydration", "oily"],
        "summary": "Lightweight water gel.",
        "ingredients": ["hyaluronic acid"],
        "rating": 4.4,
        "buy_link": "https://www.ulta.com/p/oil-free-gel",
        "embedding": [0.8, 0.3, 0.0],
    },
    {
        "id": "m-dry-1",
        "name": "Barrier Rich Cream",
        "brand": "SoftSkin",
        "category": "moisturizer",
        "price": 32.0,
        "target_skin_type": ["dry", "all"],
        "target_concerns": ["dryness", "moisture", "barrier"],
        "summary": "Rich ceramide cream for very dry skin.",
        "ingredients": ["ceramides", "shea butter"],
        "rating": 4.8,
        "buy_link": "https://www.sephora.com/product/barrier-rich-cream",
        "embedding": [0.0, 1.0, 0.1],
    },
    {
        "id": "s-all-1",
        "name": "Daily Sheer Sunscreen SPF 50",
        "brand": "SunCo",
        "category": "sunscreen",
        "price": 19.0,
        "target_skin_type": ["all"],
        "target_concerns": ["uv protection"],
        "summary": "Sheer daily SPF with no white cast.",
        "ingredients": ["zinc oxide"],
        "rating": 4.6,
        "buy_link": "https://www.amazon.com/dp/SUNCO50",
        "embedding": [0.3, 0.3, 0.3],
    },
    {
        "id": "s-lux-1",
        "name": "Luxe Glow SPF 40",
        "brand": "Maison",
        "category": "sunscreen",
        "price": 58.0,
        "target_skin_type": ["all"],
        "target_concerns": ["aging"],
        "summary": "Premium glow sunscreen.",
        "ingredients": ["avobenzone"],
        "rating": 4.1,
        "buy_link": "https://www.sephora.com/product/luxe-glow-spf",
    },
    {
        "id": "t-acne-1",
        "name": "Adapalene Acne Treatment Gel",
        "brand": "DermaLab",
        "category": "treatment",
        "price": 16.0,
        "target_skin_type": ["oily", "combination"],
        "target_concerns": ["acne", "breakouts"],
        "summary": "Retinoid gel that clears acne and prevents breakouts.",
        "ingredients": ["adapalene"],
        "rating": 4.3,
        "buy_link": "https://www.target.com/p/adapalene-gel",
        "embedding": [1.0, 0.0, 0.2],
    },
    {
        "id": "t-age-1",
        "name": "Retinol Night Treatment",
        "brand": "Maison",
        "category": "treatment",
        "price": 48.0,
        "target_skin_type": ["normal", "dry"],
        "target_concerns": ["aging", "wrinkles"],
        "summary": "Encapsulated retinol for fine lines.",
        "ingredients": ["retinol"],
        "rating": 4.0,
        "buy_link": "https://www.dermstore.com/p/retinol-night",
        "embedding": [0.1, 0.2, 0.95],
    },
    {
        "id": "v-hyd-1",
        "name": "Hyaluronic Hydration Serum",
        "brand": "SoftSkin",
        "category": "serum",
        "price": 14.0,
        "target_skin_type": ["all"],
        "target_concerns": ["dryness", "hydration"],
        "summary": "Plumping hydration serum.",
        "ingredients": ["hyaluronic acid"],
        "rating": 4.7,
        "buy_link": "https://theordinary.com/en-us/hyaluronic-serum",
        "embedding": [0.1, 0.95, 0.1],
    },
    {
        "id": "v-nia-1",
        "name": "Niacinamide Blemish Serum",
        "brand": "ClearCo",
        "category": "serum",
        "price": 9.0,
        "target_skin_type": ["oily", "all"],
        "target_concerns": ["acne", "blemishes", "pores"],
        "summary": "Niacinamide and zinc for oily, blemish-prone skin.",
        "ingredients": ["niacinamide", "zinc pca"],
        "rating": 4.4,
        "embedding": [0.95, 0.1, 0.0],
    },
    {
        "id": "x-exf-1",
        "name": "BHA Liquid Exfoliant",
        "brand": "ClearCo",
        "category": "exfoliant",
        "price": 24.0,
        "target_skin_type": ["oily", "combination"],
        "target_concerns": ["texture", "pores"],
        "summary": "Leave-on exfoliant that smooths texture.",
        "ingredients": ["salicylic acid"],
        "rating": 4.6,
        "buy_link": "https://www.ulta.com/p/bha-exfoliant",
    },
    {
        "id": "k-mask-1",
        "name": "Overnight Hydration Mask",
        "brand": "SoftSkin",
        "category": "mask",
        "price": 26.0,
        "target_skin_type": ["dry", "normal"],
        "target_concerns": ["hydration", "dryness"],
        "summary": "Sleeping mask for dewy skin.",
        "ingredients": ["squalane"],
        "rating": 4.5,
        "buy_link": "https://www.sephora.com/product/overnight-mask",
    },
]


def make_records() -> list[CatalogRecord]:
    return [CatalogRecord.model_validate(row) for row in _ROWS]


@pytest.fixture
def records() -> list[CatalogRecord]:
    return make_records()


@pytest.fixture
def catalog(records: list[CatalogRecord]) -> InMemoryCatalog:
    return InMemoryCatalog(records)


@pytest.fixture
def seed_catalog() -> InMemoryCatalog:
    return InMemoryCatalog.from_json(SEED_PATH)


class FakeEmbedder:
    """Embedder stub returning a fixed vector (or None to simulate no key)."""

    def __init__(self, vector: list[float] | None = None) -> None:
        self.vector = vector
        self.calls: list[str] = []

    @property
    def available(self) -> bool:
        return self.vector is not None

    async def embed(self, text: str) -> list[float] | None:
        self.calls.append(text)
        return self.vector


@pytest.fixture
def no_embedder() -> FakeEmbedder:
    return FakeEmbedder(None)


@pytest.fixture
def oily_embedder() -> FakeEmbedder:
    return FakeEmbedder([1.0, 0.1, 0.0])


def match(record_id: str, name: str, category: str, price: float = 10.0, **extra: Any) -> ProductMatch:
    return ProductMatch(id=record_id, name=name, category=category, price=price, **extra)


# === Mock Claude responses ===


def tool_use_block(name: str, tool_input: dict[str, Any], block_id: str = "toolu_1") -> MagicMock:
    block = MagicMock()
    block.type = "tool_use"
    block.name = name
    block.input = tool_input
    block.id = block_id
    return block


def text_block(text: str) -> MagicMock:
    block = MagicMock()
    block.type = "text"
    block.text = text
    return block


def model_response(*blocks: MagicMock) -> MagicMock:
    resp = MagicMock()
    resp.content = list(blocks)
    resp.usage = MagicMock(input_tokens=500, output_tokens=200)
    return resp


def mock_client(*responses: MagicMock) -> MagicMock:
    client = MagicMock()
    client.messages = MagicMock()
    client.messages.create = AsyncMock(side_effect=list(responses))
    return client
