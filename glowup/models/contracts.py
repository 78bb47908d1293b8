"""GlowUp contract models shared by the engine, the API and the worker.

Catalog-facing types mirror the `products` table; routine and cart types are
what callers receive back. Additive changes only (new optional fields).
"""

from __future__ import annotations

import json
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Budget = Literal["low", "medium", "high"]
RoutineSlot = Literal["morning", "evening", "weekly"]

# === Profile ===


class Profile(BaseModel):
    """Immutable onboarding profile, the only input to an inference run."""

    model_config = ConfigDict(frozen=True)

    skin_type: str = "normal"
    skin_tone: float | None = Field(default=None, ge=0, le=1)
    skin_goals: list[str] = []
    skin_concerns: list[str] = []
    hair_type: str | None = None
    hair_concerns: list[str] = []
    wash_frequency: str | None = None
    sunscreen_usage: str | None = None
    budget: Budget = "medium"
    fragrance_free: bool = False

    @field_validator("skin_type")
    @classmethod
    def _lower_skin_type(cls, v: str) -> str:
        return v.strip().lower() or "normal"


# === Catalog ===


class CatalogRecord(BaseModel):
    """A product row owned by the external catalog."""

    id: str
    name: str
    brand: str = ""
    category: str = ""
    price: float = Field(ge=0, default=0.0)
    target_skin_type: list[str] = []
    target_concerns: list[str] = []
    target_hair_type: list[str] = []
    summary: str = ""
    ingredients: list[str] = []
    attributes: list[str] = []  # e.g. "fragrance_free", "vegan"
    rating: float | None = Field(default=None, ge=0, le=5)
    image_url: str | None = None
    buy_link: str | None = None
    retailer: str | None = None
    embedding: list[float] | None = Field(default=None, exclude=True, repr=False)

    @field_validator("embedding", mode="before")
    @classmethod
    def _parse_vector_text(cls, v: object) -> object:
        # pgvector columns arrive over PostgREST as "[0.1,0.2,...]"
        if isinstance(v, str):
            return json.loads(v) if v.strip() else None
        return v


class ScoredRecord(BaseModel):
    """A catalog record returned by nearest-neighbour search."""

    record: CatalogRecord
    similarity: float


class ProductMatch(BaseModel):
    """Search-result projection of a CatalogRecord plus a confidence score."""

    id: str
    name: str
    brand: str = ""
    price: float = Field(ge=0, default=0.0)
    category: str = ""
    description: str = ""
    image_url: str | None = None
    rating: float = 4.0
    similarity: float = 0.5
    relevance_reason: str | None = None
    buy_link: str | None = None
    retailer: str | None = None

    @field_validator("similarity")
    @classmethod
    def _clamp_similarity(cls, v: float) -> float:
        return min(max(v, 0.0), 1.0)

    @classmethod
    def from_record(
        cls,
        record: CatalogRecord,
        similarity: float,
        relevance_reason: str | None = None,
    ) -> ProductMatch:
        return cls(
            id=record.id,
            name=record.name,
            brand=record.brand,
            price=record.price,
            category=record.category,
            description=record.summary,
            image_url=record.image_url,
            rating=record.rating if record.rating is not None else 4.0,
            similarity=similarity,
            relevance_reason=relevance_reason,
            buy_link=record.buy_link,
            retailer=record.retailer,
        )


# === Routine ===


class StepDraft(BaseModel):
    """A step as proposed by the model, before product resolution."""

    step: int = 0
    name: str = ""
    product_id: str | None = None
    product_name: str | None = None
    product_brand: str | None = None
    instructions: str = ""
    frequency: str = "daily"


class RoutineStep(BaseModel):
    step: int = Field(ge=1)
    name: str
    product: ProductMatch | None = None
    instructions: str = ""
    frequency: str = "daily"  # "daily", "weekly", or "2-3x/week" style tags


class Routine(BaseModel):
    morning: list[RoutineStep] = []
    evening: list[RoutineStep] = []
    weekly: list[RoutineStep] = []

    def all_steps(self) -> list[RoutineStep]:
        return [*self.morning, *self.evening, *self.weekly]

    def used_product_ids(self) -> set[str]:
        return {s.product.id for s in self.all_steps() if s.product is not None}


class SynthesisResult(BaseModel):
    routine: Routine
    summary: str
    tips: list[str] = []
    used_fallback: bool = False


class InferenceResult(BaseModel):
    products: list[ProductMatch] = []
    routine: Routine
    summary: str
    personalized_tips: list[str] = []


# === Cart ===


class CartItem(BaseModel):
    product: ProductMatch
    quantity: int = Field(ge=1, default=1)


class RetailerLink(BaseModel):
    retailer: str
    cart_url: str


class Cart(BaseModel):
    items: list[CartItem] = []
    total_price: float = Field(ge=0, default=0.0)
    currency: str = "USD"
    retailer_links: list[RetailerLink] = []


# === Workflow ===


class RoutineWorkflowResult(BaseModel):
    inference: InferenceResult
    cart: Cart


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool


# === Cart fit & product integration ===

FitLabel = Literal["Great fit", "Good match", "Neutral", "Caution"]


class CartFit(BaseModel):
    """How well one cart product suits the profile and current routine."""

    product_id: str
    label: FitLabel
    reason: str
    score: float


class CartAnalysisRequest(BaseModel):
    profile: Profile
    product_ids: list[str]
    routine: Routine | None = None


class CartAnalysis(BaseModel):
    items: list[CartFit] = []


class Placement(BaseModel):
    action: Literal["replace", "add"]
    routine_type: RoutineSlot
    step_index: int | None = None  # 0-based, set for "replace"
    step_name: str
    reason: str = ""


class IntegrationRequest(BaseModel):
    routine: Routine
    product_id: str


class IntegrationResult(BaseModel):
    routine: Routine
    placements: list[Placement] = []
