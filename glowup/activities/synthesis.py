"""Routine synthesis protocol: a bounded tool-calling exchange with Claude.

Phases: init → tool_round(n) → final → done, or final_missing → fallback.

- Round 0 forces a tool call (tool_choice "any"); a round-0 answer without
  one is invalid and goes straight to the fallback.
- Later rounds may call more tools or answer with the routine JSON.
- At most `max_rounds` model calls; running out without an answer is a
  fallback too.

Tool calls within a round run concurrently and every product they return is
recorded in the session. The protocol never raises: unavailable model, API
errors, malformed JSON and cap exhaustion all return None so the caller uses
the rule-based fallback.
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import anthropic
import structlog

from glowup.activities.query_builder import per_product_budget, skin_tone_label
from glowup.activities.session import SynthesisSession
from glowup.config import settings
from glowup.errors import CatalogUnavailableError
from glowup.models.contracts import CatalogRecord, ProductMatch, Profile, StepDraft
from glowup.taxonomy import TOOL_CATEGORIES, TOOL_SKIN_TYPES
from glowup.utils.catalog import Catalog, CatalogQuery
from glowup.utils.embeddings import Embedder
from glowup.utils.json_extract import extract_json_object
from glowup.utils.tracing import wrap_anthropic

log = structlog.get_logger("synthesis")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

ROUTINE_SLOTS = ("morning", "evening", "weekly")
DEFAULT_SUMMARY = "A personalized routine for your skin type."
TOOL_RESULT_SIMILARITY = 0.85
DEFAULT_TOOL_LIMIT = 6
MAX_TOOL_LIMIT = 15

ROUTINE_TOOLS: list[dict[str, Any]] = [
    {
        "name": "search_products",
        "description": (
            "Search the GlowUp product catalog for skincare products. "
            "Uses semantic + keyword search."
        ),
        "input_schema": {
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Natural language search query"},
                "category": {
                    "type": "string",
                    "description": "Product category filter",
                    "enum": list(TOOL_CATEGORIES),
                },
                "skin_type": {
                    "type": "string",
                    "description": "Filter by skin type",
                    "enum": list(TOOL_SKIN_TYPES),
                },
                "concerns": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Filter by concerns",
                },
                "max_price": {"type": "number", "description": "Maximum price in USD"},
                "limit": {
                    "type": "integer",
                    "description": f"Max products to return (default {DEFAULT_TOOL_LIMIT})",
                },
            },
            "required": ["query"],
        },
    },
    {
        "name": "get_product_details",
        "description": "Get full details for a specific product by name or id.",
        "input_schema": {
            "type": "object",
            "properties": {
                "product_name": {"type": "string", "description": "Product name to look up"},
                "product_id": {"type": "string", "description": "Product id if known"},
            },
        },
    },
]
TOOL_NAMES = frozenset(t["name"] for t in ROUTINE_TOOLS)


@dataclass
class RoutineDraft:
    """The model's terminal answer, steps not yet bound to catalog records."""

    morning: list[StepDraft] = field(default_factory=list)
    evening: list[StepDraft] = field(default_factory=list)
    weekly: list[StepDraft] = field(default_factory=list)
    summary: str = DEFAULT_SUMMARY
    tips: list[str] = field(default_factory=list)

    def slots(self) -> dict[str, list[StepDraft]]:
        return {"morning": self.morning, "evening": self.evening, "weekly": self.weekly}


# === Prompts ===

_prompt_cache: dict[str, str] = {}


def _load_prompt(name: str) -> str:
    if name not in _prompt_cache:
        _prompt_cache[name] = (PROMPTS_DIR / name).read_text()
    return _prompt_cache[name]


def load_system_prompt() -> str:
    return _load_prompt("routine_system.txt")


def build_user_prompt(profile: Profile, candidates: list[ProductMatch]) -> str:
    lines = [
        f"- {p.name} by {p.brand} ({p.category}, ${p.price:.2f}) id={p.id}"
        for p in candidates[:12]
    ]
    return _load_prompt("routine_user.txt").format(
        skin_type=profile.skin_type,
        skin_tone=skin_tone_label(profile.skin_tone),
        goals=", ".join(profile.skin_goals) or "healthy skin",
        concerns=", ".join(profile.skin_concerns) or "none specified",
        sunscreen_usage=profile.sunscreen_usage or "sometimes",
        budget=profile.budget,
        budget_max=per_product_budget(profile.budget),
        fragrance_free="yes" if profile.fragrance_free else "no",
        candidates="\n".join(lines) or "- none yet",
    )


# === Terminal answer parsing ===


def _text_or_none(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_step(raw: Any, index: int) -> StepDraft | None:
    if not isinstance(raw, dict):
        return None
    try:
        ordinal = int(raw.get("step") or index + 1)
    except (TypeError, ValueError):
        ordinal = index + 1
    name = _text_or_none(raw.get("name")) or f"Step {ordinal}"
    return StepDraft(
        step=ordinal,
        name=name,
        product_id=_text_or_none(raw.get("product_id")),
        product_name=_text_or_none(raw.get("product_name")),
        product_brand=_text_or_none(raw.get("product_brand")),
        instructions=_text_or_none(raw.get("instructions")) or "",
        frequency=_text_or_none(raw.get("frequency")) or "daily",
    )


def parse_routine_draft(text: str) -> RoutineDraft | None:
    """Parse the model's routine JSON; None when it is not a usable routine."""
    data = extract_json_object(text)
    if data is None:
        return None
    if not any(isinstance(data.get(slot), list) for slot in ROUTINE_SLOTS):
        return None

    draft = RoutineDraft()
    for slot, steps in draft.slots().items():
        raw_steps = data.get(slot)
        if not isinstance(raw_steps, list):
            continue
        for i, raw in enumerate(raw_steps):
            step = _parse_step(raw, i)
            if step is not None:
                steps.append(step)

    summary = _text_or_none(data.get("summary"))
    if summary:
        draft.summary = summary
    tips = data.get("tips")
    if isinstance(tips, list):
        draft.tips = [str(t).strip() for t in tips if str(t).strip()]
    return draft


# === Tools ===


def _product_payload(record: CatalogRecord, similarity: float | None = None) -> dict[str, Any]:
    return {
        "id": record.id,
        "name": record.name,
        "brand": record.brand,
        "price": record.price,
        "category": record.category,
        "summary": record.summary,
        "rating": record.rating,
        "image_url": record.image_url,
        "target_skin_type": record.target_skin_type,
        "target_concerns": record.target_concerns,
        "ingredients": record.ingredients[:8],
        "buy_link": record.buy_link,
        "similarity": similarity,
    }


class RoutineToolExecutor:
    """Runs model tool calls against the catalog and records what they find."""

    def __init__(
        self, catalog: Catalog, embedder: Embedder, similarity_floor: float | None = None
    ) -> None:
        self._catalog = catalog
        self._embedder = embedder
        self._floor = (
            settings.tool_similarity_floor if similarity_floor is None else similarity_floor
        )

    async def run(self, name: str, args: dict[str, Any], session: SynthesisSession) -> str:
        """Execute one tool call; always returns a JSON string for the model."""
        session.tool_calls += 1
        try:
            if name == "search_products":
                payload = await self._search_products(args, session)
            elif name == "get_product_details":
                payload = await self._get_product_details(args, session)
            else:
                payload = {"error": f"Unknown tool: {name}"}
        except CatalogUnavailableError as exc:
            log.warning("routine_tool_catalog_failed", tool=name, error=str(exc)[:200])
            payload = {"error": f"Tool failed: {exc}"}
        except (TypeError, ValueError) as exc:
            log.warning("routine_tool_bad_arguments", tool=name, error=str(exc)[:200])
            payload = {"error": f"Invalid arguments: {exc}"}
        return json.dumps(payload, default=str)

    async def _search_products(
        self, args: dict[str, Any], session: SynthesisSession
    ) -> dict[str, Any]:
        query = str(args.get("query") or "")
        category = _text_or_none(args.get("category"))
        skin_type = _text_or_none(args.get("skin_type"))
        concerns = [str(c) for c in args.get("concerns") or [] if str(c).strip()]
        max_price = float(args["max_price"]) if args.get("max_price") is not None else None
        limit = min(int(args.get("limit") or DEFAULT_TOOL_LIMIT), MAX_TOOL_LIMIT)

        found: dict[str, tuple[CatalogRecord, float | None]] = {}

        vector = await self._embedder.embed(query) if query else None
        if vector is not None:
            for hit in await self._catalog.nearest(vector, self._floor, limit * 3):
                found.setdefault(hit.record.id, (hit.record, hit.similarity))

        supplements = []
        if concerns:
            supplements.append(
                CatalogQuery(
                    category=category,
                    skin_type_contains=skin_type,
                    concerns_overlap=tuple(c.lower() for c in concerns),
                    max_price=max_price,
                    limit=limit * 2,
                )
            )
        supplements.append(
            CatalogQuery(
                category=category,
                skin_type_contains=skin_type,
                max_price=max_price,
                limit=limit * 2,
            )
        )
        for supplement in supplements:
            if len(found) >= limit:
                break
            for record in await self._catalog.find(supplement):
                found.setdefault(record.id, (record, None))

        kept = [
            (record, similarity)
            for record, similarity in found.values()
            if (not category or record.category == category)
            and (max_price is None or record.price <= max_price)
        ][:limit]

        for record, similarity in kept:
            session.remember(
                ProductMatch.from_record(
                    record,
                    similarity if similarity is not None else TOOL_RESULT_SIMILARITY,
                    f"found by search: {query[:60]}" if query else None,
                )
            )
        return {"count": len(kept), "products": [_product_payload(r, s) for r, s in kept]}

    async def _get_product_details(
        self, args: dict[str, Any], session: SynthesisSession
    ) -> dict[str, Any]:
        record: CatalogRecord | None = None
        product_id = _text_or_none(args.get("product_id"))
        product_name = _text_or_none(args.get("product_name"))
        if product_id:
            record = await self._catalog.get(product_id)
        if record is None and product_name:
            hits = await self._catalog.find(CatalogQuery(name_like=product_name, limit=1))
            record = hits[0] if hits else None
        if record is None:
            return {"error": "Product not found"}

        session.remember(ProductMatch.from_record(record, TOOL_RESULT_SIMILARITY))
        payload = _product_payload(record)
        payload["ingredients"] = record.ingredients
        payload["retailer"] = record.retailer
        return payload


# === Protocol ===


def _block_to_param(block: Any) -> dict[str, Any] | None:
    if block.type == "text":
        return {"type": "text", "text": block.text}
    if block.type == "tool_use":
        return {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
    return None


def create_model_client(api_key: str | None = None) -> anthropic.AsyncAnthropic | None:
    """Anthropic client from settings, or None when no key is configured."""
    key = settings.anthropic_api_key if api_key is None else api_key
    if not key:
        return None
    return wrap_anthropic(
        anthropic.AsyncAnthropic(api_key=key, timeout=settings.model_timeout_seconds)
    )


class RoutineSynthesizer:
    def __init__(
        self,
        tools: RoutineToolExecutor,
        client: anthropic.AsyncAnthropic | None,
        *,
        model: str | None = None,
        max_rounds: int | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
    ) -> None:
        self._tools = tools
        self._client = client
        self._model = model or settings.routine_model
        self._max_rounds = max_rounds or settings.routine_max_rounds
        self._max_tokens = max_tokens or settings.routine_max_tokens
        self._temperature = settings.routine_temperature if temperature is None else temperature

    @property
    def available(self) -> bool:
        return self._client is not None

    async def run(
        self, session: SynthesisSession, candidates: list[ProductMatch]
    ) -> RoutineDraft | None:
        """Drive the exchange to a parsed RoutineDraft, or None for fallback."""
        if self._client is None:
            log.info("routine_model_unavailable", reason="ANTHROPIC_API_KEY not set")
            session.phase = "fallback"
            return None

        system_prompt = load_system_prompt()
        session.messages = [
            {"role": "user", "content": build_user_prompt(session.profile, candidates)}
        ]

        while session.round < self._max_rounds:
            tool_choice = {"type": "any"} if session.round == 0 else {"type": "auto"}
            try:
                response = await self._client.messages.create(  # type: ignore[call-overload]
                    model=self._model,
                    max_tokens=self._max_tokens,
                    temperature=self._temperature,
                    system=system_prompt,
                    tools=ROUTINE_TOOLS,
                    tool_choice=tool_choice,
                    messages=session.messages,
                )
            except anthropic.APIError as exc:
                log.warning(
                    "routine_model_call_failed",
                    round=session.round,
                    error=str(exc)[:200],
                    error_type=type(exc).__name__,
                )
                session.phase = "fallback"
                return None

            log.info(
                "routine_round_tokens",
                round=session.round,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                model=self._model,
            )

            tool_uses = [b for b in response.content if b.type == "tool_use"]
            if tool_uses:
                session.phase = "tool_round"
                await self._run_tool_round(session, response.content, tool_uses)
                session.round += 1
                continue

            if session.round == 0:
                log.warning("routine_round0_without_tool_call")
                session.phase = "fallback"
                return None

            session.phase = "final"
            text = "".join(b.text for b in response.content if b.type == "text")
            draft = parse_routine_draft(text)
            if draft is None:
                log.warning("routine_final_unparsable", round=session.round, text_len=len(text))
                session.phase = "fallback"
                return None

            session.phase = "done"
            log.info(
                "routine_draft_complete",
                rounds=session.round + 1,
                tool_calls=session.tool_calls,
                discovered=len(session.products_by_id),
                steps=sum(len(s) for s in draft.slots().values()),
            )
            return draft

        log.warning("routine_round_cap_reached", max_rounds=self._max_rounds)
        session.phase = "final_missing"
        return None

    async def _run_tool_round(
        self, session: SynthesisSession, content: list[Any], tool_uses: list[Any]
    ) -> None:
        assistant_blocks = [p for p in (_block_to_param(b) for b in content) if p is not None]
        session.messages.append({"role": "assistant", "content": assistant_blocks})

        log.info(
            "routine_tool_round",
            round=session.round,
            tools=[b.name for b in tool_uses],
        )
        outputs = await asyncio.gather(
            *(
                self._tools.run(b.name, b.input if isinstance(b.input, dict) else {}, session)
                for b in tool_uses
            )
        )
        session.messages.append(
            {
                "role": "user",
                "content": [
                    {"type": "tool_result", "tool_use_id": b.id, "content": out}
                    for b, out in zip(tool_uses, outputs, strict=True)
                ],
            }
        )
