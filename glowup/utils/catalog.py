"""Catalog access: the product store the engine reads from.

The engine only sees the `Catalog` protocol. Two adapters implement it:

- `SupabaseCatalog`: PostgREST queries against the `products` table plus the
  `match_products` pgvector RPC (production).
- `InMemoryCatalog`: the same query semantics over a list of records loaded
  from a JSON seed file (development mock mode and tests).

Adapters raise `CatalogUnavailableError` for transport/API failures so callers
can treat catalog trouble as a single soft-failure type.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import httpx
import structlog
from postgrest.exceptions import APIError

from glowup.errors import CatalogConfigError, CatalogUnavailableError
from glowup.models.contracts import CatalogRecord, ScoredRecord

if TYPE_CHECKING:
    from supabase import AsyncClient

log = structlog.get_logger("catalog")

_WORD_RE = re.compile(r"[a-z0-9]+")
# Characters that would break a PostgREST or=(...) expression; plain filters
# travel as their own query parameter and need no escaping
_FILTER_UNSAFE_RE = re.compile(r"[,()%{}\"*]")


@dataclass(frozen=True)
class CatalogQuery:
    """Filter set understood by every catalog adapter.

    All filters are ANDed. `text_like` matches name or summary substrings or an
    exact ingredient entry.
    """

    category: str | None = None
    categories: tuple[str, ...] | None = None
    skin_types_overlap: tuple[str, ...] | None = None
    concerns_overlap: tuple[str, ...] | None = None
    skin_type_contains: str | None = None
    max_price: float | None = None
    name_like: str | None = None
    brand_like: str | None = None
    text_like: str | None = None
    require_embedding: bool = False
    order_by_rating: bool = True
    limit: int = 10


class Catalog(Protocol):
    async def get(self, product_id: str) -> CatalogRecord | None: ...

    async def get_many(self, product_ids: list[str]) -> list[CatalogRecord]: ...

    async def find(self, query: CatalogQuery) -> list[CatalogRecord]: ...

    async def full_text(
        self,
        terms: list[str],
        *,
        max_price: float | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[CatalogRecord]: ...

    async def nearest(
        self, vector: list[float], threshold: float, limit: int
    ) -> list[ScoredRecord]: ...

    async def ping(self) -> None: ...


def tsquery_words(terms: list[str]) -> list[str]:
    """Split free-form terms into unique lower-case words for full-text search."""
    words: list[str] = []
    for term in terms:
        for word in _WORD_RE.findall(term.lower()):
            if word not in words:
                words.append(word)
    return words


def _safe_filter_value(value: str) -> str:
    return _FILTER_UNSAFE_RE.sub(" ", value).strip()


# === Supabase ===


class SupabaseCatalog:
    def __init__(
        self,
        client: AsyncClient,
        table: str = "products",
        match_rpc: str = "match_products",
    ) -> None:
        self._client = client
        self._table_name = table
        self._match_rpc = match_rpc

    @classmethod
    async def connect(
        cls,
        url: str,
        key: str,
        table: str = "products",
        match_rpc: str = "match_products",
    ) -> SupabaseCatalog:
        if not url or not key:
            raise CatalogConfigError("SUPABASE_URL and SUPABASE_KEY must be set for the supabase catalog")
        from supabase import acreate_client

        client = await acreate_client(url, key)
        log.info("catalog_connected", backend="supabase", table=table)
        return cls(client, table=table, match_rpc=match_rpc)

    def _table(self) -> Any:
        return self._client.table(self._table_name)

    async def _execute(self, builder: Any, op: str) -> list[dict[str, Any]]:
        try:
            response = await builder.execute()
        except (APIError, httpx.HTTPError) as exc:
            log.warning("catalog_query_failed", op=op, error=str(exc)[:200])
            raise CatalogUnavailableError(f"catalog {op} failed: {exc}") from exc
        return list(response.data or [])

    async def get(self, product_id: str) -> CatalogRecord | None:
        rows = await self._execute(
            self._table().select("*").eq("id", product_id).limit(1), "get"
        )
        return _to_record(rows[0]) if rows else None

    async def get_many(self, product_ids: list[str]) -> list[CatalogRecord]:
        if not product_ids:
            return []
        rows = await self._execute(self._table().select("*").in_("id", product_ids), "get_many")
        return [_to_record(r) for r in rows]

    async def find(self, query: CatalogQuery) -> list[CatalogRecord]:
        q = self._table().select("*")
        if query.category:
            q = q.eq("category", query.category)
        if query.categories:
            q = q.in_("category", list(query.categories))
        if query.skin_types_overlap:
            q = q.overlaps("target_skin_type", list(query.skin_types_overlap))
        if query.concerns_overlap:
            q = q.overlaps("target_concerns", list(query.concerns_overlap))
        if query.skin_type_contains:
            q = q.contains("target_skin_type", [query.skin_type_contains])
        if query.max_price is not None:
            q = q.lte("price", query.max_price)
        if query.name_like:
            q = q.ilike("name", f"%{query.name_like}%")
        if query.brand_like:
            q = q.ilike("brand", f"%{query.brand_like}%")
        if query.text_like:
            term = _safe_filter_value(query.text_like)
            q = q.or_(f"name.ilike.%{term}%,summary.ilike.%{term}%,ingredients.cs.{{{term}}}")
        if query.require_embedding:
            q = q.not_.is_("embedding", "null")
        if query.order_by_rating:
            q = q.order("rating", desc=True)
        rows = await self._execute(q.limit(query.limit), "find")
        return [_to_record(r) for r in rows]

    async def full_text(
        self,
        terms: list[str],
        *,
        max_price: float | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[CatalogRecord]:
        words = tsquery_words(terms)
        if not words:
            return []
        q = self._table().select("*").text_search("search_vector", " | ".join(words))
        if category:
            q = q.eq("category", category)
        if max_price is not None:
            q = q.lte("price", max_price)
        rows = await self._execute(q.limit(limit), "full_text")
        return [_to_record(r) for r in rows]

    async def nearest(
        self, vector: list[float], threshold: float, limit: int
    ) -> list[ScoredRecord]:
        rows = await self._execute(
            self._client.rpc(
                self._match_rpc,
                {
                    "query_embedding": vector,
                    "match_threshold": threshold,
                    "match_count": limit,
                },
            ),
            "nearest",
        )
        return [
            ScoredRecord(record=_to_record(r), similarity=float(r.get("similarity") or 0.0))
            for r in rows
        ]

    async def ping(self) -> None:
        await self._execute(self._table().select("id").limit(1), "ping")


def _to_record(row: dict[str, Any]) -> CatalogRecord:
    """Map a `products` row to a CatalogRecord.

    The RPC returns `description` where the table has `summary`; nulls in
    array columns come back as None.
    """
    data = dict(row)
    data.pop("similarity", None)
    if not data.get("summary"):
        data["summary"] = data.get("description") or ""
    for key in ("target_skin_type", "target_concerns", "target_hair_type", "ingredients", "attributes"):
        if data.get(key) is None:
            data[key] = []
    for key in ("brand", "category"):
        if data.get(key) is None:
            data[key] = ""
    if data.get("price") is None:
        data["price"] = 0.0
    data["id"] = str(data["id"])
    return CatalogRecord.model_validate(data)


# === In-memory ===


def _rating_key(record: CatalogRecord) -> float:
    return record.rating if record.rating is not None else -1.0


def _cosine(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b, strict=True))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryCatalog:
    """Catalog over a fixed record list with PostgREST-equivalent filters."""

    def __init__(self, records: list[CatalogRecord]) -> None:
        self._records = list(records)
        self._by_id = {r.id: r for r in self._records}

    @classmethod
    def from_json(cls, path: str | Path) -> InMemoryCatalog:
        raw = json.loads(Path(path).read_text())
        rows = raw.get("products", []) if isinstance(raw, dict) else raw
        records = [_to_record(r) for r in rows]
        log.info("catalog_loaded", backend="memory", path=str(path), products=len(records))
        return cls(records)

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, product_id: str) -> CatalogRecord | None:
        return self._by_id.get(product_id)

    async def get_many(self, product_ids: list[str]) -> list[CatalogRecord]:
        return [self._by_id[i] for i in product_ids if i in self._by_id]

    def _matches(self, r: CatalogRecord, q: CatalogQuery) -> bool:
        if q.category and r.category != q.category:
            return False
        if q.categories and r.category not in q.categories:
            return False
        if q.skin_types_overlap and not set(q.skin_types_overlap) & set(r.target_skin_type):
            return False
        if q.concerns_overlap and not set(q.concerns_overlap) & set(r.target_concerns):
            return False
        if q.skin_type_contains and q.skin_type_contains not in r.target_skin_type:
            return False
        if q.max_price is not None and r.price > q.max_price:
            return False
        if q.name_like and q.name_like.lower() not in r.name.lower():
            return False
        if q.brand_like and q.brand_like.lower() not in r.brand.lower():
            return False
        if q.text_like:
            term = q.text_like.lower()
            if not (
                term in r.name.lower()
                or term in r.summary.lower()
                or term in (i.lower() for i in r.ingredients)
            ):
                return False
        if q.require_embedding and not r.embedding:
            return False
        return True

    async def find(self, query: CatalogQuery) -> list[CatalogRecord]:
        hits = [r for r in self._records if self._matches(r, query)]
        if query.order_by_rating:
            hits.sort(key=_rating_key, reverse=True)
        return hits[: query.limit]

    async def full_text(
        self,
        terms: list[str],
        *,
        max_price: float | None = None,
        category: str | None = None,
        limit: int = 10,
    ) -> list[CatalogRecord]:
        words = set(tsquery_words(terms))
        if not words:
            return []
        hits: list[CatalogRecord] = []
        for r in self._records:
            if category and r.category != category:
                continue
            if max_price is not None and r.price > max_price:
                continue
            text = " ".join([r.name, r.brand, r.summary, *r.ingredients, *r.target_concerns])
            if words & set(_WORD_RE.findall(text.lower())):
                hits.append(r)
        return hits[:limit]

    async def nearest(
        self, vector: list[float], threshold: float, limit: int
    ) -> list[ScoredRecord]:
        scored = [
            ScoredRecord(record=r, similarity=_cosine(vector, r.embedding))
            for r in self._records
            if r.embedding
        ]
        scored = [s for s in scored if s.similarity > threshold]
        scored.sort(key=lambda s: s.similarity, reverse=True)
        return scored[:limit]

    async def ping(self) -> None:
        return None


async def create_catalog(backend: str, **options: Any) -> Catalog:
    """Build the configured catalog adapter ("memory" or "supabase")."""
    if backend == "supabase":
        return await SupabaseCatalog.connect(
            options.get("url", ""),
            options.get("key", ""),
            table=options.get("table", "products"),
            match_rpc=options.get("match_rpc", "match_products"),
        )
    if backend == "memory":
        return InMemoryCatalog.from_json(options.get("seed_path", "data/catalog_seed.json"))
    raise CatalogConfigError(f"Unknown catalog backend: {backend!r}")
