"""Query embeddings via the OpenAI embeddings API.

Fails soft: a missing key, timeout or API error yields None and the search
cascade moves on to strategies that need no fresh vector.
"""

from __future__ import annotations

from typing import Protocol

import openai
import structlog

from glowup.config import settings
from glowup.utils.tracing import wrap_openai

log = structlog.get_logger("embeddings")


class Embedder(Protocol):
    @property
    def available(self) -> bool: ...

    async def embed(self, text: str) -> list[float] | None: ...


class OpenAIEmbedder:
    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        dimensions: int | None = None,
        timeout: float | None = None,
        client: openai.AsyncOpenAI | None = None,
    ) -> None:
        key = settings.openai_api_key if api_key is None else api_key
        self._model = model or settings.embedding_model
        self._dimensions = dimensions or settings.embedding_dimensions
        if client is not None:
            self._client: openai.AsyncOpenAI | None = client
        elif key:
            self._client = wrap_openai(
                openai.AsyncOpenAI(
                    api_key=key,
                    timeout=timeout or settings.embedding_timeout_seconds,
                )
            )
        else:
            self._client = None

    @property
    def available(self) -> bool:
        return self._client is not None

    async def embed(self, text: str) -> list[float] | None:
        if self._client is None:
            log.info("embedding_skipped", reason="OPENAI_API_KEY not set")
            return None
        if not text.strip():
            return None
        try:
            response = await self._client.embeddings.create(
                model=self._model,
                input=text,
                dimensions=self._dimensions,
            )
        except openai.OpenAIError as exc:
            log.warning(
                "embedding_failed",
                error=str(exc)[:200],
                error_type=type(exc).__name__,
            )
            return None
        vector = list(response.data[0].embedding)
        log.debug("embedding_created", dims=len(vector), model=self._model)
        return vector
