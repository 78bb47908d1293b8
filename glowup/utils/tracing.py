"""LangSmith tracing for model calls: no-op when LANGSMITH_API_KEY is unset.

The key is checked per call rather than at import so tests and local runs
never pay for tracing.
"""

from __future__ import annotations

import os
from typing import Any

import structlog

_log = structlog.get_logger("tracing")


def _tracing_enabled() -> bool:
    return bool(os.environ.get("LANGSMITH_API_KEY", "").strip())


def wrap_anthropic(client: Any) -> Any:
    """Wrap an Anthropic client for auto-tracing."""
    if not _tracing_enabled():
        return client
    from langsmith.wrappers import wrap_anthropic as _wrap

    try:
        return _wrap(client)
    except Exception as exc:
        _log.error(
            "langsmith_wrap_failed",
            client="anthropic",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return client


def wrap_openai(client: Any) -> Any:
    """Wrap an OpenAI client (embeddings) for auto-tracing."""
    if not _tracing_enabled():
        return client
    from langsmith.wrappers import wrap_openai as _wrap

    try:
        return _wrap(client)
    except Exception as exc:
        _log.error(
            "langsmith_wrap_failed",
            client="openai",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return client
