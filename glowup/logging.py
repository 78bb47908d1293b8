"""structlog setup shared by the API and the Temporal worker."""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog

from glowup.config import settings


class _FileTee:
    """Mirror rendered log lines to stdout and an append-only file.

    If the file cannot be opened or written, file output is dropped and
    stdout keeps working.
    """

    def __init__(self, path: str) -> None:
        self._path = path
        self._file: IO[str] | None = None
        try:
            self._file = open(path, "a")  # noqa: SIM115
        except OSError as exc:
            print(f"WARNING: cannot open log file {path!r}: {exc}", file=sys.stderr)

    def _disable(self, action: str) -> None:
        self._file = None
        print(f"WARNING: log file {action} failed for {self._path!r}; disabled", file=sys.stderr)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        if self._file is None:
            return
        try:
            self._file.write(data)
            self._file.flush()
        except (OSError, ValueError):
            self._disable("write")

    def flush(self) -> None:
        sys.stdout.flush()
        if self._file is None:
            return
        try:
            self._file.flush()
        except (OSError, ValueError):
            self._disable("flush")


def configure_logging() -> None:
    """Console output in development, JSON lines everywhere else.

    LOG_FILE additionally tees every line to that file.
    """
    if settings.environment == "development":
        renderer: Any = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    level = logging.getLevelNamesMapping().get(settings.log_level.upper(), logging.INFO)

    if settings.log_file:
        factory = structlog.PrintLoggerFactory(file=_FileTee(settings.log_file))  # type: ignore[arg-type]
    else:
        factory = structlog.PrintLoggerFactory()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=factory,
        cache_logger_on_first_use=True,
    )
