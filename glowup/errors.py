"""Domain errors that are allowed to escape the engine.

Everything else (model outages, malformed output, empty searches) is
recovered locally and never reaches the caller.
"""

from __future__ import annotations


class CatalogUnavailableError(Exception):
    """The catalog could not be reached at all, so no routine can be built."""


class CatalogConfigError(Exception):
    """The selected catalog backend is missing required configuration."""
