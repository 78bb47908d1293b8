"""Per-run synthesis session state.

One `SynthesisSession` belongs to exactly one inference run. It carries the
conversation with the model and every catalog product surfaced along the
way, which the resolver treats as its first source of truth.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from glowup.models.contracts import ProductMatch, Profile

SessionPhase = Literal["init", "tool_round", "final", "final_missing", "fallback", "done"]


@dataclass
class SynthesisSession:
    profile: Profile
    round: int = 0
    phase: SessionPhase = "init"
    messages: list[dict[str, Any]] = field(default_factory=list)
    products_by_id: dict[str, ProductMatch] = field(default_factory=dict)
    products_by_name: dict[str, ProductMatch] = field(default_factory=dict)
    claimed_ids: set[str] = field(default_factory=set)
    tool_calls: int = 0

    @classmethod
    def start(cls, profile: Profile, candidates: list[ProductMatch]) -> SynthesisSession:
        session = cls(profile=profile)
        for match in candidates:
            session.remember(match)
        return session

    def remember(self, match: ProductMatch) -> None:
        self.products_by_id[match.id] = match
        if match.name:
            self.products_by_name[match.name.lower()] = match

    def find_by_id(self, product_id: str | None) -> ProductMatch | None:
        if not product_id:
            return None
        return self.products_by_id.get(product_id)

    def find_by_name(self, name: str | None) -> ProductMatch | None:
        """Exact lower-cased name first, then substring in either direction."""
        if not name:
            return None
        wanted = name.strip().lower()
        if not wanted:
            return None
        exact = self.products_by_name.get(wanted)
        if exact is not None:
            return exact
        for known, match in self.products_by_name.items():
            if wanted in known or known in wanted:
                return match
        return None

    def discovered(self) -> list[ProductMatch]:
        return list(self.products_by_id.values())
