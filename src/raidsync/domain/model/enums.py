"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class ContentType(StrEnum):
    """Reconciled content kinds; selects the diff/merge policy."""

    CHARACTER = "character"
    CODE = "code"
    TIER_ENTRY = "tier_entry"


class CodeStatus(StrEnum):
    ACTIVE = "active"
    EXPIRED = "expired"


class Tier(StrEnum):
    S = "S"
    A = "A"
    B = "B"
    C = "C"

    @property
    def rank(self) -> int:
        """Position in the order ``S > A > B > C`` (higher is better)."""

        return _TIER_RANKS[self]


_TIER_RANKS: dict[Tier, int] = {Tier.S: 3, Tier.A: 2, Tier.B: 1, Tier.C: 0}
