"""Wiki content entities.

Entities are immutable values; the store replaces them wholesale when a change
is applied. Each entity exposes ``entity_id``, the stable key used for lookup
within its content type.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, ClassVar

from .enums import CodeStatus, ContentType, Tier

if TYPE_CHECKING:
    from datetime import date


@dataclass(frozen=True, slots=True, kw_only=True)
class Character:
    content_type: ClassVar[ContentType] = ContentType.CHARACTER

    id: str
    name: str
    tier: Tier
    rating: float
    stats: dict[str, float] = field(default_factory=dict)
    description: str = ""

    @property
    def entity_id(self) -> str:
        return self.id


@dataclass(frozen=True, slots=True, kw_only=True)
class Code:
    """Redeem code; the code string itself is the identifier."""

    content_type: ClassVar[ContentType] = ContentType.CODE

    code: str
    status: CodeStatus
    rewards: str
    expires: date | None = None
    uses: int = 0

    @property
    def entity_id(self) -> str:
        return self.code


@dataclass(frozen=True, slots=True, kw_only=True)
class TierEntry:
    content_type: ClassVar[ContentType] = ContentType.TIER_ENTRY

    character_id: str
    tier: Tier
    rating: float

    @property
    def entity_id(self) -> str:
        return self.character_id


type Entity = Character | Code | TierEntry

ENTITY_CLASS_BY_CONTENT_TYPE: dict[ContentType, type[Entity]] = {
    ContentType.CHARACTER: Character,
    ContentType.CODE: Code,
    ContentType.TIER_ENTRY: TierEntry,
}
