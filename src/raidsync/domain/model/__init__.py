"""Content model for the wiki reconciliation engine."""

from __future__ import annotations

from .entities import ENTITY_CLASS_BY_CONTENT_TYPE, Character, Code, Entity, TierEntry
from .enums import CodeStatus, ContentType, Tier
from .snapshot import Snapshot

__all__ = [
    "ENTITY_CLASS_BY_CONTENT_TYPE",
    "Character",
    "Code",
    "CodeStatus",
    "ContentType",
    "Entity",
    "Snapshot",
    "Tier",
    "TierEntry",
]
