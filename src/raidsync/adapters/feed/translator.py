"""Translate validated feed documents into domain snapshots.

Items that fail validation are dropped with a warning; the rest of the
document still produces a snapshot. Duplicate ids keep their first occurrence.
"""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from pydantic import BaseModel, ValidationError

from raidsync.domain.model import (
    Character,
    Code,
    CodeStatus,
    ContentType,
    Snapshot,
    TierEntry,
)

from .schema import (
    CharacterPayload,
    CharactersDocument,
    CodePayload,
    CodesDocument,
    TierEntryPayload,
    TierListDocument,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from datetime import datetime

    from raidsync.domain.model import Entity

    from .schema import FeedDocument, RawItem

log = getLogger(__name__)

DOCUMENT_MODEL_BY_CONTENT_TYPE: dict[ContentType, type[BaseModel]] = {
    ContentType.CHARACTER: CharactersDocument,
    ContentType.CODE: CodesDocument,
    ContentType.TIER_ENTRY: TierListDocument,
}


def _validated[M: BaseModel](
    model: type[M],
    content_type: ContentType,
    items: Iterable[RawItem],
) -> Iterator[M]:
    for index, item in enumerate(items):
        try:
            yield model.model_validate(item)
        except ValidationError as exc:
            log.warning(
                "Dropping invalid %s item #%s: %s",
                content_type,
                index,
                "; ".join(
                    f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
                ),
            )


def _first_by_id(content_type: ContentType, entities: Iterable[Entity]) -> tuple[Entity, ...]:
    unique: dict[str, Entity] = {}
    for entity in entities:
        if entity.entity_id in unique:
            log.warning("Dropping duplicate %s id %r", content_type, entity.entity_id)
            continue
        unique[entity.entity_id] = entity
    return tuple(unique.values())


def parse_characters(document: CharactersDocument) -> Iterator[Character]:
    for payload in _validated(CharacterPayload, ContentType.CHARACTER, document.characters):
        yield Character(
            id=payload.id,
            name=payload.name,
            tier=payload.tier,
            rating=payload.rating,
            stats=dict(payload.stats),
            description=payload.description,
        )


def parse_codes(document: CodesDocument) -> Iterator[Code]:
    sections = ((CodeStatus.ACTIVE, document.active), (CodeStatus.EXPIRED, document.expired))
    for listed_status, items in sections:
        for payload in _validated(CodePayload, ContentType.CODE, items):
            yield Code(
                code=payload.code,
                status=payload.status or listed_status,
                rewards=payload.rewards,
                expires=payload.expires,
                uses=payload.uses,
            )


def parse_tier_entries(document: TierListDocument) -> Iterator[TierEntry]:
    # best tier first so a character listed twice keeps its highest placement
    for tier in sorted(document.tiers, key=lambda t: t.rank, reverse=True):
        items = document.tiers[tier]
        for payload in _validated(TierEntryPayload, ContentType.TIER_ENTRY, items):
            yield TierEntry(character_id=payload.id, tier=tier, rating=payload.rating)


def build_snapshot(
    content_type: ContentType,
    document: FeedDocument,
    *,
    captured_at: datetime,
) -> Snapshot:
    """Turn a validated feed envelope into a complete snapshot of ``content_type``."""

    match document:
        case CharactersDocument():
            entities: Iterable[Entity] = parse_characters(document)
        case CodesDocument():
            entities = parse_codes(document)
        case TierListDocument():
            entities = parse_tier_entries(document)
    snapshot = Snapshot(
        content_type=content_type,
        entities=_first_by_id(content_type, entities),
        version=document.version,
        captured_at=captured_at,
    )
    log.debug("Parsed %s %s entities (feed version %s)", len(snapshot), content_type, snapshot.version)
    return snapshot
