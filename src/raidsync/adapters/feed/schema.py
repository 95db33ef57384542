"""Pydantic models describing the wiki feed documents."""

from __future__ import annotations

from datetime import date  # noqa: TC003
from typing import Annotated

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from raidsync.domain.model import CodeStatus, Tier  # noqa: TC001

NonBlankStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
RawItem = dict[str, object]


def _blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


class FeedBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CharacterPayload(FeedBaseModel):
    id: NonBlankStr
    name: NonBlankStr
    tier: Tier
    rating: float = Field(ge=0)
    stats: dict[str, float] = Field(default_factory=dict)
    description: str = ""

    @field_validator("description", mode="before")
    @classmethod
    def _none_to_empty(cls, value: object) -> object:
        return "" if value is None else value


class CodePayload(FeedBaseModel):
    code: NonBlankStr
    rewards: NonBlankStr = Field(validation_alias=AliasChoices("rewards", "reward"))
    status: CodeStatus | None = None
    expires: date | None = None
    uses: int = Field(default=0, ge=0)

    _normalize_expires = field_validator("expires", mode="before")(_blank_to_none)


class TierEntryPayload(FeedBaseModel):
    id: NonBlankStr = Field(validation_alias=AliasChoices("id", "character_id"))
    rating: float = Field(ge=0)


# Envelopes keep items raw so one bad item can be dropped without failing the document.


class CharactersDocument(FeedBaseModel):
    version: int = 0
    characters: list[RawItem]


class CodesDocument(FeedBaseModel):
    version: int = 0
    active: list[RawItem]
    expired: list[RawItem] = Field(default_factory=list)


class TierListDocument(FeedBaseModel):
    version: int = 0
    tiers: dict[Tier, list[RawItem]]


type FeedDocument = CharactersDocument | CodesDocument | TierListDocument
