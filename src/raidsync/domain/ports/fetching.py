"""Ports for fetching upstream content snapshots."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from raidsync.domain.model import ContentType, Snapshot


@runtime_checkable
class ContentSource(Protocol):
    """One upstream feed (website scraper, social ingester, API mirror).

    ``fetch`` must return a complete snapshot of every currently known entity
    of ``content_type``, never a delta. Implementations raise ``NetworkError``,
    ``ParseError`` or ``FetchTimeoutError`` from
    ``raidsync.domain.reconciliation.errors``.
    """

    async def fetch(self, content_type: ContentType) -> Snapshot: ...


__all__ = ["ContentSource"]
