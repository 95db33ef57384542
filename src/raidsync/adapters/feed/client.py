"""HTTP content source for the wiki's JSON feed mirror."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from raidsync.adapters.http_resilience import ResilientClient
from raidsync.domain.reconciliation.errors import FetchTimeoutError, NetworkError, ParseError

from .translator import DOCUMENT_MODEL_BY_CONTENT_TYPE, build_snapshot

if TYPE_CHECKING:
    from collections.abc import Callable

    from raidsync.config.feeds import FeedConfig
    from raidsync.config.http_resilience import ResilienceConfig
    from raidsync.domain.model import ContentType, Snapshot
    from raidsync.domain.ports.fetching import ContentSource

    from .schema import FeedDocument

log = getLogger(__name__)

_ENTITY_LIST_KEYS = ("characters", "active", "expired", "tiers")


def payload_fingerprint(body: bytes) -> str:
    """Stable identifier for a raw payload, used when reporting malformed feeds."""

    return hashlib.sha256(body).hexdigest()


def should_cache_payload(payload: object) -> bool:
    """Only cache documents that actually carry entities."""

    if not isinstance(payload, dict):
        return False
    for key in _ENTITY_LIST_KEYS:
        value = payload.get(key)  # pyright: ignore[reportUnknownMemberType, reportUnknownVariableType]
        if isinstance(value, dict):
            if any(value.values()):  # pyright: ignore[reportUnknownMemberType, reportUnknownArgumentType]
                return True
        elif value:
            return True
    return False


def _default_client_factory(config: ResilienceConfig) -> ResilientClient:
    return ResilientClient(config)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class HttpContentSource:
    """Fetch complete snapshots from ``<base_url><path>`` for each content type."""

    config: FeedConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=_default_client_factory
    )
    clock: Callable[[], datetime] = field(default=_utcnow)

    async def fetch(self, content_type: ContentType) -> Snapshot:
        body = await self._download(content_type, self.config.path_for(content_type))
        document = _parse_document(content_type, body)
        return build_snapshot(content_type, document, captured_at=self.clock())

    async def _download(self, content_type: ContentType, path: str) -> bytes:
        try:
            async with self.client_factory(self.config.resilience) as client:
                response = await client.get(path)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Timed out fetching {content_type} feed from {path}") from exc
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise NetworkError(f"{content_type} feed returned HTTP {status}") from exc
        except httpx.HTTPError as exc:
            raise NetworkError(f"Failed to fetch {content_type} feed: {exc}") from exc
        except OSError as exc:
            # response cache file unavailable
            raise NetworkError(f"Could not open HTTP client for {content_type} feed: {exc}") from exc
        log.debug("Fetched %s feed (%s bytes)", content_type, len(response.content))
        return response.content


def _parse_document(content_type: ContentType, body: bytes) -> FeedDocument:
    model = DOCUMENT_MODEL_BY_CONTENT_TYPE[content_type]
    try:
        payload = json.loads(body)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ParseError(
            f"{content_type} feed is not valid JSON: {exc}",
            fingerprint=payload_fingerprint(body),
        ) from exc
    try:
        return model.model_validate(payload)  # pyright: ignore[reportReturnType]
    except ValidationError as exc:
        raise ParseError(
            f"{content_type} feed has an unexpected shape ({exc.error_count()} errors)",
            fingerprint=payload_fingerprint(body),
        ) from exc


if TYPE_CHECKING:
    _source_check: ContentSource = HttpContentSource(config=...)  # type: ignore[arg-type]
