"""Public interface for the wiki feed adapter."""

from __future__ import annotations

from .client import HttpContentSource, payload_fingerprint, should_cache_payload
from .schema import CharactersDocument, CodesDocument, TierListDocument
from .translator import build_snapshot

__all__ = [
    "CharactersDocument",
    "CodesDocument",
    "HttpContentSource",
    "TierListDocument",
    "build_snapshot",
    "payload_fingerprint",
    "should_cache_payload",
]
