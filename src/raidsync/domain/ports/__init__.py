"""Domain port definitions for adapters."""

from __future__ import annotations

from .fetching import ContentSource
from .persistence import StoreBackend

__all__ = [
    "ContentSource",
    "StoreBackend",
]
