"""Reconciliation schedule, timeout and backoff settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from raidsync.domain.model import ContentType
from raidsync.domain.reconciliation.resolve import TierConflictStrategy

from .env import env_choice, env_positive_float
from .errors import InvalidConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping

DEFAULT_INTERVALS: Final[Mapping[ContentType, float]] = {
    ContentType.CODE: 60.0 * 60,
    ContentType.TIER_ENTRY: 24 * 60.0 * 60,
    ContentType.CHARACTER: 6 * 60.0 * 60,
}
DEFAULT_FETCH_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_BACKOFF_BASE_SECONDS: Final[float] = 5.0
DEFAULT_BACKOFF_CAP_SECONDS: Final[float] = 15 * 60.0
DEFAULT_MAX_RECENT_FAILURES: Final[int] = 50


def _default_intervals() -> dict[ContentType, float]:
    return dict(DEFAULT_INTERVALS)


def _all_content_types() -> frozenset[ContentType]:
    return frozenset(ContentType)


@dataclass(frozen=True, slots=True)
class SyncConfig:
    intervals: Mapping[ContentType, float] = field(default_factory=_default_intervals)
    fetch_timeout_seconds: float = DEFAULT_FETCH_TIMEOUT_SECONDS
    backoff_base_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS
    backoff_cap_seconds: float = DEFAULT_BACKOFF_CAP_SECONDS
    max_recent_failures: int = DEFAULT_MAX_RECENT_FAILURES
    tier_conflict_strategy: TierConflictStrategy = TierConflictStrategy.CONSERVATIVE
    never_empty: frozenset[ContentType] = field(default_factory=_all_content_types)

    def __post_init__(self) -> None:
        if self.backoff_cap_seconds < self.backoff_base_seconds:
            raise InvalidConfigurationError(
                "Backoff cap must not be smaller than the backoff base delay"
            )
        if self.max_recent_failures < 1:
            raise InvalidConfigurationError("max_recent_failures must be at least 1")


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        fetch_timeout_seconds=env_positive_float(
            "RAIDSYNC_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_SECONDS
        ),
        backoff_base_seconds=env_positive_float(
            "RAIDSYNC_BACKOFF_BASE", DEFAULT_BACKOFF_BASE_SECONDS
        ),
        backoff_cap_seconds=env_positive_float("RAIDSYNC_BACKOFF_CAP", DEFAULT_BACKOFF_CAP_SECONDS),
        tier_conflict_strategy=TierConflictStrategy(
            env_choice(
                "RAIDSYNC_TIER_CONFLICT_STRATEGY",
                [strategy.value for strategy in TierConflictStrategy],
                TierConflictStrategy.CONSERVATIVE.value,
            )
        ),
    )
