"""Exponential backoff for failed fetches."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class ExponentialBackoff:
    """Base delay doubling per consecutive failure, capped, reset after one success."""

    base_seconds: float = 5.0
    cap_seconds: float = 900.0
    factor: float = 2.0
    failures: int = 0

    def __post_init__(self) -> None:
        if self.base_seconds <= 0:
            raise ValueError("Backoff base delay must be positive")
        if self.cap_seconds < self.base_seconds:
            raise ValueError("Backoff cap must not be smaller than the base delay")

    @property
    def delay(self) -> float:
        """Delay to wait before the next attempt after the recorded failures."""

        if self.failures == 0:
            return self.base_seconds
        exponent = min(self.failures - 1, 64)
        return min(self.base_seconds * self.factor**exponent, self.cap_seconds)

    def record_failure(self) -> float:
        self.failures += 1
        return self.delay

    def record_success(self) -> None:
        self.failures = 0
