"""Environment variable loaders for configuration."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import InvalidConfigurationError, MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    """Return the given environment variables or raise if any are missing/blank."""

    missing: list[str] = []
    values: dict[str, str] = {}
    for name in names:
        value = os.getenv(name)
        if value is None or not value.strip():
            missing.append(name)
            continue
        values[name] = value.strip()

    if missing:
        missing_list = ", ".join(sorted(missing))
        raise MissingConfigurationError(f"Missing configuration for: {missing_list}")

    return values


def optional_env_var(name: str) -> str | None:
    """Return the stripped value of ``name``, treating blank values as unset."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def env_positive_float(name: str, default: float) -> float:
    raw = optional_env_var(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise InvalidConfigurationError(f"{name} must be a number, got {raw!r}") from None
    if value <= 0:
        raise InvalidConfigurationError(f"{name} must be positive, got {raw!r}")
    return value


def env_choice(name: str, choices: Sequence[str], default: str) -> str:
    raw = optional_env_var(name)
    if raw is None:
        return default
    value = raw.lower()
    if value not in choices:
        allowed = ", ".join(choices)
        raise InvalidConfigurationError(f"{name} must be one of {allowed}; got {raw!r}")
    return value
