"""Backfill defaults and deployment settings."""

from __future__ import annotations

from dataclasses import dataclass

from bylines.domain.backfill import (
    DEFAULT_RECORD_STATUSES,
    DEFAULT_RECORD_TYPES,
    DEFAULT_RECORDS_PER_BATCH,
    DEFAULT_THROTTLE_EVERY,
    DEFAULT_THROTTLE_SECONDS,
)

from .env import optional_env_var
from .errors import ConfigurationError

DEFAULT_AUTHOR_TAXONOMY = "author"


@dataclass(frozen=True, slots=True)
class BackfillConfig:
    """Settings fixed by deployment rather than by a single invocation."""

    taxonomy: str = DEFAULT_AUTHOR_TAXONOMY
    record_types: tuple[str, ...] = DEFAULT_RECORD_TYPES
    record_statuses: tuple[str, ...] = DEFAULT_RECORD_STATUSES
    records_per_batch: int = DEFAULT_RECORDS_PER_BATCH
    throttle_every: int = DEFAULT_THROTTLE_EVERY
    throttle_seconds: float = DEFAULT_THROTTLE_SECONDS

    def __post_init__(self) -> None:
        if not self.taxonomy.strip():
            raise ConfigurationError("Author taxonomy must not be blank")
        if self.records_per_batch <= 0:
            raise ConfigurationError("Records per batch must be positive")
        if self.throttle_every <= 0:
            raise ConfigurationError("Throttle interval must be positive")
        if self.throttle_seconds < 0:
            raise ConfigurationError("Throttle pause must be non-negative")


def get_backfill_config() -> BackfillConfig:
    try:
        return BackfillConfig(
            taxonomy=optional_env_var("BYLINES_AUTHOR_TAXONOMY", DEFAULT_AUTHOR_TAXONOMY),
            records_per_batch=int(
                optional_env_var("BYLINES_RECORDS_PER_BATCH", str(DEFAULT_RECORDS_PER_BATCH))
            ),
            throttle_every=int(
                optional_env_var("BYLINES_THROTTLE_EVERY", str(DEFAULT_THROTTLE_EVERY))
            ),
            throttle_seconds=float(
                optional_env_var("BYLINES_THROTTLE_SECONDS", str(DEFAULT_THROTTLE_SECONDS))
            ),
        )
    except ValueError as exc:
        raise ConfigurationError(f"Invalid backfill setting: {exc}") from exc
