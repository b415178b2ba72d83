"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import (
    AuthorDirectory,
    ContentRecordRepository,
    RelationRepository,
    SkipMarkerRepository,
    TermRepository,
)
from .unit_of_work import BackfillRepositories, BackfillUnitOfWork

__all__ = [
    "AuthorDirectory",
    "BackfillRepositories",
    "BackfillUnitOfWork",
    "ContentRecordRepository",
    "RelationRepository",
    "SkipMarkerRepository",
    "TermRepository",
]
