"""Transaction boundary the backfill driver runs inside."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from bylines.domain.ports.persistence import (
        AuthorDirectory,
        ContentRecordRepository,
        RelationRepository,
        SkipMarkerRepository,
        TermRepository,
    )


@dataclass(slots=True)
class BackfillRepositories:
    """Repositories required to backfill author terms."""

    records: ContentRecordRepository
    authors: AuthorDirectory
    terms: TermRepository
    relations: RelationRepository
    skip_markers: SkipMarkerRepository


@runtime_checkable
class BackfillUnitOfWork(Protocol):
    """Transactional boundary around the backfill repositories."""

    @property
    def repositories(self) -> BackfillRepositories: ...

    def __enter__(self) -> BackfillUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def release_transient_caches(self) -> None:
        """Drop per-session state that grows over a long run."""
        ...
