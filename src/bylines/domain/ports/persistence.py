"""Ports for the stores the backfill reads from and writes to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bylines.domain.model import Author, ContentRecord, SkipReason, Term
    from bylines.domain.predicate import Expression


@runtime_checkable
class ContentRecordRepository(Protocol):
    """Filtered, id-ordered access to content records."""

    def count_matching(self, expression: Expression) -> int: ...

    def page_matching(
        self,
        expression: Expression,
        *,
        limit: int | None,
        after_id: int | None = None,
    ) -> list[ContentRecord]: ...


@runtime_checkable
class AuthorDirectory(Protocol):
    """Lookup of authors by identifier."""

    def get(self, author_id: int) -> Author | None:
        """Return ``None`` for an unknown author.

        Raises ``AuthorLookupError`` when the lookup itself fails.
        """
        ...


@runtime_checkable
class TermRepository(Protocol):
    """Author terms within a taxonomy."""

    def get_or_create(self, taxonomy: str, author: Author) -> Term:
        """Return the author's term, creating it if absent.

        Implementations keep at most one term per ``(taxonomy, slug)`` and per
        ``(taxonomy, author_id)``, trying ``author.term_slug_candidates`` in order
        when a slug is already held by another author.
        """
        ...

    def get_for_author(self, taxonomy: str, author_id: int) -> Term | None: ...

    def get_by_slug(self, taxonomy: str, slug: str) -> Term | None: ...

    def list_terms(self, taxonomy: str) -> list[Term]: ...

    def update_metadata(self, term_id: int, *, record_count: int, description: str) -> Term: ...


@runtime_checkable
class RelationRepository(Protocol):
    """Record-to-term relation rows."""

    def add(self, record_id: int, term_id: int) -> None:
        """Insert a relation; raises ``RelationWriteError`` on store failure."""
        ...

    def exists(self, record_id: int, term_id: int) -> bool: ...

    def count_for_term(self, term_id: int) -> int: ...


@runtime_checkable
class SkipMarkerRepository(Protocol):
    """Per-record markers that exclude a record from future backfills."""

    def mark_skipped(self, record_id: int, reason: SkipReason) -> bool:
        """Write a marker unless one exists; return whether a row was written.

        Raises ``SkipMarkerWriteError`` when the store fails.
        """
        ...

    def is_skipped(self, record_id: int) -> bool: ...

    def skipped_ids(self) -> list[int]: ...

    def clear(self, record_ids: Iterable[int] | None = None) -> list[int]: ...
