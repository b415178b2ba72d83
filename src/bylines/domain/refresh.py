"""Recompute aggregate metadata on author terms."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from bylines.domain.errors import TermStoreError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bylines.domain.model import Author, Term
    from bylines.domain.ports.persistence import RelationRepository, TermRepository

log = getLogger(__name__)


@dataclass(slots=True)
class RefreshResult:
    refreshed: int = 0
    failed: int = 0


@dataclass(slots=True)
class TermCountRefresher:
    """Persist record count and description for an author's term."""

    terms: TermRepository
    relations: RelationRepository
    taxonomy: str

    def refresh(self, author: Author) -> Term | None:
        """Recompute the term for ``author``; return ``None`` if it has no term yet."""

        term = self.terms.get_for_author(self.taxonomy, author.id)
        if term is None:
            return None
        record_count = self.relations.count_for_term(term.id)
        return self.terms.update_metadata(
            term.id,
            record_count=record_count,
            description=author.term_description(),
        )

    def refresh_all(self, authors: Iterable[Author]) -> RefreshResult:
        author_list = list(authors)
        result = RefreshResult()
        for position, author in enumerate(author_list, start=1):
            try:
                term = self.refresh(author)
            except TermStoreError as exc:
                result.failed += 1
                log.warning(
                    "Failed to update author term for author %s (%s): %s",
                    author.id,
                    author.nicename,
                    exc,
                )
                continue
            if term is None:
                result.failed += 1
                log.warning(
                    "No author term to update for author %s (%s)", author.id, author.nicename
                )
                continue
            result.refreshed += 1
            log.info(
                "Updated author term for author %s (%s): %s records (%s)",
                author.id,
                author.nicename,
                term.record_count,
                format_percentage(position, len(author_list)),
            )
        return result


def format_percentage(completed: int, total: int) -> str:
    if total <= 0:
        return "100.00%"
    return f"{completed / total * 100:.2f}%"
