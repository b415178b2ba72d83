"""Per-run memoization of author and term lookups."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from bylines.domain.model import Author, Term
    from bylines.domain.ports.persistence import AuthorDirectory, TermRepository

log = getLogger(__name__)


@dataclass(slots=True)
class ResolutionCache:
    """Resolve author references and their terms at most once per run.

    The cache is an explicit context object: create one per run and drop it
    afterwards. It never deduplicates across runs or processes; the term store's
    create-if-absent contract covers that.
    """

    authors: AuthorDirectory
    terms: TermRepository
    taxonomy: str
    _authors_by_ref: dict[int, Author | None] = field(default_factory=dict)
    _terms_by_author: dict[int, Term] = field(default_factory=dict)
    _touched: dict[int, Author] = field(default_factory=dict)
    _term_lock: threading.Lock = field(default_factory=threading.Lock)

    def resolve_author(self, author_ref: int) -> Author | None:
        """Return the author for ``author_ref`` or ``None`` when the directory has none.

        Misses are remembered too, so a dangling reference shared by many records
        costs one lookup.
        """

        if author_ref in self._authors_by_ref:
            return self._authors_by_ref[author_ref]
        author = self.authors.get(author_ref)
        if author is None:
            log.debug("Author %s not found in directory", author_ref)
        self._authors_by_ref[author_ref] = author
        return author

    def resolve_term(self, author: Author) -> Term:
        """Return the author's term, creating it through the term store on first use."""

        term = self._terms_by_author.get(author.id)
        if term is not None:
            return term
        with self._term_lock:
            term = self._terms_by_author.get(author.id)
            if term is None:
                term = self.terms.get_or_create(self.taxonomy, author)
                log.debug("Resolved term %s (%s) for author %s", term.id, term.slug, author.id)
                self._terms_by_author[author.id] = term
                self._touched.setdefault(author.id, author)
        return term

    @property
    def touched_authors(self) -> tuple[Author, ...]:
        """Authors whose term was resolved, in first-resolution order."""

        return tuple(self._touched.values())

    def term_for(self, author: Author) -> Term | None:
        return self._terms_by_author.get(author.id)
