"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from logging import getLogger
from typing import TYPE_CHECKING, Any, cast

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from bylines.adapters.sqlalchemy.rendering import render
from bylines.adapters.sqlalchemy.tables import (
    author_table,
    content_record_table,
    record_meta_table,
    term_relationship_table,
    term_table,
)
from bylines.domain.errors import (
    AuthorLookupError,
    RelationWriteError,
    SkipMarkerWriteError,
    TermStoreError,
)
from bylines.domain.model import (
    SKIP_BACKFILL_META_KEY,
    Author,
    ContentRecord,
    SkipMarker,
    SkipReason,
    Term,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import Row
    from sqlalchemy.orm import Session

    from bylines.domain.predicate import Expression

log = getLogger(__name__)


class SqlAlchemyContentRecordRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def count_matching(self, expression: Expression) -> int:
        stmt = select(func.count()).select_from(content_record_table).where(render(expression))
        return int(self.session.execute(stmt).scalar_one())

    def page_matching(
        self,
        expression: Expression,
        *,
        limit: int | None,
        after_id: int | None = None,
    ) -> list[ContentRecord]:
        stmt = select(
            content_record_table.c.id,
            content_record_table.c.author_ref,
            content_record_table.c.type,
            content_record_table.c.status,
        ).where(render(expression))
        if after_id is not None:
            stmt = stmt.where(content_record_table.c.id > after_id)
        stmt = stmt.order_by(content_record_table.c.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return [
            ContentRecord(
                id=row.id,
                author_ref=int(row.author_ref),
                type=row.type,
                status=row.status,
            )
            for row in self.session.execute(stmt)
        ]


class SqlAlchemyAuthorDirectory:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, author_id: int) -> Author | None:
        stmt = select(author_table).where(author_table.c.id == author_id)
        try:
            row = self.session.execute(stmt).one_or_none()
        except SQLAlchemyError as exc:
            raise AuthorLookupError(author_id, exc) from exc
        if row is None:
            return None
        return Author(
            id=row.id,
            login_name=row.login_name,
            display_name=row.display_name,
            email=row.email,
        )


class SqlAlchemyTermRepository:
    """Author terms, one per author and taxonomy.

    A term is found by ``author_id``. When creating one, the first of the author's
    candidate slugs not held by another author wins; a slug held by a term with no
    author is claimed instead of duplicated.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def get_or_create(self, taxonomy: str, author: Author) -> Term:
        existing = self.get_for_author(taxonomy, author.id)
        if existing is not None:
            return existing
        for slug in author.term_slug_candidates:
            holder = self.get_by_slug(taxonomy, slug)
            if holder is not None:
                if holder.author_id == author.id:
                    return holder
                if holder.author_id is None:
                    return self._claim(holder, author)
                log.debug("Slug %s belongs to author %s, trying next", slug, holder.author_id)
                continue
            created = self._insert(taxonomy, slug, author)
            if created is not None:
                return created
        raise TermStoreError(
            f"No free slug for author {author.id} in {taxonomy}: "
            f"{', '.join(author.term_slug_candidates)}"
        )

    def _insert(self, taxonomy: str, slug: str, author: Author) -> Term | None:
        stmt = insert(term_table).values(
            taxonomy=taxonomy,
            slug=slug,
            name=author.login_name,
            record_count=0,
            description=author.term_description(),
            author_id=author.id,
        )
        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except IntegrityError:
            # Another writer took the slug, or created this author's term, meanwhile.
            concurrent = self.get_for_author(taxonomy, author.id)
            if concurrent is not None:
                log.info("Term for author %s already created concurrently, reusing it", author.id)
            return concurrent
        except SQLAlchemyError as exc:
            raise TermStoreError(f"Failed to create term {slug}: {exc}") from exc
        log.info("Created author term %s for author %s", slug, author.id)
        created = self.get_for_author(taxonomy, author.id)
        if created is None:
            raise TermStoreError(f"Term {slug} missing after create")
        return created

    def _claim(self, term: Term, author: Author) -> Term:
        stmt = (
            update(term_table)
            .where(term_table.c.id == term.id)
            .where(term_table.c.author_id.is_(None))
            .values(author_id=author.id)
        )
        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise TermStoreError(f"Failed to assign term {term.slug}: {exc}") from exc
        claimed = self.get_for_author(term.taxonomy, author.id)
        if claimed is None:
            raise TermStoreError(f"Term {term.slug} was assigned to another author")
        log.info("Assigned existing term %s to author %s", term.slug, author.id)
        return claimed

    def get_for_author(self, taxonomy: str, author_id: int) -> Term | None:
        stmt = (
            select(term_table)
            .where(term_table.c.taxonomy == taxonomy)
            .where(term_table.c.author_id == author_id)
        )
        row = self.session.execute(stmt).one_or_none()
        return None if row is None else _term_from_row(row)

    def get_by_slug(self, taxonomy: str, slug: str) -> Term | None:
        stmt = (
            select(term_table)
            .where(term_table.c.taxonomy == taxonomy)
            .where(term_table.c.slug == slug)
        )
        row = self.session.execute(stmt).one_or_none()
        return None if row is None else _term_from_row(row)

    def list_terms(self, taxonomy: str) -> list[Term]:
        stmt = (
            select(term_table).where(term_table.c.taxonomy == taxonomy).order_by(term_table.c.id)
        )
        return [_term_from_row(row) for row in self.session.execute(stmt)]

    def update_metadata(self, term_id: int, *, record_count: int, description: str) -> Term:
        stmt = (
            update(term_table)
            .where(term_table.c.id == term_id)
            .values(record_count=record_count, description=description)
        )
        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise TermStoreError(f"Failed to update term {term_id}: {exc}") from exc
        stmt_row = select(term_table).where(term_table.c.id == term_id)
        row = self.session.execute(stmt_row).one_or_none()
        if row is None:
            raise TermStoreError(f"Term {term_id} does not exist")
        return _term_from_row(row)


class SqlAlchemyRelationRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, record_id: int, term_id: int) -> None:
        stmt = insert(term_relationship_table).values(
            record_id=record_id,
            term_id=term_id,
            term_order=0,
        )
        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise RelationWriteError(record_id, term_id, exc) from exc

    def exists(self, record_id: int, term_id: int) -> bool:
        stmt = (
            select(term_relationship_table.c.record_id)
            .where(term_relationship_table.c.record_id == record_id)
            .where(term_relationship_table.c.term_id == term_id)
        )
        return self.session.execute(stmt).first() is not None

    def count_for_term(self, term_id: int) -> int:
        stmt = (
            select(func.count())
            .select_from(term_relationship_table)
            .where(term_relationship_table.c.term_id == term_id)
        )
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemySkipMarkerRepository:
    """Skip markers stored as ``record_meta`` rows under a fixed key."""

    def __init__(self, session: Session, *, meta_key: str = SKIP_BACKFILL_META_KEY) -> None:
        self.session = session
        self.meta_key = meta_key

    def mark_skipped(self, record_id: int, reason: SkipReason) -> bool:
        try:
            if self.is_skipped(record_id):
                return False
        except SQLAlchemyError as exc:
            raise SkipMarkerWriteError(record_id, exc) from exc
        stmt = insert(record_meta_table).values(
            record_id=record_id,
            meta_key=self.meta_key,
            meta_value=reason.value,
            created_at=datetime.now(UTC),
        )
        try:
            with self.session.begin_nested():
                self.session.execute(stmt)
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise SkipMarkerWriteError(record_id, exc) from exc
        return True

    def is_skipped(self, record_id: int) -> bool:
        stmt = (
            select(record_meta_table.c.id)
            .where(record_meta_table.c.record_id == record_id)
            .where(record_meta_table.c.meta_key == self.meta_key)
        )
        return self.session.execute(stmt).first() is not None

    def get(self, record_id: int) -> SkipMarker | None:
        stmt = (
            select(record_meta_table)
            .where(record_meta_table.c.record_id == record_id)
            .where(record_meta_table.c.meta_key == self.meta_key)
        )
        row = self.session.execute(stmt).one_or_none()
        if row is None:
            return None
        return SkipMarker(
            record_id=row.record_id,
            reason=SkipReason(row.meta_value),
            created_at=row.created_at,
        )

    def skipped_ids(self) -> list[int]:
        stmt = (
            select(record_meta_table.c.record_id)
            .where(record_meta_table.c.meta_key == self.meta_key)
            .order_by(record_meta_table.c.record_id)
        )
        return list(self.session.execute(stmt).scalars())

    def clear(self, record_ids: Iterable[int] | None = None) -> list[int]:
        if record_ids is None:
            targets = self.skipped_ids()
        else:
            wanted = sorted(set(record_ids))
            stmt = (
                select(record_meta_table.c.record_id)
                .where(record_meta_table.c.meta_key == self.meta_key)
                .where(record_meta_table.c.record_id.in_(wanted))
                .order_by(record_meta_table.c.record_id)
            )
            targets = list(self.session.execute(stmt).scalars())
        if not targets:
            return []
        self.session.execute(
            delete(record_meta_table)
            .where(record_meta_table.c.meta_key == self.meta_key)
            .where(record_meta_table.c.record_id.in_(targets))
        )
        return targets


def _term_from_row(row: Row[Any]) -> Term:
    mapping = cast("dict[str, Any]", row._mapping)  # noqa: SLF001
    return Term(
        id=mapping["id"],
        taxonomy=mapping["taxonomy"],
        slug=mapping["slug"],
        name=mapping["name"],
        record_count=mapping["record_count"],
        description=mapping["description"],
        author_id=mapping["author_id"],
    )


if TYPE_CHECKING:
    from bylines.domain.ports.persistence import (
        AuthorDirectory,
        ContentRecordRepository,
        RelationRepository,
        SkipMarkerRepository,
        TermRepository,
    )

    _session_stub = cast("Session", object())
    _records_check: ContentRecordRepository = SqlAlchemyContentRecordRepository(_session_stub)
    _authors_check: AuthorDirectory = SqlAlchemyAuthorDirectory(_session_stub)
    _terms_check: TermRepository = SqlAlchemyTermRepository(_session_stub)
    _relations_check: RelationRepository = SqlAlchemyRelationRepository(_session_stub)
    _markers_check: SkipMarkerRepository = SqlAlchemySkipMarkerRepository(_session_stub)
