"""Batch driver that relates content records to their author terms.

A run counts the records matching the missing-term predicate, then walks them
in ascending id order, page by page. Each record ends the run in one of three
ways: related to its author's term, marked as permanently skipped, or left
untouched after a failed write so the next run picks it up again.

Writes are committed per record. An interrupted run keeps everything written so
far and the next run re-counts from scratch.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from bylines.domain.errors import (
    AuthorLookupError,
    InvalidParameterError,
    RelationWriteError,
    SkipMarkerWriteError,
    TermStoreError,
)
from bylines.domain.model import SkipReason
from bylines.domain.predicate import build_missing_term_predicate
from bylines.domain.refresh import TermCountRefresher, format_percentage
from bylines.domain.resolution import ResolutionCache

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from bylines.domain.model import Author, ContentRecord
    from bylines.domain.ports.persistence import ContentRecordRepository
    from bylines.domain.ports.unit_of_work import BackfillUnitOfWork
    from bylines.domain.predicate import Predicate

log = getLogger(__name__)

DEFAULT_RECORD_TYPES: tuple[str, ...] = ("post",)
DEFAULT_RECORD_STATUSES: tuple[str, ...] = ("publish",)
DEFAULT_RECORDS_PER_BATCH = 250
DEFAULT_THROTTLE_EVERY = 500
DEFAULT_THROTTLE_SECONDS = 1.0


class BackfillState(StrEnum):
    START = "start"
    COUNTING = "counting"
    PAGING = "paging"
    RESOLVING = "resolving"
    WRITING = "writing"
    THROTTLE_CHECK = "throttle_check"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class BackfillRequest:
    """Filter and paging parameters for one backfill invocation."""

    record_types: tuple[str, ...] = DEFAULT_RECORD_TYPES
    record_statuses: tuple[str, ...] = DEFAULT_RECORD_STATUSES
    batched: bool = True
    records_per_batch: int = DEFAULT_RECORDS_PER_BATCH
    explicit_ids: tuple[int, ...] = ()
    above_id: int | None = None
    below_id: int | None = None

    def __post_init__(self) -> None:
        if self.records_per_batch <= 0:
            raise InvalidParameterError("records_per_batch must be positive")

    def build_predicate(self, taxonomy: str) -> Predicate:
        return build_missing_term_predicate(
            taxonomy,
            self.record_types,
            self.record_statuses,
            explicit_ids=self.explicit_ids,
            above_id=self.above_id,
            below_id=self.below_id,
        )


@dataclass(frozen=True, slots=True)
class Throttle:
    """Pause ``seconds`` after every ``every`` processed records."""

    every: int = DEFAULT_THROTTLE_EVERY
    seconds: float = DEFAULT_THROTTLE_SECONDS

    def __post_init__(self) -> None:
        if self.every <= 0:
            raise InvalidParameterError("Throttle interval must be positive")


@dataclass(slots=True)
class RunProgress:
    total: int = 0
    processed: int = 0
    affected: int = 0
    skipped: int = 0
    failed: int = 0
    page: int = 0
    pauses: int = 0
    terms_refreshed: int = 0
    refresh_failures: int = 0


@dataclass(slots=True)
class BackfillResult:
    """Summary of a finished (or cancelled) backfill run."""

    total: int
    processed: int
    affected: int
    skipped: int
    failed: int
    pages: int
    pauses: int
    cancelled: bool = False
    terms_refreshed: int = 0
    refresh_failures: int = 0
    touched_authors: tuple[Author, ...] = ()


def _never_stop() -> bool:
    return False


@dataclass(slots=True)
class BackfillRun:
    """State machine for a single backfill run inside an open unit of work."""

    uow: BackfillUnitOfWork
    predicate: Predicate
    request: BackfillRequest
    throttle: Throttle = field(default_factory=Throttle)
    sleep: Callable[[float], None] = time.sleep
    should_stop: Callable[[], bool] = _never_stop
    state: BackfillState = BackfillState.START
    progress: RunProgress = field(default_factory=RunProgress)
    cancelled: bool = False
    _cache: ResolutionCache | None = None

    @property
    def cache(self) -> ResolutionCache:
        if self._cache is None:
            repositories = self.uow.repositories
            self._cache = ResolutionCache(
                authors=repositories.authors,
                terms=repositories.terms,
                taxonomy=self.predicate.taxonomy,
            )
        return self._cache

    def execute(self) -> BackfillResult:
        progress = self.progress
        records = self.uow.repositories.records

        self._enter(BackfillState.COUNTING)
        progress.total = self.predicate.count(records)
        log.info("Found %d records with missing author terms.", progress.total)
        if progress.total == 0:
            return self._finish()

        aborted = True
        try:
            self._walk_pages()
            aborted = False
        finally:
            if aborted:
                self._refresh_after_abort()
        return self._finish()

    def _walk_pages(self) -> None:
        progress = self.progress
        records = self.uow.repositories.records
        limit = self.request.records_per_batch if self.request.batched else None
        after_id: int | None = None
        while True:
            self._enter(BackfillState.PAGING)
            progress.page += 1
            if progress.page > 1:
                log.info("Processing page %d.", progress.page)
            page = self.predicate.page(records, limit=limit, after_id=after_id)
            if not page:
                return

            for record in page:
                if self.should_stop():
                    self.cancelled = True
                    log.warning(
                        "Stop requested, ending run before record %d (%d/%d processed).",
                        record.id,
                        progress.processed,
                        progress.total,
                    )
                    break
                self._process(record)
                after_id = record.id
                if progress.processed >= progress.total:
                    break
                self._throttle_check()

            if self.cancelled or progress.processed >= progress.total or not self.request.batched:
                return
            self.uow.release_transient_caches()

    def _process(self, record: ContentRecord) -> None:
        progress = self.progress
        progress.processed += 1
        log.info(
            "Processing record %d (%d/%d or %s)",
            record.id,
            progress.processed,
            progress.total,
            format_percentage(progress.processed, progress.total),
        )

        self._enter(BackfillState.RESOLVING)
        try:
            author = self.cache.resolve_author(record.author_ref)
        except AuthorLookupError as exc:
            self._record_failure(record, f"Failed to look up author of record {record.id}: {exc}")
            return
        if author is None:
            self._skip(record)
            return

        try:
            term = self.cache.resolve_term(author)
        except TermStoreError as exc:
            self._record_failure(
                record,
                f"Failed to resolve author term for record {record.id} "
                f"and author {author.id}: {exc}",
            )
            return

        self._enter(BackfillState.WRITING)
        try:
            self.uow.repositories.relations.add(record.id, term.id)
        except RelationWriteError as exc:
            self._record_failure(
                record,
                f"Failed to insert term relationship for record {record.id} "
                f"and author {author.id}: {exc}",
            )
            return
        self.uow.commit()
        progress.affected += 1
        log.info(
            "Inserted term relationship for record %d and author %d (%s).",
            record.id,
            author.id,
            author.nicename,
        )

    def _skip(self, record: ContentRecord) -> None:
        log.warning(
            "Author %d of record %d does not exist, writing skip marker (%s).",
            record.author_ref,
            record.id,
            SkipReason.AUTHOR_NOT_FOUND,
        )
        try:
            self.uow.repositories.skip_markers.mark_skipped(
                record.id, SkipReason.AUTHOR_NOT_FOUND
            )
        except SkipMarkerWriteError as exc:
            self._record_failure(record, str(exc))
            return
        self.uow.commit()
        self.progress.skipped += 1

    def _record_failure(self, record: ContentRecord, message: str) -> None:
        """Count a per-record store failure; the record stays eligible for the next run."""

        self.progress.failed += 1
        log.warning(message)
        log.debug("Rolling back pending writes for record %d", record.id)
        self.uow.rollback()

    def _throttle_check(self) -> None:
        self._enter(BackfillState.THROTTLE_CHECK)
        processed = self.progress.processed
        if processed and processed % self.throttle.every == 0:
            log.debug("Pausing %.1fs after %d records", self.throttle.seconds, processed)
            self.progress.pauses += 1
            self.uow.release_transient_caches()
            self.sleep(self.throttle.seconds)

    def _refresh_touched_terms(self) -> None:
        touched = self.cache.touched_authors if self._cache is not None else ()
        if not touched:
            return
        log.info("Updating author terms with new counts")
        repositories = self.uow.repositories
        refresher = TermCountRefresher(
            terms=repositories.terms,
            relations=repositories.relations,
            taxonomy=self.predicate.taxonomy,
        )
        refresh = refresher.refresh_all(touched)
        self.uow.commit()
        self.progress.terms_refreshed = refresh.refreshed
        self.progress.refresh_failures = refresh.failed

    def _refresh_after_abort(self) -> None:
        # terms touched before the failure still get their counts; the original error propagates
        try:
            self.uow.rollback()
            self._refresh_touched_terms()
        except Exception:  # noqa: BLE001
            log.exception("Could not refresh author terms after the run was aborted")

    def _finish(self) -> BackfillResult:
        progress = self.progress
        self._enter(BackfillState.DONE)
        log.info("%d records affected of %d candidates", progress.affected, progress.total)
        self._refresh_touched_terms()
        return BackfillResult(
            total=progress.total,
            processed=progress.processed,
            affected=progress.affected,
            skipped=progress.skipped,
            failed=progress.failed,
            pages=progress.page,
            pauses=progress.pauses,
            cancelled=self.cancelled,
            terms_refreshed=progress.terms_refreshed,
            refresh_failures=progress.refresh_failures,
            touched_authors=self.cache.touched_authors if self._cache is not None else (),
        )

    def _enter(self, state: BackfillState) -> None:
        if state is not self.state:
            log.debug("Backfill state %s -> %s", self.state, state)
            self.state = state


def backfill_author_terms(
    request: BackfillRequest,
    *,
    unit_of_work_factory: Callable[[], BackfillUnitOfWork],
    taxonomy: str,
    throttle: Throttle | None = None,
    sleep: Callable[[float], None] = time.sleep,
    should_stop: Callable[[], bool] = _never_stop,
) -> BackfillResult:
    """Relate every record matching ``request`` to its author's term.

    Parameter validation happens before the unit of work opens, so a
    configuration error never touches the store.
    """

    predicate = request.build_predicate(taxonomy)
    with unit_of_work_factory() as uow:
        run = BackfillRun(
            uow=uow,
            predicate=predicate,
            request=request,
            throttle=throttle or Throttle(),
            sleep=sleep,
            should_stop=should_stop,
        )
        return run.execute()


def iter_missing_term_records(
    predicate: Predicate,
    records: ContentRecordRepository,
    *,
    batch_size: int = DEFAULT_RECORDS_PER_BATCH,
) -> Iterator[ContentRecord]:
    """Yield every record matching ``predicate`` without writing anything."""

    after_id: int | None = None
    while True:
        page = predicate.page(records, limit=batch_size, after_id=after_id)
        if not page:
            return
        yield from page
        after_id = page[-1].id
