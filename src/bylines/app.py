"""Application orchestration entry points."""

from __future__ import annotations

import time
from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from bylines.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from bylines.config.backfill import get_backfill_config
from bylines.domain.backfill import (
    BackfillRequest,
    BackfillResult,
    Throttle,
    backfill_author_terms,
    iter_missing_term_records,
)
from bylines.domain.ports.unit_of_work import BackfillUnitOfWork
from bylines.domain.refresh import RefreshResult, TermCountRefresher

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bylines.config.backfill import BackfillConfig
    from bylines.domain.model import Author, ContentRecord

UnitOfWorkFactory = Callable[[], BackfillUnitOfWork]


log = getLogger(__name__)


def _ensure_started(unit_of_work_factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def run_author_term_backfill(
    request: BackfillRequest | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: BackfillConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    should_stop: Callable[[], bool] | None = None,
) -> BackfillResult:
    """Backfill author terms for records that are missing them."""

    effective_config = config or get_backfill_config()
    effective_request = request or BackfillRequest(
        record_types=effective_config.record_types,
        record_statuses=effective_config.record_statuses,
        records_per_batch=effective_config.records_per_batch,
    )
    # validate before touching the database
    effective_request.build_predicate(effective_config.taxonomy)
    effective_uow = _ensure_started(unit_of_work_factory)

    log.info(
        "Starting author term backfill: taxonomy=%s, types=%s, statuses=%s, batched=%s, "
        "per_batch=%s, ids=%s, above=%s, below=%s",
        effective_config.taxonomy,
        ",".join(effective_request.record_types),
        ",".join(effective_request.record_statuses),
        effective_request.batched,
        effective_request.records_per_batch,
        len(effective_request.explicit_ids),
        effective_request.above_id,
        effective_request.below_id,
    )

    result = backfill_author_terms(
        effective_request,
        unit_of_work_factory=effective_uow,
        taxonomy=effective_config.taxonomy,
        throttle=Throttle(
            every=effective_config.throttle_every,
            seconds=effective_config.throttle_seconds,
        ),
        sleep=sleep,
        should_stop=should_stop or (lambda: False),
    )

    log.info(
        f"Finished author term backfill: affected={result.affected}, total={result.total}, "
        f"skipped={result.skipped}, failed={result.failed}, cancelled={result.cancelled}"
    )
    return result


def clear_skip_markers(
    record_ids: Iterable[int] | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[int]:
    """Delete skip markers so the records become eligible for the backfill again."""

    effective_uow = _ensure_started(unit_of_work_factory)
    with effective_uow() as uow:
        cleared = uow.repositories.skip_markers.clear(record_ids)
        uow.commit()
    for record_id in cleared:
        log.info("Deleted skip marker for record %d", record_id)
    log.info("Cleared %d skip markers", len(cleared))
    return cleared


def list_records_missing_terms(
    request: BackfillRequest | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: BackfillConfig | None = None,
) -> list[ContentRecord]:
    """Return the records the next backfill would process, without writing."""

    effective_config = config or get_backfill_config()
    effective_request = request or BackfillRequest(
        record_types=effective_config.record_types,
        record_statuses=effective_config.record_statuses,
        records_per_batch=effective_config.records_per_batch,
    )
    predicate = effective_request.build_predicate(effective_config.taxonomy)
    effective_uow = _ensure_started(unit_of_work_factory)
    with effective_uow() as uow:
        return list(
            iter_missing_term_records(
                predicate,
                uow.repositories.records,
                batch_size=effective_request.records_per_batch,
            )
        )


def refresh_author_terms(
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    config: BackfillConfig | None = None,
) -> RefreshResult:
    """Recompute record counts and descriptions for every author term in the taxonomy."""

    effective_config = config or get_backfill_config()
    effective_uow = _ensure_started(unit_of_work_factory)
    with effective_uow() as uow:
        repositories = uow.repositories
        terms = repositories.terms.list_terms(effective_config.taxonomy)
        log.info("Now updating %d terms", len(terms))
        authors: list[Author] = []
        orphaned = 0
        for term in terms:
            author = repositories.authors.get(term.author_id) if term.author_id else None
            if author is None:
                orphaned += 1
                log.warning("Term %s (%d) has no resolvable author, leaving it", term.slug, term.id)
                continue
            authors.append(author)
        refresher = TermCountRefresher(
            terms=repositories.terms,
            relations=repositories.relations,
            taxonomy=effective_config.taxonomy,
        )
        result = refresher.refresh_all(authors)
        uow.commit()
    result.failed += orphaned
    return result
