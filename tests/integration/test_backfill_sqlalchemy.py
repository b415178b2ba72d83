from __future__ import annotations

from typing import TYPE_CHECKING, TypeAlias

from bylines.app import (
    clear_skip_markers,
    list_records_missing_terms,
    refresh_author_terms,
    run_author_term_backfill,
)
from bylines.config.backfill import BackfillConfig
from bylines.domain.backfill import BackfillRequest
from tests.helpers.seed import (
    relation_count,
    relations_for,
    seed_authors,
    seed_records,
    skip_reason,
    term_rows,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from sqlalchemy.engine import Engine

    from bylines.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork


UowFactory: TypeAlias = "Callable[[], SqlAlchemyUnitOfWork]"


def _no_sleep(_seconds: float) -> None:
    return None


def test_backfill_relates_records_and_marks_dangling_authors(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "ursula"))
    seed_records(sqlite_engine, (1, 1), (2, 1), (3, 2))

    result = run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )

    assert (result.affected, result.total, result.skipped) == (2, 3, 1)
    assert relations_for(sqlite_engine, 1) == [("authors", "cap-ursula")]
    assert relations_for(sqlite_engine, 2) == [("authors", "cap-ursula")]
    assert relations_for(sqlite_engine, 3) == []
    assert skip_reason(sqlite_engine, 3) == "author_not_found"
    terms = term_rows(sqlite_engine, "authors")
    assert len(terms) == 1
    assert terms[0]["record_count"] == 2
    assert terms[0]["description"] == "Ursula ursula 1"


def test_repeat_run_changes_nothing(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "ursula"), (2, "ged"))
    seed_records(sqlite_engine, *((record_id, 1 + record_id % 2) for record_id in range(1, 21)))
    request = BackfillRequest(records_per_batch=6)

    first = run_author_term_backfill(
        request,
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )
    second = run_author_term_backfill(
        request,
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )

    assert first.affected == 20
    assert first.pages == 4
    assert second.total == 0
    assert relation_count(sqlite_engine) == 20
    assert len(term_rows(sqlite_engine, "authors")) == 2


def test_overlapping_id_sets_relate_each_record_once(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "ursula"))
    seed_records(sqlite_engine, (10, 1), (11, 1), (12, 1))

    for ids in ((10, 11), (11, 12)):
        run_author_term_backfill(
            BackfillRequest(explicit_ids=ids),
            unit_of_work_factory=sqlite_unit_of_work,
            config=backfill_config,
            sleep=_no_sleep,
        )

    assert relation_count(sqlite_engine) == 3
    assert len(term_rows(sqlite_engine, "authors")) == 1


def test_other_taxonomy_does_not_count_as_author_term(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "ursula"))
    seed_records(sqlite_engine, (1, 1))
    other_config = BackfillConfig(taxonomy="byline", throttle_seconds=0.0)
    run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=other_config,
        sleep=_no_sleep,
    )

    result = run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )

    assert result.affected == 1
    assert relations_for(sqlite_engine, 1) == [
        ("authors", "cap-ursula"),
        ("byline", "cap-ursula"),
    ]


def test_cleared_skip_marker_makes_record_eligible_again(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_records(sqlite_engine, (1, 7), (2, 7))
    run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )
    assert list_records_missing_terms(
        unit_of_work_factory=sqlite_unit_of_work, config=backfill_config
    ) == []

    assert clear_skip_markers([1], unit_of_work_factory=sqlite_unit_of_work) == [1]
    seed_authors(sqlite_engine, (7, "late"))

    missing = list_records_missing_terms(
        unit_of_work_factory=sqlite_unit_of_work, config=backfill_config
    )
    assert [record.id for record in missing] == [1]
    result = run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )
    assert result.affected == 1
    assert skip_reason(sqlite_engine, 2) == "author_not_found"


def test_refresh_author_terms_recounts_every_term(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "ursula"), (2, "ged"))
    seed_records(sqlite_engine, (1, 1), (2, 2), (3, 2))
    run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )

    result = refresh_author_terms(unit_of_work_factory=sqlite_unit_of_work, config=backfill_config)

    assert (result.refreshed, result.failed) == (2, 0)
    counts = {row["slug"]: row["record_count"] for row in term_rows(sqlite_engine, "authors")}
    assert counts == {"cap-ursula": 1, "cap-ged": 2}


def test_logins_with_the_same_slug_are_not_merged(
    sqlite_engine: Engine,
    sqlite_unit_of_work: UowFactory,
    backfill_config: BackfillConfig,
) -> None:
    seed_authors(sqlite_engine, (1, "jane.doe"), (2, "jane_doe"))
    seed_records(sqlite_engine, (10, 1), (11, 2), (12, 2))

    result = run_author_term_backfill(
        unit_of_work_factory=sqlite_unit_of_work,
        config=backfill_config,
        sleep=_no_sleep,
    )

    assert result.affected == 3
    assert relations_for(sqlite_engine, 10) == [("authors", "cap-jane-doe")]
    assert relations_for(sqlite_engine, 11) == [("authors", "cap-jane-doe-2")]
    counts = {row["slug"]: row["record_count"] for row in term_rows(sqlite_engine, "authors")}
    assert counts == {"cap-jane-doe": 1, "cap-jane-doe-2": 2}

    refreshed = refresh_author_terms(
        unit_of_work_factory=sqlite_unit_of_work, config=backfill_config
    )
    assert (refreshed.refreshed, refreshed.failed) == (2, 0)
