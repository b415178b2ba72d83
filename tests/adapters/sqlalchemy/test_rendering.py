from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy import insert, select

from bylines.adapters.sqlalchemy.rendering import UnsupportedExpressionError, render
from bylines.adapters.sqlalchemy.tables import (
    content_record_table,
    record_meta_table,
    term_relationship_table,
    term_table,
)
from bylines.domain.model import SKIP_BACKFILL_META_KEY
from bylines.domain.predicate import (
    AnyOf,
    HasMetaKey,
    HasTermIn,
    IdAbove,
    InSet,
    Not,
    all_of,
    any_of,
    build_missing_term_predicate,
)
from tests.helpers.seed import seed_records

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

    from bylines.domain.predicate import Expression


def _matching_ids(engine: Engine, expression: Expression) -> list[int]:
    stmt = (
        select(content_record_table.c.id)
        .where(render(expression))
        .order_by(content_record_table.c.id)
    )
    with engine.connect() as connection:
        return list(connection.execute(stmt).scalars())


def test_anti_joins_render_as_correlated_not_exists() -> None:
    predicate = build_missing_term_predicate("authors", ["post"], ["publish"])

    sql = str(render(predicate.expression).compile(compile_kwargs={"literal_binds": True}))

    assert sql.count("NOT (EXISTS (SELECT") == 2
    assert "term.taxonomy = 'authors'" in sql
    assert f"record_meta.meta_key = '{SKIP_BACKFILL_META_KEY}'" in sql
    assert "content_record.author_ref != 0" in sql


def test_missing_term_predicate_filters_rows(sqlite_engine: Engine) -> None:
    seed_records(sqlite_engine, (1, 5), (2, 5), (3, 5), (4, 0), (5, 5))
    seed_records(sqlite_engine, (6, 5), status="draft")
    seed_records(sqlite_engine, (7, 5), type_="page")
    with sqlite_engine.begin() as connection:
        connection.execute(
            insert(term_table).values(id=1, taxonomy="authors", slug="cap-x", name="x")
        )
        connection.execute(
            insert(term_table).values(id=2, taxonomy="category", slug="news", name="News")
        )
        connection.execute(
            insert(term_relationship_table),
            [{"record_id": 1, "term_id": 1}, {"record_id": 2, "term_id": 2}],
        )
        connection.execute(
            insert(record_meta_table).values(
                record_id=3, meta_key=SKIP_BACKFILL_META_KEY, meta_value="author_not_found"
            )
        )

    predicate = build_missing_term_predicate("authors", ["post"], ["publish"])

    assert _matching_ids(sqlite_engine, predicate.expression) == [2, 5]


def test_combinators_and_bounds(sqlite_engine: Engine) -> None:
    seed_records(sqlite_engine, *((record_id, 1) for record_id in range(1, 7)))

    expression = any_of(
        InSet("id", frozenset({1})),
        all_of(IdAbove(4), Not(InSet("id", frozenset({6})))),
    )

    assert _matching_ids(sqlite_engine, expression) == [1, 5]
    assert _matching_ids(sqlite_engine, AnyOf(())) == []
    assert _matching_ids(sqlite_engine, all_of()) == [1, 2, 3, 4, 5, 6]


def test_unknown_field_is_rejected() -> None:
    with pytest.raises(UnsupportedExpressionError):
        render(InSet("title", frozenset({"x"})))


def test_meta_and_term_leaves_render_alone() -> None:
    assert "EXISTS" in str(render(HasTermIn("authors")))
    assert "EXISTS" in str(render(HasMetaKey("other")))
