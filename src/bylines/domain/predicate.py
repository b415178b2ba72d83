"""Composable filter for content records that still lack an author term.

The predicate is a small immutable expression tree. Leaves describe typed
conditions on a content record; combinators join them. Storage adapters render
the tree into their own query language, so nothing here knows about SQL.

The missing-term condition is built from two anti-joins (no relation under the
author taxonomy, no skip marker). Once either row exists the record drops out of
every later count and page.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeAlias

from bylines.domain.errors import InvalidRangeError, MissingParameterError
from bylines.domain.model import SKIP_BACKFILL_META_KEY

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bylines.domain.model import ContentRecord
    from bylines.domain.ports.persistence import ContentRecordRepository


# Leaves ------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InSet:
    """Record attribute is one of ``values``."""

    field: str
    values: frozenset[str | int]


@dataclass(frozen=True, slots=True)
class IdAbove:
    """Record id is strictly greater than ``bound``."""

    bound: int


@dataclass(frozen=True, slots=True)
class IdBelow:
    """Record id is strictly less than ``bound``."""

    bound: int


@dataclass(frozen=True, slots=True)
class HasAuthor:
    """Record carries a non-empty author reference."""


@dataclass(frozen=True, slots=True)
class HasTermIn:
    """A relation row exists between the record and a term of ``taxonomy``."""

    taxonomy: str


@dataclass(frozen=True, slots=True)
class HasMetaKey:
    """A metadata row with ``key`` exists for the record."""

    key: str


# Combinators -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AllOf:
    operands: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class AnyOf:
    operands: tuple[Expression, ...]


@dataclass(frozen=True, slots=True)
class Not:
    operand: Expression


Leaf: TypeAlias = InSet | IdAbove | IdBelow | HasAuthor | HasTermIn | HasMetaKey
Expression: TypeAlias = Leaf | AllOf | AnyOf | Not


def all_of(*operands: Expression) -> AllOf:
    return AllOf(operands=operands)


def any_of(*operands: Expression) -> AnyOf:
    return AnyOf(operands=operands)


def not_(operand: Expression) -> Not:
    return Not(operand=operand)


@dataclass(frozen=True, slots=True)
class Predicate:
    """Missing-term filter usable for counting and for keyset paging."""

    taxonomy: str
    expression: Expression

    def count(self, records: ContentRecordRepository) -> int:
        """Return how many records currently match."""

        return records.count_matching(self.expression)

    def page(
        self,
        records: ContentRecordRepository,
        *,
        limit: int | None,
        after_id: int | None = None,
    ) -> list[ContentRecord]:
        """Return up to ``limit`` matches with ``id > after_id`` in ascending id order.

        ``limit=None`` returns every match in one go.
        """

        return records.page_matching(self.expression, limit=limit, after_id=after_id)


def build_missing_term_predicate(
    taxonomy: str,
    record_types: Iterable[str],
    record_statuses: Iterable[str],
    explicit_ids: Iterable[int] = (),
    above_id: int | None = None,
    below_id: int | None = None,
) -> Predicate:
    """Compose the filter for records lacking a relation under ``taxonomy``.

    ``explicit_ids`` takes precedence over the id range. Raises
    ``InvalidRangeError`` when both bounds are given and ``below_id <= above_id``.
    """

    if not taxonomy.strip():
        raise MissingParameterError("An author taxonomy is required")
    types = frozenset(record_types)
    statuses = frozenset(record_statuses)
    if not types:
        raise MissingParameterError("At least one record type is required")
    if not statuses:
        raise MissingParameterError("At least one record status is required")

    conditions: list[Expression] = [
        InSet("type", frozenset[str | int](types)),
        InSet("status", frozenset[str | int](statuses)),
        HasAuthor(),
        not_(HasTermIn(taxonomy)),
        not_(HasMetaKey(SKIP_BACKFILL_META_KEY)),
    ]

    ids = frozenset(explicit_ids)
    if ids:
        conditions.append(InSet("id", frozenset[str | int](ids)))
    else:
        if above_id is not None and below_id is not None and below_id <= above_id:
            raise InvalidRangeError(above_id, below_id)
        if above_id is not None:
            conditions.append(IdAbove(above_id))
        if below_id is not None:
            conditions.append(IdBelow(below_id))

    return Predicate(taxonomy=taxonomy, expression=all_of(*conditions))
