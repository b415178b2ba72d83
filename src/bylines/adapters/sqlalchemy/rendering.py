"""Render predicate expression trees into SQLAlchemy ``WHERE`` clauses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Final

from sqlalchemy import and_, false, not_, or_, select, true

from bylines.adapters.sqlalchemy.tables import (
    content_record_table,
    record_meta_table,
    term_relationship_table,
    term_table,
)
from bylines.domain.model import NO_AUTHOR
from bylines.domain.predicate import (
    AllOf,
    AnyOf,
    HasAuthor,
    HasMetaKey,
    HasTermIn,
    IdAbove,
    IdBelow,
    InSet,
    Not,
)

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement

    from bylines.domain.predicate import Expression

_FILTERABLE_COLUMNS: Final = {
    "id": content_record_table.c.id,
    "type": content_record_table.c.type,
    "status": content_record_table.c.status,
    "author_ref": content_record_table.c.author_ref,
}


class UnsupportedExpressionError(TypeError):
    """Raised when an expression node has no SQL rendering."""


def render(expression: Expression) -> ColumnElement[bool]:
    """Return a boolean clause over ``content_record`` for ``expression``."""

    match expression:
        case AllOf(operands=operands):
            if not operands:
                return true()
            return and_(*(render(operand) for operand in operands))
        case AnyOf(operands=operands):
            if not operands:
                return false()
            return or_(*(render(operand) for operand in operands))
        case Not(operand=operand):
            return not_(render(operand))
        case InSet(field=field_name, values=values):
            column = _FILTERABLE_COLUMNS.get(field_name)
            if column is None:
                raise UnsupportedExpressionError(f"Cannot filter on field {field_name!r}")
            return column.in_(sorted(values, key=str))
        case IdAbove(bound=bound):
            return content_record_table.c.id > bound
        case IdBelow(bound=bound):
            return content_record_table.c.id < bound
        case HasAuthor():
            return content_record_table.c.author_ref != NO_AUTHOR
        case HasTermIn(taxonomy=taxonomy):
            return (
                select(term_relationship_table.c.record_id)
                .join(term_table, term_table.c.id == term_relationship_table.c.term_id)
                .where(term_relationship_table.c.record_id == content_record_table.c.id)
                .where(term_table.c.taxonomy == taxonomy)
                .exists()
            )
        case HasMetaKey(key=key):
            return (
                select(record_meta_table.c.record_id)
                .where(record_meta_table.c.record_id == content_record_table.c.id)
                .where(record_meta_table.c.meta_key == key)
                .exists()
            )
        case _:
            raise UnsupportedExpressionError(f"Unsupported expression: {expression!r}")
