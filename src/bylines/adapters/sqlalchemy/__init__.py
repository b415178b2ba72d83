"""SQLAlchemy adapter package."""

from __future__ import annotations

from .rendering import UnsupportedExpressionError, render
from .repositories import (
    SqlAlchemyAuthorDirectory,
    SqlAlchemyContentRecordRepository,
    SqlAlchemyRelationRepository,
    SqlAlchemySkipMarkerRepository,
    SqlAlchemyTermRepository,
)
from .tables import create_all_tables, metadata
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    build_engine,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAuthorDirectory",
    "SqlAlchemyContentRecordRepository",
    "SqlAlchemyRelationRepository",
    "SqlAlchemySkipMarkerRepository",
    "SqlAlchemyTermRepository",
    "SqlAlchemyUnitOfWork",
    "StartupError",
    "UnsupportedExpressionError",
    "build_engine",
    "create_all_tables",
    "metadata",
    "render",
    "shutdown",
    "startup",
]
