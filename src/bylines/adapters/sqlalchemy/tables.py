"""SQLAlchemy table metadata for the content, author and term stores."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    Column,
    DateTime,
    Dialect,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
)

if TYPE_CHECKING:
    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


metadata = MetaData(
    naming_convention={
        "ix": "ix_%(column_0_label)s",
        "uq": "uq_%(table_name)s_%(column_0_label)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

author_table = Table(
    "author",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("login_name", String, nullable=False),
    Column("display_name", String, nullable=True),
    Column("email", String, nullable=True),
)

# author_ref is a soft reference: records may point at authors that no longer exist.
content_record_table = Table(
    "content_record",
    metadata,
    Column("id", Integer, primary_key=True),
    Column("author_ref", Integer, nullable=False, default=0),
    Column("type", String, nullable=False),
    Column("status", String, nullable=False),
    Index("ix_content_record_type_status", "type", "status"),
)

term_table = Table(
    "term",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("taxonomy", String, nullable=False),
    Column("slug", String, nullable=False),
    Column("name", String, nullable=False),
    Column("record_count", Integer, nullable=False, default=0),
    Column("description", Text, nullable=False, default=""),
    Column("author_id", Integer, nullable=True),
    UniqueConstraint("taxonomy", "slug"),
    # one term per author per taxonomy; NULL author ids are exempt
    UniqueConstraint("author_id", "taxonomy"),
)

term_relationship_table = Table(
    "term_relationship",
    metadata,
    Column("record_id", Integer, primary_key=True),
    Column(
        "term_id",
        Integer,
        ForeignKey("term.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("term_order", Integer, nullable=False, default=0),
)

record_meta_table = Table(
    "record_meta",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("record_id", Integer, nullable=False),
    Column("meta_key", String, nullable=False),
    Column("meta_value", String, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)),
    UniqueConstraint("record_id", "meta_key"),
)


def create_all_tables(engine: Engine) -> None:
    """Create any missing tables on ``engine``."""

    metadata.create_all(engine, checkfirst=True)
    log.debug("Ensured tables: %s", ", ".join(sorted(metadata.tables)))
