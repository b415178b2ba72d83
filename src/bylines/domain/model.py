"""Domain entities for the author-term backfill.

Records, authors and terms are owned by external stores; these dataclasses are
the read models the engine passes between ports.
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:
    from datetime import datetime

SKIP_BACKFILL_META_KEY: Final[str] = "_cap_skip_backfill"
TERM_SLUG_PREFIX: Final[str] = "cap-"
NO_AUTHOR: Final[int] = 0

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


class SkipReason(StrEnum):
    """Reason codes stored on skip markers."""

    AUTHOR_NOT_FOUND = "author_not_found"


@dataclass(frozen=True, slots=True)
class ContentRecord:
    id: int
    author_ref: int
    type: str
    status: str


@dataclass(frozen=True, slots=True)
class Author:
    id: int
    login_name: str
    display_name: str | None = None
    email: str | None = None

    @property
    def nicename(self) -> str:
        return slugify(self.login_name) or str(self.id)

    @property
    def term_slug(self) -> str:
        return f"{TERM_SLUG_PREFIX}{self.nicename}"

    @property
    def term_slug_candidates(self) -> tuple[str, ...]:
        """Slugs to try, in order, when creating this author's term.

        Different logins can slugify alike (``jane.doe`` and ``jane_doe``); the
        id suffix keeps the second author off the first one's term.
        """

        return (self.term_slug, f"{self.term_slug}-{self.id}")

    def term_description(self) -> str:
        """Searchable description kept on the author's term."""

        parts = (self.display_name, self.login_name, str(self.id), self.email)
        return " ".join(part for part in parts if part)


@dataclass(frozen=True, slots=True)
class Term:
    id: int
    taxonomy: str
    slug: str
    name: str
    record_count: int = 0
    description: str = ""
    author_id: int | None = None


@dataclass(frozen=True, slots=True)
class SkipMarker:
    record_id: int
    reason: SkipReason
    created_at: datetime


def slugify(value: str) -> str:
    """Lower-case ASCII slug with runs of other characters collapsed to ``-``."""

    normalized = unicodedata.normalize("NFKD", value)
    ascii_only = normalized.encode("ascii", "ignore").decode("ascii")
    return _NON_SLUG_CHARS.sub("-", ascii_only.lower()).strip("-")
