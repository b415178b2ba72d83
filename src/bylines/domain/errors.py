"""Errors raised by the backfill domain."""

from __future__ import annotations


class InvalidParameterError(ValueError):
    """Raised when a backfill parameter is out of range.

    These are configuration errors: they are raised before any store is touched.
    """


class MissingParameterError(InvalidParameterError):
    """Raised when a required backfill parameter is empty."""


class InvalidRangeError(InvalidParameterError):
    """Raised when ``below_id`` does not exceed ``above_id``."""

    def __init__(self, above_id: int, below_id: int) -> None:
        super().__init__(f"above_id ({above_id}) must be less than below_id ({below_id})")
        self.above_id = above_id
        self.below_id = below_id


class RelationWriteError(RuntimeError):
    """Raised by relation stores when a record-to-term insert fails."""

    def __init__(self, record_id: int, term_id: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to relate record {record_id} to term {term_id}{detail}")
        self.record_id = record_id
        self.term_id = term_id


class TermStoreError(RuntimeError):
    """Raised by term stores when creating a term or persisting its metadata fails."""


class AuthorLookupError(RuntimeError):
    """Raised by author directories when a lookup fails (as opposed to finding nothing)."""

    def __init__(self, author_id: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to look up author {author_id}{detail}")
        self.author_id = author_id


class SkipMarkerWriteError(RuntimeError):
    """Raised by skip-marker stores when a marker cannot be written."""

    def __init__(self, record_id: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Failed to write skip marker for record {record_id}{detail}")
        self.record_id = record_id
