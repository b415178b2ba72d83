from __future__ import annotations

import argparse
import logging
import sys
import threading
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from bylines.app import (
    clear_skip_markers,
    list_records_missing_terms,
    refresh_author_terms,
    run_author_term_backfill,
)
from bylines.config import ConfigurationError, configure_logging, get_backfill_config
from bylines.domain.backfill import BackfillRequest

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

log = logging.getLogger(__name__)

_STOP_REQUESTED = threading.Event()


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Backfill author terms for content records")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--echo-sql", action="store_true", help="Log every SQL statement")
    subparsers = parser.add_subparsers(dest="command", required=True)

    backfill = subparsers.add_parser(
        "backfill",
        help="Create author terms for records that are missing them",
    )
    _add_filter_arguments(backfill)
    backfill.add_argument(
        "--unbatched",
        action="store_true",
        help="Fetch every matching record in a single query instead of paging",
    )

    listing = subparsers.add_parser(
        "list-missing",
        help="List records that are missing author terms without changing anything",
    )
    _add_filter_arguments(listing)

    clear = subparsers.add_parser(
        "clear-skips",
        help="Delete skip markers so records are considered by the next backfill",
    )
    clear.add_argument(
        "--specific-post-ids",
        type=str,
        help="Comma separated record ids (default: every skipped record)",
    )

    subparsers.add_parser(
        "refresh-terms",
        help="Recompute record counts and descriptions for all author terms",
    )

    return parser.parse_args(list(argv))


def _add_filter_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--post-types",
        type=str,
        help="Comma separated record types (defaults to config)",
    )
    parser.add_argument(
        "--post-statuses",
        type=str,
        help="Comma separated record statuses (defaults to config)",
    )
    parser.add_argument(
        "--records-per-batch",
        type=int,
        default=None,
        help="Records fetched per page (defaults to config)",
    )
    parser.add_argument(
        "--specific-post-ids",
        type=str,
        help="Comma separated record ids; overrides the id range",
    )
    parser.add_argument(
        "--above-post-id",
        type=int,
        help="Only consider records with an id greater than this",
    )
    parser.add_argument(
        "--below-post-id",
        type=int,
        help="Only consider records with an id less than this",
    )


def _parse_csv(value: str | None) -> tuple[str, ...]:
    if value is None:
        return ()
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _parse_ids(value: str | None) -> tuple[int, ...]:
    ids: list[int] = []
    for item in _parse_csv(value):
        try:
            ids.append(int(item))
        except ValueError as exc:
            raise ValueError(f"Invalid record id: {item}") from exc
    return tuple(ids)


def _build_request(args: argparse.Namespace) -> BackfillRequest:
    config = get_backfill_config()
    if args.post_types is not None and not _parse_csv(args.post_types):
        raise ValueError("--post-types must name at least one type")
    if args.post_statuses is not None and not _parse_csv(args.post_statuses):
        raise ValueError("--post-statuses must name at least one status")
    request = BackfillRequest(
        record_types=_parse_csv(args.post_types) or config.record_types,
        record_statuses=_parse_csv(args.post_statuses) or config.record_statuses,
        batched=not getattr(args, "unbatched", False),
        records_per_batch=(
            args.records_per_batch
            if args.records_per_batch is not None
            else config.records_per_batch
        ),
        explicit_ids=_parse_ids(args.specific_post_ids),
        above_id=args.above_post_id,
        below_id=args.below_post_id,
    )
    request.build_predicate(config.taxonomy)
    return request


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    parsed_args: argparse.Namespace
    request: BackfillRequest | None = None
    clear_ids: tuple[int, ...] = ()
    try:
        parsed_args = _parse_args(args_list)
        configure_logging(
            level=logging.DEBUG if parsed_args.verbose else logging.INFO,
            echo_sql=parsed_args.echo_sql,
        )
        if parsed_args.command in {"backfill", "list-missing"}:
            request = _build_request(parsed_args)
        elif parsed_args.command == "clear-skips":
            clear_ids = _parse_ids(parsed_args.specific_post_ids)
    except (ValueError, ConfigurationError):
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    try:
        if parsed_args.command == "backfill":
            result = run_author_term_backfill(request, should_stop=_STOP_REQUESTED.is_set)
            log.info(
                "Done! %d of %d records related, %d skipped, %d failed",
                result.affected,
                result.total,
                result.skipped,
                result.failed,
            )
        elif parsed_args.command == "list-missing":
            records = list_records_missing_terms(request)
            for record in records:
                line = f"{record.id},{record.author_ref},{record.type},{record.status}"
                print(line)  # noqa: T201
            log.info("%d records are missing author terms", len(records))
        elif parsed_args.command == "clear-skips":
            clear_skip_markers(clear_ids or None)
        elif parsed_args.command == "refresh-terms":
            refreshed = refresh_author_terms()
            log.info(
                "All done: %d terms refreshed, %d failed",
                refreshed.refreshed,
                refreshed.failed,
            )
        else:
            raise ValueError(f"Unsupported command: {parsed_args.command}")  # noqa: TRY301

    except Exception:
        log.exception("Fatal error during backfill")
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) by finishing the current record, then stopping."""
    if _STOP_REQUESTED.is_set():
        log.info("Closed by user (Ctrl+C)")
        sys.exit(130)
    log.info("Stopping after the current record (Ctrl+C again to abort)")
    _STOP_REQUESTED.set()


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
