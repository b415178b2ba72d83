"""Logging set-up for the command line."""

from __future__ import annotations

import logging

_SQL_LOGGER = "sqlalchemy.engine"


def configure_logging(
    *,
    level: int = logging.INFO,
    echo_sql: bool = False,
    force: bool = False,
) -> None:
    """Configure the root logger for a CLI run.

    Per-record progress is logged at INFO, so the default level already shows it.
    SQL statements stay hidden unless ``echo_sql`` is set. ``force=True``
    replaces handlers installed by an earlier call.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )
    logging.getLogger(_SQL_LOGGER).setLevel(logging.INFO if echo_sql else logging.WARNING)
