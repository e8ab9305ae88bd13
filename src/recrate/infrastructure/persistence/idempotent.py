# Hey future me - this is THE primitive for "create exactly once"!
#
# Albums, artists, collection memberships and daily challenges all go through
# resolve_or_create. There are NO locks here (no asyncio.Lock, no advisory locks):
# the database UNIQUE constraint is the only thing that decides who wins.
#
# HOW IT WORKS:
# 1. lookup() by the strongest key -> found? return it, created=False, no write.
# 2. not found -> create() inside a SAVEPOINT (session.begin_nested()).
# 3. UNIQUE violation -> a concurrent caller won. Savepoint rolls back, the outer
#    transaction survives, lookup() again and return the winner with created=False.
# 4. Re-read still empty -> UnresolvedRaceError (the clash was on another unique key).
# 5. Any other DB error (FK violation, NOT NULL, connection loss) propagates.
#
# The savepoint matters: without it the failed INSERT poisons the whole
# transaction on PostgreSQL and the re-read would fail too.
"""Idempotent find-or-create on top of database uniqueness constraints."""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recrate.domain.exceptions import UnresolvedRaceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PG_UNIQUE_VIOLATION = "23505"
_SQLITE_UNIQUE_ERRORS = frozenset(
    {"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"}
)


@dataclass(frozen=True)
class Resolution(Generic[T]):
    """Outcome of resolve_or_create: the record and whether THIS caller created it."""

    value: T
    created: bool


def is_unique_violation(exception: BaseException) -> bool:
    """Check if an exception is a unique-constraint violation.

    Hey future me - only THIS kind of IntegrityError means "someone else won the
    race". Foreign key and NOT NULL violations are real bugs and must propagate!

    Args:
        exception: The exception to check

    Returns:
        True for PostgreSQL SQLSTATE 23505 or SQLite UNIQUE / PRIMARY KEY failures
    """
    if not isinstance(exception, IntegrityError):
        return False

    orig = exception.orig
    # asyncpg (via SQLAlchemy's adapter) and psycopg expose sqlstate, psycopg2 pgcode
    for attr in ("sqlstate", "pgcode"):
        if getattr(orig, attr, None) == _PG_UNIQUE_VIOLATION:
            return True

    if getattr(orig, "sqlite_errorname", None) in _SQLITE_UNIQUE_ERRORS:
        return True

    message = str(orig).lower()
    return "unique constraint failed" in message or "duplicate key value" in message


async def resolve_or_create(
    session: AsyncSession,
    lookup: Callable[[], Awaitable[T | None]],
    create: Callable[[], Awaitable[T]],
    *,
    key: str,
) -> Resolution[T]:
    """Return the record found by ``lookup`` or create it exactly once.

    ``create`` must add its rows to ``session`` and flush, so that a uniqueness
    violation surfaces inside the savepoint. It must not commit.

    Args:
        session: Session whose transaction the caller owns (commit is the caller's job)
        lookup: Reads the record by its strongest unique key, None when absent
        create: Inserts the record and returns it
        key: Human-readable key, used in logs and in UnresolvedRaceError

    Returns:
        Resolution with ``created=True`` only for the caller whose INSERT won

    Raises:
        UnresolvedRaceError: The INSERT hit a unique violation but the winner is not
            visible on re-read
        IntegrityError: Any non-unique constraint violation from ``create``
    """
    existing = await lookup()
    if existing is not None:
        return Resolution(value=existing, created=False)

    try:
        async with session.begin_nested():
            created = await create()
    except IntegrityError as e:
        if not is_unique_violation(e):
            raise
        logger.info("Lost create race for %s, re-reading the winning row", key)
        winner = await lookup()
        if winner is None:
            logger.error("Create race for %s unresolved: winner not visible", key)
            raise UnresolvedRaceError(key) from e
        return Resolution(value=winner, created=False)

    return Resolution(value=created, created=True)
