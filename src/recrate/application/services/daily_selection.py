"""Deterministic daily album selection.

Hey future me - the whole point is REPRODUCIBILITY. Same date + same curated list
+ same pins = same album, forever. When someone reports "yesterday's answer was
wrong", you can recompute it:

    1. normalize the date to UTC midnight
    2. admin pin for that day? -> that album, done
    3. days = floor((day - EPOCH) / 1 day), clamped to >= 0
    4. N = curated count, N == 0 -> NoCuratedCandidatesError
    5. sequence = days mod N, no candidate there -> SequenceGapError

The answer only changes when the curated list size or the pins change.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime

from recrate.domain.exceptions import NoCuratedCandidatesError, SequenceGapError
from recrate.domain.ports import ICuratedCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DailySelection:
    """Which album a day maps to, and why."""

    day: date
    album_id: str
    pinned: bool
    sequence: int | None = None
    total_curated: int | None = None


def to_utc_midnight(value: date | datetime) -> datetime:
    """Normalize a date or datetime to 00:00 UTC of its UTC calendar day.

    Naive datetimes are taken as UTC. Plain dates are taken as UTC calendar days.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        day = value.astimezone(UTC).date()
    else:
        day = value
    return datetime(day.year, day.month, day.day, tzinfo=UTC)


def utc_day(value: date | datetime) -> date:
    """UTC calendar day of a date or datetime."""
    return to_utc_midnight(value).date()


def days_since_epoch(day: date, epoch: date) -> int:
    """Whole days from epoch to day, clamped to >= 0 (dates before epoch map to day 0)."""
    return max(0, (day - epoch).days)


def sequence_for_day(day: date, epoch: date, total: int) -> int:
    """Curated rotation position for a day."""
    if total <= 0:
        raise NoCuratedCandidatesError()
    return days_since_epoch(day, epoch) % total


async def select_album_for_date(
    value: date | datetime, catalog: ICuratedCatalog, epoch: date
) -> DailySelection:
    """Pick the album for a date. Deterministic for unchanged catalog contents.

    Raises:
        NoCuratedCandidatesError: Curated list is empty (operator must seed it)
        SequenceGapError: No curated album at the computed position
    """
    day = utc_day(value)

    pinned = await catalog.get_pinned_album(day)
    if pinned:
        logger.info("Using pinned album %s for %s", pinned, day.isoformat())
        return DailySelection(day=day, album_id=pinned, pinned=True)

    total = await catalog.count_curated()
    sequence = sequence_for_day(day, epoch, total)
    album_id = await catalog.get_curated_at(sequence)
    if album_id is None:
        raise SequenceGapError(sequence, total)

    logger.debug(
        "Selected album %s for %s (sequence %d of %d)",
        album_id,
        day.isoformat(),
        sequence,
        total,
    )
    return DailySelection(
        day=day,
        album_id=album_id,
        pinned=False,
        sequence=sequence,
        total_curated=total,
    )
