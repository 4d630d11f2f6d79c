"""
Capacity accounting and monthly availability for collection points.

Both checks are advisory: they read the current visit count and decide, but
nothing stops a concurrent request from inserting a visit between the check
and the caller's own insert. Strict capacity enforcement needs a store-level
primitive (a per-(space_id, day) row lock or a count constraint); none is
taken here.
"""

import calendar
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import CollectionPointNotFound
from models import CollectionPoint, Visit

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FullPointPolicy:
    """One visit reserves the whole point for the day."""

    seats: int

    def remaining(self, visit_count: int) -> int:
        return self.seats if visit_count == 0 else 0

    def is_bookable(self, visit_count: int) -> bool:
        return visit_count == 0


@dataclass(frozen=True)
class PerSeatPolicy:
    """Every visit takes one of ``seats`` slots."""

    seats: int

    def remaining(self, visit_count: int) -> int:
        # Negative only when concurrent inserts overbooked the day
        return self.seats - visit_count

    def is_bookable(self, visit_count: int) -> bool:
        return visit_count < self.seats


CapacityPolicy = Union[FullPointPolicy, PerSeatPolicy]


@dataclass(frozen=True)
class Availability:
    available: bool
    remaining_seats: int


UNAVAILABLE = Availability(available=False, remaining_seats=0)


def capacity_policy(point: CollectionPoint) -> CapacityPolicy:
    if point.is_full_space_booking:
        return FullPointPolicy(seats=point.seats)
    return PerSeatPolicy(seats=point.seats)


def as_day(value: Union[date, datetime]) -> date:
    """Drop the time-of-day component.

    Offset-aware timestamps are moved to server local time first, so the day
    boundary is always local midnight.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        return value.date()
    return value


def month_bounds(year: int, month: int):
    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    last = calendar.monthrange(year, month)[1]
    return date(year, month, 1), date(year, month, last)


async def count_visits(session: AsyncSession, space_id: int, day: date) -> int:
    statement = (
        select(func.count())
        .select_from(Visit)
        .where(Visit.space_id == space_id, Visit.booking_date == day)
    )
    return (await session.execute(statement)).scalar_one()


async def check_availability(
    session: AsyncSession,
    space_id: int,
    day: Union[date, datetime],
    today: Optional[date] = None,
) -> Availability:
    """Is ``space_id`` bookable on ``day``, and how many seats are left?

    Days on or before ``today`` (server local date by default) are never
    available. An unknown point is reported as unavailable, not as an error.
    """
    day = as_day(day)
    today = today or date.today()

    if day <= today:
        return UNAVAILABLE

    point = await session.get(CollectionPoint, space_id)
    if point is None:
        return UNAVAILABLE

    policy = capacity_policy(point)
    visit_count = await count_visits(session, space_id, day)
    remaining = policy.remaining(visit_count)

    return Availability(available=remaining > 0, remaining_seats=remaining)


async def monthly_availability(
    session: AsyncSession,
    space_id: int,
    year: int,
    month: int,
    today: Optional[date] = None,
) -> List[str]:
    """Bookable days of ``year``/``month`` as ``YYYY-MM-DD`` strings, ascending.

    Raises CollectionPointNotFound for an unknown point, so that an empty list
    always means "exists but nothing left this month".
    """
    start, end = month_bounds(year, month)
    today = today or date.today()

    point = await session.get(CollectionPoint, space_id)
    if point is None:
        raise CollectionPointNotFound(space_id)

    policy = capacity_policy(point)

    # Single query for the whole month, counted per day in memory
    statement = select(Visit.booking_date).where(
        Visit.space_id == space_id,
        Visit.booking_date >= start,
        Visit.booking_date <= end,
    )
    result = await session.execute(statement)
    bookings_per_day = Counter(
        as_day(booked).isoformat() for booked in result.scalars().all()
    )

    # Built from day numbers: stepping past date.max would overflow
    available_days = []
    for day_of_month in range(start.day, end.day + 1):
        day = date(year, month, day_of_month)
        if day <= today:
            continue
        key = day.isoformat()
        if policy.is_bookable(bookings_per_day.get(key, 0)):
            available_days.append(key)

    logger.debug(
        "Point %s has %d bookable days in %04d-%02d",
        space_id, len(available_days), year, month,
    )
    return available_days
