import logging
from datetime import date, datetime
from typing import Iterable, List, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from availability import as_day, check_availability
from exceptions import DateNotAvailable, DuplicateVisit, NotOwner, VisitNotFound
from models import Visit

logger = logging.getLogger(__name__)


async def find_client_visit(
    session: AsyncSession, space_id: int, client_id: str, day: date
) -> Optional[Visit]:
    statement = select(Visit).where(
        Visit.space_id == space_id,
        Visit.client_id == client_id,
        Visit.booking_date == day,
    )
    result = await session.execute(statement)
    return result.scalars().first()


async def create_visits(
    session: AsyncSession,
    space_id: int,
    client_id: str,
    booking_dates: Iterable[Union[date, datetime]],
    today: Optional[date] = None,
) -> List[Visit]:
    """Book ``client_id`` into ``space_id`` for each requested day.

    All-or-nothing: the first duplicate or unavailable day rolls back every
    visit of the request. The availability check is advisory, a concurrent
    booking can still slip in between the check and the commit.
    """
    created = []
    try:
        for requested in booking_dates:
            day = as_day(requested)

            if await find_client_visit(session, space_id, client_id, day):
                logger.warning("Client %s already booked point %s on %s", client_id, space_id, day)
                raise DuplicateVisit(space_id, day)

            availability = await check_availability(session, space_id, day, today=today)
            if not availability.available:
                logger.warning("Point %s not available on %s", space_id, day)
                raise DateNotAvailable(space_id, day)

            visit = Visit(space_id=space_id, client_id=client_id, booking_date=day)
            session.add(visit)
            await session.flush()
            created.append(visit)

        await session.commit()
    except IntegrityError:
        # unique_client_visit_day caught a duplicate the pre-check missed
        await session.rollback()
        raise DuplicateVisit(space_id)
    except Exception:
        await session.rollback()
        raise

    for visit in created:
        await session.refresh(visit)
    logger.info("Client %s booked point %s for %d day(s)", client_id, space_id, len(created))
    return created


async def list_visits_for_client(session: AsyncSession, client_id: str) -> List[Visit]:
    statement = (
        select(Visit)
        .where(Visit.client_id == client_id)
        .order_by(Visit.booking_date, Visit.id)
    )
    result = await session.execute(statement)
    return list(result.scalars().all())


async def delete_visit(session: AsyncSession, visit_id: int, client_id: str) -> None:
    visit = await session.get(Visit, visit_id)
    if visit is None:
        raise VisitNotFound(visit_id)
    if visit.client_id != client_id:
        logger.warning("Client %s tried to delete visit %s", client_id, visit_id)
        raise NotOwner("visit", visit_id)

    await session.delete(visit)
    await session.commit()
    logger.info("Client %s deleted visit %s", client_id, visit_id)
