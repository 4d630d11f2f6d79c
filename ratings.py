import logging
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import CollectionPointNotFound
from models import CollectionPoint, Review

logger = logging.getLogger(__name__)


def rounded_mean(ratings: Sequence[int]) -> Optional[float]:
    """Mean rounded half-up to one decimal, None for no ratings.

    Integer arithmetic: floor(total * 10 / count + 1/2) / 10.
    """
    if not ratings:
        return None
    total = sum(ratings)
    count = len(ratings)
    return ((total * 20 + count) // (2 * count)) / 10


async def recompute_average_rating(session: AsyncSession, space_id: int) -> Optional[float]:
    """Store the current mean review rating on the collection point.

    Flushes but does not commit: review create/delete commit the mutation and
    the new average together. Read-then-write without isolation, so concurrent
    review mutations on the same point settle once they stop.
    """
    point = await session.get(CollectionPoint, space_id)
    if point is None:
        raise CollectionPointNotFound(space_id)

    result = await session.execute(select(Review.rating).where(Review.space_id == space_id))
    ratings = list(result.scalars().all())

    point.avg_rating = rounded_mean(ratings)
    session.add(point)
    await session.flush()

    logger.info(
        "Recomputed avg rating for point %s: %s (%d reviews)",
        space_id, point.avg_rating, len(ratings),
    )
    return point.avg_rating
