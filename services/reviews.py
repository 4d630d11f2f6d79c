"""
Review mutations. Every insert or delete recomputes the point's average
rating inside the same transaction, so a failed recomputation fails the
mutation too.
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import CollectionPointNotFound, DuplicateReview, NotOwner, ReviewNotFound
from models import CollectionPoint, Review
from ratings import recompute_average_rating

logger = logging.getLogger(__name__)


async def list_reviews(session: AsyncSession, space_id: int) -> List[Review]:
    statement = select(Review).where(Review.space_id == space_id).order_by(Review.id)
    result = await session.execute(statement)
    return list(result.scalars().all())


async def find_existing_review(
    session: AsyncSession, space_id: int, user_id: str
) -> Optional[Review]:
    statement = select(Review).where(Review.space_id == space_id, Review.user_id == user_id)
    result = await session.execute(statement)
    return result.scalars().first()


async def create_review(
    session: AsyncSession,
    space_id: int,
    user_id: str,
    rating: int,
    comment: Optional[str] = None,
) -> Review:
    if await session.get(CollectionPoint, space_id) is None:
        raise CollectionPointNotFound(space_id)
    if await find_existing_review(session, space_id, user_id):
        raise DuplicateReview(space_id)

    review = Review(space_id=space_id, user_id=user_id, rating=rating, comment=comment or None)
    try:
        session.add(review)
        await session.flush()
        await recompute_average_rating(session, space_id)
        await session.commit()
    except Exception:
        logger.exception("Failed to create review for point %s", space_id)
        await session.rollback()
        raise

    await session.refresh(review)
    logger.info("User %s reviewed point %s with %s", user_id, space_id, rating)
    return review


async def delete_review(session: AsyncSession, review_id: int, user_id: str) -> None:
    review = await session.get(Review, review_id)
    if review is None:
        raise ReviewNotFound(review_id)
    if review.user_id != user_id:
        logger.warning("User %s tried to delete review %s", user_id, review_id)
        raise NotOwner("review", review_id)

    space_id = review.space_id
    try:
        await session.delete(review)
        await session.flush()
        await recompute_average_rating(session, space_id)
        await session.commit()
    except Exception:
        logger.exception("Failed to delete review %s", review_id)
        await session.rollback()
        raise

    logger.info("User %s deleted review %s of point %s", user_id, review_id, space_id)
