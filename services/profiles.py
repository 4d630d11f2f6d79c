"""
User profile data. Accounts themselves live with the auth provider; this
module only stores what the app shows on the profile page.
"""

import logging
from typing import Any, Dict

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import ProfileNotFound
from models import Review, UserProfile, Visit, utcnow
from ratings import recompute_average_rating

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("email", "name", "surname", "cellphone")


async def get_profile(session: AsyncSession, user_id: str) -> UserProfile:
    profile = await session.get(UserProfile, user_id)
    if profile is None:
        raise ProfileNotFound(user_id)
    return profile


async def update_profile(
    session: AsyncSession, user_id: str, role: str, data: Dict[str, Any]
) -> UserProfile:
    """Create or update the caller's profile with the given fields."""
    profile = await session.get(UserProfile, user_id)
    if profile is None:
        profile = UserProfile(user_id=user_id, role=role)
    else:
        profile.role = role
        profile.updated_at = utcnow()
    for key, value in data.items():
        if key in PROFILE_FIELDS:
            setattr(profile, key, value)
    session.add(profile)
    await session.commit()
    await session.refresh(profile)
    logger.info("Profile of user %s saved", user_id)
    return profile


async def delete_profile(session: AsyncSession, user_id: str) -> None:
    """Remove the profile with the user's visits and reviews.

    Ratings of every point the user reviewed are recomputed before commit.
    """
    profile = await get_profile(session, user_id)

    result = await session.execute(
        select(Review.space_id).where(Review.user_id == user_id).distinct()
    )
    reviewed_points = sorted(result.scalars().all())

    try:
        await session.execute(delete(Visit).where(Visit.client_id == user_id))
        await session.execute(delete(Review).where(Review.user_id == user_id))
        await session.delete(profile)
        await session.flush()
        for space_id in reviewed_points:
            await recompute_average_rating(session, space_id)
        await session.commit()
    except Exception:
        logger.exception("Failed to delete profile of user %s", user_id)
        await session.rollback()
        raise

    logger.info("Deleted user %s with reviews on %d point(s)", user_id, len(reviewed_points))
