import pytest
from sqlmodel import select

from exceptions import CollectionPointNotFound
from models import CollectionPoint
from ratings import recompute_average_rating, rounded_mean


@pytest.mark.parametrize(
    "ratings, expected",
    [
        ([], None),
        ([4, 5, 3], 4.0),
        ([4, 5], 4.5),
        ([3, 4], 3.5),
        ([1, 1, 2], 1.3),
        ([1, 2, 2], 1.7),
        ([5], 5.0),
        # 1.25 rounds up
        ([1, 1, 1, 2], 1.3),
    ],
)
def test_rounded_mean(ratings, expected):
    assert rounded_mean(ratings) == expected


async def stored_rating(session, point_id):
    result = await session.execute(
        select(CollectionPoint.avg_rating).where(CollectionPoint.id == point_id)
    )
    return result.scalar_one()


async def test_recompute_follows_review_set(session, make_point, add_reviews):
    point = await make_point()
    four, five, three = await add_reviews(point.id, [4, 5, 3])

    assert await recompute_average_rating(session, point.id) == 4.0
    assert await stored_rating(session, point.id) == 4.0

    await session.delete(three)
    await session.flush()
    assert await recompute_average_rating(session, point.id) == 4.5
    assert await stored_rating(session, point.id) == 4.5

    await session.delete(four)
    await session.delete(five)
    await session.flush()
    assert await recompute_average_rating(session, point.id) is None
    assert await stored_rating(session, point.id) is None


async def test_recompute_is_idempotent(session, make_point, add_reviews):
    point = await make_point()
    await add_reviews(point.id, [1, 1, 2])

    first = await recompute_average_rating(session, point.id)
    second = await recompute_average_rating(session, point.id)

    assert first == second == 1.3
    assert await stored_rating(session, point.id) == 1.3


async def test_recompute_ignores_other_points(session, make_point, add_reviews):
    point = await make_point()
    other = await make_point(name="Other")
    await add_reviews(point.id, [2])
    await add_reviews(other.id, [5, 5])

    assert await recompute_average_rating(session, point.id) == 2.0


async def test_recompute_unknown_point_raises(session):
    with pytest.raises(CollectionPointNotFound):
        await recompute_average_rating(session, 404)
