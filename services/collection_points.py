import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, literal, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from exceptions import CollectionPointNotFound, NotOwner
from models import CollectionPoint, CollectionSchedule, Review, Visit

logger = logging.getLogger(__name__)

# Fields an operator may set; avg_rating is derived and never written here
EDITABLE_FIELDS = (
    "name",
    "description",
    "street",
    "city",
    "zip_code",
    "latitude",
    "longitude",
    "waste_types",
    "accessibility",
    "seats",
    "is_full_space_booking",
    "is_active",
)

# NOT NULL columns: a None here means "leave unchanged"
REQUIRED_FIELDS = ("name", "description", "seats", "is_full_space_booking", "is_active")

SCHEDULE_FIELDS = (
    "monday",
    "tuesday",
    "wednesday",
    "thursday",
    "friday",
    "saturday",
    "sunday",
    "opening_time",
    "closing_time",
    "notes",
    "is_always_open",
)

LIKE_ESCAPE = "\\"


def like_pattern(text: str) -> str:
    """Substring pattern with LIKE wildcards in ``text`` taken literally."""
    for char in (LIKE_ESCAPE, "%", "_"):
        text = text.replace(char, LIKE_ESCAPE + char)
    return f"%{text}%"


def normalize_waste_types(value: Optional[str]) -> Optional[str]:
    """'Glass, paper,,GLASS' -> 'glass,paper'."""
    if value is None:
        return None
    types = []
    for item in value.split(","):
        item = item.strip().lower()
        if item and item not in types:
            types.append(item)
    return ",".join(types) or None


async def list_collection_points(
    session: AsyncSession,
    search: Optional[str] = None,
    waste_type: Optional[str] = None,
) -> List[CollectionPoint]:
    statement = select(CollectionPoint).where(CollectionPoint.is_active == True)  # noqa: E712
    if search:
        pattern = like_pattern(search.lower())
        statement = statement.where(
            or_(
                func.lower(CollectionPoint.name).like(pattern, escape=LIKE_ESCAPE),
                func.lower(CollectionPoint.city).like(pattern, escape=LIKE_ESCAPE),
            )
        )
    if waste_type and waste_type.strip():
        # waste_types is stored normalized, so ",glass," only matches a whole entry
        entry = like_pattern(f",{waste_type.strip().lower()},")
        stored = literal(",") + CollectionPoint.waste_types + literal(",")
        statement = statement.where(stored.like(entry, escape=LIKE_ESCAPE))
    statement = statement.order_by(CollectionPoint.created_at.desc(), CollectionPoint.id.desc())
    result = await session.execute(statement)
    return list(result.scalars().all())


async def get_collection_point(session: AsyncSession, point_id: int) -> CollectionPoint:
    point = await session.get(CollectionPoint, point_id)
    if point is None:
        raise CollectionPointNotFound(point_id)
    return point


async def _get_owned(session: AsyncSession, point_id: int, operator_id: str) -> CollectionPoint:
    point = await get_collection_point(session, point_id)
    if point.operator_id != operator_id:
        logger.warning("Operator %s tried to modify point %s", operator_id, point_id)
        raise NotOwner("collection point", point_id)
    return point


def _editable(data: Dict[str, Any]) -> Dict[str, Any]:
    fields = {}
    for key, value in data.items():
        if key not in EDITABLE_FIELDS:
            continue
        if value is None and key in REQUIRED_FIELDS:
            continue
        if key == "waste_types":
            value = normalize_waste_types(value)
        fields[key] = value
    return fields


def _schedule_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in data.items() if key in SCHEDULE_FIELDS}


async def create_collection_point(
    session: AsyncSession,
    operator_id: str,
    data: Dict[str, Any],
    schedule: Optional[Dict[str, Any]] = None,
) -> CollectionPoint:
    point = CollectionPoint(operator_id=operator_id, **_editable(data))
    session.add(point)
    await session.flush()
    if schedule is not None:
        session.add(CollectionSchedule(space_id=point.id, **_schedule_fields(schedule)))
    await session.commit()
    await session.refresh(point)
    logger.info("Operator %s created collection point %s", operator_id, point.id)
    return point


async def update_collection_point(
    session: AsyncSession, point_id: int, operator_id: str, data: Dict[str, Any]
) -> CollectionPoint:
    point = await _get_owned(session, point_id, operator_id)
    for key, value in _editable(data).items():
        setattr(point, key, value)
    session.add(point)
    await session.commit()
    await session.refresh(point)
    logger.info("Operator %s updated collection point %s", operator_id, point_id)
    return point


async def delete_collection_point(session: AsyncSession, point_id: int, operator_id: str) -> None:
    point = await _get_owned(session, point_id, operator_id)
    await session.execute(delete(Visit).where(Visit.space_id == point_id))
    await session.execute(delete(Review).where(Review.space_id == point_id))
    await session.execute(delete(CollectionSchedule).where(CollectionSchedule.space_id == point_id))
    await session.delete(point)
    await session.commit()
    logger.info("Operator %s deleted collection point %s", operator_id, point_id)


async def get_schedule(session: AsyncSession, point_id: int) -> Optional[CollectionSchedule]:
    """Weekly schedule of the point, None when the operator never set one."""
    await get_collection_point(session, point_id)
    result = await session.execute(
        select(CollectionSchedule).where(CollectionSchedule.space_id == point_id)
    )
    return result.scalars().first()


async def set_schedule(
    session: AsyncSession, point_id: int, operator_id: str, data: Dict[str, Any]
) -> CollectionSchedule:
    """Replace the point's weekly schedule; fields left out are reset."""
    await _get_owned(session, point_id, operator_id)
    result = await session.execute(
        select(CollectionSchedule).where(CollectionSchedule.space_id == point_id)
    )
    schedule = result.scalars().first()
    fresh = CollectionSchedule(space_id=point_id, **_schedule_fields(data))
    if schedule is None:
        schedule = fresh
    else:
        for key in SCHEDULE_FIELDS:
            setattr(schedule, key, getattr(fresh, key))
    session.add(schedule)
    await session.commit()
    await session.refresh(schedule)
    logger.info("Operator %s set the schedule of point %s", operator_id, point_id)
    return schedule


async def map_markers(session: AsyncSession) -> List[Dict[str, Any]]:
    """Id, name and coordinates of every point placed on the map."""
    statement = select(
        CollectionPoint.id,
        CollectionPoint.name,
        CollectionPoint.street,
        CollectionPoint.city,
        CollectionPoint.latitude,
        CollectionPoint.longitude,
    ).where(
        CollectionPoint.latitude.is_not(None),
        CollectionPoint.longitude.is_not(None),
    ).order_by(CollectionPoint.id)
    result = await session.execute(statement)
    return [dict(row._mapping) for row in result.all()]
