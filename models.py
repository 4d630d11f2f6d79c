from typing import Optional
from datetime import date, datetime, time, timezone
from sqlmodel import SQLModel, Field
from sqlalchemy import UniqueConstraint


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CollectionPoint(SQLModel, table=True):
    __tablename__ = "collection_points"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    description: str = ""
    operator_id: str = Field(index=True)

    street: Optional[str] = None
    city: Optional[str] = Field(default=None, index=True)
    zip_code: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    waste_types: Optional[str] = None  # comma-separated, e.g. "glass,paper"
    accessibility: Optional[str] = None

    seats: int = Field(default=1, ge=1)
    # True: a single visit reserves the whole point for the day
    is_full_space_booking: bool = False
    is_active: bool = True

    # Derived from reviews, None until the first review exists
    avg_rating: Optional[float] = None
    created_at: datetime = Field(default_factory=utcnow)


class Visit(SQLModel, table=True):
    __tablename__ = "visits"
    __table_args__ = (
        # One visit per client, point and day. Capacity is NOT enforced here.
        UniqueConstraint("space_id", "client_id", "booking_date", name="unique_client_visit_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    space_id: int = Field(foreign_key="collection_points.id", index=True)
    client_id: str = Field(index=True)
    booking_date: date = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)


class Review(SQLModel, table=True):
    __tablename__ = "reviews"

    id: Optional[int] = Field(default=None, primary_key=True)
    space_id: int = Field(foreign_key="collection_points.id", index=True)
    user_id: str = Field(index=True)
    rating: int
    comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class CollectionSchedule(SQLModel, table=True):
    """Weekly opening days and hours of a collection point."""

    __tablename__ = "collection_schedules"

    id: Optional[int] = Field(default=None, primary_key=True)
    space_id: int = Field(foreign_key="collection_points.id", unique=True, index=True)

    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    sunday: bool = False

    opening_time: Optional[time] = None
    closing_time: Optional[time] = None
    notes: Optional[str] = None
    is_always_open: bool = False


class UserProfile(SQLModel, table=True):
    """Personal data of a user; identity and role come from the auth provider."""

    __tablename__ = "user_profiles"

    user_id: str = Field(primary_key=True)
    role: str
    email: Optional[str] = Field(default=None, index=True)
    name: Optional[str] = None
    surname: Optional[str] = None
    cellphone: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
