import logging
from fastapi import FastAPI, Depends, Header, HTTPException, Path, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date, datetime, time
from typing import List, Dict, Any, Optional

from config import CORS_ORIGINS, LOG_LEVEL
from database import init_db, get_session
from models import CollectionPoint, CollectionSchedule, Visit, Review, UserProfile
from availability import as_day, check_availability, monthly_availability
from exceptions import (
    SmartWasteError,
    NotFoundError,
    NotOwner,
    DateNotAvailable,
    DuplicateVisit,
    DuplicateReview,
)
from services import collection_points, profiles, reviews, visits
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from fastapi.middleware.cors import CORSMiddleware

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="SmartWaste Collection Points")

CLIENT = "CLIENT"
OPERATOR = "OPERATOR"
ADMIN = "ADMIN"

# Domain error -> HTTP status
ERROR_STATUS = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    NotOwner: status.HTTP_403_FORBIDDEN,
    DateNotAvailable: status.HTTP_400_BAD_REQUEST,
    DuplicateVisit: status.HTTP_409_CONFLICT,
    DuplicateReview: status.HTTP_409_CONFLICT,
}


# Pydantic Schemas for Request/Response
class CurrentUser(BaseModel):
    id: str
    role: str


class ScheduleIn(BaseModel):
    monday: bool = False
    tuesday: bool = False
    wednesday: bool = False
    thursday: bool = False
    friday: bool = False
    saturday: bool = False
    sunday: bool = False
    opening_time: Optional[time] = None
    closing_time: Optional[time] = None
    notes: Optional[str] = Field(None, max_length=500)
    is_always_open: bool = False

    @model_validator(mode="after")
    def check_hours(self):
        if self.opening_time and self.closing_time and self.closing_time <= self.opening_time:
            raise ValueError("closing_time must be after opening_time")
        return self


class CollectionPointIn(BaseModel):
    # Only honoured for admins creating a point on an operator's behalf
    operator_id: Optional[str] = None
    schedule: Optional[ScheduleIn] = None
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    street: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    waste_types: Optional[str] = None
    accessibility: Optional[str] = None
    seats: int = Field(1, ge=1)
    is_full_space_booking: bool = False


class CollectionPointPatch(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    street: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    waste_types: Optional[str] = None
    accessibility: Optional[str] = None
    seats: Optional[int] = Field(None, ge=1)
    is_full_space_booking: Optional[bool] = None
    is_active: Optional[bool] = None

    @field_validator("name", "description", "seats", "is_full_space_booking", "is_active")
    @classmethod
    def not_null(cls, value):
        # Runs only for values actually sent; omitted fields stay unset
        if value is None:
            raise ValueError("may be omitted but not null")
        return value


class ProfileIn(BaseModel):
    email: Optional[EmailStr] = None
    name: Optional[str] = Field(None, max_length=100)
    surname: Optional[str] = Field(None, max_length=100)
    cellphone: Optional[str] = Field(None, max_length=30)


class MapMarker(BaseModel):
    id: int
    name: str
    street: Optional[str]
    city: Optional[str]
    latitude: float
    longitude: float


class AvailabilityOut(BaseModel):
    space_id: int
    booking_date: date
    available: bool
    remaining_seats: int


class MonthlyAvailabilityOut(BaseModel):
    space_id: int
    year: int
    month: int
    available_dates: List[str]


class BookingCreate(BaseModel):
    space_id: int
    booking_dates: List[date] = Field(..., min_length=1)

    @field_validator("booking_dates", mode="before")
    @classmethod
    def drop_time_of_day(cls, value):
        # Clients send full timestamps; only the calendar day counts
        if not isinstance(value, list):
            return value
        days = []
        for item in value:
            if isinstance(item, str) and "T" in item:
                item = datetime.fromisoformat(item.replace("Z", "+00:00"))
            if isinstance(item, datetime):
                # Offset timestamps are read on the server's local day
                item = as_day(item)
            days.append(item)
        return days


class ReviewCreate(BaseModel):
    space_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=2000)


# Identity is issued by the external auth provider and forwarded as headers
async def get_current_user(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> CurrentUser:
    if not x_user_id or not x_user_role:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return CurrentUser(id=x_user_id, role=x_user_role.upper())


def require_role(*roles: str):
    async def role_dep(current_user: CurrentUser = Depends(get_current_user)):
        if current_user.role not in roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User not authorized")
        return current_user
    return role_dep


@app.exception_handler(SmartWasteError)
async def domain_error_handler(request: Request, exc: SmartWasteError):
    code = status.HTTP_400_BAD_REQUEST
    for error_type, error_code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            code = error_code
            break
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.on_event("startup")
async def on_startup():
    await init_db()
    logger.info("Database initialised")


# --- Collection points ---
@app.get("/collection-points", response_model=List[CollectionPoint])
async def list_points(
    search: Optional[str] = None,
    waste_type: Optional[str] = None,
    session: AsyncSession = Depends(get_session),
):
    return await collection_points.list_collection_points(
        session, search=search, waste_type=waste_type
    )


@app.get("/collection-points/{point_id}", response_model=CollectionPoint)
async def get_point(point_id: int, session: AsyncSession = Depends(get_session)):
    return await collection_points.get_collection_point(session, point_id)


@app.post("/collection-points", response_model=CollectionPoint, status_code=status.HTTP_201_CREATED)
async def create_point(
    payload: CollectionPointIn,
    user: CurrentUser = Depends(require_role(OPERATOR, ADMIN)),
    session: AsyncSession = Depends(get_session),
):
    operator_id = user.id
    if user.role == ADMIN and payload.operator_id:
        operator_id = payload.operator_id
    schedule = payload.schedule.model_dump() if payload.schedule else None
    data = payload.model_dump(exclude={"operator_id", "schedule"})
    return await collection_points.create_collection_point(session, operator_id, data, schedule=schedule)


@app.patch("/collection-points/{point_id}", response_model=CollectionPoint)
async def update_point(
    point_id: int,
    payload: CollectionPointPatch,
    operator: CurrentUser = Depends(require_role(OPERATOR)),
    session: AsyncSession = Depends(get_session),
):
    data = payload.model_dump(exclude_unset=True)
    return await collection_points.update_collection_point(session, point_id, operator.id, data)


@app.delete("/collection-points/{point_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_point(
    point_id: int,
    operator: CurrentUser = Depends(require_role(OPERATOR)),
    session: AsyncSession = Depends(get_session),
):
    await collection_points.delete_collection_point(session, point_id, operator.id)


@app.get("/collection-points/{point_id}/schedule", response_model=Optional[CollectionSchedule])
async def get_point_schedule(point_id: int, session: AsyncSession = Depends(get_session)):
    return await collection_points.get_schedule(session, point_id)


@app.put("/collection-points/{point_id}/schedule", response_model=CollectionSchedule)
async def set_point_schedule(
    point_id: int,
    payload: ScheduleIn,
    operator: CurrentUser = Depends(require_role(OPERATOR)),
    session: AsyncSession = Depends(get_session),
):
    return await collection_points.set_schedule(session, point_id, operator.id, payload.model_dump())


@app.get("/map", response_model=List[MapMarker])
async def map_points(session: AsyncSession = Depends(get_session)):
    return await collection_points.map_markers(session)


# --- Availability ---
@app.get("/collection-points/{point_id}/availability", response_model=AvailabilityOut)
async def point_availability(
    point_id: int,
    day: date = Query(..., alias="date"),
    session: AsyncSession = Depends(get_session),
):
    result = await check_availability(session, point_id, day)
    return AvailabilityOut(
        space_id=point_id,
        booking_date=day,
        available=result.available,
        remaining_seats=result.remaining_seats,
    )


@app.get(
    "/collection-points/{point_id}/availability/{year}/{month}",
    response_model=MonthlyAvailabilityOut,
)
async def point_monthly_availability(
    point_id: int,
    year: int = Path(..., ge=1, le=9999),
    month: int = Path(..., ge=1, le=12),
    session: AsyncSession = Depends(get_session),
):
    available_dates = await monthly_availability(session, point_id, year, month)
    return MonthlyAvailabilityOut(
        space_id=point_id, year=year, month=month, available_dates=available_dates
    )


# --- Visits ---
@app.get("/visits", response_model=List[Visit])
async def my_visits(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await visits.list_visits_for_client(session, user.id)


@app.post("/visits", status_code=status.HTTP_201_CREATED)
async def book_visits(
    booking_data: BookingCreate,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    await collection_points.get_collection_point(session, booking_data.space_id)
    created = await visits.create_visits(
        session, booking_data.space_id, user.id, booking_data.booking_dates
    )
    return {"message": "Booking successful", "visits": [v.model_dump(mode="json") for v in created]}


@app.delete("/visits/{visit_id}")
async def cancel_visit(
    visit_id: int,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await visits.delete_visit(session, visit_id, user.id)
    return {"message": "Visit deleted successfully"}


# --- Reviews ---
@app.get("/reviews", response_model=List[Review])
async def point_reviews(space_id: int, session: AsyncSession = Depends(get_session)):
    return await reviews.list_reviews(session, space_id)


@app.post("/reviews", response_model=Review, status_code=status.HTTP_201_CREATED)
async def add_review(
    payload: ReviewCreate,
    user: CurrentUser = Depends(require_role(CLIENT)),
    session: AsyncSession = Depends(get_session),
):
    return await reviews.create_review(
        session, payload.space_id, user.id, payload.rating, payload.comment
    )


@app.delete("/reviews/{review_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_review(
    review_id: int,
    user: CurrentUser = Depends(require_role(CLIENT)),
    session: AsyncSession = Depends(get_session),
):
    await reviews.delete_review(session, review_id, user.id)


# --- Profile ---
@app.get("/profile", response_model=UserProfile)
async def read_profile(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await profiles.get_profile(session, user.id)


@app.put("/profile", response_model=UserProfile)
async def save_profile(
    payload: ProfileIn,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    return await profiles.update_profile(
        session, user.id, user.role, payload.model_dump(exclude_unset=True)
    )


@app.delete("/profile", status_code=status.HTTP_204_NO_CONTENT)
async def delete_profile(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await profiles.delete_profile(session, user.id)


app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
