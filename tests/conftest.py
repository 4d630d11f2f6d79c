import os

# config.py refuses to import without a database URL
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from itertools import count as counter

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from database import get_session
from main import app
from models import CollectionPoint, Review, Visit

_seed_ids = counter(1)


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_point(session):
    async def _make_point(**fields):
        fields.setdefault("name", "Ecocentro Nord")
        fields.setdefault("operator_id", "operator-1")
        point = CollectionPoint(**fields)
        session.add(point)
        await session.commit()
        await session.refresh(point)
        return point

    return _make_point


@pytest.fixture
def add_visits(session):
    """Insert visits directly, bypassing the capacity check."""

    async def _add_visits(space_id, day, count=1):
        for _ in range(count):
            session.add(Visit(space_id=space_id, client_id=f"seed-client-{next(_seed_ids)}", booking_date=day))
        await session.commit()

    return _add_visits


@pytest.fixture
def add_reviews(session):
    async def _add_reviews(space_id, ratings):
        created = []
        for i, rating in enumerate(ratings):
            review = Review(space_id=space_id, user_id=f"reviewer-{i}", rating=rating)
            session.add(review)
            created.append(review)
        await session.commit()
        return created

    return _add_reviews
