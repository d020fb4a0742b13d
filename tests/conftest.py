"""Shared test fixtures.

Integration tests run against an in-memory SQLite database (aiosqlite) with
the ORM metadata created per test; the marketplace tables are populated
through the `marketplace` helper.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tutorxp.database import get_session
from tutorxp.db.base import Base
from tutorxp.db.models import Booking, Module, Review, Student, Tutor, User
from tutorxp.dependencies import get_redis_dep
from tutorxp.gamification.seed import seed_achievements
from tutorxp.main import create_app

NOW = datetime(2026, 3, 10, 15, 0, 0, tzinfo=timezone.utc)


class Marketplace:
    """Creates marketplace rows (users, bookings, reviews) for a test."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    async def student(self, name: str = "Sam Student") -> tuple[User, Student]:
        user = User(email=f"student{self._next()}@example.com", role="Student")
        self.db.add(user)
        await self.db.flush()
        student = Student(user_id=user.id, name=name)
        self.db.add(student)
        await self.db.commit()
        return user, student

    async def tutor(self, name: str = "Tia Tutor") -> tuple[User, Tutor]:
        user = User(email=f"tutor{self._next()}@example.com", role="Tutor")
        self.db.add(user)
        await self.db.flush()
        tutor = Tutor(user_id=user.id, name=name)
        self.db.add(tutor)
        await self.db.commit()
        return user, tutor

    async def module(self, name: str = "Calculus I") -> Module:
        module = Module(code=f"MOD{self._next():03d}", name=name)
        self.db.add(module)
        await self.db.commit()
        return module

    async def booking(
        self,
        student: Student,
        tutor: Tutor,
        module: Module | None = None,
        status: str = "Completed",
        start_time: datetime | None = None,
        end_time: datetime | None = None,
        notes: str | None = None,
    ) -> Booking:
        start = start_time or NOW - timedelta(days=1)
        booking = Booking(
            student_id=student.id,
            tutor_id=tutor.id,
            module_id=module.id if module is not None else None,
            start_time=start,
            end_time=end_time if end_time is not None else start + timedelta(hours=1),
            status=status,
            notes=notes,
        )
        self.db.add(booking)
        await self.db.commit()
        return booking

    async def review(
        self,
        student: Student,
        tutor: Tutor,
        rating: int = 5,
        created_at: datetime | None = None,
    ) -> Review:
        review = Review(
            student_id=student.id,
            tutor_id=tutor.id,
            rating=rating,
            created_at=created_at or NOW - timedelta(days=1),
        )
        self.db.add(review)
        await self.db.commit()
        return review


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a fresh in-memory database with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """DB session with the achievement catalog seeded."""
    await seed_achievements(db_session)
    return db_session


@pytest_asyncio.fixture
async def marketplace(seeded_db: AsyncSession) -> Marketplace:
    return Marketplace(seeded_db)


@pytest_asyncio.fixture
async def client(seeded_db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for the app, bound to the test database and with Redis disabled."""
    app = create_app()

    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        yield seeded_db

    async def _redis_override() -> AsyncGenerator[object, None]:
        yield None

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_redis_dep] = _redis_override

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
