"""
Shared fixtures.

Database tests run against an in-memory SQLite database (aiosqlite) that
holds the full schema, including the partial unique index on the ledger.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import registrar.modules.models  # noqa: F401
from registrar.core.database import Base
from registrar.modules.curriculum.models import CurriculumEntry, Program, StudentType
from registrar.modules.enrollments.models import (
    EnrolledStatus,
    EnrolledStudent,
    EnrollmentRequest,
    MigrationStatus,
    RequestStatus,
)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.refresh = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def now():
    return datetime.now(UTC)


@pytest.fixture
def make_request(db_session, now):
    """Insert an enrollment request (approved by default) and commit it."""

    async def _make(
        student_id: str = "2021001",
        *,
        program: str = "BSIT",
        year_level: str = "1st Year",
        semester: str = "1st Term",
        status: RequestStatus = RequestStatus.APPROVED,
        student_type: StudentType = StudentType.REGULAR,
        created_at: datetime | None = None,
        migration_status: MigrationStatus = MigrationStatus.NOT_MIGRATED,
        migration_claimed_at: datetime | None = None,
        subjects: list[dict] | None = None,
    ) -> EnrollmentRequest:
        request = EnrollmentRequest(
            student_id=student_id,
            program=program,
            year_level=year_level,
            semester=semester,
            student_type=student_type,
            subjects=subjects if subjects is not None else [{"code": "IT101", "units": 3}],
            total_fees=Decimal("6907.78"),
            payment_receipt_ref="receipt-1.png",
            status=status,
            migration_status=migration_status,
            migration_claimed_at=migration_claimed_at,
            created_at=created_at or (now - timedelta(hours=1)),
            updated_at=created_at or (now - timedelta(hours=1)),
        )
        db_session.add(request)
        await db_session.commit()
        await db_session.refresh(request)
        return request

    return _make


@pytest.fixture
def make_enrolled(db_session, now):
    """Insert a ledger row directly and commit it."""

    async def _make(
        student_id: str = "2021001",
        *,
        program: str = "BSIT",
        year_level: str = "1st Year",
        semester: str = "1st Term",
        academic_year: str | None = None,
        status: EnrolledStatus = EnrolledStatus.ACTIVE,
        enrollment_request_id: int | None = None,
        subjects: list[dict] | None = None,
    ) -> EnrolledStudent:
        enrolled = EnrolledStudent(
            enrollment_request_id=enrollment_request_id,
            student_id=student_id,
            student_type=StudentType.REGULAR,
            program=program,
            year_level=year_level,
            semester=semester,
            subjects=subjects or [],
            total_fees=Decimal("6907.78"),
            enrollment_date=now,
            academic_year=academic_year or f"{now.year}-{now.year + 1}",
            status=status,
        )
        db_session.add(enrolled)
        await db_session.commit()
        await db_session.refresh(enrolled)
        return enrolled

    return _make


@pytest.fixture
def seed_curriculum(db_session):
    """Insert curriculum rows: (program, year_level, semester, code, units, instructor, room, schedule)."""

    async def _seed(rows: list[tuple]) -> None:
        for program, year_level, semester, code, units, instructor, room, schedule in rows:
            db_session.add(
                CurriculumEntry(
                    program_code=program,
                    year_level=year_level,
                    semester=semester,
                    subject_code=code,
                    subject_name=f"Subject {code}",
                    units=units,
                    instructor=instructor,
                    room=room,
                    schedule=schedule,
                )
            )
        await db_session.commit()

    return _seed


@pytest.fixture
def seed_program(db_session):
    async def _seed(code: str, name: str, is_active: bool = True) -> Program:
        program = Program(code=code, name=name, is_active=is_active)
        db_session.add(program)
        await db_session.commit()
        return program

    return _seed
