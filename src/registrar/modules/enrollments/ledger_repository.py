"""
Enrolled Students Ledger Repository

Database operations behind the migration engine, duplicate cleanup and
ledger administration.

The claim helpers use conditional UPDATEs and report whether the row was
actually changed, so two concurrent migration runs cannot both take the same
request.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import and_, delete, exists, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.modules.curriculum.models import StudentType

from .models import (
    EnrolledStatus,
    EnrolledStudent,
    EnrollmentRequest,
    MigrationStatus,
    RequestStatus,
)

IDENTITY_COLUMNS = (
    EnrolledStudent.student_id,
    EnrolledStudent.program,
    EnrolledStudent.year_level,
    EnrolledStudent.semester,
    EnrolledStudent.academic_year,
)


# ============================================
# Migration
# ============================================


async def get_migration_candidates(
    db: AsyncSession,
    *,
    created_after: datetime,
    stale_claim_before: datetime,
) -> list[EnrollmentRequest]:
    """
    Approved requests with no ledger row, oldest first.

    Includes requests left in MIGRATING by a run that died before finishing,
    once their claim is older than stale_claim_before.
    """
    has_ledger_row = exists().where(EnrolledStudent.enrollment_request_id == EnrollmentRequest.id)

    result = await db.execute(
        select(EnrollmentRequest)
        .where(
            EnrollmentRequest.status == RequestStatus.APPROVED,
            EnrollmentRequest.created_at >= created_after,
            ~has_ledger_row,
            or_(
                EnrollmentRequest.migration_status == MigrationStatus.NOT_MIGRATED,
                and_(
                    EnrollmentRequest.migration_status == MigrationStatus.MIGRATING,
                    or_(
                        EnrollmentRequest.migration_claimed_at.is_(None),
                        EnrollmentRequest.migration_claimed_at < stale_claim_before,
                    ),
                ),
            ),
        )
        .order_by(EnrollmentRequest.created_at.asc(), EnrollmentRequest.id.asc())
    )
    return list(result.scalars().all())


async def has_ledger_entry_for_request(db: AsyncSession, request_id: int) -> bool:
    result = await db.execute(
        select(EnrolledStudent.id).where(EnrolledStudent.enrollment_request_id == request_id)
    )
    return result.first() is not None


async def find_active_enrollment(
    db: AsyncSession,
    *,
    student_id: str,
    program: str,
    year_level: str,
    semester: str,
    academic_year: str,
) -> EnrolledStudent | None:
    result = await db.execute(
        select(EnrolledStudent)
        .where(
            EnrolledStudent.student_id == student_id,
            EnrolledStudent.program == program,
            EnrolledStudent.year_level == year_level,
            EnrolledStudent.semester == semester,
            EnrolledStudent.academic_year == academic_year,
            EnrolledStudent.status == EnrolledStatus.ACTIVE,
        )
        .order_by(EnrolledStudent.id.asc())
    )
    return result.scalars().first()


async def find_active_variant_enrollment(
    db: AsyncSession,
    *,
    base_student_id: str,
    program: str,
    year_level: str,
    semester: str,
    academic_year: str,
) -> EnrolledStudent | None:
    """Active row whose student id equals or starts with base_student_id."""
    result = await db.execute(
        select(EnrolledStudent)
        .where(
            or_(
                EnrolledStudent.student_id == base_student_id,
                EnrolledStudent.student_id.startswith(base_student_id, autoescape=True),
            ),
            EnrolledStudent.program == program,
            EnrolledStudent.year_level == year_level,
            EnrolledStudent.semester == semester,
            EnrolledStudent.academic_year == academic_year,
            EnrolledStudent.status == EnrolledStatus.ACTIVE,
        )
        .order_by(EnrolledStudent.id.asc())
    )
    return result.scalars().first()


async def claim_for_migration(
    db: AsyncSession,
    request_id: int,
    *,
    seen_status: MigrationStatus,
    claimed_at: datetime,
    stale_claim_before: datetime,
) -> bool:
    """
    Move a request to MIGRATING if nobody else has.

    The UPDATE only matches while the request is still in the migration state
    this run observed, so at most one run gets rowcount 1. Not committed.
    """
    conditions = [
        EnrollmentRequest.id == request_id,
        EnrollmentRequest.status == RequestStatus.APPROVED,
        EnrollmentRequest.migration_status == seen_status,
    ]
    if seen_status == MigrationStatus.MIGRATING:
        conditions.append(
            or_(
                EnrollmentRequest.migration_claimed_at.is_(None),
                EnrollmentRequest.migration_claimed_at < stale_claim_before,
            )
        )

    result = await db.execute(
        update(EnrollmentRequest)
        .where(*conditions)
        .values(migration_status=MigrationStatus.MIGRATING, migration_claimed_at=claimed_at)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def release_migration_claim(db: AsyncSession, request_id: int) -> None:
    """Return a claimed request to NOT_MIGRATED and commit."""
    await db.execute(
        update(EnrollmentRequest)
        .where(
            EnrollmentRequest.id == request_id,
            EnrollmentRequest.migration_status == MigrationStatus.MIGRATING,
        )
        .values(migration_status=MigrationStatus.NOT_MIGRATED, migration_claimed_at=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()


async def mark_migrated(db: AsyncSession, request_id: int) -> None:
    """Not committed; the caller commits together with the ledger insert."""
    await db.execute(
        update(EnrollmentRequest)
        .where(EnrollmentRequest.id == request_id)
        .values(migration_status=MigrationStatus.MIGRATED)
        .execution_options(synchronize_session=False)
    )


async def create_enrolled_student(
    db: AsyncSession,
    *,
    enrollment_request_id: int | None,
    student_id: str,
    student_type: StudentType,
    program: str,
    year_level: str,
    semester: str,
    subjects: list[dict],
    total_fees: Decimal,
    enrollment_date: datetime,
    academic_year: str,
) -> EnrolledStudent:
    """Add an active ledger row and flush it. Not committed."""
    enrolled = EnrolledStudent(
        enrollment_request_id=enrollment_request_id,
        student_id=student_id,
        student_type=student_type,
        program=program,
        year_level=year_level,
        semester=semester,
        subjects=subjects,
        total_fees=total_fees,
        enrollment_date=enrollment_date,
        academic_year=academic_year,
        status=EnrolledStatus.ACTIVE,
    )
    db.add(enrolled)
    await db.flush()
    return enrolled


# ============================================
# Duplicate cleanup
# ============================================


async def get_duplicate_groups(db: AsyncSession) -> list[tuple[tuple[str, ...], list[int]]]:
    """
    Active rows sharing an identity tuple, as (tuple, ids ascending).

    Only groups with more than one row are returned.
    """
    groups_query = (
        select(*IDENTITY_COLUMNS)
        .where(EnrolledStudent.status == EnrolledStatus.ACTIVE)
        .group_by(*IDENTITY_COLUMNS)
        .having(func.count(EnrolledStudent.id) > 1)
    )
    groups = (await db.execute(groups_query)).all()

    duplicate_groups = []
    for group in groups:
        identity = tuple(group)
        ids_result = await db.execute(
            select(EnrolledStudent.id)
            .where(
                *(column == value for column, value in zip(IDENTITY_COLUMNS, identity, strict=True)),
                EnrolledStudent.status == EnrolledStatus.ACTIVE,
            )
            .order_by(EnrolledStudent.id.asc())
        )
        duplicate_groups.append((identity, list(ids_result.scalars().all())))

    return duplicate_groups


async def delete_enrolled_students(db: AsyncSession, ids: list[int]) -> int:
    """Delete ledger rows by id. Not committed."""
    if not ids:
        return 0
    result = await db.execute(
        delete(EnrolledStudent)
        .where(EnrolledStudent.id.in_(ids))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


# ============================================
# Administration
# ============================================


async def get_enrolled_by_id(db: AsyncSession, id: int) -> EnrolledStudent | None:
    return await db.get(EnrolledStudent, id)


async def list_enrolled(
    db: AsyncSession,
    *,
    status: EnrolledStatus | None = None,
    program: str | None = None,
    year_level: str | None = None,
    semester: str | None = None,
    academic_year: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[EnrolledStudent], int]:
    """Filtered, paginated ledger rows, newest first, with the total count."""
    query = select(EnrolledStudent)

    if status:
        query = query.where(EnrolledStudent.status == status)
    if program:
        query = query.where(EnrolledStudent.program == program)
    if year_level:
        query = query.where(EnrolledStudent.year_level == year_level)
    if semester:
        query = query.where(EnrolledStudent.semester == semester)
    if academic_year:
        query = query.where(EnrolledStudent.academic_year == academic_year)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                EnrolledStudent.student_id.ilike(pattern),
                EnrolledStudent.program.ilike(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = (
        query.order_by(EnrolledStudent.enrollment_date.desc(), EnrolledStudent.id.desc())
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


async def get_active_enrollments_for_student(
    db: AsyncSession, student_id: str
) -> list[EnrolledStudent]:
    result = await db.execute(
        select(EnrolledStudent)
        .where(
            EnrolledStudent.student_id == student_id,
            EnrolledStudent.status == EnrolledStatus.ACTIVE,
        )
        .order_by(EnrolledStudent.enrollment_date.desc(), EnrolledStudent.id.desc())
    )
    return list(result.scalars().all())


async def count_by(db: AsyncSession, column) -> dict[str, int]:
    """Row counts grouped by one ledger column."""
    result = await db.execute(
        select(column, func.count(EnrolledStudent.id)).group_by(column).order_by(column)
    )
    counts = {}
    for key, count in result.all():
        label = key.value if hasattr(key, "value") else str(key)
        counts[label] = count
    return counts


async def count_all(db: AsyncSession) -> int:
    return await db.scalar(select(func.count(EnrolledStudent.id))) or 0
