"""
Enrolled Students Ledger Service

Administration of the ledger the migration engine writes: search, status
changes, statistics, and the per-student schedule view.
"""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.exceptions import DuplicateEnrollmentError, InvalidStatusError, NotFoundError
from registrar.modules.curriculum.normalization import canonical_year_level, normalize_program
from registrar.modules.curriculum.resolver import enrich_subjects
from registrar.modules.enrollments import ledger_repository
from registrar.modules.enrollments.helpers import subject_units_total
from registrar.modules.enrollments.models import EnrolledStatus, EnrolledStudent
from registrar.modules.enrollments.schemas import LedgerStats

logger = logging.getLogger(__name__)

ALLOWED_LEDGER_STATUSES = [s.value for s in EnrolledStatus]


def parse_enrolled_status(value: EnrolledStatus | str) -> EnrolledStatus:
    """
    Raises:
        InvalidStatusError: If value is not active, dropped or graduated
    """
    if isinstance(value, EnrolledStatus):
        return value
    try:
        return EnrolledStatus(str(value).strip().lower())
    except ValueError as e:
        raise InvalidStatusError(str(value), ALLOWED_LEDGER_STATUSES) from e


async def list_enrolled_students(
    db: AsyncSession,
    *,
    status: str | None = None,
    program: str | None = None,
    year_level: str | None = None,
    semester: str | None = None,
    academic_year: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[EnrolledStudent], int]:
    """
    Ledger rows matching the filters.

    Program and year level filters accept any supported spelling.

    Raises:
        InvalidStatusError: For an unknown status filter
    """
    return await ledger_repository.list_enrolled(
        db,
        status=parse_enrolled_status(status) if status else None,
        program=normalize_program(program) if program else None,
        year_level=canonical_year_level(year_level) if year_level else None,
        semester=semester.strip() if semester else None,
        academic_year=academic_year.strip() if academic_year else None,
        search=search.strip() if search and search.strip() else None,
        skip=skip,
        limit=limit,
    )


async def update_enrolled_status(
    db: AsyncSession, enrollment_id: int, status: EnrolledStatus | str
) -> EnrolledStudent:
    """
    Change a ledger row's status.

    Raises:
        InvalidStatusError: Unknown status
        NotFoundError: Ledger row does not exist
        DuplicateEnrollmentError: Reactivating would create a second active
            row for the same student, program, year level, semester and year
    """
    new_status = parse_enrolled_status(status)

    enrolled = await ledger_repository.get_enrolled_by_id(db, enrollment_id)
    if not enrolled:
        raise NotFoundError("Enrolled student", enrollment_id)

    previous = enrolled.status
    identity = (
        f"{enrolled.program} {enrolled.year_level} {enrolled.semester} {enrolled.academic_year}"
    )
    student_id = enrolled.student_id

    enrolled.status = new_status
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        raise DuplicateEnrollmentError(
            f"Student {student_id} already has an active enrollment for {identity}"
        ) from e

    await db.refresh(enrolled)
    logger.info(
        f"Enrolled student {enrollment_id} status {previous.value} -> {new_status.value}"
    )
    return enrolled


async def get_ledger_stats(db: AsyncSession) -> LedgerStats:
    return LedgerStats(
        total=await ledger_repository.count_all(db),
        by_status=await ledger_repository.count_by(db, EnrolledStudent.status),
        by_program=await ledger_repository.count_by(db, EnrolledStudent.program),
        by_year_level=await ledger_repository.count_by(db, EnrolledStudent.year_level),
        by_academic_year=await ledger_repository.count_by(db, EnrolledStudent.academic_year),
    )


async def get_student_schedule(db: AsyncSession, student_id: str) -> list[dict]:
    """
    Active enrollments of a student with subjects enriched from the curriculum.

    Returns:
        One dict per enrollment: id, program, year_level, semester,
        academic_year, total_units and subjects
    """
    enrollments = await ledger_repository.get_active_enrollments_for_student(
        db, student_id.strip()
    )

    schedule = []
    for enrolled in enrollments:
        subjects = await enrich_subjects(
            db,
            list(enrolled.subjects or []),
            enrolled.program,
            enrolled.year_level,
            enrolled.semester,
        )
        schedule.append(
            {
                "enrollment_id": enrolled.id,
                "program": enrolled.program,
                "year_level": enrolled.year_level,
                "semester": enrolled.semester,
                "academic_year": enrolled.academic_year,
                "total_units": subject_units_total(subjects),
                "subjects": subjects,
            }
        )
    return schedule
