"""
Enrollment Request Repository

Database operations for enrollment requests.

Design Principles:
- All queries are parameterized
- Only data access and the status state machine live here; notifications
  and validation belong to the service layer
- Timezone-aware datetime handling (UTC)
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.exceptions import InvalidStatusTransitionError, NotFoundError
from registrar.modules.curriculum.models import StudentType

from .models import EnrollmentRequest, MigrationStatus, RequestStatus


async def create(
    db: AsyncSession,
    *,
    student_id: str,
    program: str,
    year_level: str,
    semester: str,
    student_type: StudentType,
    subjects: list[dict],
    total_fees: Decimal,
    payment_receipt_ref: str,
) -> EnrollmentRequest:
    """Create a new pending enrollment request."""
    request = EnrollmentRequest(
        student_id=student_id,
        program=program,
        year_level=year_level,
        semester=semester,
        student_type=student_type,
        subjects=subjects,
        total_fees=total_fees,
        payment_receipt_ref=payment_receipt_ref,
        status=RequestStatus.PENDING,
        migration_status=MigrationStatus.NOT_MIGRATED,
    )

    db.add(request)
    await db.commit()
    await db.refresh(request)

    return request


async def get_by_id(db: AsyncSession, id: int) -> EnrollmentRequest | None:
    return await db.get(EnrollmentRequest, id)


async def list_by_student(db: AsyncSession, student_id: str) -> list[EnrollmentRequest]:
    """All requests for a student, newest first."""
    result = await db.execute(
        select(EnrollmentRequest)
        .where(EnrollmentRequest.student_id == student_id)
        .order_by(EnrollmentRequest.created_at.desc(), EnrollmentRequest.id.desc())
    )
    return list(result.scalars().all())


async def list_requests(
    db: AsyncSession,
    *,
    status: RequestStatus | None = None,
    student_type: StudentType | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[EnrollmentRequest], int]:
    """
    Filtered, paginated request list, newest first.

    Args:
        status: Filter by review status
        student_type: Filter by regular/irregular
        search: Case-insensitive match on student id or program

    Returns:
        Tuple of (requests, total count matching filters)
    """
    query = select(EnrollmentRequest)

    if status:
        query = query.where(EnrollmentRequest.status == status)
    if student_type:
        query = query.where(EnrollmentRequest.student_type == student_type)
    if search:
        pattern = f"%{search}%"
        query = query.where(
            or_(
                EnrollmentRequest.student_id.ilike(pattern),
                EnrollmentRequest.program.ilike(pattern),
            )
        )

    total = await db.scalar(select(func.count()).select_from(query.subquery()))

    query = (
        query.order_by(EnrollmentRequest.created_at.desc(), EnrollmentRequest.id.desc())
        .offset(skip)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all()), total or 0


# Review state machine. Rejected is terminal; an approval can be withdrawn
# only until the request has been migrated (checked in update_status).
VALID_STATUS_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.PENDING: {RequestStatus.APPROVED, RequestStatus.REJECTED},
    RequestStatus.APPROVED: {RequestStatus.PENDING, RequestStatus.REJECTED},
    RequestStatus.REJECTED: set(),
}


def check_transition(request: EnrollmentRequest, new_status: RequestStatus) -> None:
    """
    Raises:
        InvalidStatusTransitionError: If the request cannot move to new_status
    """
    current = request.status
    if new_status == current:
        return

    allowed = sorted(s.value for s in VALID_STATUS_TRANSITIONS.get(current, set()))

    if request.migration_status != MigrationStatus.NOT_MIGRATED:
        raise InvalidStatusTransitionError(
            current.value,
            new_status.value,
            [],
            reason=f"Enrollment request {request.id} has already been migrated "
            "and its status can no longer change",
        )

    if new_status not in VALID_STATUS_TRANSITIONS.get(current, set()):
        raise InvalidStatusTransitionError(current.value, new_status.value, allowed)


async def update_status(
    db: AsyncSession,
    id: int,
    status: RequestStatus,
    **kwargs,
) -> tuple[EnrollmentRequest, RequestStatus]:
    """
    Change a request's review status.

    Args:
        db: Database session
        id: Request id
        status: New status
        **kwargs: Other fields to set (e.g. remarks)

    Returns:
        Tuple of (updated request, previous status)

    Raises:
        NotFoundError: If the request does not exist
        InvalidStatusTransitionError: If the transition is not allowed
    """
    request = await get_by_id(db, id)
    if not request:
        raise NotFoundError("Enrollment request", id)

    previous = request.status
    check_transition(request, status)

    request.status = status
    for key, value in kwargs.items():
        if hasattr(request, key):
            setattr(request, key, value)

    await db.commit()
    await db.refresh(request)

    return request, previous


async def delete_request(db: AsyncSession, request: EnrollmentRequest) -> None:
    await db.delete(request)
    await db.commit()


async def delete_many(db: AsyncSession, ids: list[int]) -> list[int]:
    """Delete the given requests; returns the ids that existed."""
    result = await db.execute(select(EnrollmentRequest.id).where(EnrollmentRequest.id.in_(ids)))
    existing = list(result.scalars().all())

    if existing:
        await db.execute(delete(EnrollmentRequest).where(EnrollmentRequest.id.in_(existing)))
        await db.commit()

    return existing


async def get_request_stats(db: AsyncSession) -> dict:
    """Counts by status and type, recent submissions and approved fee total."""
    week_ago = datetime.now(UTC) - timedelta(days=7)

    query = select(
        func.count(EnrollmentRequest.id).label("total"),
        func.count(case((EnrollmentRequest.status == RequestStatus.PENDING, 1))).label("pending"),
        func.count(case((EnrollmentRequest.status == RequestStatus.APPROVED, 1))).label(
            "approved"
        ),
        func.count(case((EnrollmentRequest.status == RequestStatus.REJECTED, 1))).label(
            "rejected"
        ),
        func.count(case((EnrollmentRequest.student_type == StudentType.REGULAR, 1))).label(
            "regular"
        ),
        func.count(case((EnrollmentRequest.student_type == StudentType.IRREGULAR, 1))).label(
            "irregular"
        ),
        func.count(case((EnrollmentRequest.payment_receipt_ref != "", 1))).label("with_receipt"),
        func.count(case((EnrollmentRequest.created_at >= week_ago, 1))).label("recent_week"),
        func.coalesce(
            func.sum(
                case(
                    (EnrollmentRequest.status == RequestStatus.APPROVED, EnrollmentRequest.total_fees),
                    else_=0,
                )
            ),
            0,
        ).label("approved_total_fees"),
        func.count(
            case(
                (
                    and_(
                        EnrollmentRequest.status == RequestStatus.APPROVED,
                        EnrollmentRequest.migration_status != MigrationStatus.MIGRATED,
                    ),
                    1,
                )
            )
        ).label("awaiting_migration"),
    )

    row = (await db.execute(query)).one()
    stats = dict(row._mapping)
    stats["approved_total_fees"] = Decimal(str(stats["approved_total_fees"] or 0)).quantize(
        Decimal("0.01")
    )
    return stats
