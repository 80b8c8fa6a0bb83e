"""
Enrollments Admin Router

API endpoints for registrar and faculty staff.
All endpoints require a staff role (registrar, faculty or admin).

Endpoints:
- GET /admin/enrollments - List requests with filters and pagination
- GET /admin/enrollments/stats - Request statistics
- GET /admin/enrollments/{id} - Request details
- PATCH /admin/enrollments/{id}/status - Approve, reject or reset a request
- DELETE /admin/enrollments/{id} - Delete a request
- POST /admin/enrollments/bulk-action - Approve, reject or delete many requests
- POST /admin/enrollments/migrate-approved - Migrate approved requests to the ledger
- POST /admin/enrollments/cleanup-duplicates - Remove duplicate ledger rows
- GET /admin/enrolled-students - Search the ledger
- GET /admin/enrolled-students/stats - Ledger statistics
- PATCH /admin/enrolled-students/{id}/status - Change a ledger row's status

Security:
- All endpoints require a valid JWT with a staff role
- Rate limiting on mutating endpoints
- Audit logging for all admin actions
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.auth import CurrentUser, get_current_staff_user
from registrar.core.database import get_db
from registrar.core.exceptions import EnrollmentServiceError, FatalBatchError, ValidationError
from registrar.core.rate_limit import enforce_rate_limit
from registrar.modules.enrollments import ledger, migration, service
from registrar.modules.enrollments.models import RequestStatus
from registrar.modules.enrollments.schemas import (
    BulkActionRequest,
    BulkDeleteResult,
    BulkStatusResult,
    CleanupResult,
    EnrolledStudentListResponse,
    EnrolledStudentResponse,
    EnrollmentRequestListResponse,
    EnrollmentRequestResponse,
    LedgerStats,
    LedgerStatusUpdate,
    MigrationResult,
    RequestStats,
    StatusUpdateRequest,
)
from registrar.modules.notifications.dispatcher import NotificationDispatcher
from registrar.modules.notifications.router import get_notification_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter()
enrolled_router = APIRouter()


# ============================================
# Rate Limiting Configuration
# ============================================

RATE_LIMIT_STATUS = (60, 60)  # 60 status changes per minute
RATE_LIMIT_BULK = (10, 60)  # 10 bulk actions per minute
RATE_LIMIT_MIGRATE = (5, 60)  # 5 migration runs per minute
RATE_LIMIT_CLEANUP = (5, 60)  # 5 cleanup runs per minute

BULK_ACTIONS = {
    "approve": RequestStatus.APPROVED,
    "reject": RequestStatus.REJECTED,
}


async def _check_staff_rate_limit(staff: CurrentUser, action: str, limit: int, window: int) -> None:
    await enforce_rate_limit(f"admin:{action}:{staff.id}", limit, window)


# ============================================
# Helper Functions
# ============================================


def _handle_service_error(e: EnrollmentServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    detail = {"error": e.error_code, "message": e.message}
    if isinstance(e, ValidationError) and e.missing_fields:
        detail["missing_fields"] = e.missing_fields
    raise HTTPException(status_code=e.status_code, detail=detail) from e


def _internal_error(e: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred.",
        },
    )


# ============================================
# Enrollment Requests
# ============================================


@router.get(
    "",
    response_model=EnrollmentRequestListResponse,
    summary="List Enrollment Requests",
    description="""
Paginated list of enrollment requests, newest first.

**Filters:**
- `status`: pending, approved or rejected
- `student_type`: regular or irregular
- `search`: Matches student id or program
""",
)
async def list_requests(
    status_filter: str | None = Query(None, alias="status"),
    student_type: str | None = Query(None),
    search: str | None = Query(None, min_length=1, max_length=100),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> EnrollmentRequestListResponse:
    try:
        requests, total = await service.list_requests(
            db,
            status=status_filter,
            student_type=student_type,
            search=search,
            skip=skip,
            limit=limit,
        )
        logger.info(f"Staff {staff.id} listed enrollment requests: total={total}")
        return EnrollmentRequestListResponse(
            requests=[EnrollmentRequestResponse.model_validate(r) for r in requests],
            total=total,
            skip=skip,
            limit=limit,
        )
    except EnrollmentServiceError as e:
        _handle_service_error(e)


@router.get("/stats", response_model=RequestStats, summary="Get Request Statistics")
async def get_stats(
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> RequestStats:
    return await service.get_request_stats(db)


@router.post(
    "/migrate-approved",
    response_model=MigrationResult,
    summary="Migrate Approved Requests",
    description="""
Copy every approved, not yet migrated request into the enrolled-students
ledger. Duplicates are skipped and reported, never inserted.

Safe to run repeatedly; a second run migrates nothing new.
""",
)
async def migrate_approved(
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> MigrationResult:
    await _check_staff_rate_limit(staff, "migrate", *RATE_LIMIT_MIGRATE)

    try:
        result = await migration.migrate_approved(dispatcher=dispatcher)
    except FatalBatchError as e:
        _handle_service_error(e)

    logger.info(
        f"Staff {staff.id} ran migration: migrated={result.migrated_count}, "
        f"duplicates={result.duplicates_prevented_count}, errors={result.error_count}"
    )
    return result


@router.post(
    "/cleanup-duplicates",
    response_model=CleanupResult,
    summary="Remove Duplicate Enrollments",
)
async def cleanup_duplicates(
    staff: CurrentUser = Depends(get_current_staff_user),
) -> CleanupResult:
    """Keep the oldest active ledger row per identity and delete the rest."""
    await _check_staff_rate_limit(staff, "cleanup", *RATE_LIMIT_CLEANUP)

    try:
        result = await migration.cleanup_duplicates()
    except FatalBatchError as e:
        _handle_service_error(e)

    logger.info(f"Staff {staff.id} removed {result.removed_count} duplicate enrollments")
    return result


@router.post(
    "/bulk-action",
    response_model=BulkStatusResult | BulkDeleteResult,
    summary="Bulk Approve, Reject or Delete",
)
async def bulk_action(
    body: BulkActionRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> BulkStatusResult | BulkDeleteResult:
    await _check_staff_rate_limit(staff, "bulk", *RATE_LIMIT_BULK)

    action = body.action.strip().lower()
    try:
        if action == "delete":
            result = await service.bulk_delete(db, body.request_ids)
        elif action in BULK_ACTIONS:
            result = await service.bulk_update_status(
                db, body.request_ids, BULK_ACTIONS[action], body.remarks, dispatcher
            )
        else:
            raise ValidationError(
                f"Invalid action '{body.action}'. Allowed values: approve, reject, delete"
            )
    except EnrollmentServiceError as e:
        _handle_service_error(e)

    logger.info(f"Staff {staff.id} ran bulk {action} on {len(body.request_ids)} requests")
    return result


@router.get(
    "/{request_id}",
    response_model=EnrollmentRequestResponse,
    summary="Get Enrollment Request",
)
async def get_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> EnrollmentRequestResponse:
    try:
        request = await service.get_request(db, request_id)
        return EnrollmentRequestResponse.model_validate(request)
    except EnrollmentServiceError as e:
        _handle_service_error(e)


@router.patch(
    "/{request_id}/status",
    response_model=EnrollmentRequestResponse,
    summary="Update Request Status",
    description="""
Set a request to `pending`, `approved` or `rejected`.

Approving does not enroll the student; run the migration for that.
Rejected requests and requests already migrated cannot change status.
""",
)
async def update_status(
    request_id: int,
    body: StatusUpdateRequest,
    db: AsyncSession = Depends(get_db),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> EnrollmentRequestResponse:
    await _check_staff_rate_limit(staff, "status", *RATE_LIMIT_STATUS)

    try:
        request = await service.update_status(
            db, request_id, body.status, body.remarks, dispatcher
        )
        logger.info(f"Staff {staff.id} set request {request_id} to {request.status.value}")
        return EnrollmentRequestResponse.model_validate(request)
    except EnrollmentServiceError as e:
        _handle_service_error(e)
    except Exception as e:
        logger.exception(f"Error updating request {request_id}: {e}")
        raise _internal_error(e) from e


@router.delete(
    "/{request_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Enrollment Request",
)
async def delete_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> None:
    try:
        await service.delete_request(db, request_id)
        logger.info(f"Staff {staff.id} deleted request {request_id}")
    except EnrollmentServiceError as e:
        _handle_service_error(e)


# ============================================
# Enrolled Students Ledger
# ============================================


@enrolled_router.get(
    "",
    response_model=EnrolledStudentListResponse,
    summary="List Enrolled Students",
)
async def list_enrolled_students(
    status_filter: str | None = Query(None, alias="status"),
    program: str | None = Query(None),
    year_level: str | None = Query(None),
    semester: str | None = Query(None),
    academic_year: str | None = Query(None, pattern=r"^\d{4}-\d{4}$"),
    search: str | None = Query(None, min_length=1, max_length=100),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> EnrolledStudentListResponse:
    try:
        students, total = await ledger.list_enrolled_students(
            db,
            status=status_filter,
            program=program,
            year_level=year_level,
            semester=semester,
            academic_year=academic_year,
            search=search,
            skip=skip,
            limit=limit,
        )
        return EnrolledStudentListResponse(
            students=[EnrolledStudentResponse.model_validate(s) for s in students],
            total=total,
            skip=skip,
            limit=limit,
        )
    except EnrollmentServiceError as e:
        _handle_service_error(e)


@enrolled_router.get("/stats", response_model=LedgerStats, summary="Get Ledger Statistics")
async def get_ledger_stats(
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> LedgerStats:
    return await ledger.get_ledger_stats(db)


@enrolled_router.patch(
    "/{enrollment_id}/status",
    response_model=EnrolledStudentResponse,
    summary="Update Enrolled Student Status",
)
async def update_enrolled_status(
    enrollment_id: int,
    body: LedgerStatusUpdate,
    db: AsyncSession = Depends(get_db),
    staff: CurrentUser = Depends(get_current_staff_user),
) -> EnrolledStudentResponse:
    """Set a ledger row to active, dropped or graduated."""
    await _check_staff_rate_limit(staff, "ledger-status", *RATE_LIMIT_STATUS)

    try:
        enrolled = await ledger.update_enrolled_status(db, enrollment_id, body.status)
        logger.info(
            f"Staff {staff.id} set enrolled student {enrollment_id} to {enrolled.status.value}"
        )
        return EnrolledStudentResponse.model_validate(enrolled)
    except EnrollmentServiceError as e:
        _handle_service_error(e)
