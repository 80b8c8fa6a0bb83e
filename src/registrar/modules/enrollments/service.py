"""
Enrollment Request Service Layer

Business logic for enrollment requests.
Orchestrates repository operations, receipt storage, fee calculation and
lifecycle notifications.

This module implements:
1. Submission:
   - Validate that student id, program, year level, semester and a payment
     receipt are all present (every missing field reported at once)
   - Store the receipt through the storage collaborator
   - Canonicalize program and year level, compute fees when not supplied
   - Create the request as pending

2. Review:
   - Status changes follow the review state machine in the repository
   - Approval and rejection notify the student after the change is committed
   - Approval never migrates; that is the migration engine's job

3. Administration:
   - Listing, statistics, deletion and bulk actions with per-id results

Notification failures are logged and never fail the operation that caused
them.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.exceptions import (
    EnrollmentServiceError,
    InvalidStatusError,
    NotFoundError,
    ReceiptValidationError,
    ValidationError,
)
from registrar.core.storage import ReceiptStorage, StorageValidationError
from registrar.modules.curriculum.fees import calculate_fees, parse_student_type
from registrar.modules.curriculum.normalization import canonical_year_level, normalize_program
from registrar.modules.enrollments import repository
from registrar.modules.enrollments.helpers import (
    academic_year_for,
    semester_label,
    subject_units_total,
)
from registrar.modules.enrollments.models import EnrollmentRequest, RequestStatus
from registrar.modules.enrollments.schemas import (
    BulkDeleteResult,
    BulkItemResult,
    BulkStatusResult,
    EnrollmentRequestCreate,
    RequestStats,
)
from registrar.modules.notifications.dispatcher import EnrollmentStage, NotificationDispatcher
from registrar.modules.notifications.identity import resolve_notifiable_user_id

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("student_id", "program", "year_level", "semester")
ALLOWED_STATUSES = [s.value for s in RequestStatus]

_NOTIFY_ON_STATUS = {
    RequestStatus.APPROVED: EnrollmentStage.APPROVED,
    RequestStatus.REJECTED: EnrollmentStage.REJECTED,
}


@dataclass
class ReceiptUpload:
    """Uploaded receipt file as received from the client."""

    content: bytes
    filename: str
    content_type: str | None = None


def _missing_fields(data: EnrollmentRequestCreate) -> list[str]:
    missing = []
    for name in REQUIRED_FIELDS:
        value = getattr(data, name)
        if value is None or not str(value).strip():
            missing.append(name)
    return missing


def _raise_if_missing(missing: list[str]) -> None:
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )


def parse_request_status(value: RequestStatus | str) -> RequestStatus:
    """
    Raises:
        InvalidStatusError: If value is not pending, approved or rejected
    """
    if isinstance(value, RequestStatus):
        return value
    try:
        return RequestStatus(str(value).strip().lower())
    except ValueError as e:
        raise InvalidStatusError(str(value), ALLOWED_STATUSES) from e


# ============================================
# Submission
# ============================================


async def create_request(
    db: AsyncSession,
    data: EnrollmentRequestCreate,
    payment_receipt_ref: str | None,
) -> EnrollmentRequest:
    """
    Create a pending enrollment request.

    Args:
        db: Database session
        data: Submitted enrollment data
        payment_receipt_ref: Reference of the already stored receipt

    Returns:
        The created EnrollmentRequest

    Raises:
        ValidationError: If required fields or the receipt reference are missing
    """
    missing = _missing_fields(data)
    if not payment_receipt_ref or not payment_receipt_ref.strip():
        missing.append("payment_receipt")
    _raise_if_missing(missing)

    student_type = parse_student_type(data.student_type)
    program = normalize_program(data.program)
    year_level = canonical_year_level(data.year_level)
    semester = data.semester.strip()
    subjects = [subject.model_dump(exclude_none=True) for subject in data.subjects]

    total_fees = data.total_fees
    if total_fees is None:
        breakdown = await calculate_fees(
            db,
            program,
            year_level,
            semester,
            student_type,
            units_override=subject_units_total(subjects) or None,
        )
        total_fees = breakdown.total

    request = await repository.create(
        db,
        student_id=data.student_id.strip(),
        program=program,
        year_level=year_level,
        semester=semester,
        student_type=student_type,
        subjects=subjects,
        total_fees=Decimal(total_fees),
        payment_receipt_ref=payment_receipt_ref.strip(),
    )

    logger.info(
        f"Enrollment request {request.id} created for student {request.student_id} "
        f"({request.program} {request.year_level} {request.semester})"
    )
    return request


async def submit_enrollment(
    db: AsyncSession,
    data: EnrollmentRequestCreate,
    receipt: ReceiptUpload | None,
    storage: ReceiptStorage,
) -> EnrollmentRequest:
    """
    Validate a submission, store its receipt, then create the request.

    Fields are validated before the receipt is written, and the stored
    receipt is removed again if the request cannot be created, so a failed
    submission leaves no file behind.

    Raises:
        ValidationError: Missing fields or receipt
        ReceiptValidationError: Receipt too large, empty or of a disallowed type
    """
    missing = _missing_fields(data)
    if receipt is None or not receipt.content:
        missing.append("payment_receipt")
    _raise_if_missing(missing)
    parse_student_type(data.student_type)

    try:
        receipt_ref = await storage.store_receipt(
            receipt.content, receipt.filename, receipt.content_type
        )
    except StorageValidationError as e:
        raise ReceiptValidationError(str(e)) from e

    try:
        return await create_request(db, data, receipt_ref)
    except Exception:
        try:
            await storage.delete_receipt(receipt_ref)
        except OSError as e:
            logger.warning(f"Could not remove orphaned receipt {receipt_ref}: {e}")
        raise


# ============================================
# Queries
# ============================================


async def get_request(db: AsyncSession, request_id: int) -> EnrollmentRequest:
    """
    Raises:
        NotFoundError: If the request does not exist
    """
    request = await repository.get_by_id(db, request_id)
    if not request:
        raise NotFoundError("Enrollment request", request_id)
    return request


async def list_by_student(db: AsyncSession, student_id: str) -> list[EnrollmentRequest]:
    return await repository.list_by_student(db, student_id.strip())


async def list_requests(
    db: AsyncSession,
    *,
    status: str | None = None,
    student_type: str | None = None,
    search: str | None = None,
    skip: int = 0,
    limit: int = 50,
) -> tuple[list[EnrollmentRequest], int]:
    """
    Raises:
        InvalidStatusError: For an unknown status filter
        ValidationError: For an unknown student type filter
    """
    return await repository.list_requests(
        db,
        status=parse_request_status(status) if status else None,
        student_type=parse_student_type(student_type) if student_type else None,
        search=search.strip() if search and search.strip() else None,
        skip=skip,
        limit=limit,
    )


async def get_request_stats(db: AsyncSession) -> RequestStats:
    return RequestStats(**await repository.get_request_stats(db))


# ============================================
# Review
# ============================================


async def _notify_status_change(
    db: AsyncSession,
    dispatcher: NotificationDispatcher,
    request: EnrollmentRequest,
    stage: EnrollmentStage,
) -> bool:
    """Notify the student about a review decision; returns whether a notification was stored."""
    request_id = request.id
    student_id = request.student_id
    try:
        user_id = await resolve_notifiable_user_id(db, student_id)
        if user_id is None:
            logger.info(f"No notifiable user for student {student_id}, skipping {stage.value}")
            return False

        await dispatcher.notify_enrollment(
            db,
            user_id=user_id,
            stage=stage,
            program=request.program,
            semester_label=semester_label(
                request.semester, academic_year_for(datetime.now(UTC))
            ),
            request_id=request_id,
        )
        return True
    except Exception as e:
        logger.error(
            f"Failed to send {stage.value} notification for request {request_id}: {e}",
            exc_info=True,
        )
        await db.rollback()
        await db.refresh(request)
        return False


async def update_status(
    db: AsyncSession,
    request_id: int,
    status: RequestStatus | str,
    remarks: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> EnrollmentRequest:
    """
    Change the review status of a request.

    Args:
        db: Database session
        request_id: Request to update
        status: pending, approved or rejected
        remarks: Reviewer remarks; kept unchanged when None
        dispatcher: Notification dispatcher (defaults to store-only delivery)

    Returns:
        The updated request

    Raises:
        InvalidStatusError: Unknown status
        InvalidStatusTransitionError: Transition not allowed from the current status
        NotFoundError: Request does not exist
    """
    new_status = parse_request_status(status)

    changes = {}
    if remarks is not None:
        changes["remarks"] = remarks

    request, previous = await repository.update_status(db, request_id, new_status, **changes)

    logger.info(
        f"Enrollment request {request.id} status {previous.value} -> {new_status.value}"
    )

    stage = _NOTIFY_ON_STATUS.get(new_status)
    if stage is not None and previous != new_status:
        await _notify_status_change(db, dispatcher or NotificationDispatcher(), request, stage)

    return request


async def delete_request(db: AsyncSession, request_id: int) -> None:
    """
    Raises:
        NotFoundError: If the request does not exist
    """
    request = await get_request(db, request_id)
    await repository.delete_request(db, request)
    logger.info(f"Enrollment request {request_id} deleted")


async def bulk_update_status(
    db: AsyncSession,
    request_ids: list[int],
    status: RequestStatus | str,
    remarks: str | None = None,
    dispatcher: NotificationDispatcher | None = None,
) -> BulkStatusResult:
    """
    Apply one status to many requests, reporting each id separately.

    Raises:
        InvalidStatusError: Unknown status (checked once, before any update)
    """
    new_status = parse_request_status(status)
    dispatcher = dispatcher or NotificationDispatcher()

    results: list[BulkItemResult] = []
    for request_id in dict.fromkeys(request_ids):
        try:
            request = await update_status(db, request_id, new_status, remarks, dispatcher)
            results.append(BulkItemResult(id=request_id, success=True, status=request.status))
        except EnrollmentServiceError as e:
            results.append(BulkItemResult(id=request_id, success=False, error=e.message))

    updated = sum(1 for r in results if r.success)
    logger.info(
        f"Bulk status {new_status.value}: {updated} updated, {len(results) - updated} failed"
    )
    return BulkStatusResult(
        results=results,
        updated_count=updated,
        failed_count=len(results) - updated,
    )


async def bulk_delete(db: AsyncSession, request_ids: list[int]) -> BulkDeleteResult:
    unique_ids = list(dict.fromkeys(request_ids))
    deleted = await repository.delete_many(db, unique_ids)
    deleted_set = set(deleted)
    not_found = [request_id for request_id in unique_ids if request_id not in deleted_set]

    logger.info(f"Bulk delete: {len(deleted)} deleted, {len(not_found)} not found")
    return BulkDeleteResult(
        deleted_count=len(deleted),
        deleted_ids=sorted(deleted),
        not_found=not_found,
    )
