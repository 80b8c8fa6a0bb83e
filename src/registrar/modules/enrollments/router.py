"""
Enrollments Router

Student-facing endpoints for submitting enrollment requests and viewing
their outcome.

Endpoints:
- POST /enrollments - Submit an enrollment request with a payment receipt
- GET /enrollments/student/{student_id} - Request history, newest first
- GET /enrollments/student/{student_id}/schedule - Active enrollments with schedule

Security:
- All endpoints require a valid Bearer token
- Submissions are rate limited per user
- Receipts are validated for size and type before being stored
"""

import json
import logging

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.auth import CurrentUser, get_current_user
from registrar.core.database import get_db
from registrar.core.exceptions import EnrollmentServiceError, ValidationError
from registrar.core.rate_limit import enforce_rate_limit
from registrar.core.storage import ReceiptStorage, get_receipt_storage
from registrar.modules.enrollments import ledger, service
from registrar.modules.enrollments.schemas import (
    EnrollmentRequestCreate,
    EnrollmentRequestResponse,
    ScheduleEntry,
    StudentScheduleResponse,
)
from registrar.modules.enrollments.service import ReceiptUpload

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_SUBMIT = (5, 60)  # 5 submissions per minute per user


def _handle_service_error(e: EnrollmentServiceError) -> None:
    """Convert service errors to HTTPExceptions."""
    detail = {"error": e.error_code, "message": e.message}
    if isinstance(e, ValidationError) and e.missing_fields:
        detail["missing_fields"] = e.missing_fields
    raise HTTPException(status_code=e.status_code, detail=detail) from e


def _parse_subjects(raw: str | None) -> list[dict]:
    if not raw:
        return []
    try:
        subjects = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValidationError("subjects must be a JSON array") from e
    if not isinstance(subjects, list):
        raise ValidationError("subjects must be a JSON array")
    return subjects


async def _read_receipt(upload: UploadFile | None, max_bytes: int) -> ReceiptUpload | None:
    """Read an uploaded receipt, stopping one byte past the size limit."""
    if upload is None:
        return None
    return ReceiptUpload(
        content=await upload.read(max_bytes + 1),
        filename=upload.filename or "",
        content_type=upload.content_type,
    )


@router.post(
    "",
    response_model=EnrollmentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Enrollment Request",
    description="""
Submit an enrollment request as multipart form data.

**Required:** `student_id`, `program`, `year_level`, `semester` and a
`payment_receipt` file (jpeg, jpg, png or pdf, at most 5 MB).

`subjects` is a JSON array of `{code, name, units, schedule, instructor, room}`.
When `total_fees` is omitted it is calculated from the fee schedule.
""",
)
async def submit_enrollment(
    student_id: str | None = Form(None),
    program: str | None = Form(None),
    year_level: str | None = Form(None),
    semester: str | None = Form(None),
    student_type: str = Form("regular"),
    subjects: str | None = Form(None, description="JSON array of selected subjects"),
    total_fees: str | None = Form(None),
    payment_receipt: UploadFile | None = File(None),
    db: AsyncSession = Depends(get_db),
    storage: ReceiptStorage = Depends(get_receipt_storage),
    user: CurrentUser = Depends(get_current_user),
) -> EnrollmentRequestResponse:
    await enforce_rate_limit(f"enrollments:submit:{user.id}", *RATE_LIMIT_SUBMIT)

    try:
        try:
            data = EnrollmentRequestCreate(
                student_id=student_id,
                program=program,
                year_level=year_level,
                semester=semester,
                student_type=(student_type or "regular").strip().lower(),
                subjects=_parse_subjects(subjects),
                total_fees=total_fees or None,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid enrollment data: {e.errors()[0]['msg']}") from e

        receipt = await _read_receipt(payment_receipt, storage.max_bytes)
        request = await service.submit_enrollment(db, data, receipt, storage)
        logger.info(f"User {user.id} submitted enrollment request {request.id}")
        return EnrollmentRequestResponse.model_validate(request)

    except EnrollmentServiceError as e:
        _handle_service_error(e)


@router.get(
    "/student/{student_id}",
    response_model=list[EnrollmentRequestResponse],
    summary="Get Student Enrollment History",
)
async def get_student_history(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> list[EnrollmentRequestResponse]:
    requests = await service.list_by_student(db, student_id)
    return [EnrollmentRequestResponse.model_validate(r) for r in requests]


@router.get(
    "/student/{student_id}/schedule",
    response_model=StudentScheduleResponse,
    summary="Get Student Schedule",
)
async def get_student_schedule(
    student_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
) -> StudentScheduleResponse:
    """Active enrollments with instructor, room and schedule filled in from the curriculum."""
    entries = await ledger.get_student_schedule(db, student_id)
    return StudentScheduleResponse(
        student_id=student_id,
        enrollments=[ScheduleEntry(**entry) for entry in entries],
    )
