"""
Enrollment Schemas

Pydantic schemas for request validation and response serialization, and the
structured outcomes reported by the migration engine and duplicate cleanup.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field

from registrar.modules.curriculum.models import StudentType
from registrar.modules.enrollments.models import (
    EnrolledStatus,
    MigrationStatus,
    RequestStatus,
)

# ============================================
# Enrollment Requests
# ============================================


class SubjectSelection(BaseModel):
    """A subject picked on the enrollment form."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    code: str | None = Field(None, validation_alias=AliasChoices("code", "subject_code"))
    name: str | None = Field(None, validation_alias=AliasChoices("name", "subject_name"))
    units: int = Field(0, ge=0)
    schedule: str | None = None
    instructor: str | None = None
    room: str | None = None
    section: str | None = None


class EnrollmentRequestCreate(BaseModel):
    """
    Submitted enrollment data.

    Required fields are checked by the service so that every missing field
    is reported at once as a ValidationError.
    """

    student_id: str | None = None
    program: str | None = None
    year_level: str | None = None
    semester: str | None = None
    student_type: StudentType = StudentType.REGULAR
    subjects: list[SubjectSelection] = Field(default_factory=list)
    total_fees: Decimal | None = Field(None, ge=0)


class EnrollmentRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    student_id: str
    student_type: StudentType
    program: str
    year_level: str
    semester: str
    subjects: list[dict[str, Any]]
    total_fees: Decimal
    payment_receipt_ref: str
    status: RequestStatus
    remarks: str | None = None
    migration_status: MigrationStatus
    created_at: datetime
    updated_at: datetime


class EnrollmentRequestListResponse(BaseModel):
    requests: list[EnrollmentRequestResponse]
    total: int
    skip: int
    limit: int


class StatusUpdateRequest(BaseModel):
    status: str = Field(..., min_length=1)
    remarks: str | None = Field(None, max_length=1000)


class BulkActionRequest(BaseModel):
    """Body for POST /admin/enrollments/bulk-action."""

    action: str = Field(..., description="approve, reject or delete")
    request_ids: list[int] = Field(..., min_length=1, max_length=500)
    remarks: str | None = Field(None, max_length=1000)


class BulkItemResult(BaseModel):
    id: int
    success: bool
    status: RequestStatus | None = None
    error: str | None = None


class BulkStatusResult(BaseModel):
    results: list[BulkItemResult]
    updated_count: int
    failed_count: int


class BulkDeleteResult(BaseModel):
    deleted_count: int
    deleted_ids: list[int]
    not_found: list[int]


class RequestStats(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
    regular: int
    irregular: int
    with_receipt: int
    recent_week: int
    approved_total_fees: Decimal
    awaiting_migration: int


# ============================================
# Migration outcomes
# ============================================


class DuplicateSkipped(BaseModel):
    """A candidate deliberately not migrated because it matches an enrollment."""

    request_id: int
    student_id: str
    reason: str
    identity: dict[str, str]
    existing_enrollment_id: int | None = None


class PerCandidateError(BaseModel):
    """An unexpected failure while migrating one candidate."""

    request_id: int
    student_id: str
    error: str


class MigratedRequest(BaseModel):
    request_id: int
    enrollment_id: int
    student_id: str
    notified: bool = False


class MigrationResult(BaseModel):
    """Summary of one migrate_approved run."""

    academic_year: str
    executed_at: datetime
    total_candidates: int = 0
    migrated: list[MigratedRequest] = Field(default_factory=list)
    duplicates_prevented: list[DuplicateSkipped] = Field(default_factory=list)
    errors: list[PerCandidateError] = Field(default_factory=list)
    already_migrated: int = 0
    notifications_sent: int = 0
    notification_failures: int = 0

    @computed_field
    @property
    def migrated_count(self) -> int:
        return len(self.migrated)

    @computed_field
    @property
    def duplicates_prevented_count(self) -> int:
        return len(self.duplicates_prevented)

    @computed_field
    @property
    def error_count(self) -> int:
        return len(self.errors)

    @computed_field
    @property
    def success(self) -> bool:
        return not self.errors


class CleanupResult(BaseModel):
    """Summary of a cleanup_duplicates run."""

    removed_count: int = 0
    duplicate_groups: int = 0
    removed_ids: list[int] = Field(default_factory=list)
    kept_ids: list[int] = Field(default_factory=list)


# ============================================
# Ledger
# ============================================


class EnrolledStudentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    enrollment_request_id: int | None
    student_id: str
    student_type: StudentType
    program: str
    year_level: str
    semester: str
    subjects: list[dict[str, Any]]
    total_fees: Decimal
    enrollment_date: datetime
    academic_year: str
    status: EnrolledStatus
    created_at: datetime


class EnrolledStudentListResponse(BaseModel):
    students: list[EnrolledStudentResponse]
    total: int
    skip: int
    limit: int


class LedgerStatusUpdate(BaseModel):
    status: str = Field(..., min_length=1)


class LedgerStats(BaseModel):
    total: int
    by_status: dict[str, int]
    by_program: dict[str, int]
    by_year_level: dict[str, int]
    by_academic_year: dict[str, int]


class ScheduleEntry(BaseModel):
    """One active enrollment with curriculum-enriched subjects."""

    enrollment_id: int
    program: str
    year_level: str
    semester: str
    academic_year: str
    total_units: int
    subjects: list[dict[str, Any]]


class StudentScheduleResponse(BaseModel):
    student_id: str
    enrollments: list[ScheduleEntry]
