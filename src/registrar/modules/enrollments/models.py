"""
Enrollment Models

Enrollment requests submitted by students, and the enrolled-students ledger
that approved requests are migrated into.

The ledger may hold only one active row per
(student_id, program, year_level, semester, academic_year). A partial unique
index enforces this in the database, on top of the checks done by the
migration engine.
"""

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from registrar.core.database import Base
from registrar.modules.curriculum.models import StudentType


class RequestStatus(str, enum.Enum):
    """Review status of an enrollment request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class MigrationStatus(str, enum.Enum):
    """Progress of an approved request into the ledger."""

    NOT_MIGRATED = "not_migrated"
    MIGRATING = "migrating"
    MIGRATED = "migrated"


class EnrolledStatus(str, enum.Enum):
    """Status of a ledger row."""

    ACTIVE = "active"
    DROPPED = "dropped"
    GRADUATED = "graduated"


class EnrollmentRequest(Base):
    """
    A student's request to enroll for a term.

    student_id, program, year_level and semester are fixed once created:
    duplicate detection in the migration engine keys on them.
    """

    __tablename__ = "enrollment_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Identity (immutable after creation)
    student_id: Mapped[str] = mapped_column(String(50), nullable=False)
    program: Mapped[str] = mapped_column(String(100), nullable=False)
    year_level: Mapped[str] = mapped_column(String(30), nullable=False)
    semester: Mapped[str] = mapped_column(String(50), nullable=False)

    student_type: Mapped[StudentType] = mapped_column(
        Enum(StudentType, name="student_type"),
        nullable=False,
        default=StudentType.REGULAR,
    )

    # Subjects as submitted: [{code, name, units, schedule, instructor, room}, ...]
    subjects: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_fees: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    payment_receipt_ref: Mapped[str] = mapped_column(String(255), nullable=False)

    # Review
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="enrollment_request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Migration tracking
    migration_status: Mapped[MigrationStatus] = mapped_column(
        Enum(MigrationStatus, name="migration_status"),
        nullable=False,
        default=MigrationStatus.NOT_MIGRATED,
    )
    migration_claimed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_enrollment_requests_student_id", "student_id"),
        Index("ix_enrollment_requests_status", "status"),
        Index(
            "ix_enrollment_requests_migration_scan",
            "status",
            "migration_status",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<EnrollmentRequest(id={self.id}, student_id={self.student_id}, "
            f"status={self.status.value})>"
        )


class EnrolledStudent(Base):
    """Ledger row created by the migration engine from an approved request."""

    __tablename__ = "enrolled_students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # At most one ledger row per request
    enrollment_request_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("enrollment_requests.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )

    student_id: Mapped[str] = mapped_column(String(50), nullable=False)
    student_type: Mapped[StudentType] = mapped_column(
        Enum(StudentType, name="student_type"),
        nullable=False,
        default=StudentType.REGULAR,
    )
    program: Mapped[str] = mapped_column(String(100), nullable=False)
    year_level: Mapped[str] = mapped_column(String(30), nullable=False)
    semester: Mapped[str] = mapped_column(String(50), nullable=False)
    subjects: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    total_fees: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    enrollment_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    academic_year: Mapped[str] = mapped_column(String(9), nullable=False)
    status: Mapped[EnrolledStatus] = mapped_column(
        Enum(EnrolledStatus, name="enrolled_status"),
        nullable=False,
        default=EnrolledStatus.ACTIVE,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        # Enum columns store member names, hence 'ACTIVE'
        Index(
            "uq_enrolled_students_active_identity",
            "student_id",
            "program",
            "year_level",
            "semester",
            "academic_year",
            unique=True,
            postgresql_where=text("status = 'ACTIVE'"),
            sqlite_where=text("status = 'ACTIVE'"),
        ),
        Index("ix_enrolled_students_student_id", "student_id"),
        Index("ix_enrolled_students_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<EnrolledStudent(id={self.id}, student_id={self.student_id}, "
            f"academic_year={self.academic_year}, status={self.status.value})>"
        )
