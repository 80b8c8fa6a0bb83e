"""
Enrollment Migration Engine

Moves approved enrollment requests into the enrolled-students ledger.

Design Principles:
- Idempotent: a request that already has a ledger row is never migrated again
- At most one active ledger row per
  (student_id, program, year_level, semester, academic_year)
- Each candidate is handled in its own database session, so one failure
  never affects the others
- Candidates are processed oldest first and each is committed before the
  next is screened, so the earliest of several matching requests wins
- Notifications are sent after the ledger row is committed and can never
  undo or fail a migration

Per candidate:
1. Skip if a ledger row already references the request
2. Skip if an active ledger row has the same identity tuple
3. Skip if an active ledger row matches a variant of the student id
4. Claim the request with a conditional UPDATE (MIGRATING)
5. Insert the ledger row and mark the request MIGRATED in one commit
6. Notify the student ("enrolled")

A violation of the ledger's partial unique index is reported as a
prevented duplicate, not an error.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from registrar.core.config import settings
from registrar.core.database import async_session_maker
from registrar.core.exceptions import FatalBatchError
from registrar.modules.curriculum.models import StudentType
from registrar.modules.enrollments import ledger_repository
from registrar.modules.enrollments.helpers import academic_year_for, semester_label
from registrar.modules.enrollments.models import EnrollmentRequest, MigrationStatus
from registrar.modules.enrollments.schemas import (
    CleanupResult,
    DuplicateSkipped,
    MigratedRequest,
    MigrationResult,
    PerCandidateError,
)
from registrar.modules.enrollments.student_id_policy import (
    StudentIdVariantPolicy,
    dash_prefix_variant,
)
from registrar.modules.notifications.dispatcher import EnrollmentStage, NotificationDispatcher
from registrar.modules.notifications.identity import resolve_notifiable_user_id

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]

REASON_STORAGE_CONSTRAINT = "Blocked by storage uniqueness constraint"


@dataclass(frozen=True)
class MigrationCandidate:
    """Detached copy of an approved request, safe to use across sessions."""

    id: int
    student_id: str
    student_type: StudentType
    program: str
    year_level: str
    semester: str
    subjects: list[dict[str, Any]] = field(hash=False)
    total_fees: Decimal
    created_at: datetime
    migration_status: MigrationStatus

    @classmethod
    def from_model(cls, request: EnrollmentRequest) -> "MigrationCandidate":
        return cls(
            id=request.id,
            student_id=request.student_id,
            student_type=request.student_type or StudentType.REGULAR,
            program=request.program,
            year_level=request.year_level,
            semester=request.semester,
            subjects=list(request.subjects or []),
            total_fees=request.total_fees if request.total_fees is not None else Decimal("0.00"),
            created_at=request.created_at,
            migration_status=request.migration_status,
        )

    def identity(self, academic_year: str) -> dict[str, str]:
        return {
            "student_id": self.student_id,
            "program": self.program,
            "year_level": self.year_level,
            "semester": self.semester,
            "academic_year": academic_year,
        }


@dataclass
class _RunContext:
    result: MigrationResult
    now: datetime
    stale_claim_before: datetime
    dispatcher: NotificationDispatcher
    variant_policy: StudentIdVariantPolicy


async def _find_duplicate(
    db: AsyncSession, candidate: MigrationCandidate, ctx: _RunContext
) -> DuplicateSkipped | None:
    academic_year = ctx.result.academic_year
    identity = candidate.identity(academic_year)

    existing = await ledger_repository.find_active_enrollment(db, **identity)
    if existing:
        return DuplicateSkipped(
            request_id=candidate.id,
            student_id=candidate.student_id,
            reason=(
                f"Student already enrolled in {candidate.program} {candidate.year_level} "
                f"{candidate.semester} {academic_year}"
            ),
            identity=identity,
            existing_enrollment_id=existing.id,
        )

    match = ctx.variant_policy(candidate.student_id)
    if match is None:
        return None

    variant = await ledger_repository.find_active_variant_enrollment(
        db,
        base_student_id=match.base,
        program=candidate.program,
        year_level=candidate.year_level,
        semester=candidate.semester,
        academic_year=academic_year,
    )
    if variant:
        return DuplicateSkipped(
            request_id=candidate.id,
            student_id=candidate.student_id,
            reason=match.reason,
            identity=identity,
            existing_enrollment_id=variant.id,
        )
    return None


async def _notify_enrolled(
    db: AsyncSession, candidate: MigrationCandidate, ctx: _RunContext
) -> bool:
    """Send the "enrolled" notification; failures are counted, never raised."""
    try:
        user_id = await resolve_notifiable_user_id(db, candidate.student_id)
        if user_id is None:
            logger.info(f"No notifiable user for student {candidate.student_id}")
            return False

        await ctx.dispatcher.notify_enrollment(
            db,
            user_id=user_id,
            stage=EnrollmentStage.ENROLLED,
            program=candidate.program,
            semester_label=semester_label(candidate.semester, ctx.result.academic_year),
            request_id=candidate.id,
        )
        ctx.result.notifications_sent += 1
        return True
    except Exception as e:
        ctx.result.notification_failures += 1
        logger.error(
            f"Enrollment notification failed for request {candidate.id}: {e}",
            exc_info=True,
        )
        await db.rollback()
        return False


async def _migrate_candidate(
    session_factory: SessionFactory, candidate: MigrationCandidate, ctx: _RunContext
) -> None:
    result = ctx.result

    async with session_factory() as db:
        if await ledger_repository.has_ledger_entry_for_request(db, candidate.id):
            logger.info(f"Request {candidate.id} already migrated, skipping")
            result.already_migrated += 1
            return

        duplicate = await _find_duplicate(db, candidate, ctx)
        if duplicate:
            logger.warning(
                f"Duplicate prevented for request {candidate.id} "
                f"(student {candidate.student_id}): {duplicate.reason}"
            )
            result.duplicates_prevented.append(duplicate)
            return

        claimed = await ledger_repository.claim_for_migration(
            db,
            candidate.id,
            seen_status=candidate.migration_status,
            claimed_at=ctx.now,
            stale_claim_before=ctx.stale_claim_before,
        )
        if not claimed:
            await db.rollback()
            logger.info(f"Request {candidate.id} claimed by another run, skipping")
            result.already_migrated += 1
            return
        await db.commit()

        try:
            enrolled = await ledger_repository.create_enrolled_student(
                db,
                enrollment_request_id=candidate.id,
                student_id=candidate.student_id,
                student_type=candidate.student_type,
                program=candidate.program,
                year_level=candidate.year_level,
                semester=candidate.semester,
                subjects=candidate.subjects,
                total_fees=candidate.total_fees,
                enrollment_date=candidate.created_at,
                academic_year=result.academic_year,
            )
            await ledger_repository.mark_migrated(db, candidate.id)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            await ledger_repository.release_migration_claim(db, candidate.id)
            logger.warning(f"Ledger constraint blocked request {candidate.id}: {e.orig}")
            result.duplicates_prevented.append(
                DuplicateSkipped(
                    request_id=candidate.id,
                    student_id=candidate.student_id,
                    reason=REASON_STORAGE_CONSTRAINT,
                    identity=candidate.identity(result.academic_year),
                )
            )
            return
        except Exception as e:
            await db.rollback()
            await ledger_repository.release_migration_claim(db, candidate.id)
            logger.error(f"Error migrating request {candidate.id}: {e}", exc_info=True)
            result.errors.append(
                PerCandidateError(
                    request_id=candidate.id,
                    student_id=candidate.student_id,
                    error=str(e),
                )
            )
            return

        enrollment_id = enrolled.id
        logger.info(
            f"Migrated request {candidate.id} -> enrollment {enrollment_id} "
            f"(student {candidate.student_id}, {result.academic_year})"
        )

        notified = await _notify_enrolled(db, candidate, ctx)
        result.migrated.append(
            MigratedRequest(
                request_id=candidate.id,
                enrollment_id=enrollment_id,
                student_id=candidate.student_id,
                notified=notified,
            )
        )


async def migrate_approved(
    *,
    session_factory: SessionFactory | None = None,
    dispatcher: NotificationDispatcher | None = None,
    variant_policy: StudentIdVariantPolicy = dash_prefix_variant,
    window_days: int | None = None,
    now: datetime | None = None,
) -> MigrationResult:
    """
    Migrate approved enrollment requests into the ledger.

    Safe to run repeatedly and concurrently: already migrated requests are
    skipped and each request is claimed before it is inserted.

    Args:
        session_factory: Callable returning a new AsyncSession
        dispatcher: Notification dispatcher for "enrolled" notifications
        variant_policy: Decides which other student ids count as the same student
        window_days: Only requests created within this many days (default from settings)
        now: Reference time; also determines the academic year

    Returns:
        MigrationResult with per-candidate outcomes and counts

    Raises:
        FatalBatchError: If the candidate set cannot be loaded
    """
    session_factory = session_factory or async_session_maker
    now = now or datetime.now(UTC)
    window_days = settings.migration_window_days if window_days is None else window_days

    ctx = _RunContext(
        result=MigrationResult(academic_year=academic_year_for(now), executed_at=now),
        now=now,
        stale_claim_before=now - timedelta(minutes=settings.migration_claim_timeout_minutes),
        dispatcher=dispatcher or NotificationDispatcher(),
        variant_policy=variant_policy,
    )
    result = ctx.result

    logger.info(
        f"Starting enrollment migration for {result.academic_year} "
        f"(window: {window_days} days)"
    )

    try:
        async with session_factory() as db:
            requests = await ledger_repository.get_migration_candidates(
                db,
                created_after=now - timedelta(days=window_days),
                stale_claim_before=ctx.stale_claim_before,
            )
            candidates = [MigrationCandidate.from_model(r) for r in requests]
    except Exception as e:
        logger.error(f"Could not load migration candidates: {e}", exc_info=True)
        raise FatalBatchError(f"Could not load migration candidates: {e}") from e

    result.total_candidates = len(candidates)
    logger.info(f"Found {len(candidates)} approved requests to migrate")

    for candidate in candidates:
        try:
            await _migrate_candidate(session_factory, candidate, ctx)
        except Exception as e:
            logger.error(f"Error processing request {candidate.id}: {e}", exc_info=True)
            result.errors.append(
                PerCandidateError(
                    request_id=candidate.id,
                    student_id=candidate.student_id,
                    error=str(e),
                )
            )

    logger.info(
        f"Enrollment migration completed. Migrated: {result.migrated_count}, "
        f"Duplicates prevented: {result.duplicates_prevented_count}, "
        f"Already migrated: {result.already_migrated}, Errors: {result.error_count}"
    )
    return result


async def cleanup_duplicates(*, session_factory: SessionFactory | None = None) -> CleanupResult:
    """
    Remove duplicate active ledger rows, keeping the oldest (lowest id) per identity.

    Running it again after a successful run removes nothing.

    Raises:
        FatalBatchError: If the cleanup transaction fails
    """
    session_factory = session_factory or async_session_maker
    result = CleanupResult()

    async with session_factory() as db:
        try:
            groups = await ledger_repository.get_duplicate_groups(db)
            for identity, ids in groups:
                keep, *remove = ids
                result.kept_ids.append(keep)
                result.removed_ids.extend(remove)
                logger.info(f"Duplicate group {identity}: keeping {keep}, removing {remove}")

            result.duplicate_groups = len(groups)
            result.removed_count = await ledger_repository.delete_enrolled_students(
                db, result.removed_ids
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Duplicate cleanup failed: {e}", exc_info=True)
            raise FatalBatchError(f"Duplicate cleanup failed: {e}") from e

    logger.info(
        f"Duplicate cleanup completed. Groups: {result.duplicate_groups}, "
        f"Removed: {result.removed_count}"
    )
    return result
