"""
Tests for the enrollment migration engine.

These tests cover:
- Migrating approved requests into the ledger
- Duplicate prevention (same identity, student id variants, storage constraint)
- Oldest-first ordering when requests collide
- Idempotence and exactly-once migration per request
- Claims, stale claims and the recency window
- Notification and per-candidate failure isolation
"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from registrar.core.exceptions import FatalBatchError
from registrar.modules.enrollments import ledger_repository
from registrar.modules.enrollments.migration import (
    REASON_STORAGE_CONSTRAINT,
    migrate_approved,
)
from registrar.modules.enrollments.models import (
    EnrolledStatus,
    EnrolledStudent,
    EnrollmentRequest,
    MigrationStatus,
    RequestStatus,
)
from registrar.modules.enrollments.student_id_policy import no_variants
from registrar.modules.notifications.dispatcher import NotificationDispatcher
from registrar.modules.notifications.models import Notification
from registrar.modules.students.repository import StudentProfileRepository
from registrar.modules.users.repository import UserRepository


async def _ledger_rows(session_factory) -> list[EnrolledStudent]:
    async with session_factory() as db:
        result = await db.execute(select(EnrolledStudent).order_by(EnrolledStudent.id))
        return list(result.scalars().all())


async def _request(session_factory, request_id: int) -> EnrollmentRequest:
    async with session_factory() as db:
        return await db.get(EnrollmentRequest, request_id)


def _academic_year(now) -> str:
    return f"{now.year}-{now.year + 1}"


class TestMigrateApproved:
    """Core migration behaviour."""

    @pytest.mark.asyncio
    async def test_migrates_approved_request(self, session_factory, make_request, now):
        """An approved request becomes one active ledger row for the current academic year."""
        request = await make_request("2021-0001")

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.success
        assert result.total_candidates == 1
        assert result.migrated_count == 1
        assert result.duplicates_prevented_count == 0
        assert result.academic_year == _academic_year(now)

        rows = await _ledger_rows(session_factory)
        assert len(rows) == 1
        enrolled = rows[0]
        assert result.migrated[0].request_id == request.id
        assert result.migrated[0].enrollment_id == enrolled.id
        assert enrolled.enrollment_request_id == request.id
        assert enrolled.student_id == "2021-0001"
        assert enrolled.academic_year == _academic_year(now)
        assert enrolled.status == EnrolledStatus.ACTIVE
        assert enrolled.subjects == request.subjects
        assert enrolled.total_fees == request.total_fees
        # Enrollment date is the submission time, not the migration time
        assert enrolled.enrollment_date.replace(tzinfo=None) == request.created_at.replace(
            tzinfo=None
        )

        refreshed = await _request(session_factory, request.id)
        assert refreshed.migration_status == MigrationStatus.MIGRATED

    @pytest.mark.asyncio
    async def test_only_approved_requests_are_candidates(self, session_factory, make_request, now):
        await make_request("2021001", status=RequestStatus.PENDING)
        await make_request("2022002", status=RequestStatus.REJECTED)

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.total_candidates == 0
        assert await _ledger_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_requests_outside_window_are_ignored(self, session_factory, make_request, now):
        await make_request("2021001", created_at=now - timedelta(days=120))

        result = await migrate_approved(session_factory=session_factory, now=now, window_days=90)

        assert result.total_candidates == 0

    @pytest.mark.asyncio
    async def test_resubmitted_request_is_prevented(self, session_factory, make_request, now):
        """A second approved request for an enrolled identity is skipped with a reason."""
        await make_request("2021-0001")
        first = await migrate_approved(session_factory=session_factory, now=now)
        existing_id = first.migrated[0].enrollment_id

        second_request = await make_request("2021-0001")
        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 0
        assert result.duplicates_prevented_count == 1
        skipped = result.duplicates_prevented[0]
        assert skipped.request_id == second_request.id
        assert skipped.existing_enrollment_id == existing_id
        assert skipped.reason == (
            f"Student already enrolled in BSIT 1st Year 1st Term {_academic_year(now)}"
        )
        assert skipped.identity == {
            "student_id": "2021-0001",
            "program": "BSIT",
            "year_level": "1st Year",
            "semester": "1st Term",
            "academic_year": _academic_year(now),
        }
        assert len(await _ledger_rows(session_factory)) == 1

    @pytest.mark.asyncio
    async def test_student_id_variant_is_prevented(self, session_factory, make_request, now):
        await make_request("2021-0001")
        await migrate_approved(session_factory=session_factory, now=now)

        await make_request("2021-0001-A")
        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 0
        assert result.duplicates_prevented[0].reason == "Student ID variant already enrolled"
        assert len(await _ledger_rows(session_factory)) == 1

    @pytest.mark.asyncio
    async def test_variant_policy_can_be_disabled(self, session_factory, make_request, now):
        await make_request("2021-0001")
        await migrate_approved(session_factory=session_factory, now=now)

        await make_request("2021-0001-A")
        result = await migrate_approved(
            session_factory=session_factory, now=now, variant_policy=no_variants
        )

        assert result.migrated_count == 1
        assert len(await _ledger_rows(session_factory)) == 2

    @pytest.mark.asyncio
    async def test_variant_check_respects_term(self, session_factory, make_request, now):
        await make_request("2021-0001", semester="1st Term")
        await make_request("2021-0001-A", semester="2nd Term")

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 2

    @pytest.mark.asyncio
    async def test_earliest_request_wins(self, session_factory, make_request, now):
        """Two approved requests for one identity: the earlier-created one is migrated."""
        # Inserted first (lower id) but created later
        later = await make_request("2021-0001", created_at=now - timedelta(minutes=10))
        earlier = await make_request(
            "2021-0001", created_at=now - timedelta(minutes=10, seconds=10)
        )

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.total_candidates == 2
        assert [m.request_id for m in result.migrated] == [earlier.id]
        assert [d.request_id for d in result.duplicates_prevented] == [later.id]
        assert result.duplicates_prevented[0].existing_enrollment_id == (
            result.migrated[0].enrollment_id
        )

    @pytest.mark.asyncio
    async def test_different_identities_all_migrate(self, session_factory, make_request, now):
        await make_request("2021001", program="BSIT")
        await make_request("2021001", program="BSCS")
        await make_request("2022002", program="BSIT")

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 3
        assert result.duplicates_prevented_count == 0


class TestIdempotence:
    """Re-running the engine never creates more rows."""

    @pytest.mark.asyncio
    async def test_second_run_migrates_nothing(self, session_factory, make_request, now):
        await make_request("2021001")
        await make_request("2022002")

        first = await migrate_approved(session_factory=session_factory, now=now)
        rows_after_first = [row.id for row in await _ledger_rows(session_factory)]
        second = await migrate_approved(session_factory=session_factory, now=now)

        assert first.migrated_count == 2
        assert second.migrated_count == 0
        assert second.total_candidates == 0
        assert [row.id for row in await _ledger_rows(session_factory)] == rows_after_first

    @pytest.mark.asyncio
    async def test_at_most_one_row_per_request(self, session_factory, make_request, now):
        for student_id in ("2021001", "2022002", "2023003"):
            await make_request(student_id)

        for _ in range(3):
            await migrate_approved(session_factory=session_factory, now=now)

        async with session_factory() as db:
            result = await db.execute(
                select(EnrolledStudent.enrollment_request_id, func.count(EnrolledStudent.id))
                .group_by(EnrolledStudent.enrollment_request_id)
            )
            counts = dict(result.all())
        assert len(counts) == 3
        assert set(counts.values()) == {1}

    @pytest.mark.asyncio
    async def test_ledger_row_for_request_is_skipped(
        self, session_factory, make_request, make_enrolled, now
    ):
        """A request whose ledger row already exists is counted as already migrated."""
        request = await make_request("2021001")
        # Another run inserted the row after this run loaded its candidates
        await make_enrolled("2021001", enrollment_request_id=request.id)

        with patch.object(
            ledger_repository, "get_migration_candidates", AsyncMock(return_value=[request])
        ):
            result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.total_candidates == 1
        assert result.already_migrated == 1
        assert result.migrated_count == 0
        assert len(await _ledger_rows(session_factory)) == 1


class TestClaims:
    """Conditional claims and stale claim recovery."""

    @pytest.mark.asyncio
    async def test_only_one_claim_succeeds(self, session_factory, make_request, now):
        request = await make_request("2021001")
        kwargs = dict(
            seen_status=MigrationStatus.NOT_MIGRATED,
            claimed_at=now,
            stale_claim_before=now - timedelta(minutes=15),
        )

        async with session_factory() as db:
            first = await ledger_repository.claim_for_migration(db, request.id, **kwargs)
            await db.commit()
        async with session_factory() as db:
            second = await ledger_repository.claim_for_migration(db, request.id, **kwargs)
            await db.commit()

        assert first is True
        assert second is False

    @pytest.mark.asyncio
    async def test_interleaved_runs_keep_one_active_row(self, session_factory, make_request, now):
        """Two runs over the same colliding requests migrate only the oldest one, once."""
        oldest = await make_request("2021-0001", created_at=now - timedelta(seconds=20))
        await make_request("2021-0001", created_at=now - timedelta(seconds=10))
        await make_request("2021-0001-A", created_at=now - timedelta(seconds=5))

        first, second = await asyncio.gather(
            migrate_approved(session_factory=session_factory, now=now),
            migrate_approved(session_factory=session_factory, now=now),
        )

        rows = await _ledger_rows(session_factory)
        active = [row for row in rows if row.status == EnrolledStatus.ACTIVE]
        assert [(row.student_id, row.enrollment_request_id) for row in active] == [
            ("2021-0001", oldest.id)
        ]

        assert first.migrated_count + second.migrated_count == 1
        assert first.error_count == second.error_count == 0
        for result in (first, second):
            assert (
                result.migrated_count
                + result.duplicates_prevented_count
                + result.already_migrated
                == result.total_candidates
            )

    @pytest.mark.asyncio
    async def test_lost_claim_is_skipped(self, session_factory, make_request, now):
        await make_request("2021001")

        with patch.object(ledger_repository, "claim_for_migration", AsyncMock(return_value=False)):
            result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.already_migrated == 1
        assert result.migrated_count == 0
        assert result.errors == []
        assert await _ledger_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_stale_claim_is_retried(self, session_factory, make_request, now):
        request = await make_request(
            "2021001",
            migration_status=MigrationStatus.MIGRATING,
            migration_claimed_at=now - timedelta(hours=1),
        )

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert [m.request_id for m in result.migrated] == [request.id]

    @pytest.mark.asyncio
    async def test_fresh_claim_is_left_alone(self, session_factory, make_request, now):
        await make_request(
            "2021001",
            migration_status=MigrationStatus.MIGRATING,
            migration_claimed_at=now - timedelta(minutes=1),
        )

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.total_candidates == 0


class TestFailureIsolation:
    """One candidate failing never affects the others."""

    @pytest.mark.asyncio
    async def test_storage_constraint_reported_as_duplicate(
        self, session_factory, make_request, make_enrolled, now
    ):
        """If the screening misses a duplicate, the unique index still blocks it."""
        await make_enrolled("2021001")
        request = await make_request("2021001")

        with patch.object(
            ledger_repository, "find_active_enrollment", AsyncMock(return_value=None)
        ):
            result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 0
        assert result.errors == []
        assert result.duplicates_prevented[0].request_id == request.id
        assert result.duplicates_prevented[0].reason == REASON_STORAGE_CONSTRAINT
        assert len(await _ledger_rows(session_factory)) == 1
        # Claim released so a later run can re-evaluate it
        refreshed = await _request(session_factory, request.id)
        assert refreshed.migration_status == MigrationStatus.NOT_MIGRATED

    @pytest.mark.asyncio
    async def test_error_on_one_candidate_does_not_stop_batch(
        self, session_factory, make_request, now
    ):
        failing = await make_request("2021001", created_at=now - timedelta(minutes=30))
        ok = await make_request("2022002", created_at=now - timedelta(minutes=20))
        original = ledger_repository.create_enrolled_student

        async def _create(db, **kwargs):
            if kwargs["student_id"] == "2021001":
                raise RuntimeError("disk full")
            return await original(db, **kwargs)

        with patch.object(ledger_repository, "create_enrolled_student", _create):
            result = await migrate_approved(session_factory=session_factory, now=now)

        assert not result.success
        assert result.error_count == 1
        assert result.errors[0].request_id == failing.id
        assert result.errors[0].error == "disk full"
        assert [m.request_id for m in result.migrated] == [ok.id]
        refreshed = await _request(session_factory, failing.id)
        assert refreshed.migration_status == MigrationStatus.NOT_MIGRATED

    @pytest.mark.asyncio
    async def test_candidate_query_failure_is_fatal(self, session_factory):
        with patch.object(
            ledger_repository,
            "get_migration_candidates",
            AsyncMock(side_effect=OperationalError("SELECT", {}, Exception("db down"))),
        ):
            with pytest.raises(FatalBatchError) as exc_info:
                await migrate_approved(session_factory=session_factory)

        assert exc_info.value.status_code == 500
        assert exc_info.value.error_code == "MIGRATION_FAILED"


class TestEnrolledNotifications:
    """The "enrolled" notification after a successful migration."""

    @pytest.mark.asyncio
    async def test_notifies_resolved_student(self, db_session, session_factory, make_request, now):
        user = await UserRepository.create(
            db_session, email="ana@school.edu", first_name="Ana", last_name="Cruz"
        )
        await StudentProfileRepository.create(
            db_session,
            student_id="2021-0001",
            first_name="Ana",
            last_name="Cruz",
            email="ana@school.edu",
        )
        await db_session.commit()
        await make_request("2021-0001")

        result = await migrate_approved(
            session_factory=session_factory, dispatcher=NotificationDispatcher(), now=now
        )

        assert result.notifications_sent == 1
        assert result.migrated[0].notified
        async with session_factory() as db:
            notifications = list((await db.execute(select(Notification))).scalars().all())
        assert len(notifications) == 1
        assert notifications[0].user_id == user.id
        assert notifications[0].title == "Successfully Enrolled!"
        assert f"1st Term {_academic_year(now)}" in notifications[0].message

    @pytest.mark.asyncio
    async def test_unresolved_student_is_not_an_error(self, session_factory, make_request, now):
        await make_request("2021-0001")

        result = await migrate_approved(session_factory=session_factory, now=now)

        assert result.migrated_count == 1
        assert result.notifications_sent == 0
        assert result.notification_failures == 0
        assert not result.migrated[0].notified

    @pytest.mark.asyncio
    async def test_notification_failure_keeps_migration(
        self, db_session, session_factory, make_request, now
    ):
        await UserRepository.create(
            db_session, email="ana@school.edu", first_name="Ana", last_name="Cruz"
        )
        await StudentProfileRepository.create(
            db_session,
            student_id="2021-0001",
            first_name="Ana",
            last_name="Cruz",
            email="ana@school.edu",
        )
        await db_session.commit()
        await make_request("2021-0001")
        dispatcher = MagicMock()
        dispatcher.notify_enrollment = AsyncMock(side_effect=RuntimeError("push failed"))

        result = await migrate_approved(
            session_factory=session_factory, dispatcher=dispatcher, now=now
        )

        assert result.success
        assert result.migrated_count == 1
        assert result.notification_failures == 1
        assert len(await _ledger_rows(session_factory)) == 1
