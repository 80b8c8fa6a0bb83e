"""
Tests for the enrollment request repository.

These tests focus on the review state machine, filtering and statistics.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from registrar.core.exceptions import InvalidStatusTransitionError, NotFoundError
from registrar.modules.curriculum.models import StudentType
from registrar.modules.enrollments import repository
from registrar.modules.enrollments.models import MigrationStatus, RequestStatus
from registrar.modules.enrollments.repository import VALID_STATUS_TRANSITIONS


class TestStatusTransitions:
    """Tests for the status transition map."""

    def test_pending_can_be_decided(self):
        valid = VALID_STATUS_TRANSITIONS[RequestStatus.PENDING]
        assert RequestStatus.APPROVED in valid
        assert RequestStatus.REJECTED in valid

    def test_approval_can_be_withdrawn(self):
        valid = VALID_STATUS_TRANSITIONS[RequestStatus.APPROVED]
        assert RequestStatus.PENDING in valid
        assert RequestStatus.REJECTED in valid

    def test_rejected_is_terminal(self):
        assert VALID_STATUS_TRANSITIONS[RequestStatus.REJECTED] == set()

    def test_all_statuses_are_in_transition_map(self):
        for status in RequestStatus:
            assert status in VALID_STATUS_TRANSITIONS


class TestUpdateStatus:
    """Tests for update_status against the database."""

    @pytest.mark.asyncio
    async def test_pending_to_approved(self, db_session, make_request):
        request = await make_request(status=RequestStatus.PENDING)

        updated, previous = await repository.update_status(
            db_session, request.id, RequestStatus.APPROVED, remarks="Receipt verified"
        )

        assert previous == RequestStatus.PENDING
        assert updated.status == RequestStatus.APPROVED
        assert updated.remarks == "Receipt verified"
        # Approval alone never migrates
        assert updated.migration_status == MigrationStatus.NOT_MIGRATED

    @pytest.mark.asyncio
    async def test_same_status_updates_remarks_only(self, db_session, make_request):
        request = await make_request(status=RequestStatus.REJECTED)

        updated, previous = await repository.update_status(
            db_session, request.id, RequestStatus.REJECTED, remarks="Blurry receipt"
        )

        assert previous == RequestStatus.REJECTED
        assert updated.status == RequestStatus.REJECTED
        assert updated.remarks == "Blurry receipt"

    @pytest.mark.asyncio
    async def test_rejected_cannot_be_approved(self, db_session, make_request):
        request = await make_request(status=RequestStatus.REJECTED)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await repository.update_status(db_session, request.id, RequestStatus.APPROVED)

        assert exc_info.value.status_code == 409
        assert exc_info.value.current == "rejected"

    @pytest.mark.asyncio
    async def test_migrated_request_is_locked(self, db_session, make_request):
        request = await make_request(migration_status=MigrationStatus.MIGRATED)

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await repository.update_status(db_session, request.id, RequestStatus.PENDING)

        assert "already been migrated" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_request(self, db_session):
        with pytest.raises(NotFoundError):
            await repository.update_status(db_session, 999, RequestStatus.APPROVED)


class TestListAndStats:
    """Tests for list_requests, delete_many and get_request_stats."""

    @pytest.mark.asyncio
    async def test_list_filters_and_total(self, db_session, make_request, now):
        await make_request("2021001", status=RequestStatus.PENDING, created_at=now - timedelta(days=3))
        await make_request("2022002", status=RequestStatus.APPROVED, created_at=now - timedelta(days=2))
        await make_request(
            "2023003",
            status=RequestStatus.PENDING,
            student_type=StudentType.IRREGULAR,
            created_at=now - timedelta(days=1),
        )

        pending, total = await repository.list_requests(db_session, status=RequestStatus.PENDING)
        assert total == 2
        # Newest first
        assert [r.student_id for r in pending] == ["2023003", "2021001"]

        irregular, total = await repository.list_requests(
            db_session, student_type=StudentType.IRREGULAR
        )
        assert total == 1

        searched, total = await repository.list_requests(db_session, search="2022")
        assert [r.student_id for r in searched] == ["2022002"]

        page, total = await repository.list_requests(db_session, skip=1, limit=1)
        assert total == 3
        assert len(page) == 1

    @pytest.mark.asyncio
    async def test_list_by_student_newest_first(self, db_session, make_request, now):
        older = await make_request("2021001", created_at=now - timedelta(days=10))
        newer = await make_request("2021001", created_at=now - timedelta(days=1))
        await make_request("2022002")

        requests = await repository.list_by_student(db_session, "2021001")

        assert [r.id for r in requests] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_delete_many_reports_existing(self, db_session, make_request):
        first = await make_request("2021001")
        second = await make_request("2022002")

        deleted = await repository.delete_many(db_session, [first.id, second.id, 999])

        assert sorted(deleted) == sorted([first.id, second.id])
        assert await repository.get_by_id(db_session, first.id) is None

    @pytest.mark.asyncio
    async def test_stats(self, db_session, make_request, now):
        await make_request("2021001", status=RequestStatus.PENDING)
        await make_request("2022002", status=RequestStatus.APPROVED)
        await make_request(
            "2023003",
            status=RequestStatus.APPROVED,
            migration_status=MigrationStatus.MIGRATED,
            student_type=StudentType.IRREGULAR,
        )
        await make_request(
            "2024004", status=RequestStatus.REJECTED, created_at=now - timedelta(days=30)
        )

        stats = await repository.get_request_stats(db_session)

        assert stats["total"] == 4
        assert stats["pending"] == 1
        assert stats["approved"] == 2
        assert stats["rejected"] == 1
        assert stats["regular"] == 3
        assert stats["irregular"] == 1
        assert stats["with_receipt"] == 4
        assert stats["recent_week"] == 3
        assert stats["approved_total_fees"] == Decimal("13815.56")
        assert stats["awaiting_migration"] == 1
