"""
Tests for duplicate ledger cleanup.

The partial unique index prevents new duplicates, so these tests drop it
first to recreate rows written before the index existed.
"""

from unittest.mock import patch

import pytest
import pytest_asyncio
from sqlalchemy import select, text
from sqlalchemy.exc import OperationalError

from registrar.core.exceptions import FatalBatchError
from registrar.modules.enrollments import ledger_repository
from registrar.modules.enrollments.migration import cleanup_duplicates
from registrar.modules.enrollments.models import EnrolledStatus, EnrolledStudent


@pytest_asyncio.fixture
async def legacy_ledger(engine):
    """Ledger without the active-identity unique index."""
    async with engine.begin() as conn:
        await conn.execute(text("DROP INDEX uq_enrolled_students_active_identity"))
    return engine


async def _ledger_ids(session_factory) -> list[int]:
    async with session_factory() as db:
        result = await db.execute(select(EnrolledStudent.id).order_by(EnrolledStudent.id))
        return list(result.scalars().all())


class TestCleanupDuplicates:
    """Tests for cleanup_duplicates."""

    @pytest.mark.asyncio
    async def test_keeps_lowest_id_per_identity(
        self, legacy_ledger, session_factory, make_enrolled
    ):
        first = await make_enrolled("2021001")
        second = await make_enrolled("2021001")
        third = await make_enrolled("2021001")
        other = await make_enrolled("2022002")

        result = await cleanup_duplicates(session_factory=session_factory)

        assert result.duplicate_groups == 1
        assert result.removed_count == 2
        assert result.kept_ids == [first.id]
        assert sorted(result.removed_ids) == [second.id, third.id]
        assert await _ledger_ids(session_factory) == [first.id, other.id]

    @pytest.mark.asyncio
    async def test_second_run_removes_nothing(self, legacy_ledger, session_factory, make_enrolled):
        await make_enrolled("2021001")
        await make_enrolled("2021001")
        await make_enrolled("2022002", semester="2nd Term")
        await make_enrolled("2022002", semester="2nd Term")

        first = await cleanup_duplicates(session_factory=session_factory)
        second = await cleanup_duplicates(session_factory=session_factory)

        assert first.duplicate_groups == 2
        assert first.removed_count == 2
        assert second.duplicate_groups == 0
        assert second.removed_count == 0
        assert len(await _ledger_ids(session_factory)) == 2

    @pytest.mark.asyncio
    async def test_inactive_rows_are_not_duplicates(
        self, legacy_ledger, session_factory, make_enrolled
    ):
        await make_enrolled("2021001")
        await make_enrolled("2021001", status=EnrolledStatus.DROPPED)
        await make_enrolled("2021001", academic_year="2020-2021")

        result = await cleanup_duplicates(session_factory=session_factory)

        assert result.duplicate_groups == 0
        assert len(await _ledger_ids(session_factory)) == 3

    @pytest.mark.asyncio
    async def test_empty_ledger(self, session_factory):
        result = await cleanup_duplicates(session_factory=session_factory)

        assert result.removed_count == 0
        assert result.removed_ids == []

    @pytest.mark.asyncio
    async def test_database_failure_is_fatal(self, session_factory):
        with patch.object(
            ledger_repository,
            "get_duplicate_groups",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            with pytest.raises(FatalBatchError):
                await cleanup_duplicates(session_factory=session_factory)
